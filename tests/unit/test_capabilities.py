"""Unit tests for capability-tagged operations."""

import pytest

from referral_engine.models.enums import UserRole
from referral_engine.services.capabilities import (
    ROLE_CAPABILITIES,
    Capability,
    authorize,
    has_capability,
    requires_capability,
)
from referral_engine.services.commission import CommissionLevelRegistry
from referral_engine.services.coordinator import CoordinatorNetworkManager
from referral_engine.services.payout import PayoutProcessor
from referral_engine.services.referral import AffiliateLinkService
from referral_engine.utils.exceptions import PermissionDeniedError


class TestRequiresCapability:
    """Test capability tagging."""

    def test_operation_declares_capability(self):
        """Decorated operations expose their capability."""
        assert (
            CommissionLevelRegistry.upsert_level.required_capability
            == Capability.MANAGE_COMMISSION_LEVELS
        )
        assert (
            PayoutProcessor.process_payout.required_capability
            == Capability.PROCESS_PAYOUTS
        )

    def test_bound_method_keeps_capability(self, mock_session):
        """Capability is visible through bound methods."""
        registry = CommissionLevelRegistry(mock_session)
        assert (
            registry.reset_to_defaults.required_capability
            == Capability.MANAGE_COMMISSION_LEVELS
        )

    def test_decorator_returns_same_function(self):
        """Tagging does not wrap the function."""
        def operation():
            return 42

        tagged = requires_capability(Capability.INVITE)(operation)
        assert tagged is operation
        assert tagged() == 42


class TestAuthorize:
    """Test role checks."""

    def test_admin_has_everything(self):
        """Admin role grants every capability."""
        assert ROLE_CAPABILITIES[UserRole.ADMIN] == frozenset(Capability)

    def test_admin_may_manage_levels(self, mock_session):
        """Admin can edit the schedule."""
        authorize(UserRole.ADMIN, CommissionLevelRegistry(mock_session).upsert_level)

    def test_affiliate_cannot_manage_levels(self, mock_session):
        """Affiliate editing the schedule is denied."""
        with pytest.raises(PermissionDeniedError):
            authorize(
                UserRole.AFFILIATE,
                CommissionLevelRegistry(mock_session).upsert_level,
            )

    def test_affiliate_may_read_levels(self, mock_session):
        """Reading the schedule is open to affiliates."""
        authorize("affiliate", CommissionLevelRegistry(mock_session).get_active_levels)

    def test_only_admin_reassigns(self, mock_session):
        """Explicit reassignment is admin-only."""
        manager = CoordinatorNetworkManager(mock_session)
        authorize(UserRole.ADMIN, manager.reassign_affiliate)
        with pytest.raises(PermissionDeniedError):
            authorize(UserRole.COORDINATOR, manager.reassign_affiliate)

    def test_coordinator_may_bulk_assign(self, mock_session):
        """Coordinators can assign affiliates."""
        authorize(
            UserRole.COORDINATOR,
            CoordinatorNetworkManager(mock_session).bulk_assign,
        )

    def test_client_cannot_process_payouts(self, mock_session):
        """Clients have no payout access."""
        with pytest.raises(PermissionDeniedError):
            authorize(UserRole.CLIENT, PayoutProcessor(mock_session).process_payout)

    def test_client_may_only_track_links(self, mock_session):
        """Clients count clicks but cannot create links."""
        links = AffiliateLinkService(mock_session)
        authorize(UserRole.CLIENT, links.record_click)
        authorize(UserRole.AFFILIATE, links.create_link)
        with pytest.raises(PermissionDeniedError):
            authorize(UserRole.CLIENT, links.create_link)

    def test_undeclared_operation_denied(self):
        """Operations without a capability are never authorized."""
        def untagged():
            pass

        with pytest.raises(PermissionDeniedError):
            authorize(UserRole.ADMIN, untagged)

    def test_unknown_role(self):
        """Unknown roles have no capabilities."""
        assert has_capability("superuser", Capability.REGISTER) is False
