"""
Integration tests for coordinator network management.

Tests cover:
- Network views with earnings and referral counts
- Status toggles without cascade
- Bulk assignment with skips
- Admin reassignment
"""

from decimal import Decimal

import pytest

from referral_engine.models import UserRole
from referral_engine.services.commission import CommissionCalculationEngine
from referral_engine.services.coordinator import CoordinatorNetworkManager
from referral_engine.utils.exceptions import NotFoundError, ValidationError


class TestNetworkView:
    """Test coordinator network listing."""

    @pytest.mark.asyncio
    async def test_network(
        self, session, default_levels, make_user, make_transaction
    ):
        """Affiliates are listed with earnings and referral counts."""
        coordinator = await make_user(role=UserRole.COORDINATOR)
        affiliate = await make_user(coordinator=coordinator)
        buyer = await make_user(referrer=affiliate)
        await make_user(referrer=buyer)
        sale = await make_transaction(1000, originating_user=buyer)
        await CommissionCalculationEngine(
            session
        ).record_commissions_for_transaction(sale.id, buyer.id, 1000)

        network = await CoordinatorNetworkManager(session).get_network(
            coordinator.id
        )

        [summary] = network.affiliates
        assert summary.user.id == affiliate.id
        assert summary.total_earnings == Decimal("150")
        assert summary.pending_earnings == Decimal("150")
        assert summary.referral_counts["level1"] == 1
        assert summary.referral_counts["level2"] == 1
        assert summary.referral_counts["total"] == 2

    @pytest.mark.asyncio
    async def test_not_a_coordinator(self, session, make_user):
        """Only coordinators have networks."""
        affiliate = await make_user()

        with pytest.raises(ValidationError):
            await CoordinatorNetworkManager(session).get_network(affiliate.id)

    @pytest.mark.asyncio
    async def test_stats(self, session, default_levels, make_user, make_transaction):
        """Dashboard totals cover all assigned affiliates."""
        coordinator = await make_user(role=UserRole.COORDINATOR)
        active = await make_user(coordinator=coordinator)
        await make_user(coordinator=coordinator, is_active=False)
        buyer = await make_user(referrer=active)
        sale = await make_transaction(1000, originating_user=buyer)
        await CommissionCalculationEngine(
            session
        ).record_commissions_for_transaction(sale.id, buyer.id, 1000)

        stats = await CoordinatorNetworkManager(session).get_stats(coordinator.id)

        assert stats.total_affiliates == 2
        assert stats.active_affiliates == 1
        assert stats.pending_commissions == Decimal("150")
        assert stats.paid_commissions == Decimal("0")


class TestToggleStatus:
    """Test coordinator activation."""

    @pytest.mark.asyncio
    async def test_deactivate_does_not_cascade(self, session, make_user):
        """Affiliates keep their status and assignment."""
        coordinator = await make_user(role=UserRole.COORDINATOR)
        affiliate = await make_user(coordinator=coordinator)

        result = await CoordinatorNetworkManager(
            session
        ).toggle_coordinator_status(coordinator.id, False)

        assert result.is_active is False
        await session.refresh(affiliate)
        assert affiliate.is_active is True
        assert affiliate.coordinator_id == coordinator.id


class TestBulkAssign:
    """Test batch assignment."""

    @pytest.mark.asyncio
    async def test_skips_are_reported(self, session, make_user):
        """Assigned, foreign and unknown affiliates are skipped, the rest apply."""
        coordinator = await make_user(role=UserRole.COORDINATOR)
        other = await make_user(role=UserRole.COORDINATOR)
        free = await make_user()
        taken = await make_user(coordinator=other)
        client = await make_user(role=UserRole.CLIENT)

        result = await CoordinatorNetworkManager(session).bulk_assign(
            coordinator.id, [free.id, taken.id, client.id, 99999, free.id]
        )

        assert result.assigned == [free.id]
        assert set(result.skipped) == {taken.id, client.id, 99999}
        assert "already assigned" in result.skipped[taken.id]

        await session.refresh(taken)
        assert taken.coordinator_id == other.id
        await session.refresh(free)
        assert free.coordinator_id == coordinator.id

    @pytest.mark.asyncio
    async def test_unknown_coordinator(self, session, make_user):
        """The target coordinator must exist."""
        affiliate = await make_user()

        with pytest.raises(NotFoundError):
            await CoordinatorNetworkManager(session).bulk_assign(
                4040, [affiliate.id]
            )


class TestReassign:
    """Test explicit admin reassignment."""

    @pytest.mark.asyncio
    async def test_reassign(self, session, make_user):
        """Admin can move an affiliate."""
        first = await make_user(role=UserRole.COORDINATOR)
        second = await make_user(role=UserRole.COORDINATOR)
        affiliate = await make_user(coordinator=first)

        moved = await CoordinatorNetworkManager(session).reassign_affiliate(
            affiliate.id, second.id
        )

        assert moved.coordinator_id == second.id
