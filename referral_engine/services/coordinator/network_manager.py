"""
Coordinator network manager.

Scoped view and mutation layer over the affiliates assigned to one
coordinator.
"""

from dataclasses import dataclass, field
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from referral_engine.models.enums import (
    UNPAID_COMMISSION_STATUSES,
    CommissionStatus,
)
from referral_engine.models.user import User
from referral_engine.repositories.commission_repository import (
    CommissionRepository,
)
from referral_engine.repositories.transaction_repository import (
    TransactionRepository,
)
from referral_engine.repositories.user_repository import UserRepository
from referral_engine.services.base_service import BaseService, transaction
from referral_engine.services.capabilities import (
    Capability,
    requires_capability,
)
from referral_engine.services.referral.attachment_service import (
    AttachmentService,
)
from referral_engine.services.referral.tree_resolver import (
    ReferralTreeResolver,
)
from referral_engine.utils.exceptions import (
    EngineError,
    NotFoundError,
    ValidationError,
)


EARNED_STATUSES = UNPAID_COMMISSION_STATUSES + (CommissionStatus.PAID.value,)


@dataclass
class AffiliateSummary:
    """One affiliate in a coordinator's network."""

    user: User
    total_earnings: Decimal
    pending_earnings: Decimal
    referral_counts: dict[str, int]


@dataclass
class CoordinatorNetwork:
    """A coordinator and their affiliates."""

    coordinator: User
    affiliates: list[AffiliateSummary] = field(default_factory=list)


@dataclass
class BulkAssignmentResult:
    """Outcome of a bulk assignment; conflicts are skips, not failures."""

    coordinator_id: int
    assigned: list[int] = field(default_factory=list)
    skipped: dict[int, str] = field(default_factory=dict)


@dataclass
class CoordinatorStats:
    """Aggregate numbers for a coordinator dashboard."""

    coordinator_id: int
    total_affiliates: int
    active_affiliates: int
    paid_commissions: Decimal
    pending_commissions: Decimal
    referred_transactions: int


class CoordinatorNetworkManager(BaseService):
    """Coordinator-scoped network operations."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize network manager."""
        super().__init__(session)
        self.user_repo = UserRepository(session)
        self.commission_repo = CommissionRepository(session)
        self.transaction_repo = TransactionRepository(session)
        self.tree = ReferralTreeResolver(session)
        self.attachment = AttachmentService(session)

    @requires_capability(Capability.VIEW_NETWORK)
    async def get_network(self, coordinator_id: int) -> CoordinatorNetwork:
        """
        Get a coordinator's affiliates with their earnings and referrals.

        Args:
            coordinator_id: Coordinator user ID

        Returns:
            CoordinatorNetwork, affiliates newest first

        Raises:
            NotFoundError: Unknown coordinator
            ValidationError: User is not a coordinator
        """
        coordinator = await self._get_coordinator(coordinator_id)
        network = CoordinatorNetwork(coordinator=coordinator)

        for affiliate in await self.user_repo.get_coordinator_affiliates(
            coordinator_id
        ):
            referrals = await self.tree.descendants_of(affiliate.id)
            network.affiliates.append(
                AffiliateSummary(
                    user=affiliate,
                    total_earnings=await self.commission_repo.sum_by_status(
                        affiliate.id, EARNED_STATUSES
                    ),
                    pending_earnings=await self.commission_repo.sum_by_status(
                        affiliate.id, UNPAID_COMMISSION_STATUSES
                    ),
                    referral_counts=referrals.totals,
                )
            )

        return network

    @requires_capability(Capability.MANAGE_USERS)
    @transaction
    async def toggle_coordinator_status(
        self, coordinator_id: int, is_active: bool
    ) -> User:
        """
        Activate or deactivate a coordinator.

        Affiliates stay attached and keep their own status.

        Raises:
            NotFoundError: Unknown coordinator
            ValidationError: User is not a coordinator
        """
        coordinator = await self._get_coordinator(coordinator_id)
        coordinator.is_active = is_active
        await self.session.flush()

        self.logger.info(
            "Coordinator status changed",
            extra={"coordinator_id": coordinator_id, "is_active": is_active},
        )
        return coordinator

    @requires_capability(Capability.ASSIGN_AFFILIATES)
    @transaction
    async def bulk_assign(
        self, coordinator_id: int, affiliate_ids: list[int]
    ) -> BulkAssignmentResult:
        """
        Assign several affiliates to a coordinator.

        Affiliates that are unknown, not affiliates or already assigned are
        skipped with a reason; the rest of the batch still applies.

        Args:
            coordinator_id: Coordinator user ID
            affiliate_ids: Affiliates to assign

        Returns:
            BulkAssignmentResult

        Raises:
            NotFoundError: Unknown coordinator
            ValidationError: User is not a coordinator
        """
        await self._get_coordinator(coordinator_id)
        result = BulkAssignmentResult(coordinator_id=coordinator_id)

        for affiliate_id in dict.fromkeys(affiliate_ids):
            try:
                await self.attachment.assign_coordinator(
                    affiliate_id, coordinator_id
                )
            except EngineError as e:
                result.skipped[affiliate_id] = e.message
                self.logger.warning(
                    "Affiliate skipped during bulk assignment",
                    extra={
                        "affiliate_id": affiliate_id,
                        "coordinator_id": coordinator_id,
                        "reason": e.message,
                    },
                )
                continue

            result.assigned.append(affiliate_id)

        self.logger.info(
            "Bulk assignment finished",
            extra={
                "coordinator_id": coordinator_id,
                "assigned": len(result.assigned),
                "skipped": len(result.skipped),
            },
        )
        return result

    @requires_capability(Capability.REASSIGN_AFFILIATES)
    @transaction
    async def reassign_affiliate(
        self, affiliate_id: int, coordinator_id: int
    ) -> User:
        """
        Explicitly move an affiliate to another coordinator (admin only).

        Args:
            affiliate_id: Affiliate user ID
            coordinator_id: New coordinator

        Returns:
            Updated affiliate

        Raises:
            NotFoundError: Unknown affiliate or coordinator
            ValidationError: Wrong roles
        """
        await self._get_coordinator(coordinator_id)

        affiliate = await self.user_repo.get_for_update(affiliate_id)
        if not affiliate:
            raise NotFoundError(f"Affiliate {affiliate_id} not found")

        if not affiliate.is_affiliate:
            raise ValidationError(f"User {affiliate_id} is not an affiliate")

        previous = affiliate.coordinator_id
        if previous == coordinator_id:
            return affiliate

        affiliate.coordinator_id = coordinator_id
        await self.session.flush()

        self.logger.warning(
            "Affiliate reassigned to another coordinator",
            extra={
                "affiliate_id": affiliate_id,
                "from_coordinator_id": previous,
                "to_coordinator_id": coordinator_id,
            },
        )
        return affiliate

    @requires_capability(Capability.VIEW_NETWORK)
    async def get_stats(self, coordinator_id: int) -> CoordinatorStats:
        """
        Get coordinator dashboard totals.

        Raises:
            NotFoundError: Unknown coordinator
            ValidationError: User is not a coordinator
        """
        await self._get_coordinator(coordinator_id)

        return CoordinatorStats(
            coordinator_id=coordinator_id,
            total_affiliates=await self.user_repo.count_coordinator_affiliates(
                coordinator_id
            ),
            active_affiliates=await self.user_repo.count_coordinator_affiliates(
                coordinator_id, active_only=True
            ),
            paid_commissions=await self.commission_repo.sum_for_coordinator(
                coordinator_id, (CommissionStatus.PAID.value,)
            ),
            pending_commissions=await self.commission_repo.sum_for_coordinator(
                coordinator_id, UNPAID_COMMISSION_STATUSES
            ),
            referred_transactions=(
                await self.transaction_repo.count_referred_by_coordinator(
                    coordinator_id
                )
            ),
        )

    async def _get_coordinator(self, coordinator_id: int) -> User:
        coordinator = await self.user_repo.get_by_id(coordinator_id)
        if not coordinator:
            raise NotFoundError(f"Coordinator {coordinator_id} not found")

        if not coordinator.is_coordinator:
            raise ValidationError(
                f"User {coordinator_id} is not a coordinator"
            )
        return coordinator
