"""
Commission calculation engine.

Fans a qualifying transaction out over the referrer chain: one commission
record per ancestor level that has an active rate in the schedule snapshot.
All records of a transaction are written in one database transaction.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from referral_engine.config.settings import settings
from referral_engine.models.commission import CommissionRecord
from referral_engine.models.enums import (
    COMMISSION_TRANSITIONS,
    UNPAID_COMMISSION_STATUSES,
    CommissionStatus,
    TransactionStatus,
)
from referral_engine.models.transaction import Transaction
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
from referral_engine.services.commission.level_registry import (
    CommissionLevelRegistry,
    CommissionSchedule,
)
from referral_engine.services.notification.dispatcher import (
    NotificationDispatcher,
)
from referral_engine.services.referral.tree_resolver import (
    ReferralTreeResolver,
)
from referral_engine.utils.datetime_utils import utc_now
from referral_engine.utils.exceptions import (
    ConflictError,
    NotFoundError,
    ValidationError,
)
from referral_engine.utils.money import percentage_of, to_decimal
from referral_engine.validators.unified import validate_amount


ALL_COMMISSION_STATUSES = tuple(status.value for status in CommissionStatus)
EARNED_COMMISSION_STATUSES = UNPAID_COMMISSION_STATUSES + (
    CommissionStatus.PAID.value,
)


@dataclass(frozen=True)
class LevelShare:
    """One level of a commission breakdown."""

    level: int
    percentage: Decimal
    amount: Decimal


@dataclass(frozen=True)
class CommissionBreakdown:
    """Commission split of a sale amount, without persistence."""

    sale_amount: Decimal
    schedule_version: int | None
    levels: list[LevelShare] = field(default_factory=list)

    @property
    def total_commission(self) -> Decimal:
        return sum((share.amount for share in self.levels), Decimal("0"))

    @property
    def total_percentage(self) -> Decimal:
        return sum((share.percentage for share in self.levels), Decimal("0"))


@dataclass
class CancellationResult:
    """Outcome of cancelling a transaction's commissions."""

    transaction_id: int
    cancelled: list[CommissionRecord] = field(default_factory=list)
    already_paid: list[CommissionRecord] = field(default_factory=list)
    overpaid_amount: Decimal = Decimal("0")

    @property
    def requires_reconciliation(self) -> bool:
        """Money already left for commissions that are now void."""
        return bool(self.already_paid) or self.overpaid_amount > 0


@dataclass
class AffiliateStats:
    """Commission totals of one affiliate."""

    affiliate_id: int
    total_earned: Decimal
    pending: Decimal
    approved: Decimal
    paid: Decimal
    this_month: Decimal
    available_balance: Decimal
    by_level: dict[int, Decimal] = field(default_factory=dict)


def calculate_breakdown(
    amount: Decimal | int | float | str,
    schedule: CommissionSchedule,
    chain_length: int | None = None,
    max_levels: int | None = None,
) -> CommissionBreakdown:
    """
    Split a sale amount over the schedule's active levels.

    Args:
        amount: Sale amount
        schedule: Schedule snapshot
        chain_length: Number of ancestors available (None = unlimited)
        max_levels: Deepest paying level (defaults to settings)

    Returns:
        Per-level breakdown rounded half-up to cents
    """
    amount = to_decimal(amount)
    depth = max_levels if max_levels is not None else settings.max_commission_levels
    if chain_length is not None:
        depth = min(depth, chain_length)

    shares = []
    for level in range(1, depth + 1):
        rate = schedule.rate_for(level)
        if rate is None:
            continue
        shares.append(
            LevelShare(
                level=level,
                percentage=rate,
                amount=percentage_of(amount, rate),
            )
        )

    return CommissionBreakdown(
        sale_amount=amount,
        schedule_version=schedule.version,
        levels=shares,
    )


class CommissionCalculationEngine(BaseService):
    """Creates, cancels and reports commission records."""

    def __init__(
        self,
        session: AsyncSession,
        notifier: NotificationDispatcher | None = None,
    ) -> None:
        """
        Initialize calculation engine.

        Args:
            session: Async database session
            notifier: Optional notification dispatcher
        """
        super().__init__(session)
        self.commission_repo = CommissionRepository(session)
        self.transaction_repo = TransactionRepository(session)
        self.user_repo = UserRepository(session)
        self.registry = CommissionLevelRegistry(session)
        self.tree = ReferralTreeResolver(session)
        self.notifier = notifier

    @requires_capability(Capability.RECORD_TRANSACTIONS)
    async def record_commissions_for_transaction(
        self,
        transaction_id: int,
        originating_user_id: int,
        amount: Decimal | int | float | str,
        schedule: CommissionSchedule | None = None,
    ) -> list[CommissionRecord]:
        """
        Record commissions for a sale made by a registered user.

        The originating user's referrer is level 1.

        Args:
            transaction_id: Qualifying transaction
            originating_user_id: User who made the purchase
            amount: Sale amount
            schedule: Schedule snapshot (taken now when omitted)

        Returns:
            Created pending records, ordered by level

        Raises:
            NotFoundError: Unknown transaction or user
            ValidationError: Bad amount, sale not completed or not made
                by this user
            ConflictError: Commissions already recorded for the transaction
        """
        records = await self._record_for_originator(
            transaction_id, originating_user_id, amount, schedule
        )
        await self.notify_recipients(records)
        return records

    @transaction
    async def _record_for_originator(
        self,
        transaction_id: int,
        originating_user_id: int,
        amount: Decimal | int | float | str,
        schedule: CommissionSchedule | None,
    ) -> list[CommissionRecord]:
        if not await self.user_repo.exists(id=originating_user_id):
            raise NotFoundError(f"User {originating_user_id} not found")

        sale = await self.get_qualifying_sale(transaction_id)
        if sale.referrer_id is not None:
            raise ValidationError(
                f"Transaction {transaction_id} was made with a referral code, "
                "commissions follow the code owner"
            )
        if sale.originating_user_id != originating_user_id:
            raise ValidationError(
                f"Transaction {transaction_id} was not made by user "
                f"{originating_user_id}"
            )

        schedule = schedule or await self.registry.get_schedule()
        chain = await self.tree.ancestors_of(
            originating_user_id, settings.max_commission_levels
        )
        return await self.create_commissions(
            transaction_id, chain, amount, schedule
        )

    @requires_capability(Capability.RECORD_TRANSACTIONS)
    async def record_commissions_for_referrer(
        self,
        transaction_id: int,
        referrer_id: int,
        amount: Decimal | int | float | str,
        schedule: CommissionSchedule | None = None,
    ) -> list[CommissionRecord]:
        """
        Record commissions for a sale made with a referral code.

        The code owner is level 1, their ancestors follow.

        Raises:
            NotFoundError: Unknown transaction or referrer
            ValidationError: Bad amount, sale not completed or not referred
                by this user
            ConflictError: Commissions already recorded for the transaction
        """
        records = await self._record_for_referrer(
            transaction_id, referrer_id, amount, schedule
        )
        await self.notify_recipients(records)
        return records

    @transaction
    async def _record_for_referrer(
        self,
        transaction_id: int,
        referrer_id: int,
        amount: Decimal | int | float | str,
        schedule: CommissionSchedule | None,
    ) -> list[CommissionRecord]:
        sale = await self.get_qualifying_sale(transaction_id)
        if sale.referrer_id != referrer_id:
            raise ValidationError(
                f"Transaction {transaction_id} was not referred by user "
                f"{referrer_id}"
            )

        schedule = schedule or await self.registry.get_schedule()
        chain = await self.chain_from_referrer(referrer_id)
        return await self.create_commissions(
            transaction_id, chain, amount, schedule
        )

    async def chain_from_referrer(self, referrer_id: int) -> list[User]:
        """Get [referrer, referrer's ancestors...] up to the level cap."""
        referrer = await self.user_repo.get_by_id(referrer_id)
        if not referrer:
            raise NotFoundError(f"Referrer {referrer_id} not found")

        ancestors = await self.tree.ancestors_of(
            referrer_id, settings.max_commission_levels - 1
        )
        return [referrer, *ancestors]

    async def get_qualifying_sale(self, transaction_id: int) -> Transaction:
        """
        Lock a transaction that may still earn commissions.

        Raises:
            NotFoundError: Unknown transaction
            ValidationError: Transaction refunded or cancelled
        """
        sale = await self.transaction_repo.get_for_update(transaction_id)
        if not sale:
            raise NotFoundError(f"Transaction {transaction_id} not found")

        if sale.status != TransactionStatus.COMPLETED.value:
            raise ValidationError(
                f"Transaction {transaction_id} is {sale.status}, not completed"
            )
        return sale

    async def create_commissions(
        self,
        transaction_id: int,
        chain: list[User],
        amount: Decimal | int | float | str,
        schedule: CommissionSchedule,
    ) -> list[CommissionRecord]:
        """
        Persist one pending record per paying level without committing.

        Args:
            transaction_id: Qualifying transaction
            chain: Recipients, level 1 first
            amount: Sale amount
            schedule: Schedule snapshot

        Returns:
            Created records
        """
        is_valid, value, error = validate_amount(amount)
        if not is_valid:
            raise ValidationError(error)

        await self.get_qualifying_sale(transaction_id)

        if await self.commission_repo.exists(transaction_id=transaction_id):
            raise ConflictError(
                f"Commissions already recorded for transaction {transaction_id}"
            )

        breakdown = calculate_breakdown(value, schedule, len(chain))
        recipients = {level: user for level, user in enumerate(chain, 1)}

        records = []
        try:
            for share in breakdown.levels:
                if share.amount <= 0:
                    continue

                affiliate = recipients[share.level]
                records.append(
                    await self.commission_repo.create(
                        affiliate_id=affiliate.id,
                        transaction_id=transaction_id,
                        level=share.level,
                        amount=share.amount,
                        rate=share.percentage,
                        schedule_version=schedule.version,
                        status=CommissionStatus.PENDING.value,
                    )
                )
                await self.user_repo.credit_commission(
                    affiliate.id, share.amount
                )
        except IntegrityError as e:
            raise ConflictError(
                f"Commissions already recorded for transaction {transaction_id}"
            ) from e

        self.logger.info(
            "Commissions recorded",
            extra={
                "transaction_id": transaction_id,
                "amount": str(value),
                "schedule_version": schedule.version,
                "records": len(records),
                "total_commission": str(
                    sum((r.amount for r in records), Decimal("0"))
                ),
            },
        )
        return records

    @requires_capability(Capability.VIEW_COMMISSION_LEVELS)
    async def calculate(
        self,
        amount: Decimal | int | float | str,
        chain_length: int | None = None,
        schedule: CommissionSchedule | None = None,
    ) -> CommissionBreakdown:
        """
        Preview the commission split of a sale without persisting anything.

        Raises:
            ValidationError: Bad amount
        """
        is_valid, value, error = validate_amount(amount)
        if not is_valid:
            raise ValidationError(error)

        schedule = schedule or await self.registry.get_schedule()
        return calculate_breakdown(value, schedule, chain_length)

    @requires_capability(Capability.MANAGE_COMMISSIONS)
    @transaction
    async def cancel_transaction_commissions(
        self, transaction_id: int
    ) -> CancellationResult:
        """
        Cancel the commissions of a refunded or cancelled transaction.

        Pending and approved records become cancelled and leave the ledger.
        Paid records stay paid and are reported for reconciliation.

        Args:
            transaction_id: Transaction ID

        Returns:
            CancellationResult
        """
        return await self.cancel_commissions(transaction_id)

    async def cancel_commissions(
        self, transaction_id: int
    ) -> CancellationResult:
        """Cancel a transaction's unpaid commissions without committing."""
        result = CancellationResult(transaction_id=transaction_id)

        for record in await self.commission_repo.get_by_transaction(
            transaction_id
        ):
            if record.status == CommissionStatus.PAID.value:
                result.already_paid.append(record)
            elif record.status in UNPAID_COMMISSION_STATUSES:
                overpaid = await self._cancel_record(record)
                if overpaid is not None:
                    result.cancelled.append(record)
                    result.overpaid_amount += overpaid

        if result.requires_reconciliation:
            self.logger.warning(
                "Cancelled transaction has commissions that were already paid",
                extra={
                    "transaction_id": transaction_id,
                    "paid_record_ids": [r.id for r in result.already_paid],
                    "paid_amount": str(
                        sum((r.amount for r in result.already_paid), Decimal("0"))
                    ),
                    "overpaid_amount": str(result.overpaid_amount),
                },
            )

        self.logger.info(
            "Transaction commissions cancelled",
            extra={
                "transaction_id": transaction_id,
                "cancelled": len(result.cancelled),
                "already_paid": len(result.already_paid),
            },
        )
        return result

    @requires_capability(Capability.MANAGE_COMMISSIONS)
    async def approve_commission(self, commission_id: int) -> CommissionRecord:
        """
        Approve a pending commission.

        Raises:
            NotFoundError: Unknown commission
            ValidationError: Not pending
        """
        return await self.update_status(commission_id, CommissionStatus.APPROVED)

    @requires_capability(Capability.MANAGE_COMMISSIONS)
    @transaction
    async def update_status(
        self, commission_id: int, status: CommissionStatus | str
    ) -> CommissionRecord:
        """
        Move a commission to approved or cancelled.

        Records become paid only through payouts.

        Args:
            commission_id: Commission record ID
            status: Target status

        Returns:
            Updated record

        Raises:
            NotFoundError: Unknown commission
            ValidationError: Illegal transition
        """
        try:
            target = CommissionStatus(status)
        except ValueError as e:
            raise ValidationError(f"Unknown commission status: {status}") from e

        record = await self.commission_repo.get_for_update(commission_id)
        if not record:
            raise NotFoundError(f"Commission {commission_id} not found")

        current = CommissionStatus(record.status)
        if target not in COMMISSION_TRANSITIONS[current]:
            raise ValidationError(
                f"Cannot change commission from {current.value} "
                f"to {target.value}"
            )

        if target == CommissionStatus.PAID:
            raise ValidationError(
                "Commissions are marked paid by processing a payout"
            )

        if target == CommissionStatus.CANCELLED:
            if await self._cancel_record(record) is None:
                raise ValidationError(
                    f"Commission {commission_id} changed concurrently"
                )
        elif not await self.commission_repo.transition_status(
            record.id, (current.value,), target
        ):
            raise ValidationError(
                f"Commission {commission_id} changed concurrently"
            )

        await self.session.refresh(record)

        self.logger.info(
            "Commission status updated",
            extra={
                "commission_id": commission_id,
                "from_status": current.value,
                "to_status": target.value,
            },
        )
        return record

    @requires_capability(Capability.VIEW_OWN_EARNINGS)
    async def get_affiliate_stats(
        self, affiliate_id: int, now: datetime | None = None
    ) -> AffiliateStats:
        """
        Get commission totals of an affiliate.

        Args:
            affiliate_id: Affiliate user ID
            now: Reference time for the this-month total

        Returns:
            AffiliateStats

        Raises:
            NotFoundError: Unknown affiliate
        """
        affiliate = await self.user_repo.get_by_id(affiliate_id)
        if not affiliate:
            raise NotFoundError(f"Affiliate {affiliate_id} not found")

        now = now or utc_now()
        month_start = now.replace(
            day=1, hour=0, minute=0, second=0, microsecond=0
        )

        repo = self.commission_repo
        pending = await repo.sum_by_status(
            affiliate_id, (CommissionStatus.PENDING.value,)
        )
        approved = await repo.sum_by_status(
            affiliate_id, (CommissionStatus.APPROVED.value,)
        )
        paid = await repo.sum_by_status(
            affiliate_id, (CommissionStatus.PAID.value,)
        )

        return AffiliateStats(
            affiliate_id=affiliate_id,
            total_earned=pending + approved + paid,
            pending=pending,
            approved=approved,
            paid=paid,
            this_month=await repo.sum_by_status(
                affiliate_id, EARNED_COMMISSION_STATUSES, since=month_start
            ),
            available_balance=await self.user_repo.get_pending_balance(
                affiliate_id
            ),
            by_level=await repo.sum_by_level(
                affiliate_id, EARNED_COMMISSION_STATUSES
            ),
        )

    async def notify_recipients(self, records: list[CommissionRecord]) -> None:
        """Notify each recipient of a committed record."""
        if not self.notifier:
            return

        for record in records:
            affiliate = await self.user_repo.get_by_id(record.affiliate_id)
            if affiliate:
                await self.notifier.notify_commission_earned(affiliate, record)

    async def _cancel_record(self, record: CommissionRecord) -> Decimal | None:
        """
        Cancel one unpaid record and take it out of the ledger.

        Returns:
            Portion that payout credit had already covered (overpaid), or
            None when the record was no longer unpaid
        """
        affiliate = await self.user_repo.get_for_update(record.affiliate_id)

        if not await self.commission_repo.transition_status(
            record.id, UNPAID_COMMISSION_STATUSES, CommissionStatus.CANCELLED
        ):
            return None

        amount = to_decimal(record.amount)
        pending = to_decimal(affiliate.pending_balance)
        credit_used = min(
            max(amount - pending, Decimal("0")),
            to_decimal(affiliate.payout_credit),
        )
        await self.user_repo.reverse_commission(
            affiliate.id, amount, credit_used
        )
        await self.session.refresh(record)

        if credit_used > 0:
            self.logger.warning(
                "Cancelled commission was partly covered by a payout",
                extra={
                    "commission_id": record.id,
                    "affiliate_id": affiliate.id,
                    "overpaid_amount": str(credit_used),
                },
            )
        return credit_used
