"""
Transaction service.

Records qualifying sales and their refunds, driving the commission engine.
The sale row and its commission records are written in one transaction.
"""

from dataclasses import dataclass, field
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from referral_engine.config.settings import settings
from referral_engine.models.affiliate_link import AffiliateLink
from referral_engine.models.commission import CommissionRecord
from referral_engine.models.enums import TransactionStatus, TransactionType
from referral_engine.models.transaction import Transaction
from referral_engine.models.user import User
from referral_engine.repositories.affiliate_link_repository import (
    AffiliateLinkRepository,
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
from referral_engine.services.commission.calculation_engine import (
    CancellationResult,
    CommissionCalculationEngine,
)
from referral_engine.services.notification.dispatcher import (
    NotificationDispatcher,
)
from referral_engine.utils.exceptions import NotFoundError, ValidationError
from referral_engine.validators.unified import normalize_email, validate_amount


@dataclass
class SaleResult:
    """A recorded sale and the commissions it produced."""

    transaction: Transaction
    commissions: list[CommissionRecord] = field(default_factory=list)

    @property
    def total_commission(self) -> Decimal:
        return sum((c.amount for c in self.commissions), Decimal("0"))


class TransactionService(BaseService):
    """Sale recording and refunds."""

    def __init__(
        self,
        session: AsyncSession,
        notifier: NotificationDispatcher | None = None,
    ) -> None:
        """
        Initialize transaction service.

        Args:
            session: Async database session
            notifier: Optional notification dispatcher
        """
        super().__init__(session)
        self.transaction_repo = TransactionRepository(session)
        self.link_repo = AffiliateLinkRepository(session)
        self.user_repo = UserRepository(session)
        self.engine = CommissionCalculationEngine(session, notifier)

    @requires_capability(Capability.RECORD_TRANSACTIONS)
    async def record_sale(
        self,
        customer_email: str,
        amount: Decimal | int | float | str,
        referral_code: str | None = None,
        originating_user_id: int | None = None,
        transaction_type: TransactionType | str = TransactionType.PURCHASE,
    ) -> SaleResult:
        """
        Record a sale and its commissions.

        With a referral code or an active affiliate link code the code owner
        is level 1, and a link also counts a conversion. Without one, the
        originating user's referrer is level 1. An unknown code records the
        sale without a referrer.

        Args:
            customer_email: Buyer e-mail
            amount: Sale amount
            referral_code: Referral or link code used at checkout
            originating_user_id: Registered buyer, if any
            transaction_type: purchase, subscription or upgrade

        Returns:
            SaleResult

        Raises:
            ValidationError: Bad e-mail, amount or type
            NotFoundError: Unknown originating user
        """
        result = await self._record(
            customer_email,
            amount,
            referral_code,
            originating_user_id,
            transaction_type,
        )
        await self.engine.notify_recipients(result.commissions)
        return result

    @transaction
    async def _record(
        self,
        customer_email: str,
        amount: Decimal | int | float | str,
        referral_code: str | None,
        originating_user_id: int | None,
        transaction_type: TransactionType | str,
    ) -> SaleResult:
        try:
            customer_email = normalize_email(customer_email)
        except ValueError as e:
            raise ValidationError(str(e)) from e

        is_valid, value, error = validate_amount(amount)
        if not is_valid:
            raise ValidationError(error)

        try:
            transaction_type = TransactionType(transaction_type)
        except ValueError as e:
            raise ValidationError(
                f"Unknown transaction type: {transaction_type}"
            ) from e

        if originating_user_id is not None and not await self.user_repo.exists(
            id=originating_user_id
        ):
            raise NotFoundError(f"User {originating_user_id} not found")

        referrer, link = await self._resolve_code(referral_code)
        if referrer and referrer.id == originating_user_id:
            # Own code: commissions follow the buyer's referrer chain
            referrer, link = None, None

        used_code = None
        if link:
            used_code = link.link_code
        elif referrer:
            used_code = referrer.referral_code

        sale = await self.transaction_repo.create(
            customer_email=customer_email,
            amount=value,
            originating_user_id=originating_user_id,
            referrer_id=referrer.id if referrer else None,
            referral_code=used_code,
            affiliate_link_id=link.id if link else None,
            transaction_type=transaction_type.value,
            status=TransactionStatus.COMPLETED.value,
        )
        if link:
            await self.link_repo.increment_conversions(link.id)

        schedule = await self.engine.registry.get_schedule()
        if referrer:
            chain = await self.engine.chain_from_referrer(referrer.id)
        elif originating_user_id is not None:
            chain = await self.engine.tree.ancestors_of(
                originating_user_id, settings.max_commission_levels
            )
        else:
            chain = []

        commissions = []
        if chain:
            commissions = await self.engine.create_commissions(
                sale.id, chain, value, schedule
            )

        self.logger.info(
            "Sale recorded",
            extra={
                "transaction_id": sale.id,
                "amount": str(value),
                "referrer_id": sale.referrer_id,
                "commissions": len(commissions),
            },
        )
        return SaleResult(transaction=sale, commissions=commissions)

    async def _resolve_code(
        self, code: str | None
    ) -> tuple[User | None, AffiliateLink | None]:
        """Resolve a checkout code: active link codes first, then referral codes."""
        if not code or not code.strip():
            return None, None

        link = await self.link_repo.get_by_code(code, active_only=True)
        if link:
            return await self.user_repo.get_by_id(link.affiliate_id), link

        referrer = await self.user_repo.get_by_referral_code(code)
        if not referrer:
            self.logger.warning(
                "Sale recorded with unknown referral code",
                extra={"referral_code": code.strip()},
            )
        return referrer, None

    @requires_capability(Capability.MANAGE_COMMISSIONS)
    @transaction
    async def refund(
        self,
        transaction_id: int,
        status: TransactionStatus | str = TransactionStatus.REFUNDED,
    ) -> CancellationResult:
        """
        Refund or cancel a completed sale and cancel its commissions.

        Args:
            transaction_id: Transaction ID
            status: refunded or cancelled

        Returns:
            CancellationResult (check requires_reconciliation)

        Raises:
            NotFoundError: Unknown transaction
            ValidationError: Bad status or transaction not completed
        """
        try:
            status = TransactionStatus(status)
        except ValueError as e:
            raise ValidationError(f"Unknown transaction status: {status}") from e

        if status == TransactionStatus.COMPLETED:
            raise ValidationError("Refund status must be refunded or cancelled")

        sale = await self.transaction_repo.get_for_update(transaction_id)
        if not sale:
            raise NotFoundError(f"Transaction {transaction_id} not found")

        if not await self.transaction_repo.mark_status_if_completed(
            transaction_id, status
        ):
            raise ValidationError(
                f"Transaction {transaction_id} is already {sale.status}"
            )

        result = await self.engine.cancel_commissions(transaction_id)
        await self.session.refresh(sale)

        self.logger.info(
            "Transaction refunded",
            extra={
                "transaction_id": transaction_id,
                "status": status.value,
                "requires_reconciliation": result.requires_reconciliation,
            },
        )
        return result
