"""
Payout processor.

Payouts are aggregate ledger debits: the amount is taken atomically from the
affiliate's pending balance and held as payout credit, which then settles
whole commission records oldest-first.
"""

from decimal import Decimal
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from referral_engine.config.business_constants import (
    PAYMENT_METHOD_REQUIRED_FIELDS,
)
from referral_engine.config.settings import settings
from referral_engine.models.enums import (
    UNPAID_COMMISSION_STATUSES,
    CommissionStatus,
    PaymentMethodType,
)
from referral_engine.models.payment_method import PaymentMethod
from referral_engine.models.payout import PayoutRequest
from referral_engine.models.user import User
from referral_engine.repositories.commission_repository import (
    CommissionRepository,
)
from referral_engine.repositories.payment_method_repository import (
    PaymentMethodRepository,
)
from referral_engine.repositories.payout_repository import PayoutRepository
from referral_engine.repositories.user_repository import UserRepository
from referral_engine.services.base_service import BaseService, transaction
from referral_engine.services.capabilities import (
    Capability,
    requires_capability,
)
from referral_engine.services.notification.dispatcher import (
    NotificationDispatcher,
)
from referral_engine.utils.datetime_utils import utc_now
from referral_engine.utils.exceptions import (
    ConflictError,
    InsufficientFundsError,
    NotFoundError,
    ValidationError,
)
from referral_engine.utils.money import to_decimal
from referral_engine.validators.unified import validate_amount


class PayoutProcessor(BaseService):
    """Processes payouts and manages payout destinations."""

    def __init__(
        self,
        session: AsyncSession,
        notifier: NotificationDispatcher | None = None,
    ) -> None:
        """
        Initialize payout processor.

        Args:
            session: Async database session
            notifier: Optional notification dispatcher
        """
        super().__init__(session)
        self.user_repo = UserRepository(session)
        self.commission_repo = CommissionRepository(session)
        self.payout_repo = PayoutRepository(session)
        self.payment_method_repo = PaymentMethodRepository(session)
        self.notifier = notifier

    @requires_capability(Capability.PROCESS_PAYOUTS)
    async def process_payout(
        self,
        affiliate_id: int,
        amount: Decimal | int | float | str,
        payment_method_id: int,
    ) -> PayoutRequest:
        """
        Pay out part or all of an affiliate's pending balance.

        Args:
            affiliate_id: Affiliate user ID
            amount: Payout amount
            payment_method_id: Affiliate's payment method

        Returns:
            Created PayoutRequest

        Raises:
            ValidationError: Amount not positive or below the minimum payout
            NotFoundError: Unknown affiliate, or the payment method does not
                belong to the affiliate
            InsufficientFundsError: Amount exceeds the pending balance
        """
        payout, affiliate = await self._process(
            affiliate_id, amount, payment_method_id
        )

        if self.notifier:
            await self.notifier.notify_payout_processed(affiliate, payout)
        return payout

    @transaction
    async def _process(
        self,
        affiliate_id: int,
        amount: Decimal | int | float | str,
        payment_method_id: int,
    ) -> tuple[PayoutRequest, User]:
        is_valid, value, error = validate_amount(amount)
        if not is_valid:
            raise ValidationError(error)

        if value <= 0:
            raise ValidationError("Payout amount must be greater than 0")

        if value < settings.minimum_payout:
            raise ValidationError(
                f"Minimum payout is {settings.minimum_payout} "
                f"{settings.currency}"
            )

        # Serializes payouts per affiliate
        affiliate = await self.user_repo.get_for_update(affiliate_id)
        if not affiliate:
            raise NotFoundError(f"Affiliate {affiliate_id} not found")

        payment_method = await self.payment_method_repo.get_owned(
            payment_method_id, affiliate_id
        )
        if not payment_method:
            raise NotFoundError(
                f"Payment method {payment_method_id} not found "
                f"for affiliate {affiliate_id}"
            )

        if not await self.user_repo.debit_for_payout(affiliate_id, value):
            available = await self.user_repo.get_pending_balance(affiliate_id)
            raise InsufficientFundsError(requested=value, available=available)

        now = utc_now()
        payout = await self.payout_repo.create(
            affiliate_id=affiliate_id,
            payment_method_id=payment_method.id,
            amount=value,
            processed_at=now,
        )

        settled, settled_count = await self._settle_records(affiliate_id, payout)
        payout.settled_amount = settled
        await self.session.flush()
        await self.session.refresh(affiliate)

        self.logger.info(
            "Payout processed",
            extra={
                "payout_id": payout.id,
                "affiliate_id": affiliate_id,
                "amount": str(value),
                "settled_amount": str(settled),
                "settled_records": settled_count,
                "remaining_balance": str(affiliate.pending_balance),
            },
        )
        return payout, affiliate

    async def _settle_records(
        self, affiliate_id: int, payout: PayoutRequest
    ) -> tuple[Decimal, int]:
        """
        Mark whole records paid, oldest first, while payout credit covers them.

        Returns:
            Tuple of (settled amount, number of records)
        """
        credit = to_decimal(await self.user_repo.get_payout_credit(affiliate_id))
        settled = Decimal("0")
        count = 0

        for record in await self.commission_repo.get_unpaid_oldest_first(
            affiliate_id
        ):
            amount = to_decimal(record.amount)
            if amount > credit:
                break

            if not await self.commission_repo.transition_status(
                record.id,
                UNPAID_COMMISSION_STATUSES,
                CommissionStatus.PAID,
                paid_at=payout.processed_at,
                payout_id=payout.id,
            ):
                continue

            if not await self.user_repo.consume_payout_credit(
                affiliate_id, amount
            ):
                raise ConflictError(
                    f"Payout credit of affiliate {affiliate_id} changed "
                    "during settlement"
                )

            credit -= amount
            settled += amount
            count += 1

        return settled, count

    @requires_capability(Capability.VIEW_OWN_EARNINGS)
    async def get_available_balance(self, affiliate_id: int) -> Decimal:
        """
        Get the amount an affiliate can currently be paid.

        Raises:
            NotFoundError: Unknown affiliate
        """
        if not await self.user_repo.exists(id=affiliate_id):
            raise NotFoundError(f"Affiliate {affiliate_id} not found")
        return await self.user_repo.get_pending_balance(affiliate_id)

    @requires_capability(Capability.VIEW_OWN_EARNINGS)
    async def list_payouts(self, affiliate_id: int) -> list[PayoutRequest]:
        """List an affiliate's payouts, newest first."""
        return await self.payout_repo.list_for_affiliate(affiliate_id)

    @requires_capability(Capability.MANAGE_PAYMENT_METHODS)
    @transaction
    async def add_payment_method(
        self,
        user_id: int,
        method_type: PaymentMethodType | str,
        account_name: str,
        details: dict[str, Any] | None = None,
        is_default: bool = False,
    ) -> PaymentMethod:
        """
        Register a payout destination for a user.

        The first method of a user becomes the default.

        Args:
            user_id: Owner
            method_type: Payout channel
            account_name: Account holder name
            details: Channel-specific fields
            is_default: Make this the default method

        Returns:
            Created payment method

        Raises:
            NotFoundError: Unknown user
            ValidationError: Unknown type, missing fields
        """
        try:
            method_type = PaymentMethodType(method_type)
        except ValueError as e:
            raise ValidationError(
                f"Unknown payment method type: {method_type}"
            ) from e

        if not account_name or not account_name.strip():
            raise ValidationError("Account name is empty")

        details = dict(details or {})
        missing = [
            key
            for key in PAYMENT_METHOD_REQUIRED_FIELDS[method_type.value]
            if not str(details.get(key) or "").strip()
        ]
        if missing:
            raise ValidationError(
                f"Missing {method_type.value} details: {', '.join(missing)}"
            )

        if not await self.user_repo.exists(id=user_id):
            raise NotFoundError(f"User {user_id} not found")

        is_first = not await self.payment_method_repo.exists(user_id=user_id)
        if is_default and not is_first:
            await self.payment_method_repo.clear_default(user_id)

        method = await self.payment_method_repo.create(
            user_id=user_id,
            method_type=method_type.value,
            account_name=account_name.strip(),
            details=details,
            is_default=is_default or is_first,
        )

        self.logger.info(
            "Payment method added",
            extra={
                "user_id": user_id,
                "payment_method_id": method.id,
                "method_type": method_type.value,
            },
        )
        return method

    @requires_capability(Capability.MANAGE_PAYMENT_METHODS)
    async def list_payment_methods(self, user_id: int) -> list[PaymentMethod]:
        """List a user's payment methods."""
        return await self.payment_method_repo.find_by(user_id=user_id)
