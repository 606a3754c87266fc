"""
Payment method repository.

Data access layer for PaymentMethod model.
"""

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from referral_engine.models.payment_method import PaymentMethod
from referral_engine.repositories.base import BaseRepository


class PaymentMethodRepository(BaseRepository[PaymentMethod]):
    """Payment method repository with specific queries."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize payment method repository."""
        super().__init__(PaymentMethod, session)

    async def get_owned(
        self, payment_method_id: int, user_id: int
    ) -> PaymentMethod | None:
        """
        Get a payment method only if it belongs to the user.

        Args:
            payment_method_id: Payment method ID
            user_id: Expected owner

        Returns:
            Payment method or None
        """
        return await self.get_by(id=payment_method_id, user_id=user_id)

    async def clear_default(self, user_id: int) -> None:
        """Unset the default flag on all of a user's methods."""
        stmt = (
            update(PaymentMethod)
            .where(PaymentMethod.user_id == user_id)
            .values(is_default=False)
        )
        await self.session.execute(stmt)
