"""
Payout repository.

Data access layer for PayoutRequest model.
"""

from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from referral_engine.models.payout import PayoutRequest
from referral_engine.repositories.base import BaseRepository


class PayoutRepository(BaseRepository[PayoutRequest]):
    """Payout repository with specific queries."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize payout repository."""
        super().__init__(PayoutRequest, session)

    async def sum_for_affiliate(self, affiliate_id: int) -> Decimal:
        """
        Sum all processed payouts of an affiliate.

        Args:
            affiliate_id: Affiliate user ID

        Returns:
            Total paid out
        """
        stmt = select(
            func.coalesce(func.sum(PayoutRequest.amount), Decimal("0"))
        ).where(PayoutRequest.affiliate_id == affiliate_id)
        result = await self.session.execute(stmt)
        return Decimal(result.scalar() or 0)

    async def list_for_affiliate(
        self, affiliate_id: int
    ) -> list[PayoutRequest]:
        """
        List payouts of an affiliate, newest first.

        Args:
            affiliate_id: Affiliate user ID

        Returns:
            List of payouts
        """
        stmt = (
            select(PayoutRequest)
            .where(PayoutRequest.affiliate_id == affiliate_id)
            .order_by(PayoutRequest.processed_at.desc(), PayoutRequest.id.desc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
