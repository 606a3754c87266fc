"""
Transaction repository.

Data access layer for Transaction model.
"""

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from referral_engine.models.enums import TransactionStatus
from referral_engine.models.transaction import Transaction
from referral_engine.models.user import User
from referral_engine.repositories.base import BaseRepository


class TransactionRepository(BaseRepository[Transaction]):
    """Transaction repository with specific queries."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize transaction repository."""
        super().__init__(Transaction, session)

    async def mark_status_if_completed(
        self, transaction_id: int, status: TransactionStatus
    ) -> bool:
        """
        Move a completed transaction to a terminal status.

        Args:
            transaction_id: Transaction ID
            status: refunded or cancelled

        Returns:
            True if this call changed the status
        """
        stmt = (
            update(Transaction)
            .where(
                Transaction.id == transaction_id,
                Transaction.status == TransactionStatus.COMPLETED.value,
            )
            .values(status=status.value)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def count_referred_by_coordinator(self, coordinator_id: int) -> int:
        """
        Count transactions referred by affiliates of a coordinator.

        Args:
            coordinator_id: Coordinator user ID

        Returns:
            Number of transactions
        """
        stmt = (
            select(func.count(Transaction.id))
            .join(User, User.id == Transaction.referrer_id)
            .where(User.coordinator_id == coordinator_id)
        )
        result = await self.session.execute(stmt)
        return result.scalar() or 0
