"""
Commission repository.

Data access layer for CommissionRecord model.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from referral_engine.models.commission import CommissionRecord
from referral_engine.models.enums import (
    UNPAID_COMMISSION_STATUSES,
    CommissionStatus,
)
from referral_engine.models.user import User
from referral_engine.repositories.base import BaseRepository


class CommissionRepository(BaseRepository[CommissionRecord]):
    """Commission repository with specific queries."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize commission repository."""
        super().__init__(CommissionRecord, session)

    async def get_by_transaction(
        self, transaction_id: int
    ) -> list[CommissionRecord]:
        """
        Get all records of one transaction ordered by level.

        Args:
            transaction_id: Transaction ID

        Returns:
            List of commission records
        """
        stmt = (
            select(CommissionRecord)
            .where(CommissionRecord.transaction_id == transaction_id)
            .order_by(CommissionRecord.level)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_unpaid_oldest_first(
        self, affiliate_id: int
    ) -> list[CommissionRecord]:
        """
        Get pending and approved records for FIFO settlement.

        Args:
            affiliate_id: Affiliate user ID

        Returns:
            Records ordered by creation time, then id
        """
        stmt = (
            select(CommissionRecord)
            .where(
                CommissionRecord.affiliate_id == affiliate_id,
                CommissionRecord.status.in_(UNPAID_COMMISSION_STATUSES),
            )
            .order_by(CommissionRecord.created_at, CommissionRecord.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def transition_status(
        self,
        record_id: int,
        from_statuses: tuple[str, ...],
        to_status: CommissionStatus,
        **values,
    ) -> bool:
        """
        Compare-and-set a record's status.

        Args:
            record_id: Commission record ID
            from_statuses: Statuses the record must currently have
            to_status: New status
            **values: Extra columns to set (paid_at, payout_id)

        Returns:
            True if this call changed the status
        """
        stmt = (
            update(CommissionRecord)
            .where(
                CommissionRecord.id == record_id,
                CommissionRecord.status.in_(from_statuses),
            )
            .values(status=to_status.value, **values)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def sum_by_status(
        self,
        affiliate_id: int,
        statuses: tuple[str, ...],
        level: int | None = None,
        since: datetime | None = None,
    ) -> Decimal:
        """
        Sum commission amounts for an affiliate.

        Args:
            affiliate_id: Affiliate user ID
            statuses: Statuses to include
            level: Optional level filter
            since: Optional lower bound on created_at

        Returns:
            Sum of amounts (0 if none)
        """
        stmt = select(
            func.coalesce(func.sum(CommissionRecord.amount), Decimal("0"))
        ).where(
            CommissionRecord.affiliate_id == affiliate_id,
            CommissionRecord.status.in_(statuses),
        )
        if level is not None:
            stmt = stmt.where(CommissionRecord.level == level)
        if since is not None:
            stmt = stmt.where(CommissionRecord.created_at >= since)

        result = await self.session.execute(stmt)
        return Decimal(result.scalar() or 0)

    async def sum_by_level(
        self, affiliate_id: int, statuses: tuple[str, ...]
    ) -> dict[int, Decimal]:
        """
        Sum commission amounts per level in a single query.

        Args:
            affiliate_id: Affiliate user ID
            statuses: Statuses to include

        Returns:
            Dict mapping level to summed amount
        """
        stmt = (
            select(
                CommissionRecord.level,
                func.sum(CommissionRecord.amount).label("total"),
            )
            .where(
                CommissionRecord.affiliate_id == affiliate_id,
                CommissionRecord.status.in_(statuses),
            )
            .group_by(CommissionRecord.level)
        )
        result = await self.session.execute(stmt)
        return {row.level: Decimal(row.total or 0) for row in result.all()}

    async def sum_for_coordinator(
        self, coordinator_id: int, statuses: tuple[str, ...]
    ) -> Decimal:
        """
        Sum commissions earned by all affiliates of a coordinator.

        Args:
            coordinator_id: Coordinator user ID
            statuses: Statuses to include

        Returns:
            Sum of amounts (0 if none)
        """
        stmt = (
            select(
                func.coalesce(func.sum(CommissionRecord.amount), Decimal("0"))
            )
            .join(User, User.id == CommissionRecord.affiliate_id)
            .where(
                User.coordinator_id == coordinator_id,
                CommissionRecord.status.in_(statuses),
            )
        )
        result = await self.session.execute(stmt)
        return Decimal(result.scalar() or 0)
