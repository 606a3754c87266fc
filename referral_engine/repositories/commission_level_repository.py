"""
Commission level repository.

Data access layer for CommissionLevel and CommissionScheduleVersion models.
"""

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from referral_engine.models.commission_level import (
    CommissionLevel,
    CommissionScheduleVersion,
)
from referral_engine.repositories.base import BaseRepository


class CommissionLevelRepository(BaseRepository[CommissionLevel]):
    """Commission level repository with specific queries."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize commission level repository."""
        super().__init__(CommissionLevel, session)

    async def get_by_level(self, level: int) -> CommissionLevel | None:
        """
        Get config by level number.

        Args:
            level: Referral depth (1 = direct)

        Returns:
            Config or None if not found
        """
        return await self.get_by(level=level)

    async def get_ordered_levels(
        self, active_only: bool = True
    ) -> list[CommissionLevel]:
        """
        Get level configurations ordered by level number.

        Args:
            active_only: If True, return only active levels

        Returns:
            List of configs ordered by level
        """
        stmt = select(CommissionLevel).order_by(CommissionLevel.level)

        if active_only:
            stmt = stmt.where(CommissionLevel.is_active == True)  # noqa: E712

        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def count_active(self) -> int:
        """Count active levels."""
        stmt = select(func.count(CommissionLevel.id)).where(
            CommissionLevel.is_active == True  # noqa: E712
        )
        result = await self.session.execute(stmt)
        return result.scalar() or 0

    async def delete_all(self) -> int:
        """
        Delete every level configuration.

        Returns:
            Number of deleted rows
        """
        result = await self.session.execute(delete(CommissionLevel))
        await self.session.flush()
        return result.rowcount or 0


class CommissionScheduleVersionRepository(
    BaseRepository[CommissionScheduleVersion]
):
    """Schedule history repository."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize schedule version repository."""
        super().__init__(CommissionScheduleVersion, session)

    async def get_latest(self) -> CommissionScheduleVersion | None:
        """
        Get the most recent schedule version.

        Returns:
            Latest version or None if the schedule was never written
        """
        stmt = (
            select(CommissionScheduleVersion)
            .order_by(CommissionScheduleVersion.id.desc())
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()
