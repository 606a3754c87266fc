"""
Commission level model.

One row per referral depth. Active rows form the commission schedule.
"""

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Integer,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column

from referral_engine.models.base import Base
from referral_engine.models.types import RatePercentType


class CommissionLevel(Base):
    """Percentage paid to the ancestor at a given referral depth."""

    __tablename__ = "commission_levels"
    __table_args__ = (
        CheckConstraint('level >= 1', name='check_commission_level_positive'),
        CheckConstraint(
            'percentage >= 0',
            name='check_commission_percentage_non_negative'
        ),
        CheckConstraint(
            'min_referrals IS NULL OR max_referrals IS NULL '
            'OR min_referrals <= max_referrals',
            name='check_commission_referral_range'
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    # Referral depth (1 = direct referrer)
    level: Mapped[int] = mapped_column(
        Integer, unique=True, index=True, nullable=False
    )

    # 15 means 15%
    percentage: Mapped[Decimal] = mapped_column(
        RatePercentType, nullable=False
    )

    description: Mapped[str] = mapped_column(
        String(255), default="", nullable=False
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean, default=True, index=True, nullable=False
    )

    # Optional referral-count window (informational, set by admins)
    min_referrals: Mapped[int | None] = mapped_column(Integer, nullable=True)
    max_referrals: Mapped[int | None] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
        nullable=False,
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<CommissionLevel(id={self.id}, level={self.level}, "
            f"percentage={self.percentage}, is_active={self.is_active})>"
        )


class CommissionScheduleVersion(Base):
    """Append-only history of the active commission schedule."""

    __tablename__ = "commission_schedule_versions"

    # Version number
    id: Mapped[int] = mapped_column(primary_key=True)

    # {"1": "15.0000", "2": "5.0000", ...} - active levels after the change
    levels: Mapped[dict] = mapped_column(JSON, nullable=False)

    reason: Mapped[str] = mapped_column(String(100), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<CommissionScheduleVersion(id={self.id}, "
            f"reason={self.reason}, levels={self.levels})>"
        )
