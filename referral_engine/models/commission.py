"""
Commission record model.

One row per ancestor level per qualifying transaction. Amount and rate are
fixed when the row is created.
"""

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from referral_engine.models.base import Base
from referral_engine.models.enums import CommissionStatus
from referral_engine.models.types import MoneyType, RatePercentType


class CommissionRecord(Base):
    """Commission earned by an affiliate on one transaction."""

    __tablename__ = "commissions"
    __table_args__ = (
        UniqueConstraint(
            'transaction_id', 'level', name='uq_commission_transaction_level'
        ),
        CheckConstraint('level >= 1', name='check_commission_record_level'),
        CheckConstraint('amount >= 0', name='check_commission_amount_non_negative'),
        Index('idx_commission_affiliate_status', 'affiliate_id', 'status'),
        Index('idx_commission_status_level', 'status', 'level'),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    affiliate_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    )
    transaction_id: Mapped[int] = mapped_column(
        ForeignKey("transactions.id", ondelete="RESTRICT"),
        index=True,
        nullable=False,
    )

    level: Mapped[int] = mapped_column(Integer, nullable=False)
    amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    rate: Mapped[Decimal] = mapped_column(RatePercentType, nullable=False)

    # Commission schedule version the rate was taken from
    schedule_version: Mapped[int | None] = mapped_column(
        Integer, nullable=True
    )

    status: Mapped[str] = mapped_column(
        String(20),
        default=CommissionStatus.PENDING.value,
        nullable=False,
    )

    # Payout that settled this record
    payout_id: Mapped[int | None] = mapped_column(
        ForeignKey("payout_requests.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )
    paid_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<CommissionRecord(id={self.id}, affiliate_id={self.affiliate_id}, "
            f"transaction_id={self.transaction_id}, level={self.level}, "
            f"amount={self.amount}, status={self.status})>"
        )
