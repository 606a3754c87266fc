"""
Payout request model.

Aggregate ledger debit against an affiliate's pending + approved balance.
"""

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import CheckConstraint, DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from referral_engine.models.base import Base
from referral_engine.models.types import MoneyType


class PayoutRequest(Base):
    """Processed payout."""

    __tablename__ = "payout_requests"
    __table_args__ = (
        CheckConstraint('amount > 0', name='check_payout_amount_positive'),
        CheckConstraint(
            'settled_amount >= 0',
            name='check_payout_settled_non_negative'
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    affiliate_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        index=True,
        nullable=False,
    )
    payment_method_id: Mapped[int] = mapped_column(
        ForeignKey("payment_methods.id", ondelete="RESTRICT"),
        nullable=False,
    )

    amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)

    # Sum of whole commission records marked paid by this payout
    settled_amount: Mapped[Decimal] = mapped_column(
        MoneyType, default=Decimal("0"), nullable=False
    )

    processed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<PayoutRequest(id={self.id}, affiliate_id={self.affiliate_id}, "
            f"amount={self.amount})>"
        )
