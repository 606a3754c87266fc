"""
Transaction model.

A recorded sale eligible for commission distribution.
"""

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from referral_engine.config.business_constants import LINK_CODE_MAX_LENGTH
from referral_engine.models.base import Base
from referral_engine.models.enums import TransactionStatus, TransactionType
from referral_engine.models.types import MoneyType


class Transaction(Base):
    """Qualifying sale."""

    __tablename__ = "transactions"
    __table_args__ = (
        CheckConstraint('amount >= 0', name='check_transaction_amount_non_negative'),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    customer_email: Mapped[str] = mapped_column(String(255), nullable=False)
    amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)

    # Registered user who made the purchase, if any
    originating_user_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    # Affiliate whose referral code was used at checkout
    referrer_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    # Code used at checkout: a referral code or an affiliate link code
    referral_code: Mapped[str | None] = mapped_column(
        String(LINK_CODE_MAX_LENGTH), nullable=True
    )
    affiliate_link_id: Mapped[int | None] = mapped_column(
        ForeignKey("affiliate_links.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    transaction_type: Mapped[str] = mapped_column(
        String(20),
        default=TransactionType.PURCHASE.value,
        nullable=False,
    )
    status: Mapped[str] = mapped_column(
        String(20),
        default=TransactionStatus.COMPLETED.value,
        index=True,
        nullable=False,
    )

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
            f"<Transaction(id={self.id}, amount={self.amount}, "
            f"status={self.status})>"
        )
