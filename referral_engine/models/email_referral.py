"""
E-mail referral (lead) model.

A prospect invited by an affiliate. One row per (affiliate, email); an
expired invite is re-armed in place instead of inserting a second row.
"""

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from referral_engine.models.base import Base
from referral_engine.models.enums import InviteStatus
from referral_engine.models.types import MoneyType


class EmailReferral(Base):
    """Invited prospect."""

    __tablename__ = "email_referrals"
    __table_args__ = (
        UniqueConstraint(
            'affiliate_id', 'email', name='uq_email_referral_affiliate_email'
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    affiliate_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )

    email: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)

    status: Mapped[str] = mapped_column(
        String(20),
        default=InviteStatus.INVITED.value,
        index=True,
        nullable=False,
    )

    # Number of times this address was (re-)invited by the affiliate
    invite_count: Mapped[int] = mapped_column(
        Integer, default=1, nullable=False
    )

    invited_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), index=True, nullable=False
    )
    confirmed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    converted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    conversion_value: Mapped[Decimal | None] = mapped_column(
        MoneyType, nullable=True
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<EmailReferral(id={self.id}, affiliate_id={self.affiliate_id}, "
            f"email={self.email}, status={self.status})>"
        )
