"""
Affiliate link model.

A trackable link owned by an affiliate. Its code can be used at checkout in
place of the affiliate's referral code; clicks and conversions are counted
per link.
"""

from datetime import UTC, datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column

from referral_engine.config.business_constants import LINK_CODE_MAX_LENGTH
from referral_engine.models.base import Base


class AffiliateLink(Base):
    """Trackable affiliate link."""

    __tablename__ = "affiliate_links"
    __table_args__ = (
        CheckConstraint('clicks >= 0', name='check_link_clicks_non_negative'),
        CheckConstraint(
            'conversions >= 0', name='check_link_conversions_non_negative'
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    affiliate_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )

    link_code: Mapped[str] = mapped_column(
        String(LINK_CODE_MAX_LENGTH), unique=True, index=True, nullable=False
    )

    clicks: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    conversions: Mapped[int] = mapped_column(
        Integer, default=0, nullable=False
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean, default=True, nullable=False
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
            f"<AffiliateLink(id={self.id}, affiliate_id={self.affiliate_id}, "
            f"link_code={self.link_code}, is_active={self.is_active})>"
        )
