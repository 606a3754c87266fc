"""
User model.

Represents an account on the platform: admin, affiliate, coordinator or client.
"""

from datetime import UTC, datetime
from decimal import Decimal
from typing import Optional

import bcrypt
from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from referral_engine.config.settings import settings
from referral_engine.models.base import Base
from referral_engine.models.enums import UserRole
from referral_engine.models.types import MoneyType


class User(Base):
    """User model - platform accounts and referral tree nodes."""

    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint(
            'total_earned >= 0', name='check_user_total_earned_non_negative'
        ),
        CheckConstraint(
            'pending_balance >= 0',
            name='check_user_pending_balance_non_negative'
        ),
        CheckConstraint(
            'total_paid >= 0', name='check_user_total_paid_non_negative'
        ),
        CheckConstraint(
            'payout_credit >= 0',
            name='check_user_payout_credit_non_negative'
        ),
        CheckConstraint(
            'referrer_id IS NULL OR referrer_id != id',
            name='check_user_not_self_referred'
        ),
    )

    # Primary key
    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )

    # Identity
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(
        String(255), unique=True, index=True, nullable=False
    )
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(
        String(20),
        default=UserRole.AFFILIATE.value,
        index=True,
        nullable=False,
    )

    # Immutable, bound 1:1 at creation
    referral_code: Mapped[str] = mapped_column(
        String(32), unique=True, index=True, nullable=False
    )

    # Referral tree edge (write-once)
    referrer_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=True,
        index=True,
    )

    # Coordinator assignment (write-once outside explicit reassignment)
    coordinator_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=True,
        index=True,
    )

    # Commission ledger
    total_earned: Mapped[Decimal] = mapped_column(
        MoneyType, default=Decimal("0"), nullable=False
    )
    pending_balance: Mapped[Decimal] = mapped_column(
        MoneyType,
        default=Decimal("0"),
        nullable=False,
        comment="Pending + approved commissions not yet covered by payouts",
    )
    total_paid: Mapped[Decimal] = mapped_column(
        MoneyType, default=Decimal("0"), nullable=False
    )
    payout_credit: Mapped[Decimal] = mapped_column(
        MoneyType,
        default=Decimal("0"),
        nullable=False,
        comment="Paid out but not yet matched to whole commission records",
    )

    # Status flags
    is_active: Mapped[bool] = mapped_column(
        Boolean, default=True, nullable=False
    )
    email_verified: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )

    # Timestamps
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

    # Relationships
    referrer: Mapped[Optional["User"]] = relationship(
        "User",
        remote_side=[id],
        back_populates="referrals",
        foreign_keys=[referrer_id],
    )
    referrals: Mapped[list["User"]] = relationship(
        "User",
        back_populates="referrer",
        foreign_keys=[referrer_id],
    )
    coordinator: Mapped[Optional["User"]] = relationship(
        "User",
        remote_side=[id],
        foreign_keys=[coordinator_id],
    )

    @property
    def is_coordinator(self) -> bool:
        return self.role == UserRole.COORDINATOR.value

    @property
    def is_affiliate(self) -> bool:
        return self.role == UserRole.AFFILIATE.value

    def set_password(self, password: str) -> None:
        """
        Set account password with bcrypt hashing.

        Args:
            password: Plain text password to hash and store
        """
        self.password_hash = bcrypt.hashpw(
            password.encode(), bcrypt.gensalt(rounds=settings.bcrypt_rounds)
        ).decode()

    def verify_password(self, password: str) -> bool:
        """
        Verify password against stored hash.

        Args:
            password: Plain text password to verify

        Returns:
            True if password matches, False otherwise
        """
        if not self.password_hash:
            return False
        return bcrypt.checkpw(
            password.encode(), self.password_hash.encode()
        )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<User(id={self.id}, email={self.email}, role={self.role}, "
            f"referrer_id={self.referrer_id})>"
        )
