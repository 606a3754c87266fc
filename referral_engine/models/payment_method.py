"""
Payment method model.

Where an affiliate receives payouts (bank details, PayPal, crypto, ...).
"""

from datetime import UTC, datetime

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from referral_engine.models.base import Base
from referral_engine.models.enums import PaymentMethodType


class PaymentMethod(Base):
    """Payout destination owned by one user."""

    __tablename__ = "payment_methods"
    __table_args__ = (
        Index('idx_payment_method_user_default', 'user_id', 'is_default'),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )

    method_type: Mapped[str] = mapped_column(
        String(20),
        default=PaymentMethodType.BANK_TRANSFER.value,
        nullable=False,
    )
    account_name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Channel-specific fields (bank_name, iban, paypal_email, wallet, ...)
    details: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)

    is_default: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )
    is_verified: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<PaymentMethod(id={self.id}, user_id={self.user_id}, "
            f"method_type={self.method_type})>"
        )
