"""
Database models.

Exports all SQLAlchemy models for easy imports.
"""

from referral_engine.models.affiliate_link import AffiliateLink
from referral_engine.models.base import Base
from referral_engine.models.commission import CommissionRecord
from referral_engine.models.commission_level import (
    CommissionLevel,
    CommissionScheduleVersion,
)
from referral_engine.models.email_referral import EmailReferral
from referral_engine.models.enums import (
    CommissionStatus,
    InviteStatus,
    PaymentMethodType,
    TransactionStatus,
    TransactionType,
    UserRole,
)
from referral_engine.models.payment_method import PaymentMethod
from referral_engine.models.payout import PayoutRequest
from referral_engine.models.transaction import Transaction
from referral_engine.models.user import User

__all__ = [
    # Base
    "Base",
    # Enums
    "CommissionStatus",
    "InviteStatus",
    "PaymentMethodType",
    "TransactionStatus",
    "TransactionType",
    "UserRole",
    # Core Models
    "User",
    "Transaction",
    "CommissionLevel",
    "CommissionScheduleVersion",
    "CommissionRecord",
    # Affiliate links
    "AffiliateLink",
    # Invites
    "EmailReferral",
    # Payouts
    "PaymentMethod",
    "PayoutRequest",
]
