"""
Enumerations shared by models and services.

Stored in the database as their string values.
"""

from enum import Enum


class UserRole(str, Enum):
    """Platform roles."""

    ADMIN = "admin"
    AFFILIATE = "affiliate"
    COORDINATOR = "coordinator"
    CLIENT = "client"


class CommissionStatus(str, Enum):
    """Commission record lifecycle."""

    PENDING = "pending"
    APPROVED = "approved"
    PAID = "paid"
    CANCELLED = "cancelled"


# Statuses that still count towards an affiliate's payable balance
UNPAID_COMMISSION_STATUSES = (
    CommissionStatus.PENDING.value,
    CommissionStatus.APPROVED.value,
)

# Allowed manual status transitions
COMMISSION_TRANSITIONS = {
    CommissionStatus.PENDING: {
        CommissionStatus.APPROVED,
        CommissionStatus.PAID,
        CommissionStatus.CANCELLED,
    },
    CommissionStatus.APPROVED: {
        CommissionStatus.PAID,
        CommissionStatus.CANCELLED,
    },
    CommissionStatus.PAID: set(),
    CommissionStatus.CANCELLED: set(),
}


class TransactionStatus(str, Enum):
    """Sale lifecycle."""

    COMPLETED = "completed"
    REFUNDED = "refunded"
    CANCELLED = "cancelled"


class TransactionType(str, Enum):
    """Kinds of qualifying sale."""

    PURCHASE = "purchase"
    SUBSCRIPTION = "subscription"
    UPGRADE = "upgrade"


class InviteStatus(str, Enum):
    """E-mail invite lifecycle."""

    INVITED = "invited"
    CONFIRMED = "confirmed"
    CONVERTED = "converted"
    EXPIRED = "expired"


class PaymentMethodType(str, Enum):
    """Payout channels."""

    BANK_TRANSFER = "bank_transfer"
    PAYPAL = "paypal"
    STRIPE = "stripe"
    CRYPTO = "crypto"
    CHECK = "check"
