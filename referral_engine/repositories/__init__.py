"""
Repositories.

Data access layer; one repository per model.
"""

from referral_engine.repositories.affiliate_link_repository import (
    AffiliateLinkRepository,
)
from referral_engine.repositories.base import BaseRepository
from referral_engine.repositories.commission_level_repository import (
    CommissionLevelRepository,
    CommissionScheduleVersionRepository,
)
from referral_engine.repositories.commission_repository import (
    CommissionRepository,
)
from referral_engine.repositories.email_referral_repository import (
    EmailReferralRepository,
)
from referral_engine.repositories.payment_method_repository import (
    PaymentMethodRepository,
)
from referral_engine.repositories.payout_repository import PayoutRepository
from referral_engine.repositories.transaction_repository import (
    TransactionRepository,
)
from referral_engine.repositories.user_repository import UserRepository

__all__ = [
    "AffiliateLinkRepository",
    "BaseRepository",
    "CommissionLevelRepository",
    "CommissionScheduleVersionRepository",
    "CommissionRepository",
    "EmailReferralRepository",
    "PaymentMethodRepository",
    "PayoutRepository",
    "TransactionRepository",
    "UserRepository",
]
