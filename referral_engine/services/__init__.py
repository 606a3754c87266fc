"""
Engine services.

Each service wraps one session; public operations commit on success and roll
back on error.
"""

from referral_engine.services.base_service import BaseService, transaction
from referral_engine.services.capabilities import (
    ROLE_CAPABILITIES,
    Capability,
    authorize,
    requires_capability,
)
from referral_engine.services.commission import (
    CancellationResult,
    CommissionBreakdown,
    CommissionCalculationEngine,
    CommissionLevelRegistry,
    CommissionSchedule,
)
from referral_engine.services.coordinator import (
    BulkAssignmentResult,
    CoordinatorNetworkManager,
)
from referral_engine.services.invite import EmailInviteService
from referral_engine.services.notification import (
    EmailSender,
    NotificationDispatcher,
)
from referral_engine.services.payout import PayoutProcessor
from referral_engine.services.referral import (
    AffiliateLinkService,
    AttachmentService,
    LinkStats,
    ReferralNetwork,
    ReferralTreeResolver,
)
from referral_engine.services.transaction_service import (
    SaleResult,
    TransactionService,
)


__all__ = [
    "AffiliateLinkService",
    "AttachmentService",
    "BaseService",
    "BulkAssignmentResult",
    "CancellationResult",
    "Capability",
    "CommissionBreakdown",
    "CommissionCalculationEngine",
    "CommissionLevelRegistry",
    "CommissionSchedule",
    "CoordinatorNetworkManager",
    "EmailInviteService",
    "EmailSender",
    "LinkStats",
    "NotificationDispatcher",
    "PayoutProcessor",
    "ROLE_CAPABILITIES",
    "ReferralNetwork",
    "ReferralTreeResolver",
    "SaleResult",
    "TransactionService",
    "authorize",
    "requires_capability",
    "transaction",
]
