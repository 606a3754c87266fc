"""
Referral tree services.

Tree traversal, attachment of users to referrers and coordinators, and
affiliate links.
"""

from referral_engine.services.referral.attachment_service import (
    AttachmentService,
)
from referral_engine.services.referral.link_service import (
    AffiliateLinkService,
    LinkStats,
)
from referral_engine.services.referral.tree_resolver import (
    ReferralNetwork,
    ReferralTreeResolver,
)


__all__ = [
    "AffiliateLinkService",
    "AttachmentService",
    "LinkStats",
    "ReferralNetwork",
    "ReferralTreeResolver",
]
