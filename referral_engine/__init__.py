"""
Multi-level referral and commission engine.

Referral tree attachment, per-level commission distribution, commission
schedule configuration and payout processing.
"""

__version__ = "1.0.0"
