"""Payout processing."""

from referral_engine.services.payout.processor import PayoutProcessor


__all__ = ["PayoutProcessor"]
