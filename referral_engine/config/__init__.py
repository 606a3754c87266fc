"""Configuration package."""

from referral_engine.config.settings import Settings, settings

__all__ = ["Settings", "settings"]
