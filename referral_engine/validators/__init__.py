"""
Validators package.

Provides common validation functions for user input.
"""

from referral_engine.validators.unified import (
    normalize_email,
    normalize_phone,
    validate_amount,
    validate_email,
    validate_password,
    validate_phone,
)


__all__ = [
    "normalize_email",
    "normalize_phone",
    "validate_amount",
    "validate_email",
    "validate_password",
    "validate_phone",
]
