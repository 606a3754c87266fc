"""
Business logic constants for the referral engine.

Central location for business rules shared by models and services.
"""

from decimal import Decimal

# Canonical commission schedule: level -> percentage of the sale amount
DEFAULT_COMMISSION_LEVELS = {
    1: Decimal("15"),
    2: Decimal("5"),
    3: Decimal("2.5"),
}

DEFAULT_LEVEL_DESCRIPTIONS = {
    1: "Direct referral commission",
    2: "Second level referral commission",
    3: "Third level referral commission",
}

# Default walk depth for ancestor/descendant traversal
REFERRAL_DEPTH = 3

# Hard cap on upward walks used for referral loop detection
MAX_TREE_WALK_DEPTH = 64

# Monetary precision (currency minor units)
MONEY_PLACES = Decimal("0.01")

# Minimum account password length
MIN_PASSWORD_LENGTH = 8

# Referral code alphabet and length
REFERRAL_CODE_LENGTH = 8
REFERRAL_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"

# Affiliate link codes: custom codes are 4-64 letters, digits, "-" or "_"
LINK_CODE_MAX_LENGTH = 64
LINK_CODE_PATTERN = r"^[A-Z0-9_-]{4,64}$"

# Schedule total above which validate_structure() warns
HIGH_TOTAL_COMMISSION_WARNING = Decimal("50")

# Detail keys each payment method type must carry
PAYMENT_METHOD_REQUIRED_FIELDS = {
    "bank_transfer": ("bank_name", "account_number"),
    "paypal": ("email",),
    "stripe": ("account_id",),
    "crypto": ("wallet_address",),
    "check": ("mailing_address",),
}
