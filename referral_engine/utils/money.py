"""
Money helpers.

All monetary values are rounded half-up to the currency's minor unit at the
moment a commission record is created, never at display time.
"""

from decimal import ROUND_HALF_UP, Decimal

from referral_engine.config.business_constants import MONEY_PLACES


def to_decimal(value: Decimal | int | float | str) -> Decimal:
    """
    Convert a numeric value to Decimal without binary float artifacts.

    Args:
        value: Amount as Decimal, int, float or string

    Returns:
        Decimal value
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def quantize_money(value: Decimal) -> Decimal:
    """Round to 2 decimal places, half-up."""
    return value.quantize(MONEY_PLACES, rounding=ROUND_HALF_UP)


def percentage_of(amount: Decimal, percentage: Decimal) -> Decimal:
    """
    Calculate a rounded commission share.

    Args:
        amount: Transaction amount
        percentage: Level percentage (15 means 15%)

    Returns:
        amount * percentage / 100, rounded half-up to cents
    """
    return quantize_money(amount * percentage / Decimal("100"))
