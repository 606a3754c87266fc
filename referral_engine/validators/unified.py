"""Unified input validators for the engine."""
import re
from decimal import Decimal, InvalidOperation

from referral_engine.config.business_constants import MIN_PASSWORD_LENGTH


def validate_email(email: str) -> tuple[bool, str | None]:
    """
    Validate an e-mail address.

    Args:
        email: Email address to validate

    Returns:
        Tuple of (is_valid, error_message)
        - (True, None) if valid
        - (False, error_message) if invalid

    Examples:
        >>> validate_email("user@example.com")
        (True, None)
        >>> validate_email("invalid")
        (False, "Email must contain '@'")
    """
    if not email or not isinstance(email, str):
        return False, "Email is empty"

    email = email.strip()

    if not email:
        return False, "Email is empty"

    if len(email) > 255:
        return False, "Email is too long (maximum 255 characters)"

    if "@" not in email:
        return False, "Email must contain '@'"

    parts = email.split("@")
    if len(parts) != 2:
        return False, "Email must contain exactly one '@'"

    local, domain = parts

    if not local or len(local) > 64:
        return False, "Email local part must be 1-64 characters"

    if not domain or len(domain) < 3:
        return False, "Email domain is too short"

    if "." not in domain:
        return False, "Email domain must contain a dot (.)"

    domain_parts = domain.split(".")
    if any(not part for part in domain_parts):
        return False, "Email domain has invalid structure"

    pattern = r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$"
    if not re.match(pattern, email):
        return False, "Invalid email format"

    return True, None


def validate_phone(phone: str) -> tuple[bool, str | None]:
    """
    Validate a phone number.

    Args:
        phone: Phone number to validate

    Returns:
        Tuple of (is_valid, error_message)

    Examples:
        >>> validate_phone("+15551234567")
        (True, None)
        >>> validate_phone("123")
        (False, "Phone must be 10-15 digits")
    """
    if not phone or not isinstance(phone, str):
        return False, "Phone is empty"

    phone = phone.strip()

    if not phone:
        return False, "Phone is empty"

    if len(phone) > 50:
        return False, "Phone is too long (maximum 50 characters)"

    digits = re.sub(r"\D", "", phone)

    if len(digits) < 10 or len(digits) > 15:
        return False, "Phone must be 10-15 digits"

    return True, None


def validate_password(password: str) -> tuple[bool, str | None]:
    """
    Validate an account password.

    Args:
        password: Plain text password

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not password or not isinstance(password, str):
        return False, "Password is empty"

    if len(password) < MIN_PASSWORD_LENGTH:
        return False, (
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
        )

    return True, None


def validate_amount(
    amount: Decimal | int | float | str,
    min_val: Decimal = Decimal("0"),
    max_val: Decimal | None = None,
) -> tuple[bool, Decimal | None, str | None]:
    """
    Validate a monetary amount.

    Args:
        amount: Amount to validate
        min_val: Minimum allowed value
        max_val: Maximum allowed value (optional)

    Returns:
        Tuple of (is_valid, parsed_value, error_message)

    Examples:
        >>> validate_amount("100.50")
        (True, Decimal('100.50'), None)
        >>> validate_amount("-10")
        (False, None, "Amount must be >= 0")
    """
    if amount is None or isinstance(amount, bool):
        return False, None, "Amount is empty"

    if isinstance(amount, str):
        amount = amount.strip().replace(",", ".")
        if not amount:
            return False, None, "Amount is empty"

    try:
        value = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    except InvalidOperation:
        return False, None, "Invalid amount format"

    if not value.is_finite():
        return False, None, "Amount must be a finite number"

    if value < min_val:
        return False, None, f"Amount must be >= {min_val}"

    if max_val is not None and value > max_val:
        return False, None, f"Amount must be <= {max_val}"

    if value.as_tuple().exponent < -2:
        return False, None, "Amount has too many decimal places (maximum 2)"

    return True, value, None


def normalize_email(email: str) -> str:
    """
    Normalize email to lowercase.

    Args:
        email: Email address

    Returns:
        Lowercase email

    Raises:
        ValueError: If email is invalid
    """
    is_valid, error = validate_email(email)
    if not is_valid:
        raise ValueError(error)

    return email.strip().lower()


def normalize_phone(phone: str) -> str:
    """
    Normalize phone number by removing formatting.

    Args:
        phone: Phone number

    Returns:
        Cleaned phone number

    Raises:
        ValueError: If phone is invalid
    """
    is_valid, error = validate_phone(phone)
    if not is_valid:
        raise ValueError(error)

    cleaned = (
        phone.strip()
        .replace(" ", "")
        .replace("-", "")
        .replace("(", "")
        .replace(")", "")
    )
    return cleaned
