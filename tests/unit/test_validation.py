"""Unit tests for input validators."""

from decimal import Decimal

import pytest

from referral_engine.validators import (
    normalize_email,
    normalize_phone,
    validate_amount,
    validate_email,
    validate_password,
    validate_phone,
)


class TestValidateEmail:
    """Test e-mail validation."""

    @pytest.mark.parametrize(
        "email",
        ["user@example.com", "first.last+tag@sub.example.org"],
    )
    def test_valid_emails(self, email):
        """Well-formed addresses pass."""
        assert validate_email(email) == (True, None)

    @pytest.mark.parametrize(
        "email",
        ["", "   ", "invalid", "a@b@c.com", "user@localhost", "@example.com"],
    )
    def test_invalid_emails(self, email):
        """Malformed addresses are rejected with a message."""
        is_valid, error = validate_email(email)
        assert is_valid is False
        assert error

    def test_normalize_email_lowercases(self):
        """Normalization strips and lowercases."""
        assert normalize_email("  User@Example.COM ") == "user@example.com"

    def test_normalize_email_invalid_raises(self):
        """Normalizing an invalid address raises ValueError."""
        with pytest.raises(ValueError):
            normalize_email("invalid")


class TestValidatePhone:
    """Test phone validation."""

    def test_valid_phone(self):
        """International number passes."""
        assert validate_phone("+1 (555) 123-4567") == (True, None)

    def test_too_short(self):
        """Fewer than 10 digits is rejected."""
        assert validate_phone("123")[0] is False

    def test_normalize_phone(self):
        """Formatting characters are removed."""
        assert normalize_phone("+1 (555) 123-4567") == "+15551234567"


class TestValidatePassword:
    """Test password validation."""

    def test_minimum_length(self):
        """Eight characters is enough."""
        assert validate_password("12345678") == (True, None)

    def test_too_short(self):
        """Seven characters is rejected."""
        is_valid, error = validate_password("1234567")
        assert is_valid is False
        assert "8" in error


class TestValidateAmount:
    """Test monetary amount validation."""

    def test_string_amount(self):
        """String amounts are parsed to Decimal."""
        assert validate_amount("100.50") == (True, Decimal("100.50"), None)

    def test_comma_separator(self):
        """Comma decimal separator is accepted."""
        assert validate_amount("100,5")[1] == Decimal("100.5")

    def test_negative_rejected(self):
        """Negative amounts fail the default minimum."""
        is_valid, value, error = validate_amount("-10")
        assert is_valid is False
        assert value is None
        assert error

    def test_too_many_decimals(self):
        """Sub-cent precision is rejected."""
        assert validate_amount("1.001")[0] is False

    def test_max_bound(self):
        """Values above max_val are rejected."""
        assert validate_amount("101", max_val=Decimal("100"))[0] is False

    @pytest.mark.parametrize("value", ["abc", "NaN", "Infinity", None, True])
    def test_garbage_rejected(self, value):
        """Non-numeric and non-finite input is rejected."""
        assert validate_amount(value)[0] is False
