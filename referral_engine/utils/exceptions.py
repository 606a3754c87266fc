"""
Engine exception taxonomy.

Every business-rule violation raised by the engine derives from EngineError
and is recoverable at the caller boundary. The engine never retries them.
"""

from decimal import Decimal


class EngineError(Exception):
    """Base class for all business-rule violations."""

    code = "engine_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        """Structured form for the REST layer."""
        return {"error": self.code, "message": self.message}


class ValidationError(EngineError):
    """Malformed input, out-of-bounds percentage or bad amount."""

    code = "validation_error"


class ConflictError(EngineError):
    """Duplicate attachment, duplicate live invite or re-parenting attempt."""

    code = "conflict"


class NotFoundError(EngineError):
    """Unknown referral code, user, payment method or commission level."""

    code = "not_found"


class ConstraintError(EngineError):
    """Operation would leave the commission schedule without active levels."""

    code = "constraint_violation"


class InsufficientFundsError(EngineError):
    """Payout exceeds the affiliate's pending + approved balance."""

    code = "insufficient_funds"

    def __init__(self, requested: Decimal, available: Decimal) -> None:
        super().__init__(
            f"Insufficient funds: requested {requested}, "
            f"available balance {available}"
        )
        self.requested = requested
        self.available = available

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["available"] = str(self.available)
        return data


class PermissionDeniedError(EngineError):
    """Caller role lacks the capability an operation requires."""

    code = "permission_denied"


class AttachmentRaceError(Exception):
    """Compare-and-set on an attachment column matched no row."""
    pass
