"""
Caller capabilities.

Every public engine operation declares the capability it requires. The REST
layer passes the caller's role to authorize() before dispatching.
"""

from collections.abc import Callable
from enum import Enum
from typing import Any

from referral_engine.models.enums import UserRole
from referral_engine.utils.exceptions import PermissionDeniedError


class Capability(str, Enum):
    """Operation capabilities."""

    MANAGE_COMMISSION_LEVELS = "manage_commission_levels"
    VIEW_COMMISSION_LEVELS = "view_commission_levels"
    REGISTER = "register"
    MANAGE_USERS = "manage_users"
    ASSIGN_AFFILIATES = "assign_affiliates"
    REASSIGN_AFFILIATES = "reassign_affiliates"
    REGISTER_AFFILIATES = "register_affiliates"
    VIEW_NETWORK = "view_network"
    VIEW_OWN_EARNINGS = "view_own_earnings"
    RECORD_TRANSACTIONS = "record_transactions"
    MANAGE_COMMISSIONS = "manage_commissions"
    PROCESS_PAYOUTS = "process_payouts"
    MANAGE_PAYMENT_METHODS = "manage_payment_methods"
    INVITE = "invite"
    MANAGE_INVITES = "manage_invites"
    MANAGE_LINKS = "manage_links"
    TRACK_LINKS = "track_links"


ROLE_CAPABILITIES: dict[UserRole, frozenset[Capability]] = {
    UserRole.ADMIN: frozenset(Capability),
    UserRole.COORDINATOR: frozenset({
        Capability.VIEW_COMMISSION_LEVELS,
        Capability.REGISTER,
        Capability.ASSIGN_AFFILIATES,
        Capability.REGISTER_AFFILIATES,
        Capability.VIEW_NETWORK,
        Capability.VIEW_OWN_EARNINGS,
        Capability.MANAGE_PAYMENT_METHODS,
        Capability.INVITE,
        Capability.MANAGE_LINKS,
        Capability.TRACK_LINKS,
    }),
    UserRole.AFFILIATE: frozenset({
        Capability.VIEW_COMMISSION_LEVELS,
        Capability.REGISTER,
        Capability.VIEW_NETWORK,
        Capability.VIEW_OWN_EARNINGS,
        Capability.MANAGE_PAYMENT_METHODS,
        Capability.INVITE,
        Capability.MANAGE_LINKS,
        Capability.TRACK_LINKS,
    }),
    UserRole.CLIENT: frozenset({
        Capability.REGISTER,
        Capability.TRACK_LINKS,
    }),
}


def requires_capability(
    capability: Capability,
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """
    Tag an operation with the capability its caller needs.

    The function itself is returned unchanged apart from the
    ``required_capability`` attribute.

    Args:
        capability: Required capability

    Returns:
        Decorator
    """
    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        func.required_capability = capability
        return func

    return decorator


def has_capability(role: UserRole | str, capability: Capability) -> bool:
    """Check whether a role grants a capability."""
    try:
        role = UserRole(role)
    except ValueError:
        return False
    return capability in ROLE_CAPABILITIES.get(role, frozenset())


def authorize(role: UserRole | str, operation: Callable[..., Any]) -> None:
    """
    Check that a caller role may invoke an operation.

    Args:
        role: Caller role supplied by the identity layer
        operation: Engine operation (bound or unbound method)

    Raises:
        PermissionDeniedError: If the role lacks the capability, or the
            operation declares none
    """
    capability = getattr(operation, "required_capability", None)
    name = getattr(operation, "__name__", repr(operation))

    if capability is None:
        raise PermissionDeniedError(
            f"Operation {name} does not declare a capability"
        )

    if not has_capability(role, capability):
        raise PermissionDeniedError(
            f"Role {getattr(role, 'value', role)} lacks capability "
            f"{capability.value} required by {name}"
        )
