"""Coordinator network management."""

from referral_engine.services.coordinator.network_manager import (
    AffiliateSummary,
    BulkAssignmentResult,
    CoordinatorNetwork,
    CoordinatorNetworkManager,
    CoordinatorStats,
)


__all__ = [
    "AffiliateSummary",
    "BulkAssignmentResult",
    "CoordinatorNetwork",
    "CoordinatorNetworkManager",
    "CoordinatorStats",
]
