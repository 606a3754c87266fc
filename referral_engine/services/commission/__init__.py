"""Commission schedule and calculation."""

from referral_engine.services.commission.calculation_engine import (
    AffiliateStats,
    CancellationResult,
    CommissionBreakdown,
    CommissionCalculationEngine,
    LevelShare,
    calculate_breakdown,
)
from referral_engine.services.commission.level_registry import (
    CommissionLevelRegistry,
    CommissionSchedule,
)


__all__ = [
    "AffiliateStats",
    "CancellationResult",
    "CommissionBreakdown",
    "CommissionCalculationEngine",
    "CommissionLevelRegistry",
    "CommissionSchedule",
    "LevelShare",
    "calculate_breakdown",
]
