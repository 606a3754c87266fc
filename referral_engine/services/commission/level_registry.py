"""
Commission level registry.

Single source of truth for the per-level commission percentages. Every
mutation appends a CommissionScheduleVersion row; calculations work from an
immutable CommissionSchedule snapshot taken at call time.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from types import MappingProxyType
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from referral_engine.config.business_constants import (
    DEFAULT_COMMISSION_LEVELS,
    DEFAULT_LEVEL_DESCRIPTIONS,
    HIGH_TOTAL_COMMISSION_WARNING,
)
from referral_engine.config.settings import settings
from referral_engine.models.commission_level import (
    CommissionLevel,
    CommissionScheduleVersion,
)
from referral_engine.repositories.commission_level_repository import (
    CommissionLevelRepository,
    CommissionScheduleVersionRepository,
)
from referral_engine.services.base_service import BaseService, transaction
from referral_engine.services.capabilities import (
    Capability,
    requires_capability,
)
from referral_engine.utils.exceptions import (
    ConstraintError,
    NotFoundError,
    ValidationError,
)
from referral_engine.utils.money import to_decimal


@dataclass(frozen=True)
class CommissionSchedule:
    """
    Immutable snapshot of the active commission schedule.

    Attributes:
        version: Schedule version the snapshot was taken at (None if the
            registry was never written through)
        rates: Level number -> percentage (15 means 15%)
    """

    version: int | None
    rates: Mapping[int, Decimal] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "rates", MappingProxyType(dict(sorted(self.rates.items())))
        )

    def rate_for(self, level: int) -> Decimal | None:
        """Get the percentage for a level, None if the level is not active."""
        return self.rates.get(level)

    @property
    def levels(self) -> list[int]:
        return list(self.rates)

    @property
    def total_percentage(self) -> Decimal:
        return sum(self.rates.values(), Decimal("0"))

    @classmethod
    def defaults(cls) -> "CommissionSchedule":
        """Canonical 15 / 5 / 2.5 schedule, unversioned."""
        return cls(version=None, rates=dict(DEFAULT_COMMISSION_LEVELS))


class CommissionLevelRegistry(BaseService):
    """
    Commission level registry.

    Admin-only writes; reads are open to every role.
    """

    def __init__(self, session: AsyncSession) -> None:
        """Initialize registry."""
        super().__init__(session)
        self.level_repo = CommissionLevelRepository(session)
        self.version_repo = CommissionScheduleVersionRepository(session)

    @requires_capability(Capability.VIEW_COMMISSION_LEVELS)
    async def get_active_levels(self) -> list[CommissionLevel]:
        """
        Get active levels ordered by level number.

        Returns:
            Active commission levels
        """
        return await self.level_repo.get_ordered_levels(active_only=True)

    @requires_capability(Capability.VIEW_COMMISSION_LEVELS)
    async def get_all_levels(self) -> list[CommissionLevel]:
        """Get every configured level, active or not."""
        return await self.level_repo.get_ordered_levels(active_only=False)

    @requires_capability(Capability.VIEW_COMMISSION_LEVELS)
    async def get_schedule(self) -> CommissionSchedule:
        """
        Snapshot the active schedule.

        Returns:
            Immutable schedule taken at call time
        """
        levels = await self.level_repo.get_ordered_levels(active_only=True)
        latest = await self.version_repo.get_latest()

        return CommissionSchedule(
            version=latest.id if latest else None,
            rates={lvl.level: to_decimal(lvl.percentage) for lvl in levels},
        )

    @requires_capability(Capability.MANAGE_COMMISSION_LEVELS)
    @transaction
    async def upsert_level(
        self,
        level: int,
        percentage: Decimal | int | float | str,
        description: str = "",
        is_active: bool = True,
        min_referrals: int | None = None,
        max_referrals: int | None = None,
    ) -> CommissionLevel:
        """
        Create a level or update the existing row for that level number.

        Args:
            level: Referral depth (1 = direct referrer)
            percentage: Percentage of the sale amount
            description: Human readable description
            is_active: Activation flag
            min_referrals: Optional lower referral-count bound
            max_referrals: Optional upper referral-count bound

        Returns:
            Created or updated level

        Raises:
            ValidationError: Out-of-bounds level, percentage or referral range
            ConstraintError: Update would deactivate the last active level
        """
        config = await self._upsert(
            level=level,
            percentage=percentage,
            description=description,
            is_active=is_active,
            min_referrals=min_referrals,
            max_referrals=max_referrals,
        )
        await self._ensure_active_level_remains()
        await self._write_version(f"upsert_level:{level}")
        return config

    @requires_capability(Capability.MANAGE_COMMISSION_LEVELS)
    @transaction
    async def create_level(
        self,
        level: int,
        percentage: Decimal | int | float | str,
        description: str = "",
        is_active: bool = True,
        min_referrals: int | None = None,
        max_referrals: int | None = None,
    ) -> CommissionLevel:
        """
        Create a new level; the level number must be unused.

        Raises:
            ValidationError: Invalid fields or duplicate level number
        """
        value = self._validate_fields(
            level, percentage, min_referrals, max_referrals
        )

        if await self.level_repo.get_by_level(level):
            raise ValidationError(f"Commission level {level} already exists")

        try:
            config = await self.level_repo.create(
                level=level,
                percentage=value,
                description=description,
                is_active=is_active,
                min_referrals=min_referrals,
                max_referrals=max_referrals,
            )
        except IntegrityError as e:
            raise ValidationError(
                f"Commission level {level} already exists"
            ) from e

        await self._write_version(f"create_level:{level}")
        return config

    @requires_capability(Capability.MANAGE_COMMISSION_LEVELS)
    @transaction
    async def deactivate(self, level_id: int) -> CommissionLevel:
        """
        Deactivate a level.

        Args:
            level_id: CommissionLevel row ID

        Returns:
            Deactivated level

        Raises:
            NotFoundError: Unknown level
            ConstraintError: It is the last active level
        """
        config = await self._get_locked(level_id)

        if not config.is_active:
            return config

        if await self.level_repo.count_active() <= 1:
            raise ConstraintError(
                "Cannot deactivate the last active commission level"
            )

        config.is_active = False
        await self.session.flush()
        await self._write_version(f"deactivate:{config.level}")

        self.logger.info(
            "Commission level deactivated",
            extra={"level_id": level_id, "level": config.level},
        )
        return config

    @requires_capability(Capability.MANAGE_COMMISSION_LEVELS)
    @transaction
    async def activate(self, level_id: int) -> CommissionLevel:
        """
        Re-activate a level.

        Raises:
            NotFoundError: Unknown level
        """
        config = await self._get_locked(level_id)

        if config.is_active:
            return config

        config.is_active = True
        await self.session.flush()
        await self._write_version(f"activate:{config.level}")

        self.logger.info(
            "Commission level activated",
            extra={"level_id": level_id, "level": config.level},
        )
        return config

    @requires_capability(Capability.MANAGE_COMMISSION_LEVELS)
    @transaction
    async def delete_level(self, level_id: int) -> None:
        """
        Delete a level row.

        Existing commission records keep their level number and rate.

        Raises:
            NotFoundError: Unknown level
            ConstraintError: Deleting would leave no (active) level
        """
        config = await self._get_locked(level_id)

        if await self.level_repo.count() <= 1:
            raise ConstraintError("Cannot delete the only commission level")

        if config.is_active and await self.level_repo.count_active() <= 1:
            raise ConstraintError(
                "Cannot delete the last active commission level"
            )

        await self.level_repo.delete(level_id)
        await self._write_version(f"delete_level:{config.level}")

        self.logger.info(
            "Commission level deleted",
            extra={"level_id": level_id, "level": config.level},
        )

    @requires_capability(Capability.MANAGE_COMMISSION_LEVELS)
    @transaction
    async def reset_to_defaults(self) -> list[CommissionLevel]:
        """
        Replace the schedule with the canonical 15% / 5% / 2.5%.

        Returns:
            The three default levels
        """
        removed = await self.level_repo.delete_all()

        levels = []
        for level, percentage in DEFAULT_COMMISSION_LEVELS.items():
            levels.append(
                await self.level_repo.create(
                    level=level,
                    percentage=percentage,
                    description=DEFAULT_LEVEL_DESCRIPTIONS[level],
                    is_active=True,
                )
            )

        await self._write_version("reset_to_defaults")

        self.logger.info(
            "Commission levels reset to defaults",
            extra={"removed": removed},
        )
        return levels

    @requires_capability(Capability.MANAGE_COMMISSION_LEVELS)
    @transaction
    async def bulk_update(
        self, levels: list[dict[str, Any]]
    ) -> list[CommissionLevel]:
        """
        Apply several upserts atomically.

        Args:
            levels: Dicts with upsert_level() keyword arguments

        Returns:
            Resulting levels, in input order

        Raises:
            ValidationError: Any entry is invalid (nothing is applied)
            ConstraintError: The result would have no active level
        """
        if not levels:
            raise ValidationError("No commission levels given")

        seen = [entry.get("level") for entry in levels]
        if len(seen) != len(set(seen)):
            raise ValidationError("Duplicate level numbers in bulk update")

        results = []
        for entry in levels:
            try:
                results.append(await self._upsert(**entry))
            except TypeError as e:
                raise ValidationError(f"Malformed level entry: {entry}") from e

        await self._ensure_active_level_remains()
        await self._write_version("bulk_update")
        return results

    @requires_capability(Capability.VIEW_COMMISSION_LEVELS)
    async def validate_structure(self) -> dict[str, Any]:
        """
        Check the configured schedule for problems.

        Returns:
            Dict with is_valid, errors, warnings and total_percentage
        """
        levels = await self.level_repo.get_ordered_levels(active_only=False)
        active = [lvl for lvl in levels if lvl.is_active]
        errors: list[str] = []
        warnings: list[str] = []

        if not active:
            errors.append("No active commission levels")

        for lvl in levels:
            percentage = to_decimal(lvl.percentage)
            if percentage < 0:
                errors.append(
                    f"Level {lvl.level}: Commission percentage cannot be negative"
                )
            elif not (
                settings.minimum_commission
                <= percentage
                <= settings.maximum_commission
            ):
                errors.append(
                    f"Level {lvl.level}: Commission percentage {percentage}% "
                    f"is outside [{settings.minimum_commission}, "
                    f"{settings.maximum_commission}]"
                )

            if lvl.is_active and lvl.level > settings.max_commission_levels:
                warnings.append(
                    f"Level {lvl.level} is active but deeper than "
                    f"{settings.max_commission_levels} levels and never pays"
                )

        active_numbers = [lvl.level for lvl in active]
        missing = [
            n for n in range(1, max(active_numbers, default=0) + 1)
            if n not in active_numbers
        ]
        if missing:
            warnings.append(
                f"Levels {', '.join(map(str, missing))} are not active; "
                "those referral depths earn nothing"
            )

        total = sum(
            (to_decimal(lvl.percentage) for lvl in active), Decimal("0")
        )
        if total > HIGH_TOTAL_COMMISSION_WARNING:
            warnings.append(
                f"Total commission percentage ({total}%) is quite high"
            )

        return {
            "is_valid": not errors,
            "errors": errors,
            "warnings": warnings,
            "total_percentage": total,
        }

    async def _get_locked(self, level_id: int) -> CommissionLevel:
        config = await self.level_repo.get_for_update(level_id)
        if not config:
            raise NotFoundError(f"Commission level {level_id} not found")
        return config

    def _validate_fields(
        self,
        level: int,
        percentage: Decimal | int | float | str,
        min_referrals: int | None,
        max_referrals: int | None,
    ) -> Decimal:
        """Validate level fields, returning the percentage as Decimal."""
        if isinstance(level, bool) or not isinstance(level, int):
            raise ValidationError("Level must be an integer")

        if level < 1 or level > settings.max_commission_levels:
            raise ValidationError(
                f"Level must be between 1 and {settings.max_commission_levels}"
            )

        try:
            value = to_decimal(percentage)
        except (ArithmeticError, TypeError, ValueError) as e:
            raise ValidationError(f"Invalid percentage: {percentage}") from e

        if not value.is_finite():
            raise ValidationError("Percentage must be a finite number")

        if value < 0:
            raise ValidationError("Percentage cannot be negative")

        if value < settings.minimum_commission:
            raise ValidationError(
                f"Percentage must be at least {settings.minimum_commission}%"
            )

        if value > settings.maximum_commission:
            raise ValidationError(
                f"Percentage cannot exceed {settings.maximum_commission}%"
            )

        for bound in (min_referrals, max_referrals):
            if bound is not None and bound < 0:
                raise ValidationError("Referral bounds cannot be negative")

        if (
            min_referrals is not None
            and max_referrals is not None
            and min_referrals > max_referrals
        ):
            raise ValidationError(
                "min_referrals cannot be greater than max_referrals"
            )

        return value

    async def _upsert(
        self,
        level: int,
        percentage: Decimal | int | float | str,
        description: str = "",
        is_active: bool = True,
        min_referrals: int | None = None,
        max_referrals: int | None = None,
    ) -> CommissionLevel:
        """Create or update one level without committing."""
        value = self._validate_fields(
            level, percentage, min_referrals, max_referrals
        )

        existing = await self.level_repo.get_by_level(level)
        if existing:
            existing.percentage = value
            existing.description = description or existing.description
            existing.is_active = is_active
            existing.min_referrals = min_referrals
            existing.max_referrals = max_referrals
            await self.session.flush()
            return existing

        return await self.level_repo.create(
            level=level,
            percentage=value,
            description=description,
            is_active=is_active,
            min_referrals=min_referrals,
            max_referrals=max_referrals,
        )

    async def _ensure_active_level_remains(self) -> None:
        if await self.level_repo.count_active() < 1:
            raise ConstraintError(
                "Commission schedule must keep at least one active level"
            )

    async def _write_version(self, reason: str) -> CommissionScheduleVersion:
        """Append the current active schedule to the version history."""
        levels = await self.level_repo.get_ordered_levels(active_only=True)
        version = await self.version_repo.create(
            levels={str(lvl.level): str(lvl.percentage) for lvl in levels},
            reason=reason[:100],
        )

        self.logger.info(
            "Commission schedule changed",
            extra={
                "version": version.id,
                "reason": reason,
                "levels": version.levels,
            },
        )
        return version
