"""
Integration tests for the commission level registry.

Tests cover:
- Default schedule and version history
- Percentage and level bounds
- Last-active-level protection
- Atomic bulk updates
"""

from decimal import Decimal

import pytest
from sqlalchemy import func, select

from referral_engine.models import CommissionScheduleVersion
from referral_engine.services.commission import CommissionLevelRegistry
from referral_engine.utils.exceptions import (
    ConstraintError,
    NotFoundError,
    ValidationError,
)


async def _version_count(session) -> int:
    result = await session.execute(
        select(func.count(CommissionScheduleVersion.id))
    )
    return result.scalar()


class TestDefaultSchedule:
    """Test the canonical schedule."""

    @pytest.mark.asyncio
    async def test_reset_to_defaults(self, session, default_levels):
        """Reset creates 15 / 5 / 2.5."""
        registry = CommissionLevelRegistry(session)

        levels = await registry.get_active_levels()

        assert [lvl.level for lvl in levels] == [1, 2, 3]
        assert [Decimal(str(lvl.percentage)) for lvl in levels] == [
            Decimal("15"),
            Decimal("5"),
            Decimal("2.5"),
        ]

    @pytest.mark.asyncio
    async def test_schedule_snapshot(self, session, default_levels):
        """Snapshot carries the latest version id."""
        schedule = await CommissionLevelRegistry(session).get_schedule()

        assert schedule.version is not None
        assert schedule.rate_for(1) == Decimal("15")
        assert schedule.total_percentage == Decimal("22.5")

    @pytest.mark.asyncio
    async def test_reset_replaces_custom_levels(self, session, default_levels):
        """Custom changes are discarded by a reset."""
        registry = CommissionLevelRegistry(session)
        await registry.upsert_level(1, Decimal("20"))

        await registry.reset_to_defaults()

        schedule = await registry.get_schedule()
        assert schedule.rate_for(1) == Decimal("15")

    @pytest.mark.asyncio
    async def test_empty_registry_has_empty_schedule(self, session):
        """No levels configured, nothing pays."""
        schedule = await CommissionLevelRegistry(session).get_schedule()

        assert schedule.version is None
        assert schedule.levels == []


class TestUpsertLevel:
    """Test level creation and updates."""

    @pytest.mark.asyncio
    async def test_update_writes_new_version(self, session, default_levels):
        """Every change appends a version row."""
        registry = CommissionLevelRegistry(session)
        before = await _version_count(session)

        level = await registry.upsert_level(2, Decimal("7"))

        assert Decimal(str(level.percentage)) == Decimal("7")
        assert await _version_count(session) == before + 1

    @pytest.mark.asyncio
    async def test_snapshot_unaffected_by_later_change(self, session, default_levels):
        """A schedule taken earlier keeps its rates."""
        registry = CommissionLevelRegistry(session)
        schedule = await registry.get_schedule()

        await registry.upsert_level(1, Decimal("30"))

        assert schedule.rate_for(1) == Decimal("15")
        assert (await registry.get_schedule()).rate_for(1) == Decimal("30")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("percentage", ["-1", "0", "50.5", "abc"])
    async def test_percentage_out_of_bounds(self, session, default_levels, percentage):
        """Percentages outside the corridor are rejected."""
        with pytest.raises(ValidationError):
            await CommissionLevelRegistry(session).upsert_level(1, percentage)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("level", [0, 4, -1])
    async def test_level_out_of_range(self, session, default_levels, level):
        """Level numbers must stay within the configured depth."""
        with pytest.raises(ValidationError):
            await CommissionLevelRegistry(session).upsert_level(level, Decimal("5"))

    @pytest.mark.asyncio
    async def test_referral_range_inverted(self, session, default_levels):
        """min_referrals above max_referrals is rejected."""
        with pytest.raises(ValidationError):
            await CommissionLevelRegistry(session).upsert_level(
                1, Decimal("10"), min_referrals=5, max_referrals=2
            )

    @pytest.mark.asyncio
    async def test_create_duplicate_level(self, session, default_levels):
        """create_level refuses an existing level number."""
        with pytest.raises(ValidationError):
            await CommissionLevelRegistry(session).create_level(1, Decimal("10"))

    @pytest.mark.asyncio
    async def test_failed_update_leaves_schedule(self, session, default_levels):
        """A rejected update changes nothing."""
        registry = CommissionLevelRegistry(session)
        before = await _version_count(session)

        with pytest.raises(ValidationError):
            await registry.upsert_level(1, "99")

        assert (await registry.get_schedule()).rate_for(1) == Decimal("15")
        assert await _version_count(session) == before


class TestLastActiveLevel:
    """Test that the schedule never loses its last active level."""

    @pytest.mark.asyncio
    async def test_deactivate_until_one_left(self, session, default_levels):
        """Two levels can go, the third cannot."""
        registry = CommissionLevelRegistry(session)
        level1, level2, level3 = default_levels

        await registry.deactivate(level2.id)
        await registry.deactivate(level3.id)

        with pytest.raises(ConstraintError):
            await registry.deactivate(level1.id)

        active = await registry.get_active_levels()
        assert [lvl.level for lvl in active] == [1]

    @pytest.mark.asyncio
    async def test_upsert_cannot_deactivate_last(self, session, default_levels):
        """Deactivating through upsert is guarded too."""
        registry = CommissionLevelRegistry(session)
        _, level2, level3 = default_levels
        await registry.deactivate(level2.id)
        await registry.deactivate(level3.id)

        with pytest.raises(ConstraintError):
            await registry.upsert_level(1, Decimal("15"), is_active=False)

    @pytest.mark.asyncio
    async def test_delete_last_active(self, session, default_levels):
        """Deleting the last active level is rejected."""
        registry = CommissionLevelRegistry(session)
        level1_id, level2_id, level3_id = (lvl.id for lvl in default_levels)
        await registry.delete_level(level3_id)
        await registry.deactivate(level2_id)

        with pytest.raises(ConstraintError):
            await registry.delete_level(level1_id)

        # Inactive level may still be deleted
        await registry.delete_level(level2_id)
        assert [lvl.level for lvl in await registry.get_all_levels()] == [1]

    @pytest.mark.asyncio
    async def test_activate_restores_level(self, session, default_levels):
        """Re-activated level pays again."""
        registry = CommissionLevelRegistry(session)
        level3 = default_levels[2]
        await registry.deactivate(level3.id)
        assert (await registry.get_schedule()).rate_for(3) is None

        await registry.activate(level3.id)
        assert (await registry.get_schedule()).rate_for(3) == Decimal("2.5")

    @pytest.mark.asyncio
    async def test_unknown_level_id(self, session, default_levels):
        """Unknown level ids raise NotFoundError."""
        with pytest.raises(NotFoundError):
            await CommissionLevelRegistry(session).deactivate(9999)


class TestBulkUpdate:
    """Test atomic multi-level updates."""

    @pytest.mark.asyncio
    async def test_bulk_update_applies_all(self, session, default_levels):
        """All entries are applied with one version row."""
        registry = CommissionLevelRegistry(session)
        before = await _version_count(session)

        await registry.bulk_update([
            {"level": 1, "percentage": "10"},
            {"level": 2, "percentage": "4"},
        ])

        schedule = await registry.get_schedule()
        assert schedule.rate_for(1) == Decimal("10")
        assert schedule.rate_for(2) == Decimal("4")
        assert await _version_count(session) == before + 1

    @pytest.mark.asyncio
    async def test_bulk_update_is_atomic(self, session, default_levels):
        """One bad entry rolls back the others."""
        registry = CommissionLevelRegistry(session)

        with pytest.raises(ValidationError):
            await registry.bulk_update([
                {"level": 1, "percentage": "10"},
                {"level": 2, "percentage": "75"},
            ])

        assert (await registry.get_schedule()).rate_for(1) == Decimal("15")

    @pytest.mark.asyncio
    async def test_bulk_update_duplicate_levels(self, session, default_levels):
        """The same level twice is rejected."""
        with pytest.raises(ValidationError):
            await CommissionLevelRegistry(session).bulk_update([
                {"level": 1, "percentage": "10"},
                {"level": 1, "percentage": "12"},
            ])


class TestValidateStructure:
    """Test schedule diagnostics."""

    @pytest.mark.asyncio
    async def test_defaults_are_valid(self, session, default_levels):
        """Canonical schedule has no errors or warnings."""
        report = await CommissionLevelRegistry(session).validate_structure()

        assert report["is_valid"] is True
        assert report["errors"] == []
        assert report["warnings"] == []
        assert report["total_percentage"] == Decimal("22.5")

    @pytest.mark.asyncio
    async def test_gap_and_high_total_warn(self, session, default_levels):
        """A gap and a high total are reported as warnings."""
        registry = CommissionLevelRegistry(session)
        await registry.upsert_level(1, Decimal("50"))
        await registry.upsert_level(2, Decimal("5"), is_active=False)
        await registry.upsert_level(3, Decimal("10"))

        report = await registry.validate_structure()

        assert report["is_valid"] is True
        assert len(report["warnings"]) == 2

    @pytest.mark.asyncio
    async def test_no_active_levels_is_error(self, session):
        """An empty registry is invalid."""
        report = await CommissionLevelRegistry(session).validate_structure()
        assert report["is_valid"] is False
