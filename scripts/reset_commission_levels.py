#!/usr/bin/env python3
"""
Reset the commission schedule to the canonical 15% / 5% / 2.5%.

Usage:
    python scripts/reset_commission_levels.py --dry-run  # Show current levels
    python scripts/reset_commission_levels.py --apply    # Replace them
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from loguru import logger

from referral_engine.config.database import create_engine, create_session_maker
from referral_engine.services.commission import CommissionLevelRegistry


# Configure logger
logger.remove()
logger.add(sys.stderr, level="INFO", format="{time:HH:mm:ss} | {level} | {message}")


async def reset_commission_levels(dry_run: bool = True) -> None:
    """Print the current schedule and optionally reset it."""
    engine = create_engine()
    session_maker = create_session_maker(engine)

    async with session_maker() as session:
        registry = CommissionLevelRegistry(session)

        logger.info("Current commission levels:")
        for level in await registry.get_all_levels():
            state = "active" if level.is_active else "inactive"
            logger.info(f"  L{level.level}: {level.percentage}% ({state})")

        if dry_run:
            logger.info("Dry run, nothing changed")
        else:
            levels = await registry.reset_to_defaults()
            schedule = await registry.get_schedule()
            logger.success(
                f"Reset to {len(levels)} default levels "
                f"(schedule version {schedule.version})"
            )

    await engine.dispose()


def main():
    parser = argparse.ArgumentParser(
        description="Reset commission levels to the defaults"
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show the current levels without changing them"
    )
    parser.add_argument(
        "--apply",
        action="store_true",
        help="Replace the current levels with the defaults"
    )

    args = parser.parse_args()

    if not args.dry_run and not args.apply:
        print("Please specify --dry-run to preview or --apply to make changes")
        sys.exit(1)

    asyncio.run(reset_commission_levels(dry_run=not args.apply))


if __name__ == "__main__":
    main()
