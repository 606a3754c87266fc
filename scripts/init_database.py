#!/usr/bin/env python3
"""
Initialize database tables and seed the default commission schedule.

Usage:
    DATABASE_URL=postgresql+asyncpg://... python scripts/init_database.py
"""

import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from referral_engine.config.business_constants import (
    DEFAULT_COMMISSION_LEVELS,
    DEFAULT_LEVEL_DESCRIPTIONS,
)
from referral_engine.config.database import create_engine, create_session_maker
from referral_engine.config.logging import setup_logging
from referral_engine.config.settings import settings
from referral_engine.models import Base
from referral_engine.repositories import (
    CommissionLevelRepository,
    CommissionScheduleVersionRepository,
)
from referral_engine.utils.db_decorators import with_auto_commit

@with_auto_commit
async def seed_commission_levels(session: AsyncSession) -> int:
    """
    Create the default schedule when no levels exist yet.

    Returns:
        Number of levels created
    """
    level_repo = CommissionLevelRepository(session)
    if await level_repo.count() > 0:
        logger.info("Commission levels already configured, skipping seed")
        return 0

    for level, percentage in DEFAULT_COMMISSION_LEVELS.items():
        await level_repo.create(
            level=level,
            percentage=percentage,
            description=DEFAULT_LEVEL_DESCRIPTIONS[level],
            is_active=True,
        )

    await CommissionScheduleVersionRepository(session).create(
        levels={
            str(level): str(percentage)
            for level, percentage in DEFAULT_COMMISSION_LEVELS.items()
        },
        reason="initial_seed",
    )
    return len(DEFAULT_COMMISSION_LEVELS)


async def init_database() -> None:
    """Create all database tables."""
    logger.info("Connecting to database...")
    engine = create_engine(settings.database_url)

    async with engine.begin() as conn:
        logger.info("Creating tables (checkfirst=True)...")
        await conn.run_sync(
            Base.metadata.create_all,
            checkfirst=True
        )

    session_maker = create_session_maker(engine)
    async with session_maker() as session:
        created = await seed_commission_levels(session)
        if created:
            logger.info(f"Seeded {created} default commission levels")

    await engine.dispose()
    logger.success("Database tables created successfully!")


if __name__ == "__main__":
    setup_logging()
    asyncio.run(init_database())
