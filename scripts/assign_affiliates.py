#!/usr/bin/env python3
"""
Assign affiliates to a coordinator.

Affiliates that already have a coordinator are skipped with a warning, never
reassigned.

Usage:
    python scripts/assign_affiliates.py --coordinator hadi@example.com \
        --affiliate mike@example.com --affiliate john@example.com
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from loguru import logger

from referral_engine.config.database import create_engine, create_session_maker
from referral_engine.repositories import UserRepository
from referral_engine.services.coordinator import CoordinatorNetworkManager
from referral_engine.utils.exceptions import EngineError


# Configure logger
logger.remove()
logger.add(sys.stderr, level="INFO", format="{time:HH:mm:ss} | {level} | {message}")


async def assign_affiliates(
    coordinator_email: str, affiliate_emails: list[str]
) -> int:
    """
    Assign affiliates (by e-mail) to a coordinator.

    Returns:
        Process exit code
    """
    engine = create_engine()
    session_maker = create_session_maker(engine)

    try:
        async with session_maker() as session:
            user_repo = UserRepository(session)

            coordinator = await user_repo.get_by_email(coordinator_email)
            if not coordinator:
                logger.error(f"Coordinator {coordinator_email} not found")
                return 1

            affiliate_ids = []
            for email in affiliate_emails:
                affiliate = await user_repo.get_by_email(email)
                if not affiliate:
                    logger.warning(f"Affiliate {email} not found, skipping")
                    continue
                affiliate_ids.append(affiliate.id)

            manager = CoordinatorNetworkManager(session)
            try:
                result = await manager.bulk_assign(coordinator.id, affiliate_ids)
            except EngineError as e:
                logger.error(f"Assignment failed: {e.message}")
                return 1

            for affiliate_id in result.assigned:
                logger.success(
                    f"Assigned affiliate {affiliate_id} to {coordinator.name}"
                )
            for affiliate_id, reason in result.skipped.items():
                logger.warning(f"Skipped affiliate {affiliate_id}: {reason}")

            logger.info("Final assignments:")
            network = await manager.get_network(coordinator.id)
            for entry in network.affiliates:
                logger.info(
                    f"  {entry.user.name} ({entry.user.email}) -> "
                    f"{coordinator.name}, code {entry.user.referral_code}, "
                    f"active={entry.user.is_active}"
                )
    finally:
        await engine.dispose()

    return 0


def main():
    parser = argparse.ArgumentParser(
        description="Assign affiliates to a coordinator"
    )
    parser.add_argument(
        "--coordinator",
        required=True,
        help="Coordinator e-mail"
    )
    parser.add_argument(
        "--affiliate",
        action="append",
        required=True,
        help="Affiliate e-mail (repeatable)"
    )

    args = parser.parse_args()
    sys.exit(asyncio.run(assign_affiliates(args.coordinator, args.affiliate)))


if __name__ == "__main__":
    main()
