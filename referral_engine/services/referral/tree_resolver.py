"""
Referral tree resolver.

Walks the parent-pointer tree stored in users.referrer_id: upwards for the
commission chain, downwards (one query per level) for network views.
"""

from dataclasses import dataclass, field

from sqlalchemy.ext.asyncio import AsyncSession

from referral_engine.config.business_constants import REFERRAL_DEPTH
from referral_engine.models.user import User
from referral_engine.repositories.user_repository import UserRepository
from referral_engine.services.base_service import BaseService
from referral_engine.services.capabilities import (
    Capability,
    requires_capability,
)
from referral_engine.utils.exceptions import NotFoundError


@dataclass
class ReferralNetwork:
    """Descendants of one user grouped by depth."""

    level1: list[User] = field(default_factory=list)
    level2: list[User] = field(default_factory=list)
    level3: list[User] = field(default_factory=list)

    @property
    def totals(self) -> dict[str, int]:
        counts = {
            "level1": len(self.level1),
            "level2": len(self.level2),
            "level3": len(self.level3),
        }
        counts["total"] = sum(counts.values())
        return counts

    def by_level(self) -> dict[int, list[User]]:
        return {1: self.level1, 2: self.level2, 3: self.level3}


class ReferralTreeResolver(BaseService):
    """Resolves ancestors and descendants in the referral tree."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize resolver."""
        super().__init__(session)
        self.user_repo = UserRepository(session)

    @requires_capability(Capability.VIEW_NETWORK)
    async def ancestors_of(
        self, user_id: int, max_depth: int = REFERRAL_DEPTH
    ) -> list[User]:
        """
        Get the referrer chain of a user.

        Parent-pointer walk capped at max_depth hops. A user id seen twice
        (malformed data) ends the walk.

        Args:
            user_id: Starting user ID
            max_depth: Maximum number of ancestors to return

        Returns:
            [level1_parent, level2_parent, ...], shortest when the chain ends
        """
        chain: list[User] = []
        visited = {user_id}

        current_id = await self.user_repo.get_referrer_id(user_id)
        while current_id is not None and len(chain) < max_depth:
            if current_id in visited:
                self.logger.error(
                    "Referral cycle detected, truncating chain",
                    extra={
                        "user_id": user_id,
                        "cycle_at": current_id,
                        "chain_ids": [u.id for u in chain],
                    },
                )
                break

            ancestor = await self.user_repo.get_by_id(current_id)
            if ancestor is None:
                break

            visited.add(current_id)
            chain.append(ancestor)
            current_id = ancestor.referrer_id

        self.logger.debug(
            "Referral chain resolved",
            extra={
                "user_id": user_id,
                "depth": max_depth,
                "chain_length": len(chain),
            },
        )
        return chain

    @requires_capability(Capability.VIEW_NETWORK)
    async def descendants_of(
        self, user_id: int, depth: int = REFERRAL_DEPTH
    ) -> ReferralNetwork:
        """
        Get the referral network below a user.

        One query per level: children of the previous level's members,
        ordered by id.

        Args:
            user_id: Root user ID
            depth: Number of levels (at most 3 are reported)

        Returns:
            ReferralNetwork with level lists and totals

        Raises:
            NotFoundError: Unknown user
        """
        if not await self.user_repo.exists(id=user_id):
            raise NotFoundError(f"User {user_id} not found")

        network = ReferralNetwork()
        levels = network.by_level()
        visited = {user_id}
        frontier = [user_id]

        for level in range(1, min(depth, REFERRAL_DEPTH) + 1):
            children = [
                child
                for child in await self.user_repo.get_referred_by(frontier)
                if child.id not in visited
            ]
            if not children:
                break

            levels[level].extend(children)
            visited.update(child.id for child in children)
            frontier = [child.id for child in children]

        return network

    @requires_capability(Capability.VIEW_NETWORK)
    async def depth_of(
        self, user_id: int, max_depth: int = REFERRAL_DEPTH
    ) -> int:
        """
        Get how many ancestors a user has, up to max_depth.

        Args:
            user_id: User ID
            max_depth: Cap on the walk

        Returns:
            Number of ancestors
        """
        return len(await self.ancestors_of(user_id, max_depth))
