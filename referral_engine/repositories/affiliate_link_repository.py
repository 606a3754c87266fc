"""
Affiliate link repository.

Data access layer for AffiliateLink model.
"""

from dataclasses import dataclass

from sqlalchemy import case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from referral_engine.models.affiliate_link import AffiliateLink
from referral_engine.repositories.base import BaseRepository


@dataclass(frozen=True)
class LinkTotals:
    """Summed counters over an affiliate's links."""

    clicks: int
    conversions: int
    active_links: int


class AffiliateLinkRepository(BaseRepository[AffiliateLink]):
    """Affiliate link repository with specific queries."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize affiliate link repository."""
        super().__init__(AffiliateLink, session)

    async def get_by_code(
        self, code: str, active_only: bool = False
    ) -> AffiliateLink | None:
        """
        Get link by code (case-insensitive).

        Args:
            code: Link code
            active_only: Ignore deactivated links

        Returns:
            Link or None
        """
        filters = {"link_code": code.strip().upper()}
        if active_only:
            filters["is_active"] = True
        return await self.get_by(**filters)

    async def get_owned(
        self, link_id: int, affiliate_id: int
    ) -> AffiliateLink | None:
        """Get a link only if it belongs to the affiliate."""
        return await self.get_by(id=link_id, affiliate_id=affiliate_id)

    async def list_for_affiliate(self, affiliate_id: int) -> list[AffiliateLink]:
        """
        List an affiliate's links, newest first.

        Args:
            affiliate_id: Link owner

        Returns:
            List of links
        """
        stmt = (
            select(AffiliateLink)
            .where(AffiliateLink.affiliate_id == affiliate_id)
            .order_by(AffiliateLink.created_at.desc(), AffiliateLink.id.desc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def increment_clicks(self, link_id: int) -> bool:
        """
        Count a click on an active link.

        Returns:
            True if the link was active and counted
        """
        stmt = (
            update(AffiliateLink)
            .where(
                AffiliateLink.id == link_id,
                AffiliateLink.is_active.is_(True),
            )
            .values(clicks=AffiliateLink.clicks + 1)
            .execution_options(synchronize_session="fetch")
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def increment_conversions(self, link_id: int) -> None:
        """Count a sale made through a link."""
        stmt = (
            update(AffiliateLink)
            .where(AffiliateLink.id == link_id)
            .values(conversions=AffiliateLink.conversions + 1)
            .execution_options(synchronize_session="fetch")
        )
        await self.session.execute(stmt)

    async def totals_for_affiliate(self, affiliate_id: int) -> LinkTotals:
        """
        Sum clicks and conversions over an affiliate's links.

        Args:
            affiliate_id: Link owner

        Returns:
            LinkTotals (zeros when the affiliate has no links)
        """
        stmt = select(
            func.coalesce(func.sum(AffiliateLink.clicks), 0),
            func.coalesce(func.sum(AffiliateLink.conversions), 0),
            func.coalesce(
                func.sum(case((AffiliateLink.is_active.is_(True), 1), else_=0)),
                0,
            ),
        ).where(AffiliateLink.affiliate_id == affiliate_id)

        clicks, conversions, active = (await self.session.execute(stmt)).one()
        return LinkTotals(
            clicks=int(clicks),
            conversions=int(conversions),
            active_links=int(active),
        )
