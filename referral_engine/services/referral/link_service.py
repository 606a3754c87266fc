"""
Affiliate link service.

Affiliates create trackable links whose codes work at checkout like their
referral code. Clicks are counted on active links only; conversions are
counted by the transaction service when a sale uses the link.
"""

import re
import uuid
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from referral_engine.config.business_constants import LINK_CODE_PATTERN
from referral_engine.models.affiliate_link import AffiliateLink
from referral_engine.repositories.affiliate_link_repository import (
    AffiliateLinkRepository,
)
from referral_engine.repositories.user_repository import UserRepository
from referral_engine.services.base_service import BaseService, transaction
from referral_engine.services.capabilities import (
    Capability,
    requires_capability,
)
from referral_engine.utils.exceptions import NotFoundError, ValidationError


DUPLICATE_LINK_CODE = "Provided link code already exists"

RATE_PLACES = Decimal("0.01")


@dataclass(frozen=True)
class LinkStats:
    """Click and conversion totals over an affiliate's links."""

    affiliate_id: int
    total_clicks: int
    total_conversions: int
    conversion_rate: Decimal
    active_links: int


class AffiliateLinkService(BaseService):
    """Affiliate link management and tracking."""

    def __init__(self, session: AsyncSession) -> None:
        """
        Initialize link service.

        Args:
            session: Async database session
        """
        super().__init__(session)
        self.link_repo = AffiliateLinkRepository(session)
        self.user_repo = UserRepository(session)

    @requires_capability(Capability.MANAGE_LINKS)
    @transaction
    async def create_link(
        self, affiliate_id: int, custom_code: str | None = None
    ) -> AffiliateLink:
        """
        Create a link with a custom or generated code.

        A custom code may equal the affiliate's own referral code but not
        another user's.

        Args:
            affiliate_id: Link owner
            custom_code: Optional code, 4-64 letters, digits, "-" or "_"

        Returns:
            Created link

        Raises:
            NotFoundError: Unknown affiliate
            ValidationError: Owner cannot earn, malformed or taken code
        """
        affiliate = await self.user_repo.get_by_id(affiliate_id)
        if not affiliate:
            raise NotFoundError(f"Affiliate {affiliate_id} not found")

        if not (affiliate.is_affiliate or affiliate.is_coordinator):
            raise ValidationError(
                f"User {affiliate_id} cannot own affiliate links"
            )

        if custom_code is not None and custom_code.strip():
            code = custom_code.strip().upper()
            if not re.match(LINK_CODE_PATTERN, code):
                raise ValidationError(
                    "Link code must be 4-64 letters, digits, '-' or '_'"
                )

            owner = await self.user_repo.get_by_referral_code(code)
            if owner and owner.id != affiliate_id:
                raise ValidationError(DUPLICATE_LINK_CODE)
        else:
            code = str(uuid.uuid4()).upper()

        if await self.link_repo.get_by_code(code):
            raise ValidationError(DUPLICATE_LINK_CODE)

        try:
            link = await self.link_repo.create(
                affiliate_id=affiliate_id,
                link_code=code,
            )
        except IntegrityError as e:
            raise ValidationError(DUPLICATE_LINK_CODE) from e

        self.logger.info(
            "Affiliate link created",
            extra={
                "affiliate_id": affiliate_id,
                "link_id": link.id,
                "custom_code": custom_code is not None,
            },
        )
        return link

    @requires_capability(Capability.MANAGE_LINKS)
    async def list_links(self, affiliate_id: int) -> list[AffiliateLink]:
        """List an affiliate's links, newest first."""
        return await self.link_repo.list_for_affiliate(affiliate_id)

    @requires_capability(Capability.MANAGE_LINKS)
    @transaction
    async def toggle_link(self, affiliate_id: int, link_id: int) -> AffiliateLink:
        """
        Flip a link between active and inactive.

        Only the owner can toggle a link; a foreign link is reported as
        missing.

        Raises:
            NotFoundError: Unknown link or not owned by the affiliate
        """
        link = await self.link_repo.get_owned(link_id, affiliate_id)
        if not link:
            raise NotFoundError(f"Link {link_id} not found")

        link.is_active = not link.is_active
        await self.session.flush()

        self.logger.info(
            "Affiliate link toggled",
            extra={"link_id": link_id, "is_active": link.is_active},
        )
        return link

    @requires_capability(Capability.TRACK_LINKS)
    @transaction
    async def record_click(self, link_code: str) -> AffiliateLink:
        """
        Count a visit through a link.

        Raises:
            NotFoundError: Unknown or inactive link
        """
        link = await self.link_repo.get_by_code(link_code, active_only=True)
        if not link or not await self.link_repo.increment_clicks(link.id):
            raise NotFoundError(f"Link {link_code.strip()} not found")

        return link

    @requires_capability(Capability.MANAGE_LINKS)
    async def get_stats(self, affiliate_id: int) -> LinkStats:
        """
        Get click and conversion totals.

        The conversion rate is conversions per 100 clicks, rounded half-up
        to 2 places, and 0 without clicks.
        """
        totals = await self.link_repo.totals_for_affiliate(affiliate_id)

        rate = Decimal("0")
        if totals.clicks > 0:
            rate = (
                Decimal(totals.conversions) * 100 / Decimal(totals.clicks)
            ).quantize(RATE_PLACES, rounding=ROUND_HALF_UP)

        return LinkStats(
            affiliate_id=affiliate_id,
            total_clicks=totals.clicks,
            total_conversions=totals.conversions,
            conversion_rate=rate,
            active_links=totals.active_links,
        )
