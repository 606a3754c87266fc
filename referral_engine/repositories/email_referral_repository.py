"""
E-mail referral repository.

Data access layer for EmailReferral model.
"""

from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from referral_engine.models.email_referral import EmailReferral
from referral_engine.models.enums import InviteStatus
from referral_engine.repositories.base import BaseRepository


# Statuses whose invite is still awaiting the prospect
_OPEN_STATUSES = (InviteStatus.INVITED.value, InviteStatus.CONFIRMED.value)


class EmailReferralRepository(BaseRepository[EmailReferral]):
    """E-mail referral repository with specific queries."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize e-mail referral repository."""
        super().__init__(EmailReferral, session)

    async def get_for_affiliate(
        self, affiliate_id: int, email: str
    ) -> EmailReferral | None:
        """
        Get the invite row for an (affiliate, email) pair.

        Args:
            affiliate_id: Inviting affiliate
            email: Normalized e-mail

        Returns:
            Invite or None
        """
        return await self.get_by(affiliate_id=affiliate_id, email=email)

    async def rearm_if_expired(
        self,
        invite_id: int,
        now: datetime,
        expires_at: datetime,
        name: str | None,
        phone: str | None,
    ) -> bool:
        """
        Re-issue an invite whose previous expiry has passed.

        Converted invites are never re-armed. The WHERE guard makes two racing
        re-invites resolve to a single winner.

        Args:
            invite_id: Invite ID
            now: Current time
            expires_at: New expiry
            name: Prospect name
            phone: Prospect phone

        Returns:
            True if this call re-armed the invite
        """
        stmt = (
            update(EmailReferral)
            .where(
                EmailReferral.id == invite_id,
                EmailReferral.expires_at <= now,
                EmailReferral.status != InviteStatus.CONVERTED.value,
            )
            .values(
                status=InviteStatus.INVITED.value,
                invited_at=now,
                expires_at=expires_at,
                confirmed_at=None,
                name=name,
                phone=phone,
                invite_count=EmailReferral.invite_count + 1,
            )
            .execution_options(synchronize_session="fetch")
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def expire_stale(self, now: datetime) -> int:
        """
        Mark open invites past their expiry as expired.

        Args:
            now: Current time

        Returns:
            Number of invites expired
        """
        stmt = (
            update(EmailReferral)
            .where(
                EmailReferral.status.in_(_OPEN_STATUSES),
                EmailReferral.expires_at <= now,
            )
            .values(status=InviteStatus.EXPIRED.value)
            .execution_options(synchronize_session="fetch")
        )
        result = await self.session.execute(stmt)
        return result.rowcount or 0

    async def list_for_affiliate(
        self, affiliate_id: int, status: InviteStatus | None = None
    ) -> list[EmailReferral]:
        """
        List an affiliate's invites, newest first.

        Args:
            affiliate_id: Inviting affiliate
            status: Optional status filter

        Returns:
            List of invites
        """
        stmt = (
            select(EmailReferral)
            .where(EmailReferral.affiliate_id == affiliate_id)
            .order_by(EmailReferral.invited_at.desc(), EmailReferral.id.desc())
        )
        if status is not None:
            stmt = stmt.where(EmailReferral.status == status.value)

        result = await self.session.execute(stmt)
        return list(result.scalars().all())
