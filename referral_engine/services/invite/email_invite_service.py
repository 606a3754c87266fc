"""
E-mail invite service.

Affiliates invite prospects by e-mail. An (affiliate, email) pair has a
single row: a live invite cannot be re-issued, an expired one is re-armed
in place.
"""

from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from referral_engine.config.settings import settings
from referral_engine.models.email_referral import EmailReferral
from referral_engine.models.enums import InviteStatus
from referral_engine.models.user import User
from referral_engine.repositories.email_referral_repository import (
    EmailReferralRepository,
)
from referral_engine.repositories.user_repository import UserRepository
from referral_engine.services.base_service import BaseService, transaction
from referral_engine.services.capabilities import (
    Capability,
    requires_capability,
)
from referral_engine.services.notification.dispatcher import (
    NotificationDispatcher,
)
from referral_engine.utils.datetime_utils import ensure_utc, utc_now
from referral_engine.utils.exceptions import (
    ConflictError,
    NotFoundError,
    ValidationError,
)
from referral_engine.validators.unified import (
    normalize_email,
    normalize_phone,
    validate_amount,
)


ALREADY_INVITED = "already invited"


class EmailInviteService(BaseService):
    """E-mail lead management."""

    def __init__(
        self,
        session: AsyncSession,
        notifier: NotificationDispatcher | None = None,
    ) -> None:
        """
        Initialize invite service.

        Args:
            session: Async database session
            notifier: Optional notification dispatcher
        """
        super().__init__(session)
        self.invite_repo = EmailReferralRepository(session)
        self.user_repo = UserRepository(session)
        self.notifier = notifier

    @requires_capability(Capability.INVITE)
    async def invite(
        self,
        affiliate_id: int,
        email: str,
        name: str | None = None,
        phone: str | None = None,
    ) -> EmailReferral:
        """
        Invite a prospect by e-mail.

        Args:
            affiliate_id: Inviting affiliate
            email: Prospect e-mail
            name: Prospect name
            phone: Prospect phone

        Returns:
            New or re-armed invite

        Raises:
            NotFoundError: Unknown affiliate
            ValidationError: Malformed e-mail or phone
            ConflictError: A live invite exists, or the prospect converted
        """
        invite, affiliate = await self._create_invite(
            affiliate_id, email, name, phone
        )

        if self.notifier:
            await self.notifier.notify_invite(affiliate, invite)
        return invite

    @transaction
    async def _create_invite(
        self,
        affiliate_id: int,
        email: str,
        name: str | None,
        phone: str | None,
    ) -> tuple[EmailReferral, User]:
        affiliate = await self.user_repo.get_by_id(affiliate_id)
        if not affiliate:
            raise NotFoundError(f"Affiliate {affiliate_id} not found")

        try:
            email = normalize_email(email)
        except ValueError as e:
            raise ValidationError(str(e)) from e

        if phone:
            try:
                phone = normalize_phone(phone)
            except ValueError as e:
                raise ValidationError(str(e)) from e

        name = name.strip() if name and name.strip() else None

        now = utc_now()
        expires_at = now + timedelta(days=settings.invite_ttl_days)

        existing = await self.invite_repo.get_for_affiliate(affiliate_id, email)
        if existing:
            invite = await self._rearm(existing, now, expires_at, name, phone)
        else:
            try:
                invite = await self.invite_repo.create(
                    affiliate_id=affiliate_id,
                    email=email,
                    name=name,
                    phone=phone,
                    status=InviteStatus.INVITED.value,
                    invited_at=now,
                    expires_at=expires_at,
                )
            except IntegrityError as e:
                raise ConflictError(ALREADY_INVITED) from e

        self.logger.info(
            "Prospect invited",
            extra={
                "affiliate_id": affiliate_id,
                "invite_id": invite.id,
                "invite_count": invite.invite_count,
            },
        )
        return invite, affiliate

    async def _rearm(
        self,
        invite: EmailReferral,
        now: datetime,
        expires_at: datetime,
        name: str | None,
        phone: str | None,
    ) -> EmailReferral:
        if invite.status == InviteStatus.CONVERTED.value:
            raise ConflictError(f"{invite.email} has already signed up")

        if not await self.invite_repo.rearm_if_expired(
            invite.id, now, expires_at, name, phone
        ):
            raise ConflictError(ALREADY_INVITED)

        await self.session.refresh(invite)
        return invite

    @requires_capability(Capability.MANAGE_INVITES)
    @transaction
    async def confirm(self, invite_id: int) -> EmailReferral:
        """
        Mark a live invite as confirmed by the prospect.

        Raises:
            NotFoundError: Unknown invite
            ValidationError: Invite expired or not in invited state
        """
        invite = await self._get_locked(invite_id)

        if invite.status != InviteStatus.INVITED.value:
            raise ValidationError(
                f"Invite {invite_id} is {invite.status}, not invited"
            )

        now = utc_now()
        if ensure_utc(invite.expires_at) <= now:
            raise ValidationError(f"Invite {invite_id} has expired")

        invite.status = InviteStatus.CONFIRMED.value
        invite.confirmed_at = now
        await self.session.flush()

        self.logger.info("Invite confirmed", extra={"invite_id": invite_id})
        return invite

    @requires_capability(Capability.MANAGE_INVITES)
    @transaction
    async def convert(
        self,
        invite_id: int,
        conversion_value: Decimal | int | float | str | None = None,
    ) -> EmailReferral:
        """
        Mark an invite as converted (the prospect signed up or purchased).

        Args:
            invite_id: Invite ID
            conversion_value: Optional value of the first sale

        Raises:
            NotFoundError: Unknown invite
            ValidationError: Already converted, expired, or bad value
        """
        invite = await self._get_locked(invite_id)

        if invite.status in (
            InviteStatus.CONVERTED.value,
            InviteStatus.EXPIRED.value,
        ):
            raise ValidationError(
                f"Invite {invite_id} is {invite.status} and cannot convert"
            )

        value = None
        if conversion_value is not None:
            is_valid, value, error = validate_amount(conversion_value)
            if not is_valid:
                raise ValidationError(error)

        invite.status = InviteStatus.CONVERTED.value
        invite.converted_at = utc_now()
        invite.conversion_value = value
        await self.session.flush()

        self.logger.info(
            "Invite converted",
            extra={
                "invite_id": invite_id,
                "conversion_value": str(value) if value is not None else None,
            },
        )
        return invite

    @requires_capability(Capability.MANAGE_INVITES)
    @transaction
    async def expire_stale(self, now: datetime | None = None) -> int:
        """
        Mark every open invite past its expiry as expired.

        Returns:
            Number of invites expired
        """
        count = await self.invite_repo.expire_stale(now or utc_now())

        if count:
            self.logger.info("Stale invites expired", extra={"count": count})
        return count

    @requires_capability(Capability.INVITE)
    async def list_invites(
        self, affiliate_id: int, status: InviteStatus | str | None = None
    ) -> list[EmailReferral]:
        """
        List an affiliate's invites, newest first.

        Raises:
            ValidationError: Unknown status
        """
        if status is not None:
            try:
                status = InviteStatus(status)
            except ValueError as e:
                raise ValidationError(f"Unknown invite status: {status}") from e

        return await self.invite_repo.list_for_affiliate(affiliate_id, status)

    async def _get_locked(self, invite_id: int) -> EmailReferral:
        invite = await self.invite_repo.get_for_update(invite_id)
        if not invite:
            raise NotFoundError(f"Invite {invite_id} not found")
        return invite
