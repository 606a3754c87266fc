"""
Notification dispatcher.

Sends e-mail notifications for engine events. Called after the state change
has been committed; a failed notification is logged and never propagates.
"""

from decimal import Decimal
from typing import Protocol

from loguru import logger

from referral_engine.config.settings import settings
from referral_engine.models.commission import CommissionRecord
from referral_engine.models.email_referral import EmailReferral
from referral_engine.models.payout import PayoutRequest
from referral_engine.models.user import User


class EmailSender(Protocol):
    """E-mail delivery collaborator."""

    async def send(self, to: str, subject: str, body: str) -> None:
        ...


class NotificationDispatcher:
    """Fire-and-forget e-mail notifications."""

    def __init__(self, sender: EmailSender) -> None:
        """
        Initialize dispatcher.

        Args:
            sender: E-mail delivery implementation
        """
        self.sender = sender

    async def _send(
        self, event: str, to: str, subject: str, body: str
    ) -> bool:
        try:
            await self.sender.send(to, subject, body)

            logger.info(
                f"{event} notification sent",
                extra={"event": event, "to": to},
            )
            return True

        except Exception as e:
            logger.warning(
                f"Failed to send {event} notification",
                extra={"event": event, "to": to, "error": str(e)},
            )
            return False

    async def notify_new_referral(self, referrer: User, new_user: User) -> bool:
        """
        Notify referrer about a sign-up with their referral code.

        Returns:
            True if notification sent successfully
        """
        return await self._send(
            "new_referral",
            referrer.email,
            "You have a new referral",
            f"Hi {referrer.name},\n\n"
            f"{new_user.name} just signed up with your referral code "
            f"{referrer.referral_code}.",
        )

    async def notify_affiliate_registered(
        self, affiliate: User, coordinator: User
    ) -> bool:
        """Welcome an affiliate registered by a coordinator."""
        return await self._send(
            "affiliate_registered",
            affiliate.email,
            "Your affiliate account is ready",
            f"Hi {affiliate.name},\n\n"
            f"{coordinator.name} created an affiliate account for you. "
            f"Your referral code is {affiliate.referral_code}.",
        )

    async def notify_commission_earned(
        self, affiliate: User, record: CommissionRecord
    ) -> bool:
        """
        Notify affiliate about a new pending commission.

        Args:
            affiliate: Recipient
            record: Created commission record

        Returns:
            True if notification sent successfully
        """
        return await self._send(
            "commission_earned",
            affiliate.email,
            "New commission earned",
            f"Hi {affiliate.name},\n\n"
            f"You earned {_format_money(record.amount)} "
            f"(level {record.level}, {record.rate}%). "
            "It is pending until paid out.",
        )

    async def notify_invite(
        self, affiliate: User, invite: EmailReferral
    ) -> bool:
        """Send the invitation e-mail to a prospect."""
        greeting = f"Hi {invite.name}" if invite.name else "Hello"
        return await self._send(
            "invite",
            invite.email,
            f"{affiliate.name} invited you",
            f"{greeting},\n\n"
            f"{affiliate.name} invited you to join. Use referral code "
            f"{affiliate.referral_code} when you sign up. "
            f"The invitation expires on {invite.expires_at:%Y-%m-%d}.",
        )

    async def notify_payout_processed(
        self, affiliate: User, payout: PayoutRequest
    ) -> bool:
        """Notify affiliate that a payout was sent."""
        return await self._send(
            "payout_processed",
            affiliate.email,
            "Payout processed",
            f"Hi {affiliate.name},\n\n"
            f"A payout of {_format_money(payout.amount)} has been processed.",
        )


def _format_money(amount: Decimal) -> str:
    return f"{amount:.2f} {settings.currency}"
