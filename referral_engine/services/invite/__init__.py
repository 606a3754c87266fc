"""E-mail invites."""

from referral_engine.services.invite.email_invite_service import (
    EmailInviteService,
)


__all__ = ["EmailInviteService"]
