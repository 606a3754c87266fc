"""
Integration tests for referral tree attachment.

Tests cover:
- Referral code attachment, conflicts and loops
- Coordinator assignment without reassignment
- Registration with referral codes and by coordinators
"""

import pytest

from referral_engine.models import UserRole
from referral_engine.services.referral import AttachmentService
from referral_engine.utils.exceptions import (
    ConflictError,
    NotFoundError,
    ValidationError,
)


class TestAttachViaReferralCode:
    """Test attaching users under a code owner."""

    @pytest.mark.asyncio
    async def test_attach(self, session, make_user):
        """User gets the code owner as referrer."""
        referrer = await make_user()
        user = await make_user()

        attached = await AttachmentService(session).attach_via_referral_code(
            user.id, referrer.referral_code.lower()
        )

        assert attached.referrer_id == referrer.id

    @pytest.mark.asyncio
    async def test_second_referrer_rejected(self, session, make_user):
        """The referral edge is never replaced."""
        first = await make_user()
        second = await make_user()
        user = await make_user(referrer=first)
        user_id, first_id = user.id, first.id

        with pytest.raises(ConflictError, match="already has a referrer"):
            await AttachmentService(session).attach_via_referral_code(
                user_id, second.referral_code
            )

        await session.refresh(user)
        assert user.referrer_id == first_id

    @pytest.mark.asyncio
    async def test_self_referral(self, session, make_user):
        """Own code is rejected."""
        user = await make_user()

        with pytest.raises(ConflictError):
            await AttachmentService(session).attach_via_referral_code(
                user.id, user.referral_code
            )

    @pytest.mark.asyncio
    async def test_loop_rejected(self, session, make_user):
        """A root cannot attach below its own descendant."""
        root = await make_user()
        child = await make_user(referrer=root)
        grandchild = await make_user(referrer=child)

        with pytest.raises(ConflictError, match="loop"):
            await AttachmentService(session).attach_via_referral_code(
                root.id, grandchild.referral_code
            )

    @pytest.mark.asyncio
    async def test_unknown_code(self, session, make_user):
        """Unknown code raises NotFoundError."""
        user = await make_user()

        with pytest.raises(NotFoundError):
            await AttachmentService(session).attach_via_referral_code(
                user.id, "NOPE0000"
            )

    @pytest.mark.asyncio
    async def test_blank_code(self, session, make_user):
        """Blank code is a validation error."""
        user = await make_user()

        with pytest.raises(ValidationError):
            await AttachmentService(session).attach_via_referral_code(user.id, "  ")

    @pytest.mark.asyncio
    async def test_inactive_referrer_accepted(self, session, make_user):
        """Deactivated users still accept referrals."""
        referrer = await make_user(is_active=False)
        user = await make_user()

        attached = await AttachmentService(session).attach_via_referral_code(
            user.id, referrer.referral_code
        )

        assert attached.referrer_id == referrer.id


class TestAttachToCoordinator:
    """Test coordinator assignment."""

    @pytest.mark.asyncio
    async def test_assign(self, session, make_user):
        """Affiliate gets the coordinator."""
        coordinator = await make_user(role=UserRole.COORDINATOR)
        affiliate = await make_user()

        result = await AttachmentService(session).attach_to_coordinator(
            affiliate.id, coordinator.id
        )

        assert result.coordinator_id == coordinator.id

    @pytest.mark.asyncio
    async def test_same_coordinator_twice(self, session, make_user):
        """Second call with the same coordinator changes nothing."""
        coordinator = await make_user(role=UserRole.COORDINATOR)
        affiliate = await make_user()
        affiliate_id, coordinator_id = affiliate.id, coordinator.id
        service = AttachmentService(session)
        await service.attach_to_coordinator(affiliate_id, coordinator_id)

        with pytest.raises(ConflictError):
            await service.attach_to_coordinator(affiliate_id, coordinator_id)

        await session.refresh(affiliate)
        assert affiliate.coordinator_id == coordinator_id

    @pytest.mark.asyncio
    async def test_no_reassignment(self, session, make_user):
        """A different coordinator cannot take the affiliate over."""
        first = await make_user(role=UserRole.COORDINATOR)
        second = await make_user(role=UserRole.COORDINATOR)
        affiliate = await make_user(coordinator=first)
        affiliate_id, first_id, second_id = affiliate.id, first.id, second.id

        with pytest.raises(ConflictError, match="already assigned"):
            await AttachmentService(session).attach_to_coordinator(
                affiliate_id, second_id
            )

        await session.refresh(affiliate)
        assert affiliate.coordinator_id == first_id

    @pytest.mark.asyncio
    async def test_wrong_roles(self, session, make_user):
        """Only affiliates attach, only to coordinators."""
        affiliate = await make_user()
        other = await make_user()
        affiliate_id, other_id = affiliate.id, other.id

        with pytest.raises(ValidationError):
            await AttachmentService(session).attach_to_coordinator(
                affiliate_id, other_id
            )


class TestRegistration:
    """Test user registration paths."""

    @pytest.mark.asyncio
    async def test_register_with_code(self, session, make_user, mock_email_sender):
        """Referrer is set and notified."""
        from referral_engine.services.notification import NotificationDispatcher

        referrer = await make_user()
        service = AttachmentService(
            session, NotificationDispatcher(mock_email_sender)
        )

        user = await service.register_user(
            "New Person", "New@Example.com", "password123",
            referral_code=referrer.referral_code,
        )

        assert user.email == "new@example.com"
        assert user.referrer_id == referrer.id
        assert user.coordinator_id is None
        assert user.verify_password("password123")
        assert mock_email_sender.send.await_args.args[0] == referrer.email

    @pytest.mark.asyncio
    async def test_coordinator_code_assigns_coordinator(self, session, make_user):
        """Affiliate signing up with a coordinator code joins that team."""
        coordinator = await make_user(role=UserRole.COORDINATOR)

        user = await AttachmentService(session).register_user(
            "Team Member", "member@example.com", "password123",
            referral_code=coordinator.referral_code,
        )

        assert user.referrer_id == coordinator.id
        assert user.coordinator_id == coordinator.id

    @pytest.mark.asyncio
    async def test_duplicate_email(self, session, make_user):
        """E-mails are unique."""
        existing = await make_user()

        with pytest.raises(ValidationError):
            await AttachmentService(session).register_user(
                "Copy", existing.email.upper(), "password123"
            )

    @pytest.mark.asyncio
    async def test_admin_cannot_self_register(self, session):
        """Admin role is not available at sign-up."""
        with pytest.raises(ValidationError):
            await AttachmentService(session).register_user(
                "Root", "root@example.com", "password123", role=UserRole.ADMIN
            )

    @pytest.mark.asyncio
    async def test_unknown_code_fails_registration(self, session):
        """No user is created for an unknown code."""
        service = AttachmentService(session)

        with pytest.raises(NotFoundError):
            await service.register_user(
                "Lost", "lost@example.com", "password123", referral_code="NOPE0000"
            )

        assert await service.user_repo.get_by_email("lost@example.com") is None

    @pytest.mark.asyncio
    async def test_coordinator_registers_affiliate(self, session, make_user):
        """Coordinator is referrer and coordinator in one step."""
        coordinator = await make_user(role=UserRole.COORDINATOR)

        affiliate = await AttachmentService(
            session
        ).register_affiliate_under_coordinator(
            coordinator.id, "Recruit", "recruit@example.com", "password123"
        )

        assert affiliate.role == UserRole.AFFILIATE.value
        assert affiliate.referrer_id == coordinator.id
        assert affiliate.coordinator_id == coordinator.id
        assert len(affiliate.referral_code) > 0

    @pytest.mark.asyncio
    async def test_affiliate_cannot_register_team(self, session, make_user):
        """Only coordinators register affiliates under themselves."""
        affiliate = await make_user()

        with pytest.raises(ValidationError):
            await AttachmentService(session).register_affiliate_under_coordinator(
                affiliate.id, "Recruit", "recruit@example.com", "password123"
            )

    @pytest.mark.asyncio
    async def test_referral_code_collision(self, session, make_user, monkeypatch):
        """A lost race on the generated code is a conflict, not a duplicate e-mail."""
        existing = await make_user()
        taken = existing.referral_code

        async def colliding_code(self):
            return taken

        monkeypatch.setattr(
            AttachmentService, "_generate_referral_code", colliding_code
        )
        service = AttachmentService(session)

        with pytest.raises(ConflictError, match="Referral code collision"):
            await service.register_user(
                "Racer", "racer@example.com", "password123"
            )

        assert await service.user_repo.get_by_email("racer@example.com") is None

    @pytest.mark.asyncio
    async def test_invalid_email_rejected(self, session):
        """Malformed e-mails never reach the database."""
        with pytest.raises(ValidationError):
            await AttachmentService(session).register_user(
                "Nobody", "not-an-email", "password123"
            )


class TestUserStatus:
    """Test activating and deactivating users."""

    @pytest.mark.asyncio
    async def test_deactivate_keeps_referrals(self, session, make_user):
        """Deactivated user keeps their referrals attached."""
        referrer = await make_user()
        referral = await make_user(referrer=referrer)

        user = await AttachmentService(session).set_user_status(
            referrer.id, False
        )

        assert user.is_active is False
        await session.refresh(referral)
        assert referral.referrer_id == referrer.id
        assert referral.is_active is True

    @pytest.mark.asyncio
    async def test_unknown_user(self, session):
        """Unknown user ID is rejected."""
        with pytest.raises(NotFoundError):
            await AttachmentService(session).set_user_status(99999, True)
