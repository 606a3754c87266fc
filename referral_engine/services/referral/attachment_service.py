"""
Attachment service.

Links users into the referral tree and to coordinators. Both links are
write-once and are set with compare-and-set updates, so concurrent attempts
resolve to exactly one winner.
"""

import secrets

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from referral_engine.config.business_constants import (
    MAX_TREE_WALK_DEPTH,
    REFERRAL_CODE_ALPHABET,
    REFERRAL_CODE_LENGTH,
)
from referral_engine.config.settings import settings
from referral_engine.models.enums import UserRole
from referral_engine.models.user import User
from referral_engine.repositories.user_repository import UserRepository
from referral_engine.services.base_service import BaseService, transaction
from referral_engine.services.capabilities import (
    Capability,
    requires_capability,
)
from referral_engine.services.notification.dispatcher import (
    NotificationDispatcher,
)
from referral_engine.services.referral.tree_resolver import (
    ReferralTreeResolver,
)
from referral_engine.utils.db_decorators import retry_once_on_conflict
from referral_engine.utils.exceptions import (
    AttachmentRaceError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from referral_engine.validators.unified import (
    normalize_email,
    validate_password,
)


ALREADY_ASSIGNED = "Affiliate is already assigned to another coordinator"
ALREADY_REFERRED = "User already has a referrer"


class AttachmentService(BaseService):
    """Registration and tree/coordinator attachment."""

    def __init__(
        self,
        session: AsyncSession,
        notifier: NotificationDispatcher | None = None,
    ) -> None:
        """
        Initialize attachment service.

        Args:
            session: Async database session
            notifier: Optional notification dispatcher
        """
        super().__init__(session)
        self.user_repo = UserRepository(session)
        self.tree = ReferralTreeResolver(session)
        self.notifier = notifier

    @requires_capability(Capability.REGISTER)
    @transaction
    @retry_once_on_conflict(ALREADY_REFERRED)
    async def attach_via_referral_code(
        self, new_user_id: int, code: str
    ) -> User:
        """
        Attach a user under the owner of a referral code.

        Args:
            new_user_id: User to attach
            code: Referral code used at sign-up

        Returns:
            Updated user

        Raises:
            ValidationError: Blank code
            NotFoundError: Unknown user or code (or inactive referrer when
                inactive referrers are disallowed)
            ConflictError: User already has a referrer, self-referral or loop
        """
        if not code or not code.strip():
            raise ValidationError("Referral code is empty")

        user = await self.user_repo.get_for_update(new_user_id)
        if not user:
            raise NotFoundError(f"User {new_user_id} not found")

        referrer = await self._resolve_referrer(code)

        if user.referrer_id is not None:
            raise ConflictError(ALREADY_REFERRED)

        if referrer.id == user.id:
            raise ConflictError("Users cannot refer themselves")

        chain = await self.tree.ancestors_of(referrer.id, MAX_TREE_WALK_DEPTH)
        if user.id in {ancestor.id for ancestor in chain}:
            self.logger.warning(
                "Referral loop rejected",
                extra={
                    "new_user_id": user.id,
                    "referrer_id": referrer.id,
                    "chain_ids": [ancestor.id for ancestor in chain],
                },
            )
            raise ConflictError("Referral would create a loop")

        if not await self.user_repo.set_referrer_if_unset(user.id, referrer.id):
            raise AttachmentRaceError(f"referrer_id of user {user.id}")

        await self.session.refresh(user)

        self.logger.info(
            "User attached via referral code",
            extra={"user_id": user.id, "referrer_id": referrer.id},
        )
        return user

    @requires_capability(Capability.ASSIGN_AFFILIATES)
    @transaction
    async def attach_to_coordinator(
        self, affiliate_id: int, coordinator_id: int
    ) -> User:
        """
        Assign an affiliate to a coordinator.

        Assignment is one-time: any existing assignment, including to the
        same coordinator, is rejected.

        Args:
            affiliate_id: Affiliate user ID
            coordinator_id: Coordinator user ID

        Returns:
            Updated affiliate

        Raises:
            NotFoundError: Unknown affiliate or coordinator
            ValidationError: Wrong roles
            ConflictError: Affiliate already assigned
        """
        return await self.assign_coordinator(affiliate_id, coordinator_id)

    @retry_once_on_conflict(ALREADY_ASSIGNED)
    async def assign_coordinator(
        self, affiliate_id: int, coordinator_id: int
    ) -> User:
        """
        Assign an affiliate to a coordinator without committing.

        Callers own the transaction (bulk assignment commits once).
        """
        affiliate = await self.user_repo.get_for_update(affiliate_id)
        if not affiliate:
            raise NotFoundError(f"Affiliate {affiliate_id} not found")

        coordinator = await self.user_repo.get_by_id(coordinator_id)
        if not coordinator:
            raise NotFoundError(f"Coordinator {coordinator_id} not found")

        if not affiliate.is_affiliate:
            raise ValidationError(f"User {affiliate_id} is not an affiliate")

        if not coordinator.is_coordinator:
            raise ValidationError(
                f"User {coordinator_id} is not a coordinator"
            )

        if affiliate.coordinator_id is not None:
            raise ConflictError(ALREADY_ASSIGNED)

        if not await self.user_repo.set_coordinator_if_unset(
            affiliate_id, coordinator_id
        ):
            raise AttachmentRaceError(f"coordinator_id of user {affiliate_id}")

        await self.session.refresh(affiliate)

        self.logger.info(
            "Affiliate assigned to coordinator",
            extra={
                "affiliate_id": affiliate_id,
                "coordinator_id": coordinator_id,
            },
        )
        return affiliate

    @requires_capability(Capability.REGISTER_AFFILIATES)
    async def register_affiliate_under_coordinator(
        self, coordinator_id: int, name: str, email: str, password: str
    ) -> User:
        """
        Create an affiliate already attached to a coordinator.

        The coordinator becomes both the coordinator and the direct referrer
        in the same insert.

        Args:
            coordinator_id: Registering coordinator
            name: Affiliate name
            email: Affiliate e-mail
            password: Plain text password

        Returns:
            Created affiliate

        Raises:
            NotFoundError: Unknown coordinator
            ValidationError: Bad input, duplicate e-mail or wrong role
        """
        affiliate, coordinator = await self._register_under_coordinator(
            coordinator_id, name, email, password
        )

        if self.notifier:
            await self.notifier.notify_affiliate_registered(
                affiliate, coordinator
            )
        return affiliate

    @transaction
    async def _register_under_coordinator(
        self, coordinator_id: int, name: str, email: str, password: str
    ) -> tuple[User, User]:
        coordinator = await self.user_repo.get_by_id(coordinator_id)
        if not coordinator:
            raise NotFoundError(f"Coordinator {coordinator_id} not found")

        if not coordinator.is_coordinator:
            raise ValidationError(
                f"User {coordinator_id} is not a coordinator"
            )

        affiliate = await self._create_user(
            name=name,
            email=email,
            password=password,
            role=UserRole.AFFILIATE,
            referrer_id=coordinator.id,
            coordinator_id=coordinator.id,
        )

        self.logger.info(
            "Affiliate registered under coordinator",
            extra={
                "affiliate_id": affiliate.id,
                "coordinator_id": coordinator.id,
            },
        )
        return affiliate, coordinator

    @requires_capability(Capability.REGISTER)
    async def register_user(
        self,
        name: str,
        email: str,
        password: str,
        role: UserRole | str = UserRole.AFFILIATE,
        referral_code: str | None = None,
    ) -> User:
        """
        Register a new user, optionally with a referral code.

        When the code belongs to a coordinator and the new user is an
        affiliate, the coordinator assignment is set as well.

        Args:
            name: Display name
            email: E-mail (unique)
            password: Plain text password
            role: affiliate, coordinator or client
            referral_code: Optional code of the referrer

        Returns:
            Created user

        Raises:
            ValidationError: Bad input or duplicate e-mail
            NotFoundError: Unknown referral code
            ConflictError: Generated referral code collided, retry
        """
        user, referrer = await self._register(
            name, email, password, role, referral_code
        )

        if referrer and self.notifier:
            await self.notifier.notify_new_referral(referrer, user)
        return user

    @transaction
    async def _register(
        self,
        name: str,
        email: str,
        password: str,
        role: UserRole | str,
        referral_code: str | None,
    ) -> tuple[User, User | None]:
        try:
            role = UserRole(role)
        except ValueError as e:
            raise ValidationError(f"Unknown role: {role}") from e

        if role == UserRole.ADMIN:
            raise ValidationError("Admin accounts cannot be self-registered")

        referrer = None
        if referral_code and referral_code.strip():
            referrer = await self._resolve_referrer(referral_code)

        coordinator_id = None
        if referrer and referrer.is_coordinator and role == UserRole.AFFILIATE:
            coordinator_id = referrer.id

        user = await self._create_user(
            name=name,
            email=email,
            password=password,
            role=role,
            referrer_id=referrer.id if referrer else None,
            coordinator_id=coordinator_id,
        )

        self.logger.info(
            "User registered",
            extra={
                "user_id": user.id,
                "role": role.value,
                "has_referrer": referrer is not None,
                "coordinator_id": coordinator_id,
            },
        )
        return user, referrer

    @requires_capability(Capability.MANAGE_USERS)
    @transaction
    async def set_user_status(self, user_id: int, is_active: bool) -> User:
        """
        Activate or deactivate a user. Users are never deleted.

        Deactivation does not touch the user's referrals or affiliates.

        Raises:
            NotFoundError: Unknown user
        """
        user = await self.user_repo.update(user_id, is_active=is_active)
        if not user:
            raise NotFoundError(f"User {user_id} not found")

        self.logger.info(
            "User status changed",
            extra={"user_id": user_id, "is_active": is_active},
        )
        return user

    async def _resolve_referrer(self, code: str) -> User:
        referrer = await self.user_repo.get_by_referral_code(code)
        if not referrer:
            raise NotFoundError(f"Referral code {code.strip()} not found")

        if not referrer.is_active and not settings.allow_inactive_referrers:
            raise NotFoundError(
                f"Referral code {code.strip()} belongs to an inactive user"
            )
        return referrer

    async def _create_user(
        self,
        name: str,
        email: str,
        password: str,
        role: UserRole,
        referrer_id: int | None = None,
        coordinator_id: int | None = None,
    ) -> User:
        """Validate input and insert a user without committing."""
        if not name or not name.strip():
            raise ValidationError("Name is empty")

        try:
            email = normalize_email(email)
        except ValueError as e:
            raise ValidationError(str(e)) from e

        is_valid, error = validate_password(password)
        if not is_valid:
            raise ValidationError(error)

        if await self.user_repo.get_by_email(email):
            raise ValidationError(f"E-mail {email} is already registered")

        user = User(
            name=name.strip(),
            email=email,
            role=role.value,
            referral_code=await self._generate_referral_code(),
            referrer_id=referrer_id,
            coordinator_id=coordinator_id,
        )
        user.set_password(password)

        self.session.add(user)
        try:
            await self.session.flush()
        except IntegrityError as e:
            if "referral_code" in str(e.orig):
                raise ConflictError(
                    "Referral code collision, retry the registration"
                ) from e
            raise ValidationError(
                f"E-mail {email} is already registered"
            ) from e

        await self.session.refresh(user)
        return user

    async def _generate_referral_code(self) -> str:
        """Generate an unused referral code."""
        while True:
            code = "".join(
                secrets.choice(REFERRAL_CODE_ALPHABET)
                for _ in range(REFERRAL_CODE_LENGTH)
            )
            if not await self.user_repo.referral_code_exists(code):
                return code
