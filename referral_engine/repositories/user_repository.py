"""
User repository.

Data access layer for User model, including the referral-tree edge and
commission ledger columns.
"""

from decimal import Decimal

from sqlalchemy import case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from referral_engine.models.enums import UserRole
from referral_engine.models.user import User
from referral_engine.repositories.base import BaseRepository


class UserRepository(BaseRepository[User]):
    """User repository with specific queries."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize user repository."""
        super().__init__(User, session)

    async def get_by_email(self, email: str) -> User | None:
        """
        Get user by e-mail (stored lowercase).

        Args:
            email: E-mail address

        Returns:
            User or None
        """
        return await self.get_by(email=email.strip().lower())

    async def get_by_referral_code(self, code: str) -> User | None:
        """
        Get user by referral code (case-insensitive).

        Args:
            code: Referral code

        Returns:
            User or None
        """
        return await self.get_by(referral_code=code.strip().upper())

    async def referral_code_exists(self, code: str) -> bool:
        """Check whether a referral code is taken."""
        return await self.exists(referral_code=code)

    async def get_referrer_id(self, user_id: int) -> int | None:
        """
        Get the direct referrer of a user without loading the row.

        Args:
            user_id: User ID

        Returns:
            Referrer user ID or None
        """
        stmt = select(User.referrer_id).where(User.id == user_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_referred_by(self, referrer_ids: list[int]) -> list[User]:
        """
        Get users directly referred by any of the given users.

        Ordered by id so sibling sets are stable within a snapshot.

        Args:
            referrer_ids: Referrer user IDs

        Returns:
            List of referred users
        """
        if not referrer_ids:
            return []

        stmt = (
            select(User)
            .where(User.referrer_id.in_(referrer_ids))
            .order_by(User.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def set_referrer_if_unset(
        self, user_id: int, referrer_id: int
    ) -> bool:
        """
        Compare-and-set the referral edge.

        Args:
            user_id: Referee
            referrer_id: Referrer

        Returns:
            True if this call created the edge
        """
        stmt = (
            update(User)
            .where(User.id == user_id, User.referrer_id.is_(None))
            .values(referrer_id=referrer_id)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def set_coordinator_if_unset(
        self, affiliate_id: int, coordinator_id: int
    ) -> bool:
        """
        Compare-and-set the coordinator assignment.

        Args:
            affiliate_id: Affiliate user ID
            coordinator_id: Coordinator user ID

        Returns:
            True if this call assigned the affiliate
        """
        stmt = (
            update(User)
            .where(User.id == affiliate_id, User.coordinator_id.is_(None))
            .values(coordinator_id=coordinator_id)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def get_coordinator_affiliates(
        self, coordinator_id: int
    ) -> list[User]:
        """
        Get affiliates assigned to a coordinator, newest first.

        Args:
            coordinator_id: Coordinator user ID

        Returns:
            List of affiliates
        """
        stmt = (
            select(User)
            .where(
                User.coordinator_id == coordinator_id,
                User.role == UserRole.AFFILIATE.value,
            )
            .order_by(User.created_at.desc(), User.id.desc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def count_coordinator_affiliates(
        self, coordinator_id: int, active_only: bool = False
    ) -> int:
        """Count affiliates assigned to a coordinator."""
        stmt = select(func.count(User.id)).where(
            User.coordinator_id == coordinator_id,
            User.role == UserRole.AFFILIATE.value,
        )
        if active_only:
            stmt = stmt.where(User.is_active == True)  # noqa: E712

        result = await self.session.execute(stmt)
        return result.scalar() or 0

    async def credit_commission(self, user_id: int, amount: Decimal) -> bool:
        """
        Atomically add a new commission to the user's ledger.

        Args:
            user_id: Affiliate user ID
            amount: Commission amount

        Returns:
            True if the user row was updated
        """
        stmt = (
            update(User)
            .where(User.id == user_id)
            .values(
                pending_balance=User.pending_balance + amount,
                total_earned=User.total_earned + amount,
            )
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def reverse_commission(
        self,
        user_id: int,
        amount: Decimal,
        credit_used: Decimal = Decimal("0"),
    ) -> None:
        """
        Remove a cancelled, unpaid commission from the ledger.

        The part of the amount already covered by payout credit is taken
        from payout_credit instead of pending_balance. Callers hold the user
        row lock and compute credit_used from it.

        Args:
            user_id: Affiliate user ID
            amount: Commission amount
            credit_used: Portion absorbed by payout credit
        """
        stmt = (
            update(User)
            .where(User.id == user_id)
            .values(
                pending_balance=User.pending_balance - (amount - credit_used),
                payout_credit=User.payout_credit - credit_used,
                total_earned=case(
                    (User.total_earned >= amount, User.total_earned - amount),
                    else_=0,
                ),
            )
        )
        await self.session.execute(stmt)

    async def debit_for_payout(self, user_id: int, amount: Decimal) -> bool:
        """
        Atomically debit a payout from the pending balance.

        The WHERE guard makes a concurrent second debit fail instead of
        overdrawing the balance.

        Args:
            user_id: Affiliate user ID
            amount: Payout amount

        Returns:
            True if the balance covered the amount and was debited
        """
        stmt = (
            update(User)
            .where(User.id == user_id, User.pending_balance >= amount)
            .values(
                pending_balance=User.pending_balance - amount,
                total_paid=User.total_paid + amount,
                payout_credit=User.payout_credit + amount,
            )
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def consume_payout_credit(
        self, user_id: int, amount: Decimal
    ) -> bool:
        """
        Atomically consume payout credit for a settled commission record.

        Args:
            user_id: Affiliate user ID
            amount: Settled record amount

        Returns:
            True if enough credit remained
        """
        stmt = (
            update(User)
            .where(User.id == user_id, User.payout_credit >= amount)
            .values(payout_credit=User.payout_credit - amount)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def get_payout_credit(self, user_id: int) -> Decimal:
        """Read current payout credit straight from the database."""
        stmt = select(User.payout_credit).where(User.id == user_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none() or Decimal("0")

    async def get_pending_balance(self, user_id: int) -> Decimal:
        """Read current pending balance straight from the database."""
        stmt = select(User.pending_balance).where(User.id == user_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none() or Decimal("0")
