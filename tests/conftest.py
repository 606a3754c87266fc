"""Pytest configuration and shared fixtures for all tests."""

import itertools
import os
import sys
from pathlib import Path

# Minimal environment for tests
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("LOG_FILE", "")

# Add project root to PYTHONPATH
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from referral_engine.models import (
    Base,
    PaymentMethod,
    Transaction,
    User,
    UserRole,
)
from referral_engine.services.commission import CommissionLevelRegistry


_counter = itertools.count(1)


@pytest.fixture
def mock_session():
    """Mock AsyncSession for tests without a database."""
    session = AsyncMock()
    session.execute = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.close = AsyncMock()
    session.add = MagicMock()
    session.delete = MagicMock()
    session.refresh = AsyncMock()
    return session


@pytest.fixture
def mock_email_sender():
    """Mock e-mail delivery collaborator."""
    sender = AsyncMock()
    sender.send = AsyncMock(return_value=None)
    return sender


@pytest_asyncio.fixture
async def engine():
    """In-memory SQLite engine with all tables created."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def session(engine):
    """Database session bound to the in-memory engine."""
    session_maker = async_sessionmaker(
        bind=engine, class_=AsyncSession, expire_on_commit=False
    )
    async with session_maker() as session:
        yield session


@pytest_asyncio.fixture
async def default_levels(session):
    """Canonical 15 / 5 / 2.5 commission schedule."""
    return await CommissionLevelRegistry(session).reset_to_defaults()


@pytest.fixture
def make_user(session):
    """
    Factory creating committed users directly in the database.

    Returns:
        Async callable(name=None, role=affiliate, referrer=None,
        coordinator=None, is_active=True) -> User
    """
    async def _make_user(
        name: str | None = None,
        role: UserRole = UserRole.AFFILIATE,
        referrer: User | None = None,
        coordinator: User | None = None,
        is_active: bool = True,
    ) -> User:
        n = next(_counter)
        user = User(
            name=name or f"User {n}",
            email=f"user{n}@example.com",
            role=role.value,
            referral_code=f"REF{n:05d}",
            referrer_id=referrer.id if referrer else None,
            coordinator_id=coordinator.id if coordinator else None,
            is_active=is_active,
        )
        user.set_password("password123")
        session.add(user)
        await session.commit()
        return user

    return _make_user


@pytest.fixture
def make_transaction(session):
    """
    Factory creating committed completed transactions.

    Returns:
        Async callable(amount, originating_user=None, referrer=None)
        -> Transaction
    """
    async def _make_transaction(
        amount: Decimal | str | int = Decimal("1000"),
        originating_user: User | None = None,
        referrer: User | None = None,
    ) -> Transaction:
        sale = Transaction(
            customer_email="customer@example.com",
            amount=Decimal(str(amount)),
            originating_user_id=originating_user.id if originating_user else None,
            referrer_id=referrer.id if referrer else None,
            referral_code=referrer.referral_code if referrer else None,
        )
        session.add(sale)
        await session.commit()
        return sale

    return _make_transaction


@pytest.fixture
def make_payment_method(session):
    """
    Factory creating a bank transfer payment method for a user.

    Returns:
        Async callable(user) -> PaymentMethod
    """
    async def _make_payment_method(user: User) -> PaymentMethod:
        method = PaymentMethod(
            user_id=user.id,
            method_type="bank_transfer",
            account_name=user.name,
            details={"bank_name": "Test Bank", "account_number": "12345678"},
            is_default=True,
        )
        session.add(method)
        await session.commit()
        return method

    return _make_payment_method
