"""
Unit tests for error types and service error handling.

Tests cover:
- Exception payloads
- transaction decorator commit/rollback
- retry_once_on_conflict
"""

from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from referral_engine.services.base_service import BaseService, transaction
from referral_engine.utils.db_decorators import (
    retry_once_on_conflict,
    with_auto_commit,
)
from referral_engine.utils.exceptions import (
    AttachmentRaceError,
    ConflictError,
    EngineError,
    InsufficientFundsError,
    NotFoundError,
)


class _Service(BaseService):
    """Minimal service for decorator tests."""

    @transaction
    async def succeed(self):
        return "ok"

    @transaction
    async def fail_business(self):
        raise NotFoundError("missing")

    @transaction
    async def fail_unexpected(self):
        raise RuntimeError("boom")


class TestExceptions:
    """Test exception payloads."""

    def test_insufficient_funds_reports_available(self):
        """Available balance is part of the error."""
        error = InsufficientFundsError(
            requested=Decimal("500"), available=Decimal("120.50")
        )

        assert error.available == Decimal("120.50")
        assert error.to_dict() == {
            "error": "insufficient_funds",
            "message": error.message,
            "available": "120.50",
        }
        assert "120.50" in str(error)

    def test_subclasses_share_base(self):
        """Business errors are EngineError subclasses."""
        assert isinstance(ConflictError("x"), EngineError)
        assert NotFoundError("x").to_dict()["error"] == "not_found"


class TestTransactionDecorator:
    """Test service transaction boundaries."""

    @pytest.mark.asyncio
    async def test_commits_on_success(self, mock_session):
        """Successful call commits."""
        service = _Service(mock_session)

        assert await service.succeed() == "ok"
        mock_session.commit.assert_awaited_once()
        mock_session.rollback.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_rolls_back_business_error(self, mock_session):
        """Business errors roll back and propagate unchanged."""
        service = _Service(mock_session)

        with pytest.raises(NotFoundError):
            await service.fail_business()
        mock_session.rollback.assert_awaited_once()
        mock_session.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_rolls_back_unexpected_error(self, mock_session):
        """Unexpected errors roll back and propagate unchanged."""
        service = _Service(mock_session)

        with pytest.raises(RuntimeError):
            await service.fail_unexpected()
        mock_session.rollback.assert_awaited_once()


class TestRetryOnceOnConflict:
    """Test optimistic retry helper."""

    @pytest.mark.asyncio
    async def test_second_attempt_succeeds(self):
        """A single lost race is retried transparently."""
        calls = AsyncMock(side_effect=[AttachmentRaceError(), "attached"])

        @retry_once_on_conflict("lost")
        async def attach():
            return await calls()

        assert await attach() == "attached"
        assert calls.await_count == 2

    @pytest.mark.asyncio
    async def test_two_lost_races_raise_conflict(self):
        """Losing twice surfaces ConflictError with the given message."""
        calls = AsyncMock(side_effect=AttachmentRaceError())

        @retry_once_on_conflict("Affiliate is already assigned")
        async def attach():
            return await calls()

        with pytest.raises(ConflictError, match="already assigned"):
            await attach()
        assert calls.await_count == 2

    @pytest.mark.asyncio
    async def test_other_errors_not_retried(self):
        """Business errors propagate on the first attempt."""
        calls = AsyncMock(side_effect=NotFoundError("missing"))

        @retry_once_on_conflict("lost")
        async def attach():
            return await calls()

        with pytest.raises(NotFoundError):
            await attach()
        assert calls.await_count == 1


class TestWithAutoCommit:
    """Test script auto-commit decorator."""

    @pytest.mark.asyncio
    async def test_commits_with_session_argument(self, mock_session):
        """Session passed by keyword is committed."""
        @with_auto_commit
        async def seed(session):
            return 3

        assert await seed(session=mock_session) == 3
        mock_session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_rolls_back_on_error(self, mock_session):
        """Errors roll back and propagate."""
        @with_auto_commit
        async def seed(session):
            raise ValueError("bad")

        with pytest.raises(ValueError):
            await seed(session=mock_session)
        mock_session.rollback.assert_awaited_once()
