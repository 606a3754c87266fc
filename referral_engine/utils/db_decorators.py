"""
Database decorators for automatic error handling and retries.

Provides decorators for async functions that use SQLAlchemy sessions.
"""

from collections.abc import Callable
from functools import wraps
from typing import Any, TypeVar

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from referral_engine.utils.exceptions import AttachmentRaceError, ConflictError


T = TypeVar("T")


def with_auto_commit(func: Callable[..., T]) -> Callable[..., T]:
    """
    Decorator that commits the session on success and rolls back on error.

    Usage:
        @with_auto_commit
        async def seed(session: AsyncSession, ...):
            # No need to call session.commit() - it's automatic
            pass

    Args:
        func: Async function to wrap. Must accept 'session' as a keyword
              argument or have it as the first positional argument.

    Returns:
        Wrapped function with automatic commit/rollback
    """
    @wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> T:
        session = kwargs.get("session")
        if session is None and args and isinstance(args[0], AsyncSession):
            session = args[0]

        if session is None:
            logger.warning(
                f"Function {func.__name__} decorated with @with_auto_commit "
                f"but no session argument found. Commit/rollback will not be performed."
            )
            return await func(*args, **kwargs)

        try:
            result = await func(*args, **kwargs)
            await session.commit()
            logger.debug(f"Auto-commit performed in {func.__name__}")
            return result
        except Exception as e:
            try:
                await session.rollback()
                logger.info(
                    f"Rollback performed in {func.__name__} due to error: {type(e).__name__}"
                )
            except Exception as rollback_error:
                logger.error(
                    f"Failed to rollback in {func.__name__}: {rollback_error}",
                    exc_info=True
                )
            raise

    return wrapper


def retry_once_on_conflict(
    message: str,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Retry a compare-and-set write once before surfacing ConflictError.

    The wrapped coroutine signals a lost optimistic race by raising
    AttachmentRaceError. The second attempt re-reads state, so a genuine
    conflict is reported by the wrapped function itself.

    Args:
        message: ConflictError message used when the retry also loses

    Returns:
        Decorator
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            try:
                return await func(*args, **kwargs)
            except AttachmentRaceError as e:
                logger.warning(
                    f"Optimistic conflict in {func.__name__}, retrying once",
                    extra={"error": type(e).__name__},
                )

            try:
                return await func(*args, **kwargs)
            except AttachmentRaceError as e:
                raise ConflictError(message) from e

        return wrapper

    return decorator
