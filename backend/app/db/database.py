"""Async engine, session factory and the transaction boundary helper."""

import logging
from collections.abc import AsyncGenerator, Awaitable, Callable
from typing import TypeVar

from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from app.config import settings
from app.db.exceptions import ConnectionError

logger = logging.getLogger(__name__)

T = TypeVar("T")

engine = create_async_engine(
    settings.database_url,
    pool_size=settings.db_pool_size,
    max_overflow=settings.db_max_overflow,
    pool_recycle=settings.db_pool_recycle,
    pool_pre_ping=True,
)

async_session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

# SQLSTATE codes for serialization failure and deadlock; both are safe to retry.
_RETRYABLE_SQLSTATES = {"40001", "40P01"}


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield a session; the caller's operations own commit and rollback."""
    async with async_session_factory() as session:
        try:
            yield session
        finally:
            await session.close()


def _is_retryable(exc: BaseException) -> bool:
    orig = getattr(exc, "orig", None)
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    return sqlstate in _RETRYABLE_SQLSTATES


async def run_in_transaction(
    db: AsyncSession,
    name: str,
    work: Callable[[AsyncSession], Awaitable[T]],
    *,
    max_retries: int = 0,
    context: dict[str, object] | None = None,
) -> T:
    """Run ``work`` as one unit: commit on success, roll back on any failure.

    Serialization failures, deadlocks and dropped connections (all surfaced
    as ``ConnectionError``) are retried up to ``max_retries`` times with
    exponential backoff. Every other failure, constraint violations
    included, is rolled back and re-raised immediately.
    """
    context = context or {}
    retrying = AsyncRetrying(
        stop=stop_after_attempt(max_retries + 1),
        wait=wait_exponential(multiplier=0.1, min=0.1, max=2),
        retry=retry_if_exception_type(ConnectionError),
        reraise=True,
    )
    async for attempt in retrying:
        with attempt:
            attempt_number = attempt.retry_state.attempt_number
            logger.debug("Transaction %s started (attempt %d) %s", name, attempt_number, context)
            try:
                result = await work(db)
                await db.commit()
            except DBAPIError as e:
                await db.rollback()
                if _is_retryable(e):
                    logger.warning("Transaction %s hit a serialization failure, retrying: %s", name, e)
                    raise ConnectionError(f"Transaction {name} must be retried") from e
                logger.error(f"Transaction {name} failed: {e}")
                raise
            except Exception as e:
                await db.rollback()
                logger.error(f"Transaction {name} rolled back: {type(e).__name__}: {e}")
                raise
            logger.debug("Transaction %s committed %s", name, context)
            return result
    raise AssertionError("unreachable")  # pragma: no cover
