"""Async database engine, session factory and unit-of-work helpers."""

import logging
from collections.abc import AsyncGenerator, Awaitable, Callable
from typing import TypeVar

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.orm.exc import StaleDataError

from tally.config import settings
from tally.services.errors import ConcurrencyConflict

logger = logging.getLogger(__name__)

T = TypeVar("T")

engine = create_async_engine(settings.database_url, echo=settings.debug)
async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


class Base(DeclarativeBase):
    pass


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency: one session per request, committed on success."""
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


# Raised at flush/commit when another transaction won the race: a stale
# installment version, or a duplicate entry number / operation reference.
_RETRYABLE = (StaleDataError, IntegrityError)


async def run_in_transaction(
    db: AsyncSession,
    work: Callable[[AsyncSession], Awaitable[T]],
    *,
    attempts: int | None = None,
) -> T:
    """Run ``work(db)`` as one all-or-nothing unit and commit it.

    On a write conflict the transaction is rolled back and ``work`` runs
    again from scratch, so it must read everything it needs inside the
    callable.  After ``attempts`` conflicts a ``ConcurrencyConflict`` is
    raised.  Any other exception rolls back and propagates unchanged.
    """
    max_attempts = attempts or settings.transaction_max_attempts
    last_exc: Exception | None = None

    for attempt in range(1, max_attempts + 1):
        try:
            result = await work(db)
            await db.commit()
            return result
        except _RETRYABLE as exc:
            await db.rollback()
            last_exc = exc
            logger.warning(
                "Write conflict on attempt %s/%s: %s", attempt, max_attempts, exc
            )
        except Exception:
            await db.rollback()
            raise

    raise ConcurrencyConflict(
        f"Transaction aborted after {max_attempts} conflicting attempts"
    ) from last_exc
