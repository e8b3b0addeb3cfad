"""Database connection and session management."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, AsyncGenerator, Awaitable, Callable, TypeVar

from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from locum_billing.config import get_settings

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryableConflict(Exception):
    """Base class for errors caused by contention that are safe to retry."""


def get_engine() -> AsyncEngine:
    """Create async database engine."""
    settings = get_settings()
    return create_async_engine(
        settings.database_url,
        echo=False,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
    )


# Global engine and session factory
_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def init_db() -> tuple[AsyncEngine, async_sessionmaker[AsyncSession]]:
    """Initialize database engine and session factory."""
    global _engine, _session_factory
    if _engine is None:
        _engine = get_engine()
        _session_factory = async_sessionmaker(
            _engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
    return _engine, _session_factory


async def dispose_db() -> None:
    """Dispose the global engine (application shutdown)."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None


@asynccontextmanager
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Get a database session."""
    _, factory = init_db()
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def run_in_transaction(
    factory: async_sessionmaker[AsyncSession],
    operation: Callable[[AsyncSession], Awaitable[T]],
    attempts: int = 3,
) -> T:
    """Run an operation in its own transaction, retrying on contention.

    Each attempt gets a fresh session. The transaction is committed when the
    operation returns and rolled back when it raises. Contention errors
    (claim conflicts, serialization failures, deadlocks) are retried up to
    ``attempts`` times; every other exception propagates immediately.
    """
    for attempt in range(1, attempts + 1):
        async with factory() as session:
            try:
                result = await operation(session)
                await session.commit()
                return result
            except (RetryableConflict, OperationalError) as exc:
                await session.rollback()
                if attempt == attempts:
                    raise
                logger.warning(
                    "Transaction contention (attempt %d/%d): %s", attempt, attempts, exc
                )
                await asyncio.sleep(0.05 * attempt)
            except Exception:
                await session.rollback()
                raise
    raise RuntimeError("run_in_transaction called with attempts < 1")


async def acquire_advisory_xact_lock(session: AsyncSession, key: str) -> None:
    """Take a transaction-scoped advisory lock (PostgreSQL only).

    The lock is released automatically at commit or rollback. Other
    dialects rely on row locks and the in-process lock registry.
    """
    bind = session.get_bind()
    if bind.dialect.name != "postgresql":
        return
    await session.execute(
        text("SELECT pg_advisory_xact_lock(hashtext(:key))"),
        {"key": key},
    )
