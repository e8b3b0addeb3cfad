"""FastAPI dependencies for dependency injection."""

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from locum_billing.config import BillingConfig, get_settings
from locum_billing.database import init_db


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Session factory for operations that manage their own transactions."""
    _, factory = init_db()
    return factory


async def get_db_session(
    factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)],
) -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency.

    Endpoints commit explicitly; anything uncommitted is rolled back on close.
    """
    async with factory() as session:
        try:
            yield session
        finally:
            await session.close()


def get_billing_config() -> BillingConfig:
    return get_settings().billing


# Type aliases for cleaner dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db_session)]
SessionFactory = Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)]
Billing = Annotated[BillingConfig, Depends(get_billing_config)]
