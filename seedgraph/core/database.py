"""Async SQLAlchemy 2.0 database setup."""

from collections.abc import AsyncGenerator
from functools import lru_cache

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from seedgraph.core.config import get_settings


@lru_cache
def get_engine() -> AsyncEngine:
    """Create the process-wide async engine from settings.

    The engine owns a connection pool, so introspection queries issued
    concurrently each check out their own connection.
    """
    settings = get_settings()
    engine: AsyncEngine = create_async_engine(
        settings.database_url,
        echo=settings.debug,
        pool_pre_ping=True,
        pool_size=settings.relationship_max_concurrent_queries,
    )
    return engine


def get_session_maker() -> async_sessionmaker[AsyncSession]:
    """Create async session maker."""
    engine = get_engine()
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency for getting async database sessions.

    Yields:
        AsyncSession: Database session, rolled back on error.
    """
    session_maker = get_session_maker()
    async with session_maker() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
