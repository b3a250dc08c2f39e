"""
Database engine and session management.

Provides the async engine factory and a transaction scope that commits on
success and rolls back on any exception.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from recruitment_interviews.config import get_settings
from recruitment_interviews.db.models import Base

logger = logging.getLogger(__name__)


def create_engine(database_url: str | None = None, echo: bool | None = None) -> AsyncEngine:
    """
    Create the async SQLAlchemy engine.

    Args:
        database_url: Connection string (uses config if not provided).
        echo: Log SQL statements (uses config if not provided).

    Returns:
        AsyncEngine: Configured engine.
    """
    settings = get_settings()
    url = database_url or settings.database_url
    kwargs: dict[str, object] = {
        "echo": settings.database_echo if echo is None else echo,
    }
    if not url.startswith("sqlite"):
        kwargs["pool_pre_ping"] = True
    return create_async_engine(url, **kwargs)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create a session factory bound to ``engine``."""
    return async_sessionmaker(engine, expire_on_commit=False, autoflush=False)


async def init_models(engine: AsyncEngine) -> None:
    """Create all tables that do not exist yet."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database schema initialized")


@asynccontextmanager
async def transaction(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncIterator[AsyncSession]:
    """
    Open a session and run the enclosed block in a single transaction.

    Commits when the block exits normally; rolls back and re-raises on any
    exception.

    Args:
        session_factory: Factory producing new sessions.

    Yields:
        AsyncSession: Session with an open transaction.
    """
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except BaseException:
            await session.rollback()
            raise
