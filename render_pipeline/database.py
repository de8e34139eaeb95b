"""Async database engine and session management.

This module provides the async SQLAlchemy 2.0 engine configuration and the
session factory shared by the JobStore in the API and worker processes.

Usage:
    from render_pipeline.database import get_session_factory

    store = JobStore(get_session_factory())
"""

import os

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from render_pipeline.config import get_database_url


def create_engine_and_factory(
    database_url: str,
    **engine_kwargs,
) -> tuple[AsyncEngine, async_sessionmaker[AsyncSession]]:
    """Create an async engine and its session factory.

    Args:
        database_url: SQLAlchemy async URL (postgresql+asyncpg://, sqlite+aiosqlite://)
        **engine_kwargs: Extra create_async_engine arguments (pool sizing, echo)

    Returns:
        Tuple of (engine, session_factory).
    """
    new_engine = create_async_engine(database_url, **engine_kwargs)
    factory = async_sessionmaker(
        bind=new_engine,
        class_=AsyncSession,
        expire_on_commit=False,  # CRITICAL: prevents attribute expiration after commit
    )
    return new_engine, factory


# DATABASE_URL may be absent during test imports
if os.getenv("DATABASE_URL"):
    engine, async_session_factory = create_engine_and_factory(
        get_database_url(),
        pool_size=10,
        max_overflow=5,
        pool_pre_ping=True,
        echo=os.getenv("DATABASE_ECHO", "").lower() == "true",
    )
else:
    engine = None  # type: ignore[assignment]
    async_session_factory: async_sessionmaker[AsyncSession] | None = None  # type: ignore[no-redef]


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Return the configured session factory.

    Raises:
        RuntimeError: If DATABASE_URL was not set at import time.
    """
    if async_session_factory is None:
        raise RuntimeError("Database not configured. Set DATABASE_URL environment variable.")
    return async_session_factory


def create_test_engine(
    database_url: str = "sqlite+aiosqlite:///:memory:",
) -> tuple[AsyncEngine, async_sessionmaker[AsyncSession]]:
    """Create an async engine for testing.

    Uses StaticPool so every session shares the single in-memory SQLite
    connection.
    """
    return create_engine_and_factory(database_url, echo=False, poolclass=StaticPool)
