"""Process-wide async engine and session factory.

Workers receive the factory explicitly; CLI commands reach it through
get_async_session(). Both are created lazily from DB_ settings.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from delivery_service.core.database import Base
from delivery_service.core.settings import get_db_settings

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from delivery_service.core.settings import DatabaseSettings

logger = logging.getLogger(__name__)

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def create_engine_from_settings(settings: DatabaseSettings | None = None) -> AsyncEngine:
    """Build an async engine from DB_ settings."""
    settings = settings or get_db_settings()
    return create_async_engine(settings.database_url, **settings.engine_kwargs())


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory used by the workers and the CLI.

    Sessions keep loaded attributes after commit so that a message can be
    published after the claim transaction has ended.
    """
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


def get_engine() -> AsyncEngine:
    """Return the process-wide engine, creating it on first use."""
    global _engine
    if _engine is None:
        _engine = create_engine_from_settings()
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Return the process-wide session factory."""
    global _session_factory
    if _session_factory is None:
        _session_factory = create_session_factory(get_engine())
    return _session_factory


@asynccontextmanager
async def get_async_session() -> AsyncGenerator[AsyncSession]:
    """Session from the process-wide factory; the caller commits.

    Example:
        async with get_async_session() as session:
            await enqueue(session, "order.created", {"id": "o-1"})
            await session.commit()
    """
    async with get_session_factory()() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_database(*, create_tables: bool = False) -> None:
    """Verify connectivity and optionally create the pipeline tables.

    Migrations are the normal way to create the schema; ``create_tables``
    is meant for local SQLite databases and tests.

    Raises:
        sqlalchemy.exc.SQLAlchemyError: If the database cannot be reached.
    """
    # Registers the pipeline tables on Base.metadata.
    from delivery_service.infra.events.outbox.models import OutboxEvent  # noqa: F401
    from delivery_service.infra.messaging.dlq.models import DeadLetterEvent  # noqa: F401

    engine = get_engine()
    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
            if create_tables:
                await conn.run_sync(Base.metadata.create_all)
    except Exception as e:
        logger.error(
            "Failed to connect to database",
            extra={"url": engine.url.render_as_string(hide_password=True), "error": str(e)},
        )
        raise

    logger.info(
        "Database reachable",
        extra={"url": engine.url.render_as_string(hide_password=True), "create_tables": create_tables},
    )


async def close_database() -> None:
    """Dispose the engine and forget the session factory.

    The next get_engine() builds a new engine, so each CLI command and the
    worker process can bind one to their own event loop.
    """
    global _engine, _session_factory
    if _engine is None:
        return

    logger.info("Closing database connection")
    try:
        await _engine.dispose()
        logger.info("Database engine disposed")
    finally:
        _engine = None
        _session_factory = None


__all__ = [
    "close_database",
    "create_engine_from_settings",
    "create_session_factory",
    "get_async_session",
    "get_engine",
    "get_session_factory",
    "init_database",
]
