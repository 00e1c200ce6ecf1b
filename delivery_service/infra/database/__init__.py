"""Database infrastructure package.

Example:
    from delivery_service.infra.database import get_async_session

    async with get_async_session() as session:
        result = await session.execute(...)
"""

from .session import (
    close_database,
    create_engine_from_settings,
    create_session_factory,
    get_async_session,
    get_engine,
    get_session_factory,
    init_database,
)

__all__ = [
    "close_database",
    "create_engine_from_settings",
    "create_session_factory",
    "get_async_session",
    "get_engine",
    "get_session_factory",
    "init_database",
]
