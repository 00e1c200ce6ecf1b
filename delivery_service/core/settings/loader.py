"""LRU-cached settings loaders.

Settings are loaded and validated once, then cached for the lifetime of the process.

Usage:
    from delivery_service.core.settings.loader import get_outbox_settings

    settings = get_outbox_settings()  # First call: loads and validates
    settings = get_outbox_settings()  # Subsequent calls: returns cached instance

Testing:
    In tests, clear the cache to force reload:
    clear_all_caches()
"""

from __future__ import annotations

from functools import lru_cache

from .database import DatabaseSettings
from .dlq import DLQSettings
from .logs import LoggingSettings
from .outbox import OutboxSettings
from .rabbit import RabbitSettings


@lru_cache(maxsize=1)
def get_db_settings() -> DatabaseSettings:
    """Get cached database settings.

    Returns:
        Validated and frozen DatabaseSettings instance.
    """
    return DatabaseSettings()


@lru_cache(maxsize=1)
def get_rabbit_settings() -> RabbitSettings:
    """Get cached RabbitMQ settings.

    Returns:
        Validated and frozen RabbitSettings instance.
    """
    return RabbitSettings()


@lru_cache(maxsize=1)
def get_logging_settings() -> LoggingSettings:
    """Get cached logging settings.

    Returns:
        Validated and frozen LoggingSettings instance.
    """
    return LoggingSettings()


@lru_cache(maxsize=1)
def get_outbox_settings() -> OutboxSettings:
    """Get cached outbox relay settings."""
    return OutboxSettings()


@lru_cache(maxsize=1)
def get_dlq_settings() -> DLQSettings:
    """Get cached dead letter processor settings."""
    return DLQSettings()


def clear_all_caches() -> None:
    """Clear all settings caches.

    Useful for testing when you need to reload settings with different values.
    """
    get_db_settings.cache_clear()
    get_rabbit_settings.cache_clear()
    get_logging_settings.cache_clear()
    get_outbox_settings.cache_clear()
    get_dlq_settings.cache_clear()


__all__ = [
    "clear_all_caches",
    "get_db_settings",
    "get_dlq_settings",
    "get_logging_settings",
    "get_outbox_settings",
    "get_rabbit_settings",
]
