"""Modular Pydantic Settings v2 configuration.

Each concern reads its own environment prefix:
    DB_      database connection (DatabaseSettings)
    RABBIT_  message broker (RabbitSettings)
    LOG_     logging (LoggingSettings)
    OUTBOX_  outbox relay (OutboxSettings)
    DLQ_     dead letter processor (DLQSettings)

Import settings via cached loaders:
    from delivery_service.core.settings import get_outbox_settings

Configuration precedence (highest to lowest):
    1. init kwargs (testing/overrides)
    2. Environment variables (production)
    3. .env file (development only)
"""

from __future__ import annotations

from .database import DatabaseSettings
from .dlq import DLQSettings
from .loader import (
    clear_all_caches,
    get_db_settings,
    get_dlq_settings,
    get_logging_settings,
    get_outbox_settings,
    get_rabbit_settings,
)
from .logs import LoggingSettings
from .outbox import OutboxSettings
from .rabbit import RabbitSettings

__all__ = [
    "DLQSettings",
    "DatabaseSettings",
    "LoggingSettings",
    "OutboxSettings",
    "RabbitSettings",
    "clear_all_caches",
    "get_db_settings",
    "get_dlq_settings",
    "get_logging_settings",
    "get_outbox_settings",
    "get_rabbit_settings",
]
