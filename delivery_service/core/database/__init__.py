"""Core database package: declarative base, mixins and repository.

Base Classes and Mixins:
    - Base: Declarative base with constraint naming
    - UUIDv7PKMixin: Time-sortable UUID primary key
    - TimestampMixin: created_at, updated_at tracking

Repository:
    - BaseRepository[T]: Lookups with explicit session passing

Exceptions:
    - RepositoryError: Base exception for repository operations
    - NotFoundError: Entity not found
"""

from __future__ import annotations

from delivery_service.core.database.base import (
    NAMING_CONVENTION,
    Base,
    JSONDocument,
    TimestampMixin,
    UUIDv7PKMixin,
    ensure_utc,
    generate_uuid7,
    utc_now,
)
from delivery_service.core.database.exceptions import NotFoundError, RepositoryError
from delivery_service.core.database.repository import BaseRepository

__all__ = [
    "NAMING_CONVENTION",
    "Base",
    "BaseRepository",
    "JSONDocument",
    "NotFoundError",
    "RepositoryError",
    "TimestampMixin",
    "UUIDv7PKMixin",
    "ensure_utc",
    "generate_uuid7",
    "utc_now",
]
