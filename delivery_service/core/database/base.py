"""Declarative base and mixins shared by the event record tables.

Both pipeline tables (outbox events and dead letters) use the same
foundation:
- Consistent constraint naming for migrations
- UUID v7 primary keys so ids sort in creation order
- Timezone-aware created_at/updated_at tracking

Example:
    class OutboxEvent(Base, UUIDv7PKMixin, TimestampMixin):
        __tablename__ = "outbox_events"
        event_type: Mapped[str] = mapped_column(String(255))
"""

from __future__ import annotations

import os
import time
import uuid
from datetime import UTC, datetime

from sqlalchemy import JSON, DateTime, MetaData
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, declared_attr, mapped_column
from sqlalchemy.sql import func

# Deterministic constraint names so autogenerated migrations are stable.
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

# Schema-less JSON documents; JSONB on PostgreSQL.
JSONDocument = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Shared metadata for the pipeline tables.

    Models normally set ``__tablename__``; the lowercase class name is only
    a fallback.
    """

    metadata = MetaData(naming_convention=NAMING_CONVENTION)

    @declared_attr.directive
    def __tablename__(cls) -> str:
        return cls.__name__.lower()


def utc_now() -> datetime:
    """Return the current time as a timezone-aware UTC datetime."""
    return datetime.now(UTC)


def ensure_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes read back from the store.

    SQLite drops tzinfo on round-trip while PostgreSQL keeps it; every
    timestamp in these tables is written in UTC, so a naive value is UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def generate_uuid7() -> uuid.UUID:
    """Time-ordered UUID (RFC 9562 version 7).

    Unix milliseconds fill the top 48 bits, the remaining 74 bits are
    random. Ids from the same millisecond are not ordered among themselves.
    """
    unix_ms = time.time_ns() // 1_000_000
    rand = int.from_bytes(os.urandom(10), "big")

    value = (unix_ms & 0xFFFF_FFFF_FFFF) << 80
    value |= 0x7 << 76  # version
    value |= ((rand >> 62) & 0xFFF) << 64  # rand_a
    value |= 0b10 << 62  # variant
    value |= rand & 0x3FFF_FFFF_FFFF_FFFF  # rand_b
    return uuid.UUID(int=value)


class UUIDv7PKMixin:
    """``id`` primary key generated client-side at construction time."""

    __allow_unmapped__ = True

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=generate_uuid7,
        comment="UUID v7, creation ordered",
    )


class TimestampMixin:
    """``created_at`` / ``updated_at`` in UTC.

    Python-side defaults let tests pin ``created_at``; the server defaults
    cover rows inserted by hand or by other services.
    """

    __allow_unmapped__ = True

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        server_default=func.now(),
        nullable=False,
        index=True,
        comment="Row insert time; relay and processor order by it",
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        server_default=func.now(),
        onupdate=utc_now,
        nullable=False,
        comment="Last state transition",
    )


__all__ = [
    "NAMING_CONVENTION",
    "Base",
    "JSONDocument",
    "TimestampMixin",
    "UUIDv7PKMixin",
    "ensure_utc",
    "generate_uuid7",
    "utc_now",
]
