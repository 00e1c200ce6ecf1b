"""OutboxEvent SQLAlchemy model for the transactional outbox pattern.

Events are written to this table in the same transaction as the business
change they announce, so either both commit or neither does. The relay reads
PENDING rows and publishes them; rows are never deleted.
"""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any

from sqlalchemy import DateTime, Enum, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from delivery_service.core.database.base import Base, JSONDocument, TimestampMixin, UUIDv7PKMixin


class OutboxStatus(StrEnum):
    """Lifecycle of an outbox event.

    PENDING -> PROCESSING -> PROCESSED | PENDING (retry) | FAILED
    """

    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    PROCESSED = "PROCESSED"
    FAILED = "FAILED"


class OutboxEvent(Base, UUIDv7PKMixin, TimestampMixin):
    """Outbox table for reliable event publishing.

    Attributes:
        id: UUID v7 primary key, generated at enqueue time
        aggregate_type: Business entity type (e.g., "Order")
        aggregate_id: Business entity id
        event_type: Event type discriminator, also the publish topic
        payload: JSON event document
        status: OutboxStatus
        correlation_id: Optional cross-service trace identifier
        retry_count: Failed publish attempts (never decreases)
        error_message: Last publish failure, truncated
        next_attempt_at: Earliest time of the next publish attempt (NULL = now)
        claimed_at: When a relay moved the row to PROCESSING
        processed_at: When the event reached PROCESSED
    """

    __tablename__ = "outbox_events"

    aggregate_type: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        default="unknown",
        comment="Aggregate type (e.g., Order, Payment)",
    )
    aggregate_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        default="unknown",
        comment="Aggregate id of the entity the event describes",
    )
    event_type: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        index=True,
        comment="Event type identifier, used as publish topic",
    )
    payload: Mapped[Any] = mapped_column(
        JSONDocument,
        nullable=False,
        comment="Event payload document",
    )
    status: Mapped[OutboxStatus] = mapped_column(
        Enum(
            OutboxStatus,
            name="outbox_status",
            native_enum=False,
            length=20,
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=False,
        default=OutboxStatus.PENDING,
        comment="PENDING, PROCESSING, PROCESSED or FAILED",
    )
    correlation_id: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        index=True,
        comment="Distributed tracing correlation ID",
    )
    retry_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="Number of failed publish attempts",
    )
    error_message: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
        comment="Last error message if publishing failed",
    )
    next_attempt_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="Earliest time for the next publish attempt",
    )
    claimed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="When a relay claimed the event",
    )
    processed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="When the event was successfully published",
    )

    __table_args__ = (
        # Relay selection: PENDING rows in creation order
        Index("ix_outbox_events_status_created", "status", "created_at"),
        Index("ix_outbox_events_aggregate", "aggregate_type", "aggregate_id", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"OutboxEvent(id={self.id}, event_type={self.event_type!r}, "
            f"status={self.status}, retry_count={self.retry_count})"
        )


__all__ = ["OutboxEvent", "OutboxStatus"]
