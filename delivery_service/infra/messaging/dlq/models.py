"""DeadLetterEvent SQLAlchemy model.

A dead letter is a message a consumer could not process. It keeps the
original topic, payload and metadata verbatim so that a republish
reproduces the original delivery, plus the backoff schedule used by the
dead letter processor.
"""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any

from sqlalchemy import DateTime, Enum, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from delivery_service.core.database.base import Base, JSONDocument, TimestampMixin, UUIDv7PKMixin, utc_now


class DeadLetterStatus(StrEnum):
    """pending -> processed | failed (escalated)."""

    PENDING = "pending"
    PROCESSED = "processed"
    FAILED = "failed"


class DeadLetterEvent(Base, UUIDv7PKMixin, TimestampMixin):
    """Dead letter store.

    Attributes:
        original_topic: Topic the message was originally published to
        payload: Original message payload
        message_metadata: Opaque bag (column ``metadata``); may hold
            ``headers`` and ``key`` used for the republish
        status: DeadLetterStatus
        retry_count: Republish attempts so far
        last_error: Last failure detail
        next_retry_at: Earliest time of the next retry; only moves forward
            except through a manual retry
        processed_at: When the message reached a terminal status
        claimed_until: Lease end while a processor is republishing the message
    """

    __tablename__ = "dead_letter_events"

    original_topic: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Topic the message was originally published to",
    )
    payload: Mapped[Any] = mapped_column(
        JSONDocument,
        nullable=False,
        comment="Original message payload",
    )
    message_metadata: Mapped[dict[str, Any]] = mapped_column(
        "metadata",
        JSONDocument,
        nullable=False,
        default=dict,
        comment="Original headers, key and other delivery metadata",
    )
    status: Mapped[DeadLetterStatus] = mapped_column(
        Enum(
            DeadLetterStatus,
            name="dead_letter_status",
            native_enum=False,
            length=20,
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=False,
        default=DeadLetterStatus.PENDING,
        comment="pending, processed or failed",
    )
    retry_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="Republish attempts so far",
    )
    last_error: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
        comment="Last failure detail",
    )
    next_retry_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
        comment="Earliest time for the next retry",
    )
    processed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="When the message reached a terminal status",
    )
    claimed_until: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="Lease held by the processor retrying this message",
    )

    __table_args__ = (
        # Processor selection: pending rows that are due
        Index("ix_dead_letter_events_status_next_retry", "status", "next_retry_at"),
        Index("ix_dead_letter_events_topic_status", "original_topic", "status"),
    )

    def __repr__(self) -> str:
        return (
            f"DeadLetterEvent(id={self.id}, original_topic={self.original_topic!r}, "
            f"status={self.status}, retry_count={self.retry_count})"
        )


__all__ = ["DeadLetterEvent", "DeadLetterStatus"]
