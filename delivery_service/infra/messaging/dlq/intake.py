"""Dead letter intake for consumers.

A consumer calls :func:`record_dead_letter` once its own local retries are
exhausted. The row is eligible for the next processor sweep immediately.

Usage:
    try:
        await handle(message)
    except Exception as e:
        async with session_factory() as session:
            await record_dead_letter(
                session,
                original_topic="order.created",
                payload=message.body,
                metadata={"headers": dict(message.headers), "key": message.key},
                error=e,
            )
            await session.commit()
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from delivery_service.core.database.base import generate_uuid7, utc_now
from delivery_service.core.exceptions import InvalidPayloadError
from delivery_service.infra.messaging.dlq.models import DeadLetterEvent, DeadLetterStatus
from delivery_service.infra.metrics.prometheus import dlq_messages_recorded_total

if TYPE_CHECKING:
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

MAX_ERROR_LENGTH = 1000


async def record_dead_letter(
    session: AsyncSession,
    *,
    original_topic: str,
    payload: Any,
    metadata: dict[str, Any] | None = None,
    error: BaseException | str | None = None,
    now: datetime | None = None,
) -> DeadLetterEvent:
    """Stage a pending dead letter in the caller's session.

    Topic, payload and metadata are stored verbatim; ``retry_count`` starts
    at 0 and ``next_retry_at`` at ``now``. The caller commits.

    Raises:
        InvalidPayloadError: If payload or metadata cannot be stored as JSON.
    """
    if not original_topic:
        raise InvalidPayloadError("original_topic must be a non-empty string")

    metadata = metadata or {}
    try:
        json.dumps(payload, allow_nan=False)
        json.dumps(metadata, allow_nan=False)
    except (TypeError, ValueError) as e:
        raise InvalidPayloadError(
            f"Dead letter for {original_topic!r} is not JSON-serializable: {e}",
            extra={"original_topic": original_topic},
        ) from e

    now = now or utc_now()
    last_error = str(error)[:MAX_ERROR_LENGTH] if error is not None else None
    message = DeadLetterEvent(
        id=generate_uuid7(),
        original_topic=original_topic,
        payload=payload,
        message_metadata=metadata,
        status=DeadLetterStatus.PENDING,
        retry_count=0,
        last_error=last_error,
        next_retry_at=now,
        created_at=now,
        updated_at=now,
    )
    session.add(message)
    dlq_messages_recorded_total.labels(topic=original_topic).inc()

    logger.info(
        "Dead letter recorded",
        extra={"message_id": str(message.id), "topic": original_topic, "error": last_error},
    )
    return message


__all__ = ["record_dead_letter"]
