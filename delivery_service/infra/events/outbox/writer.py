"""Outbox writer: stage events in the caller's transaction.

Events are added to the caller's session rather than published directly.
If the transaction rolls back, the event is rolled back with it; if it
commits, exactly one PENDING row exists and the relay will publish it.
The writer performs no network I/O.

Usage:
    async def place_order(session: AsyncSession, data: OrderCreate) -> Order:
        order = Order(**data.model_dump())
        session.add(order)
        await session.flush()

        await enqueue(session, "order.created", {"id": str(order.id), "total": order.total},
                      aggregate_type="Order")

        # Order and event are committed together
        await session.commit()
        return order
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any, TypeVar

from pydantic import BaseModel

from delivery_service.core.database.base import generate_uuid7, utc_now
from delivery_service.core.exceptions import InvalidPayloadError
from delivery_service.infra.events.outbox.models import OutboxEvent, OutboxStatus
from delivery_service.infra.metrics.prometheus import outbox_events_enqueued_total

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterable

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

logger = logging.getLogger(__name__)

R = TypeVar("R")

UNKNOWN_AGGREGATE = "unknown"


def _normalize_payload(event_type: str, payload: Any) -> Any:
    """Return a JSON-compatible document or raise InvalidPayloadError."""
    if isinstance(payload, BaseModel):
        payload = payload.model_dump(mode="json")
    try:
        json.dumps(payload, allow_nan=False)
    except (TypeError, ValueError) as e:
        raise InvalidPayloadError(
            f"Payload for {event_type!r} is not JSON-serializable: {e}",
            extra={"event_type": event_type},
        ) from e
    return payload


def _default_aggregate_id(payload: Any) -> str:
    if isinstance(payload, dict) and payload.get("id") is not None:
        return str(payload["id"])
    return UNKNOWN_AGGREGATE


def build_outbox_event(
    event_type: str,
    payload: Any,
    *,
    aggregate_type: str | None = None,
    aggregate_id: str | None = None,
    correlation_id: str | None = None,
) -> OutboxEvent:
    """Build a PENDING OutboxEvent without touching any session.

    Raises:
        InvalidPayloadError: If ``event_type`` is empty or ``payload`` is not
            JSON-serializable.
    """
    if not event_type:
        raise InvalidPayloadError("event_type must be a non-empty string")

    document = _normalize_payload(event_type, payload)
    now = utc_now()
    return OutboxEvent(
        id=generate_uuid7(),
        event_type=event_type,
        payload=document,
        aggregate_type=aggregate_type or UNKNOWN_AGGREGATE,
        aggregate_id=aggregate_id or _default_aggregate_id(document),
        correlation_id=correlation_id,
        status=OutboxStatus.PENDING,
        retry_count=0,
        created_at=now,
        updated_at=now,
    )


async def enqueue(
    session: AsyncSession,
    event_type: str,
    payload: Any,
    *,
    aggregate_type: str | None = None,
    aggregate_id: str | None = None,
    correlation_id: str | None = None,
) -> OutboxEvent:
    """Stage one PENDING event in the caller's transaction.

    Nothing is flushed or committed here. The caller must be inside the
    transaction that performs the business write and commits it.

    Args:
        session: The caller's session (same transaction as the business write)
        event_type: Event type discriminator, also the publish topic
        payload: JSON-serializable document or pydantic model
        aggregate_type: Business entity type (defaults to "unknown")
        aggregate_id: Business entity id (defaults to ``payload["id"]``)
        correlation_id: Optional cross-service trace identifier

    Returns:
        The staged OutboxEvent (its id is already assigned)

    Raises:
        InvalidPayloadError: If the payload cannot be stored as JSON
    """
    event = build_outbox_event(
        event_type,
        payload,
        aggregate_type=aggregate_type,
        aggregate_id=aggregate_id,
        correlation_id=correlation_id,
    )
    session.add(event)
    outbox_events_enqueued_total.labels(event_type=event_type).inc()

    logger.debug(
        "Event staged in outbox",
        extra={
            "event_id": str(event.id),
            "event_type": event_type,
            "aggregate_type": event.aggregate_type,
            "aggregate_id": event.aggregate_id,
            "correlation_id": correlation_id,
        },
    )
    return event


class OutboxWriter:
    """Outbox writer carrying a default correlation id.

    Attributes:
        correlation_id: Applied to every event that doesn't pass its own
    """

    def __init__(self, *, correlation_id: str | None = None) -> None:
        self.correlation_id = correlation_id

    async def enqueue(
        self,
        session: AsyncSession,
        event_type: str,
        payload: Any,
        *,
        aggregate_type: str | None = None,
        aggregate_id: str | None = None,
        correlation_id: str | None = None,
    ) -> OutboxEvent:
        """Stage one event; see :func:`enqueue`."""
        return await enqueue(
            session,
            event_type,
            payload,
            aggregate_type=aggregate_type,
            aggregate_id=aggregate_id,
            correlation_id=correlation_id or self.correlation_id,
        )

    async def enqueue_many(
        self,
        session: AsyncSession,
        events: Iterable[tuple[str, Any]],
        *,
        aggregate_type: str | None = None,
        correlation_id: str | None = None,
    ) -> list[OutboxEvent]:
        """Stage several ``(event_type, payload)`` events in one transaction.

        Every payload is validated before any row is added, so an invalid
        payload leaves the session untouched.
        """
        effective_correlation = correlation_id or self.correlation_id
        entries = [
            build_outbox_event(
                event_type,
                payload,
                aggregate_type=aggregate_type,
                correlation_id=effective_correlation,
            )
            for event_type, payload in events
        ]
        if not entries:
            return []

        session.add_all(entries)
        for entry in entries:
            outbox_events_enqueued_total.labels(event_type=entry.event_type).inc()

        logger.debug(
            "Batch of events staged in outbox",
            extra={"count": len(entries), "event_types": [e.event_type for e in entries]},
        )
        return entries

    async def run_in_transaction(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        operation: Callable[[AsyncSession], Awaitable[R]],
        event_type: str,
        payload: Any | Callable[[R], Any],
        *,
        aggregate_type: str | None = None,
        aggregate_id: str | None = None,
        correlation_id: str | None = None,
    ) -> R:
        """Run a business operation and enqueue its event in one transaction.

        ``payload`` may be a callable receiving the operation's result, for
        events that need ids generated by the business write. Any exception
        rolls back both the business write and the event.

        Example:
            order = await writer.run_in_transaction(
                session_factory,
                lambda s: create_order(s, data),
                "order.created",
                lambda order: {"id": str(order.id)},
                aggregate_type="Order",
            )
        """
        async with session_factory() as session, session.begin():
            result = await operation(session)
            document = payload(result) if callable(payload) else payload
            await self.enqueue(
                session,
                event_type,
                document,
                aggregate_type=aggregate_type,
                aggregate_id=aggregate_id,
                correlation_id=correlation_id,
            )
        return result


__all__ = ["OutboxWriter", "build_outbox_event", "enqueue"]
