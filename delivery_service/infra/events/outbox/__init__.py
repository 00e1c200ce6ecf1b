"""Transactional outbox: writer, relay and storage.

Example:
    from delivery_service.infra.events.outbox import enqueue

    async with session.begin():
        session.add(order)
        await enqueue(session, "order.created", {"id": order_id})
"""

from .models import OutboxEvent, OutboxStatus
from .relay import OutboxRelay, build_outgoing_message
from .repository import OutboxRepository
from .writer import OutboxWriter, build_outbox_event, enqueue

__all__ = [
    "OutboxEvent",
    "OutboxRelay",
    "OutboxRepository",
    "OutboxStatus",
    "OutboxWriter",
    "build_outbox_event",
    "build_outgoing_message",
    "enqueue",
]
