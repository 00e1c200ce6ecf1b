"""Publisher port used by the outbox relay and the dead letter processor.

The pipeline only needs publish-by-topic semantics. Any object with an async
``publish(topic, message)`` method satisfies MessagePublisher; the RabbitMQ
adapter lives in ``delivery_service.infra.messaging.broker``.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable


@dataclass(frozen=True, slots=True)
class OutgoingMessage:
    """A message handed to the broker.

    Attributes:
        type: Event type discriminator (``order.created``).
        payload: JSON document sent as the message body.
        headers: String headers delivered with the message.
        key: Optional partition/routing key.
        message_id: Id of the stored record this message was built from.
        correlation_id: Optional cross-service trace identifier.
    """

    type: str
    payload: Any
    headers: dict[str, str] = field(default_factory=dict)
    key: str | None = None
    message_id: str | None = None
    correlation_id: str | None = None

    def body(self) -> dict[str, Any]:
        """Wire body: ``{"type": ..., "payload": ...}``."""
        return {"type": self.type, "payload": self.payload}


@runtime_checkable
class MessagePublisher(Protocol):
    """Hands one message to the message bus.

    ``publish`` returns on success and raises on any failure; the caller
    decides whether the failure is retried.
    """

    async def publish(self, topic: str, message: OutgoingMessage) -> None: ...


async def publish_with_timeout(
    publisher: MessagePublisher,
    topic: str,
    message: OutgoingMessage,
    *,
    timeout: float,
) -> None:
    """Publish, raising TimeoutError if the broker does not answer within ``timeout`` seconds."""
    await asyncio.wait_for(publisher.publish(topic, message), timeout=timeout)


__all__ = ["MessagePublisher", "OutgoingMessage", "publish_with_timeout"]
