"""RabbitMQ publisher using FastStream.

Every event goes to one durable exchange (RABBIT_EXCHANGE_NAME, topic type by
default) with the event type or original topic as routing key. Consumers
bind their own queues with routing key patterns such as ``order.*``.

Usage:
    async with RabbitPublisher.from_settings() as publisher:
        await publisher.publish("order.created", OutgoingMessage(...))
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from faststream.rabbit import ExchangeType, RabbitBroker, RabbitExchange

from delivery_service.core.exceptions import PublisherNotConfiguredError
from delivery_service.core.settings import get_rabbit_settings

if TYPE_CHECKING:
    from types import TracebackType

    from delivery_service.core.settings import RabbitSettings
    from delivery_service.infra.messaging.publisher import OutgoingMessage

logger = logging.getLogger(__name__)

_EXCHANGE_TYPES = {
    "topic": ExchangeType.TOPIC,
    "direct": ExchangeType.DIRECT,
    "fanout": ExchangeType.FANOUT,
}


def build_exchange(settings: RabbitSettings) -> RabbitExchange:
    """Durable exchange that receives every published event."""
    return RabbitExchange(
        name=settings.exchange_name,
        type=_EXCHANGE_TYPES[settings.exchange_type],
        durable=True,
        auto_delete=False,
    )


class RabbitPublisher:
    """MessagePublisher backed by a FastStream RabbitBroker."""

    def __init__(
        self,
        broker: RabbitBroker,
        exchange: RabbitExchange,
        *,
        connection_timeout: float = 10.0,
    ) -> None:
        self._broker = broker
        self._exchange = exchange
        self._connection_timeout = connection_timeout
        self._connected = False

    @classmethod
    def from_settings(cls, settings: RabbitSettings | None = None) -> RabbitPublisher:
        """Build a publisher from RABBIT_ settings.

        Raises:
            PublisherNotConfiguredError: If RabbitMQ is disabled.
        """
        settings = settings or get_rabbit_settings()
        if not settings.is_configured:
            raise PublisherNotConfiguredError("RabbitMQ is not configured (RABBIT_ENABLED=false)")

        broker = RabbitBroker(
            settings.get_url(),
            graceful_timeout=settings.graceful_timeout,
            client_properties={"connection_name": settings.connection_name},
            logger=logger,
        )
        return cls(
            broker,
            build_exchange(settings),
            connection_timeout=settings.connection_timeout,
        )

    @property
    def is_connected(self) -> bool:
        return self._connected

    async def connect(self) -> None:
        """Connect to RabbitMQ and declare the exchange.

        Raises:
            ConnectionError: If the connection is not established in time.
        """
        if self._connected:
            return

        logger.info(
            "Connecting RabbitMQ publisher",
            extra={"exchange": self._exchange.name, "connection_timeout": self._connection_timeout},
        )
        try:
            await asyncio.wait_for(self._broker.connect(), timeout=self._connection_timeout)
            await self._broker.declare_exchange(self._exchange)
        except TimeoutError:
            error_msg = f"RabbitMQ connection timeout after {self._connection_timeout}s"
            logger.error(error_msg, extra={"connection_timeout": self._connection_timeout})
            raise ConnectionError(error_msg) from None

        self._connected = True
        logger.info("RabbitMQ publisher connected", extra={"exchange": self._exchange.name})

    async def close(self) -> None:
        """Close the broker connection; errors are logged, not raised."""
        if not self._connected:
            return
        try:
            await self._broker.close()
            logger.info("RabbitMQ publisher closed")
        except Exception as e:
            logger.warning("Error closing RabbitMQ publisher", extra={"error": str(e)})
        finally:
            self._connected = False

    async def publish(self, topic: str, message: OutgoingMessage) -> None:
        """Publish ``message`` to the exchange with ``topic`` as routing key."""
        if not self._connected:
            await self.connect()

        await self._broker.publish(
            message.body(),
            exchange=self._exchange,
            routing_key=topic,
            headers=message.headers or None,
            correlation_id=message.correlation_id,
            message_id=message.message_id,
            message_type=message.type,
            persist=True,
        )
        logger.debug(
            "Message published",
            extra={"topic": topic, "message_type": message.type, "message_id": message.message_id},
        )

    async def __aenter__(self) -> RabbitPublisher:
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()


__all__ = ["RabbitPublisher", "build_exchange"]
