"""Escalation of dead letters that exhausted their retries.

The dead letter processor calls ``EscalationSink.escalate`` exactly once per
message, on the attempt that moves it to failed. Sinks:
- NoOpEscalationSink: default, drops the alert (tests, local runs)
- LoggingEscalationSink: structured ERROR log
- WebhookEscalationSink: POSTs the alert as JSON (Slack-style payload)

A sink raises on failure; the processor logs the error and keeps the row
state unchanged.

Example:
    sink = build_escalation_sink(get_dlq_settings())
    processor = DLQProcessor(session_factory, publisher, escalation=sink)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

import httpx

if TYPE_CHECKING:
    from delivery_service.core.settings import DLQSettings

logger = logging.getLogger(__name__)


@dataclass
class DLQAlert:
    """Representation of an escalation.

    Attributes:
        title: Human-readable one-line summary.
        message: Human-readable description of the failure.
        payload: The offending message payload.
        message_id: Dead letter id.
        original_topic: Topic the message belongs to.
        retry_count: Attempts made before giving up.
        last_error: Error of the final attempt.
        timestamp: When the message was escalated.
        metadata: Stored delivery metadata of the message.
    """

    title: str
    message: str
    payload: Any
    message_id: str
    original_topic: str
    retry_count: int
    last_error: str
    timestamp: datetime
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert alert to dictionary for serialization."""
        return {
            "title": self.title,
            "message": self.message,
            "payload": self.payload,
            "message_id": self.message_id,
            "original_topic": self.original_topic,
            "retry_count": self.retry_count,
            "last_error": self.last_error,
            "timestamp": self.timestamp.isoformat(),
            "metadata": self.metadata,
        }


@runtime_checkable
class EscalationSink(Protocol):
    """Receives alerts for dead letters that failed permanently."""

    async def escalate(self, alert: DLQAlert) -> None: ...


class NoOpEscalationSink:
    """Drops every alert."""

    async def escalate(self, alert: DLQAlert) -> None:
        return None


class LoggingEscalationSink:
    """Logs every alert at ERROR level with the alert as structured fields."""

    async def escalate(self, alert: DLQAlert) -> None:
        logger.error(
            "DLQ escalation: %s",
            alert.title,
            extra={
                "dlq_alert": alert.to_dict(),
                "original_topic": alert.original_topic,
                "retry_count": alert.retry_count,
            },
        )


class WebhookEscalationSink:
    """POSTs alerts to a webhook (Slack-compatible ``text`` plus the raw alert)."""

    def __init__(
        self,
        url: str,
        *,
        timeout: float = 5.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.url = url
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None

    async def escalate(self, alert: DLQAlert) -> None:
        """Send the alert.

        Raises:
            httpx.HTTPError: If the request fails or returns an error status.
        """
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)

        payload = {
            "text": f"{alert.title}\n{alert.message}",
            "alert": alert.to_dict(),
        }
        response = await self._client.post(self.url, json=payload)
        response.raise_for_status()
        logger.debug("DLQ webhook alert sent", extra={"url": self.url})

    async def close(self) -> None:
        """Close the HTTP client if this sink created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None


def build_escalation_sink(settings: DLQSettings) -> EscalationSink:
    """Choose the sink from DLQ_ settings: webhook, then logging, then no-op."""
    if settings.alert_webhook_url is not None:
        return WebhookEscalationSink(
            str(settings.alert_webhook_url),
            timeout=settings.alert_timeout_seconds,
        )
    if settings.alert_log_enabled:
        return LoggingEscalationSink()
    return NoOpEscalationSink()


__all__ = [
    "DLQAlert",
    "EscalationSink",
    "LoggingEscalationSink",
    "NoOpEscalationSink",
    "WebhookEscalationSink",
    "build_escalation_sink",
]
