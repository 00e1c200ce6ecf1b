"""Outbox relay: publish PENDING outbox events with bounded retry.

Per tick the relay:
1. Returns PROCESSING claims older than the lease to PENDING
2. Selects up to ``batch_size`` due PENDING events, oldest first
3. For each event, sequentially: claims it, publishes it with a timeout
   and records PROCESSED, a backed-off retry, or FAILED

Each transition is committed on its own, so one event's failure never
affects its siblings and a crash leaves at most one event in PROCESSING
(recovered once its lease expires). Store errors abort the tick; the
PollingWorker loop logs them and tries again later.
"""

from __future__ import annotations

import logging
import time
from datetime import timedelta
from typing import TYPE_CHECKING

from delivery_service.core.database.base import utc_now
from delivery_service.core.settings import get_outbox_settings
from delivery_service.infra.events.outbox.models import OutboxStatus
from delivery_service.infra.events.outbox.repository import OutboxRepository
from delivery_service.infra.logging.context import log_context
from delivery_service.infra.messaging.dlq.calculator import next_retry_time
from delivery_service.infra.messaging.publisher import OutgoingMessage, publish_with_timeout
from delivery_service.infra.metrics.prometheus import (
    outbox_claims_released_total,
    outbox_events_published_total,
    outbox_publish_duration_seconds,
    outbox_publish_failures_total,
)
from delivery_service.workers.base import PollingWorker

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from delivery_service.core.settings import OutboxSettings
    from delivery_service.infra.events.outbox.models import OutboxEvent
    from delivery_service.infra.messaging.publisher import MessagePublisher

logger = logging.getLogger(__name__)


def build_outgoing_message(event: OutboxEvent) -> OutgoingMessage:
    """Message body is ``{"type": event_type, "payload": payload}``."""
    headers = {
        "x-event-id": str(event.id),
        "x-aggregate-type": event.aggregate_type,
        "x-aggregate-id": event.aggregate_id,
    }
    return OutgoingMessage(
        type=event.event_type,
        payload=event.payload,
        headers=headers,
        key=event.aggregate_id,
        message_id=str(event.id),
        correlation_id=event.correlation_id,
    )


class OutboxRelay(PollingWorker):
    """Background relay publishing outbox events.

    Attributes:
        max_retries: Failed attempts before an event becomes FAILED
        retry_base_delay_ms: Backoff base; 0 retries on the next tick
        publish_timeout: Seconds allowed for one publish call
        claim_lease: Age after which a PROCESSING claim is released
    """

    name = "outbox-relay"

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        publisher: MessagePublisher,
        settings: OutboxSettings | None = None,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        settings = settings or get_outbox_settings()
        super().__init__(
            poll_interval=settings.poll_interval_seconds,
            batch_size=settings.batch_size,
            shutdown_timeout=settings.shutdown_timeout_seconds,
        )
        self.max_retries = settings.max_retries
        self.retry_base_delay_ms = settings.retry_base_delay_ms
        self.retry_max_delay_ms = settings.retry_max_delay_ms
        self.publish_timeout = settings.publish_timeout_seconds
        self.claim_lease = timedelta(seconds=settings.claim_lease_seconds)

        self._session_factory = session_factory
        self._publisher = publisher
        self._clock = clock
        self._repo = OutboxRepository()

    async def run_once(self) -> int:
        """Process one batch of pending events.

        Returns:
            Number of events published in this tick. Failed publishes are not
            counted, so a failing batch waits for the next poll interval
        """
        async with self._session_factory() as session:
            now = self._clock()
            released = await self._repo.release_stale_claims(
                session, claimed_before=now - self.claim_lease
            )
            events = await self._repo.fetch_pending(session, now=now, batch_size=self.batch_size)
            await session.commit()

            if released:
                outbox_claims_released_total.inc(released)
                logger.warning("Released stale outbox claims", extra={"released": released})

            if not events:
                return 0

            logger.debug("Processing outbox batch", extra={"batch_size": len(events)})

            attempted = 0
            published = 0
            for candidate in events:
                outcome = await self._process_event(session, candidate.id)
                if outcome is None:
                    continue
                attempted += 1
                if outcome is OutboxStatus.PROCESSED:
                    published += 1

        if attempted:
            logger.info(
                "Outbox batch processed",
                extra={"published": published, "failed": attempted - published, "total": len(events)},
            )
        return published

    async def _process_event(self, session: AsyncSession, event_id: object) -> OutboxStatus | None:
        """Claim, publish and record one event.

        Returns:
            The status the event moved to, or None if another relay claimed it
        """
        event = await self._repo.claim(session, event_id, now=self._clock())
        await session.commit()
        if event is None:
            return None

        with log_context(event_id=str(event.id), event_type=event.event_type):
            started = time.perf_counter()
            try:
                await publish_with_timeout(
                    self._publisher,
                    event.event_type,
                    build_outgoing_message(event),
                    timeout=self.publish_timeout,
                )
            except Exception as e:
                outcome = await self._record_failure(session, event, e)
            else:
                outbox_publish_duration_seconds.observe(time.perf_counter() - started)
                await self._repo.mark_processed(session, event.id, now=self._clock())
                await session.commit()
                outbox_events_published_total.labels(event_type=event.event_type).inc()
                logger.debug("Event published successfully")
                outcome = OutboxStatus.PROCESSED
        return outcome

    async def _record_failure(
        self,
        session: AsyncSession,
        event: OutboxEvent,
        error: Exception,
    ) -> OutboxStatus:
        retry_count = event.retry_count + 1
        error_message = _describe_error(error, self.publish_timeout)

        if retry_count < self.max_retries:
            next_attempt_at = None
            if self.retry_base_delay_ms > 0:
                next_attempt_at = next_retry_time(
                    self._clock(),
                    self.retry_base_delay_ms,
                    retry_count,
                    max_delay_ms=self.retry_max_delay_ms,
                )
            await self._repo.schedule_retry(
                session,
                event.id,
                retry_count=retry_count,
                error_message=error_message,
                next_attempt_at=next_attempt_at,
            )
            await session.commit()
            outbox_publish_failures_total.labels(event_type=event.event_type, outcome="retry").inc()
            logger.warning(
                "Failed to publish event, scheduled for retry",
                extra={
                    "error": error_message,
                    "retry_count": retry_count,
                    "max_retries": self.max_retries,
                    "next_attempt_at": next_attempt_at.isoformat() if next_attempt_at else None,
                },
            )
            return OutboxStatus.PENDING

        await self._repo.mark_failed(
            session,
            event.id,
            retry_count=retry_count,
            error_message=error_message,
        )
        await session.commit()
        outbox_publish_failures_total.labels(event_type=event.event_type, outcome="failed").inc()
        logger.error(
            "Outbox event failed permanently after exhausting retries",
            extra={"error": error_message, "retry_count": retry_count},
        )
        return OutboxStatus.FAILED

    async def get_statistics(self) -> dict[OutboxStatus, int]:
        """Count outbox events per status."""
        async with self._session_factory() as session:
            return await self._repo.count_by_status(session)


def _describe_error(error: Exception, timeout: float) -> str:
    if isinstance(error, TimeoutError):
        return f"Publish timed out after {timeout}s"
    return str(error) or type(error).__name__


__all__ = ["OutboxRelay", "build_outgoing_message"]
