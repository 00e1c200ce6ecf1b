"""Dead letter processor: republish dead letters with exponential backoff.

Per sweep the processor selects up to ``batch_size`` pending dead letters
with retries left whose ``next_retry_at`` has passed (oldest first) and,
for each one:
1. Claims it with a short lease so concurrent processors skip it
2. Republishes it to its original topic with the retry headers
3. Success: processed, ``retry_count + 1``
4. Failure: ``retry_count + 1``; at ``max_retries`` the message becomes
   failed and is escalated once, otherwise ``next_retry_at`` moves to
   ``now + base_delay_ms * 2**retry_count``

Operators use :meth:`DLQProcessor.retry_message` to force a retry and
:meth:`DLQProcessor.get_statistics` for aggregate counts.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import timedelta
from typing import TYPE_CHECKING, Any

from delivery_service.core.database.base import utc_now
from delivery_service.core.database.exceptions import NotFoundError
from delivery_service.core.exceptions import (
    MessageAlreadyProcessedError,
    MessageBusyError,
    MessageNotFoundError,
)
from delivery_service.core.settings import get_dlq_settings
from delivery_service.infra.logging.context import log_context
from delivery_service.infra.messaging.dlq.alerting import DLQAlert, NoOpEscalationSink
from delivery_service.infra.messaging.dlq.calculator import calculate_delay_ms
from delivery_service.infra.messaging.dlq.headers import build_retry_headers, get_message_key
from delivery_service.infra.messaging.dlq.models import DeadLetterStatus
from delivery_service.infra.messaging.dlq.repository import DeadLetterRepository
from delivery_service.infra.messaging.publisher import OutgoingMessage, publish_with_timeout
from delivery_service.infra.metrics.prometheus import (
    dlq_escalations_total,
    dlq_retry_attempts_total,
    dlq_retry_delay_seconds,
)
from delivery_service.workers.base import PollingWorker

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from delivery_service.core.settings import DLQSettings
    from delivery_service.infra.messaging.dlq.alerting import EscalationSink
    from delivery_service.infra.messaging.dlq.models import DeadLetterEvent
    from delivery_service.infra.messaging.publisher import MessagePublisher

logger = logging.getLogger(__name__)

MAX_RETRIES_EXCEEDED_PREFIX = "Max retries exceeded: "


@dataclass(frozen=True, slots=True)
class DLQStatistics:
    """Aggregate dead letter counts.

    Attributes:
        pending: Messages awaiting retry
        processed: Messages republished successfully
        failed: Messages that exhausted their retries
        by_topic: Pending messages per original topic
    """

    pending: int
    processed: int
    failed: int
    by_topic: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "pending": self.pending,
            "processed": self.processed,
            "failed": self.failed,
            "by_topic": dict(self.by_topic),
        }


def build_retry_message(message: DeadLetterEvent, retry_count: int) -> OutgoingMessage:
    """Republished message: original payload, stored headers plus retry markers."""
    metadata = message.message_metadata or {}
    return OutgoingMessage(
        type=message.original_topic,
        payload=message.payload,
        headers=build_retry_headers(metadata, message_id=message.id, retry_count=retry_count),
        key=get_message_key(metadata, message.id),
        message_id=str(message.id),
    )


class DLQProcessor(PollingWorker):
    """Background processor retrying dead letters.

    Attributes:
        max_retries: Attempts before a message is escalated
        base_delay_ms: Backoff base in milliseconds
        max_delay_ms: Optional cap on a single backoff
        publish_timeout: Seconds allowed for one republish
        claim_lease: How long a claimed message is hidden from other processors
    """

    name = "dlq-processor"

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        publisher: MessagePublisher,
        settings: DLQSettings | None = None,
        *,
        escalation: EscalationSink | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        settings = settings or get_dlq_settings()
        super().__init__(
            poll_interval=settings.poll_interval_seconds,
            batch_size=settings.batch_size,
            shutdown_timeout=settings.shutdown_timeout_seconds,
        )
        self.max_retries = settings.max_retries
        self.base_delay_ms = settings.base_delay_ms
        self.max_delay_ms = settings.max_delay_ms
        self.publish_timeout = settings.publish_timeout_seconds
        self.claim_lease = timedelta(seconds=settings.claim_lease_seconds)

        self._session_factory = session_factory
        self._publisher = publisher
        self._escalation: EscalationSink = escalation or NoOpEscalationSink()
        self._clock = clock
        self._repo = DeadLetterRepository()

    async def run_once(self) -> int:
        """Run one sweep.

        Returns:
            Number of dead letters republished in this sweep. Failures are not
            counted, so a failing sweep waits for the next poll interval
        """
        async with self._session_factory() as session:
            messages = await self._repo.fetch_retryable(
                session,
                now=self._clock(),
                max_retries=self.max_retries,
                limit=self.batch_size,
            )
            await session.commit()

            if not messages:
                logger.debug("No dead letters due for retry")
                return 0

            logger.info("Processing dead letters", extra={"count": len(messages)})

            attempted = 0
            succeeded = 0
            for candidate in messages:
                outcome = await self.process_message(session, candidate.id)
                if outcome is None:
                    continue
                attempted += 1
                succeeded += int(outcome)

        logger.info(
            "Dead letter sweep finished",
            extra={"attempted": attempted, "processed": succeeded, "failed": attempted - succeeded},
        )
        return succeeded

    async def process_message(self, session: AsyncSession, message_id: Any) -> bool | None:
        """Claim and republish one dead letter, recording the outcome.

        Returns:
            True if the republish succeeded, False if it failed, None if the
            message was not claimable (not pending, not due, or claimed by
            another processor)
        """
        now = self._clock()
        message = await self._repo.claim(
            session, message_id, now=now, lease_until=now + self.claim_lease
        )
        await session.commit()
        if message is None:
            return None

        retry_count = message.retry_count + 1
        with log_context(message_id=str(message.id), topic=message.original_topic):
            try:
                await publish_with_timeout(
                    self._publisher,
                    message.original_topic,
                    build_retry_message(message, retry_count),
                    timeout=self.publish_timeout,
                )
            except Exception as e:
                await self._handle_failure(session, message, retry_count, e)
                return False

            await self._repo.mark_processed(
                session, message.id, retry_count=retry_count, now=self._clock()
            )
            await session.commit()
            dlq_retry_attempts_total.labels(topic=message.original_topic, outcome="processed").inc()
            logger.info("Dead letter republished", extra={"retry_count": retry_count})
            return True

    async def _handle_failure(
        self,
        session: AsyncSession,
        message: DeadLetterEvent,
        retry_count: int,
        error: Exception,
    ) -> None:
        error_message = _describe_error(error, self.publish_timeout)

        if retry_count >= self.max_retries:
            last_error = f"{MAX_RETRIES_EXCEEDED_PREFIX}{error_message}"
            now = self._clock()
            marked = await self._repo.mark_failed(
                session,
                message.id,
                retry_count=retry_count,
                last_error=last_error,
                now=now,
            )
            await session.commit()
            dlq_retry_attempts_total.labels(topic=message.original_topic, outcome="escalated").inc()
            logger.error(
                "Dead letter permanently failed",
                extra={"retry_count": retry_count, "error": error_message},
            )
            if marked:
                await self._escalate(message, retry_count, last_error, now)
            return

        delay_ms = calculate_delay_ms(self.base_delay_ms, retry_count, max_delay_ms=self.max_delay_ms)
        next_retry_at = self._clock() + timedelta(milliseconds=delay_ms)
        await self._repo.schedule_retry(
            session,
            message.id,
            retry_count=retry_count,
            last_error=error_message,
            next_retry_at=next_retry_at,
        )
        await session.commit()
        dlq_retry_attempts_total.labels(topic=message.original_topic, outcome="rescheduled").inc()
        dlq_retry_delay_seconds.observe(delay_ms / 1000)
        logger.warning(
            "Dead letter retry failed, rescheduled",
            extra={
                "retry_count": retry_count,
                "max_retries": self.max_retries,
                "next_retry_at": next_retry_at.isoformat(),
                "error": error_message,
            },
        )

    async def _escalate(
        self,
        message: DeadLetterEvent,
        retry_count: int,
        last_error: str,
        now: datetime,
    ) -> None:
        alert = DLQAlert(
            title=f"DLQ message permanently failed: {message.original_topic}",
            message=(
                f"Dead letter {message.id} on topic {message.original_topic} failed "
                f"after {retry_count} attempts: {last_error}"
            ),
            payload=message.payload,
            message_id=str(message.id),
            original_topic=message.original_topic,
            retry_count=retry_count,
            last_error=last_error,
            timestamp=now,
            metadata=dict(message.message_metadata or {}),
        )
        try:
            await self._escalation.escalate(alert)
        except Exception:
            dlq_escalations_total.labels(topic=message.original_topic, delivered="false").inc()
            logger.exception("Failed to send DLQ escalation")
        else:
            dlq_escalations_total.labels(topic=message.original_topic, delivered="true").inc()

    async def retry_message(self, message_id: uuid.UUID | str) -> bool:
        """Force an immediate retry of a dead letter.

        Resets ``retry_count`` to 0 and ``next_retry_at`` to now (status back
        to pending if it had failed), then republishes synchronously.

        Returns:
            True if the republish succeeded

        Raises:
            MessageNotFoundError: If no dead letter has this id
            MessageAlreadyProcessedError: If the dead letter is already processed
            MessageBusyError: If another processor currently holds its lease
        """
        key = _parse_id(message_id)
        if key is None:
            raise MessageNotFoundError(message_id)

        async with self._session_factory() as session:
            try:
                message = await self._repo.get_or_raise(session, key)
            except NotFoundError as e:
                raise MessageNotFoundError(message_id) from e
            if message.status == DeadLetterStatus.PROCESSED:
                raise MessageAlreadyProcessedError(message_id)

            reset = await self._repo.reset_for_retry(session, key, now=self._clock())
            await session.commit()
            if not reset:
                current = await self._repo.reload(session, key)
                if current is None:
                    raise MessageNotFoundError(message_id)
                if current.status == DeadLetterStatus.PROCESSED:
                    raise MessageAlreadyProcessedError(message_id)
                raise MessageBusyError(message_id)

            logger.info(
                "Manual dead letter retry",
                extra={"message_id": str(key), "previous_retry_count": message.retry_count},
            )
            outcome = await self.process_message(session, key)
            return bool(outcome)

    async def get_statistics(self) -> DLQStatistics:
        """Aggregate counts per status and pending counts per topic."""
        async with self._session_factory() as session:
            return await load_statistics(session, self._repo)


async def load_statistics(
    session: AsyncSession,
    repository: DeadLetterRepository | None = None,
) -> DLQStatistics:
    """Read dead letter statistics without a running processor."""
    repository = repository or DeadLetterRepository()
    counts = await repository.count_by_status(session)
    by_topic = await repository.pending_by_topic(session)
    return DLQStatistics(
        pending=counts[DeadLetterStatus.PENDING],
        processed=counts[DeadLetterStatus.PROCESSED],
        failed=counts[DeadLetterStatus.FAILED],
        by_topic=by_topic,
    )


def _parse_id(message_id: uuid.UUID | str) -> uuid.UUID | None:
    if isinstance(message_id, uuid.UUID):
        return message_id
    try:
        return uuid.UUID(str(message_id))
    except ValueError:
        return None


def _describe_error(error: Exception, timeout: float) -> str:
    if isinstance(error, TimeoutError):
        return f"Publish timed out after {timeout}s"
    return str(error) or type(error).__name__


__all__ = ["DLQProcessor", "DLQStatistics", "build_retry_message", "load_statistics"]
