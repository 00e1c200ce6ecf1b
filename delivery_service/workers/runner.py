"""Delivery worker process lifecycle.

Startup Order:
1. Database - always required
2. Publisher (RabbitMQ) - connected lazily on first publish
3. Outbox relay - conditional on OUTBOX_ENABLED
4. Dead letter processor - conditional on DLQ_ENABLED

Shutdown Order: Reverse of startup. Each worker finishes its in-flight tick
before the publisher and the database engine are closed.
"""

from __future__ import annotations

import asyncio
import logging
import signal
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from delivery_service.core.settings import get_dlq_settings, get_outbox_settings
from delivery_service.infra.database import close_database, get_session_factory, init_database
from delivery_service.infra.events.outbox import OutboxRelay
from delivery_service.infra.messaging.broker import RabbitPublisher
from delivery_service.infra.messaging.dlq import DLQProcessor, WebhookEscalationSink, build_escalation_sink

if TYPE_CHECKING:
    from delivery_service.core.settings import DLQSettings, OutboxSettings
    from delivery_service.infra.messaging.dlq import EscalationSink
    from delivery_service.workers.base import PollingWorker

logger = logging.getLogger(__name__)


@dataclass
class WorkerGroup:
    """Workers sharing one publisher and one session factory."""

    publisher: RabbitPublisher
    workers: list[PollingWorker] = field(default_factory=list)
    escalation: EscalationSink | None = None

    async def start(self) -> None:
        for worker in self.workers:
            await worker.start()

    async def stop(self) -> None:
        for worker in reversed(self.workers):
            try:
                await worker.stop()
            except Exception:
                logger.exception("Failed to stop worker", extra={"worker": worker.name})

        if isinstance(self.escalation, WebhookEscalationSink):
            await self.escalation.close()
        await self.publisher.close()


async def build_workers(
    *,
    outbox_settings: OutboxSettings | None = None,
    dlq_settings: DLQSettings | None = None,
    publisher: RabbitPublisher | None = None,
) -> WorkerGroup:
    """Initialize the database and build the enabled workers (not started)."""
    outbox_settings = outbox_settings or get_outbox_settings()
    dlq_settings = dlq_settings or get_dlq_settings()

    await init_database()
    session_factory = get_session_factory()
    publisher = publisher or RabbitPublisher.from_settings()

    group = WorkerGroup(publisher=publisher)

    if outbox_settings.enabled:
        group.workers.append(OutboxRelay(session_factory, publisher, outbox_settings))
    else:
        logger.info("Outbox relay disabled")

    if dlq_settings.enabled:
        group.escalation = build_escalation_sink(dlq_settings)
        group.workers.append(
            DLQProcessor(session_factory, publisher, dlq_settings, escalation=group.escalation)
        )
    else:
        logger.info("Dead letter processor disabled")

    return group


async def run_workers(stop_event: asyncio.Event | None = None) -> None:
    """Run the enabled workers until SIGINT/SIGTERM (or ``stop_event``) fires."""
    stop_event = stop_event or asyncio.Event()
    group = await build_workers()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows
            pass

    try:
        if not group.workers:
            logger.warning("No workers enabled, nothing to run")
            return

        await group.start()
        logger.info(
            "Delivery workers running",
            extra={"workers": [worker.name for worker in group.workers]},
        )
        await stop_event.wait()
        logger.info("Shutdown requested")
    finally:
        await group.stop()
        await close_database()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.remove_signal_handler(sig)
            except NotImplementedError:
                pass
        logger.info("Delivery workers stopped")


__all__ = ["WorkerGroup", "build_workers", "run_workers"]
