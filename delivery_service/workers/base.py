"""Timer-driven background worker base.

A PollingWorker runs ``run_once()`` in a single asyncio task:
1. Run one tick (each tick runs to completion)
2. If the tick completed a full batch, run the next one immediately
3. Otherwise sleep ``poll_interval`` seconds, waking early on stop()
4. On error, log and back off for twice the poll interval

stop() stops scheduling ticks and lets the in-flight tick finish, bounded
by ``shutdown_timeout``, before cancelling it.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from abc import ABC, abstractmethod

from delivery_service.infra.logging.context import set_log_context
from delivery_service.infra.metrics.prometheus import worker_running, worker_ticks_total

logger = logging.getLogger(__name__)


class PollingWorker(ABC):
    """Base class for the outbox relay and the dead letter processor.

    Attributes:
        name: Worker name used in logs and metrics
        poll_interval: Seconds between ticks when idle
        batch_size: A tick that handles this many items is followed immediately
        shutdown_timeout: Seconds stop() waits for the in-flight tick
    """

    name: str = "worker"

    def __init__(
        self,
        *,
        poll_interval: float,
        batch_size: int,
        shutdown_timeout: float = 30.0,
    ) -> None:
        self.poll_interval = poll_interval
        self.batch_size = batch_size
        self.shutdown_timeout = shutdown_timeout

        self._running = False
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    @property
    def is_running(self) -> bool:
        return self._running

    @abstractmethod
    async def run_once(self) -> int:
        """Run one tick.

        Returns:
            Number of items successfully handled in this tick; a result of
            ``batch_size`` or more starts the next tick immediately
        """

    async def start(self) -> None:
        """Start the background loop."""
        if self._running:
            logger.warning("Worker already running", extra={"worker": self.name})
            return

        self._running = True
        self._stop_event.clear()
        self._task = asyncio.create_task(self._run_loop(), name=self.name)
        worker_running.labels(worker=self.name).set(1)
        logger.info(
            "Worker started",
            extra={
                "worker": self.name,
                "poll_interval": self.poll_interval,
                "batch_size": self.batch_size,
            },
        )

    async def stop(self) -> None:
        """Stop the loop gracefully.

        Waits for the current tick to complete before stopping.
        """
        if not self._running:
            return

        self._running = False
        self._stop_event.set()

        if self._task:
            try:
                await asyncio.wait_for(asyncio.shield(self._task), timeout=self.shutdown_timeout)
            except TimeoutError:
                logger.warning("Worker shutdown timed out, cancelling", extra={"worker": self.name})
                self._task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await self._task
            self._task = None

        worker_running.labels(worker=self.name).set(0)
        logger.info("Worker stopped", extra={"worker": self.name})

    async def wait(self) -> None:
        """Wait until the loop exits."""
        if self._task:
            await self._task

    async def _run_loop(self) -> None:
        set_log_context(worker=self.name)
        while self._running:
            try:
                handled = await self.run_once()
                worker_ticks_total.labels(worker=self.name, outcome="ok").inc()
            except asyncio.CancelledError:
                logger.info("Worker loop cancelled", extra={"worker": self.name})
                raise
            except Exception:
                worker_ticks_total.labels(worker=self.name, outcome="error").inc()
                logger.exception("Error in worker loop", extra={"worker": self.name})
                await self._sleep(self.poll_interval * 2)
                continue

            if handled >= self.batch_size:
                # More items are probably waiting; yield and go again.
                await asyncio.sleep(0)
            else:
                await self._sleep(self.poll_interval)

    async def _sleep(self, seconds: float) -> None:
        """Sleep, returning early when stop() is called."""
        if not self._running:
            return
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)


__all__ = ["PollingWorker"]
