"""Tests for the delivery worker process lifecycle."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from delivery_service.core.settings import DLQSettings, OutboxSettings
from delivery_service.infra.events.outbox import OutboxRelay
from delivery_service.infra.messaging.dlq import (
    DLQProcessor,
    LoggingEscalationSink,
    NoOpEscalationSink,
    WebhookEscalationSink,
)
from delivery_service.workers.runner import WorkerGroup, build_workers, run_workers


@pytest.fixture
def fake_publisher():
    publisher = MagicMock(name="publisher")
    publisher.close = AsyncMock()
    return publisher


@pytest.fixture
def mock_database(session_factory):
    with (
        patch("delivery_service.workers.runner.init_database", AsyncMock()) as init,
        patch("delivery_service.workers.runner.get_session_factory", return_value=session_factory),
        patch("delivery_service.workers.runner.close_database", AsyncMock()) as close,
    ):
        yield init, close


def make_worker(name: str) -> MagicMock:
    worker = MagicMock(name=name)
    worker.name = name
    worker.start = AsyncMock()
    worker.stop = AsyncMock()
    return worker


class TestBuildWorkers:
    async def test_builds_both_workers(self, mock_database, fake_publisher):
        init, _ = mock_database

        group = await build_workers(
            outbox_settings=OutboxSettings(),
            dlq_settings=DLQSettings(alert_log_enabled=True),
            publisher=fake_publisher,
        )

        init.assert_awaited_once()
        assert [type(w) for w in group.workers] == [OutboxRelay, DLQProcessor]
        assert [w.name for w in group.workers] == ["outbox-relay", "dlq-processor"]
        assert isinstance(group.escalation, LoggingEscalationSink)
        assert group.publisher is fake_publisher

    async def test_disabled_workers_are_skipped(self, mock_database, fake_publisher):
        group = await build_workers(
            outbox_settings=OutboxSettings(enabled=False),
            dlq_settings=DLQSettings(enabled=False),
            publisher=fake_publisher,
        )

        assert group.workers == []
        assert group.escalation is None

    async def test_dlq_only(self, mock_database, fake_publisher):
        group = await build_workers(
            outbox_settings=OutboxSettings(enabled=False),
            dlq_settings=DLQSettings(alert_log_enabled=False),
            publisher=fake_publisher,
        )

        assert [w.name for w in group.workers] == ["dlq-processor"]
        assert isinstance(group.escalation, NoOpEscalationSink)


class TestWorkerGroup:
    async def test_start_in_order_and_stop_in_reverse(self, fake_publisher):
        calls: list[str] = []
        first, second = make_worker("first"), make_worker("second")
        for worker in (first, second):
            worker.start.side_effect = lambda w=worker: calls.append(f"start:{w.name}")
            worker.stop.side_effect = lambda w=worker: calls.append(f"stop:{w.name}")
        group = WorkerGroup(publisher=fake_publisher, workers=[first, second])

        await group.start()
        await group.stop()

        assert calls == ["start:first", "start:second", "stop:second", "stop:first"]
        fake_publisher.close.assert_awaited_once()

    async def test_failing_stop_does_not_block_others(self, fake_publisher, caplog):
        broken, healthy = make_worker("broken"), make_worker("healthy")
        broken.stop.side_effect = RuntimeError("stuck")
        group = WorkerGroup(publisher=fake_publisher, workers=[healthy, broken])

        await group.stop()

        healthy.stop.assert_awaited_once()
        fake_publisher.close.assert_awaited_once()
        assert "Failed to stop worker" in caplog.text

    async def test_webhook_sink_is_closed(self, fake_publisher):
        sink = WebhookEscalationSink("https://alerts.example.com/hook")
        group = WorkerGroup(publisher=fake_publisher, escalation=sink)

        with patch.object(sink, "close", AsyncMock()) as close:
            await group.stop()

        close.assert_awaited_once()


class TestRunWorkers:
    async def test_runs_until_stop_event(self, fake_publisher):
        worker = make_worker("outbox-relay")
        group = WorkerGroup(publisher=fake_publisher, workers=[worker])
        stop_event = asyncio.Event()

        with (
            patch("delivery_service.workers.runner.build_workers", AsyncMock(return_value=group)),
            patch("delivery_service.workers.runner.close_database", AsyncMock()) as close,
        ):
            task = asyncio.create_task(run_workers(stop_event))
            await asyncio.sleep(0.05)
            worker.start.assert_awaited_once()
            worker.stop.assert_not_awaited()

            stop_event.set()
            await asyncio.wait_for(task, timeout=1)

        worker.stop.assert_awaited_once()
        fake_publisher.close.assert_awaited_once()
        close.assert_awaited_once()

    async def test_no_workers_returns_immediately(self, fake_publisher):
        group = WorkerGroup(publisher=fake_publisher)

        with (
            patch("delivery_service.workers.runner.build_workers", AsyncMock(return_value=group)),
            patch("delivery_service.workers.runner.close_database", AsyncMock()) as close,
        ):
            await asyncio.wait_for(run_workers(asyncio.Event()), timeout=1)

        fake_publisher.close.assert_awaited_once()
        close.assert_awaited_once()
