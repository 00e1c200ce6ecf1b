"""End-to-end delivery: outbox write, relay publish, dead letter retry.

Runs both workers against a real SQLite database with an in-process
publisher double standing in for the broker.
"""

from __future__ import annotations

import pytest
from sqlalchemy import select

from delivery_service.core.database.base import ensure_utc
from delivery_service.infra.events.outbox import OutboxEvent, OutboxRelay, OutboxStatus, enqueue
from delivery_service.infra.messaging.dlq import (
    DLQ_ORIGINAL_ID_HEADER,
    DLQ_RETRY_COUNT_HEADER,
    DeadLetterEvent,
    DeadLetterStatus,
    DLQProcessor,
    record_dead_letter,
)

pytestmark = pytest.mark.integration


async def test_enqueued_event_is_published_once(session_factory, publisher, outbox_settings, clock):
    """Business transaction commits, one relay tick publishes, later ticks do nothing."""
    async with session_factory() as session, session.begin():
        await enqueue(
            session,
            "order.created",
            {"id": "order-1", "total": 42},
            aggregate_type="Order",
            correlation_id="req-1",
        )

    relay = OutboxRelay(session_factory, publisher, outbox_settings, clock=clock)
    assert await relay.run_once() == 1
    assert await relay.run_once() == 0

    async with session_factory() as session:
        event = (await session.execute(select(OutboxEvent))).scalar_one()

    assert event.status == OutboxStatus.PROCESSED
    assert ensure_utc(event.processed_at) == clock.now
    assert publisher.topics == ["order.created"]
    _, message = publisher.calls[0]
    assert message.correlation_id == "req-1"
    assert message.key == "order-1"


async def test_broker_outage_then_recovery(session_factory, publisher, outbox_settings, clock):
    """Events survive a broker outage and go out once it recovers."""
    async with session_factory() as session, session.begin():
        await enqueue(session, "order.created", {"id": "order-2"})

    relay = OutboxRelay(session_factory, publisher, outbox_settings, clock=clock)
    publisher.fail_with = ConnectionError("broker unavailable")
    await relay.run_once()
    await relay.run_once()
    assert len(publisher.calls) == 1

    publisher.fail_with = None
    clock.advance(seconds=2)
    assert await relay.run_once() == 1

    stats = await relay.get_statistics()
    assert stats[OutboxStatus.PROCESSED] == 1
    assert stats[OutboxStatus.PENDING] == 0


async def test_dead_letter_round_trip(
    session_factory, publisher, dlq_settings, escalation_sink, clock
):
    """A consumer failure lands in the DLQ, fails once, then republishes after backoff."""
    async with session_factory() as session, session.begin():
        await record_dead_letter(
            session,
            original_topic="payment.settled",
            payload={"id": "pay-1", "amount": 1000},
            metadata={"messageId": "msg-1", "key": "pay-1"},
            error=RuntimeError("consumer crashed"),
            now=clock.now,
        )

    processor = DLQProcessor(
        session_factory, publisher, dlq_settings, escalation=escalation_sink, clock=clock
    )

    publisher.fail_with = ConnectionError("broker unavailable")
    assert await processor.run_once() == 0
    assert len(publisher.calls) == 1
    assert (await processor.get_statistics()).pending == 1

    publisher.fail_with = None
    assert await processor.run_once() == 0
    clock.advance(minutes=2)
    assert await processor.run_once() == 1

    async with session_factory() as session:
        dead_letter = (await session.execute(select(DeadLetterEvent))).scalar_one()

    assert dead_letter.status == DeadLetterStatus.PROCESSED
    assert dead_letter.retry_count == 2
    topic, message = publisher.calls[-1]
    assert topic == "payment.settled"
    assert message.key == "pay-1"
    assert message.headers[DLQ_ORIGINAL_ID_HEADER] == str(dead_letter.id)
    assert message.headers[DLQ_RETRY_COUNT_HEADER] == "2"
    assert escalation_sink.alerts == []

    stats = await processor.get_statistics()
    assert (stats.pending, stats.processed, stats.failed) == (0, 1, 0)
