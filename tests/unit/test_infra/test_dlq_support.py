"""Tests for backoff calculation, retry headers and dead letter intake."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy import select

from delivery_service.core.exceptions import InvalidPayloadError
from delivery_service.infra.messaging.dlq import (
    DeadLetterEvent,
    DeadLetterStatus,
    build_retry_headers,
    calculate_delay_ms,
    is_dlq_retry,
    next_retry_time,
    record_dead_letter,
)
from delivery_service.infra.messaging.dlq.headers import get_message_key


class TestCalculateDelay:
    """Tests for calculate_delay_ms."""

    @pytest.mark.parametrize(
        ("attempt", "expected"),
        [(0, 60_000), (1, 120_000), (2, 240_000), (5, 1_920_000)],
    )
    def test_doubles_per_attempt(self, attempt, expected):
        assert calculate_delay_ms(60_000, attempt) == expected

    def test_cap(self):
        assert calculate_delay_ms(60_000, 10, max_delay_ms=300_000) == 300_000

    def test_zero_base_means_no_delay(self):
        assert calculate_delay_ms(0, 4) == 0

    def test_custom_multiplier(self):
        assert calculate_delay_ms(1000, 2, multiplier=3.0) == 9000

    def test_next_retry_time(self):
        now = datetime(2026, 1, 1, tzinfo=UTC)

        assert next_retry_time(now, 60_000, 1) == now + timedelta(minutes=2)


class TestRetryHeaders:
    """Tests for the republish headers."""

    def test_markers_override_stored_headers(self):
        headers = build_retry_headers(
            {"headers": {"x-dlq-retry-count": "9", "traceparent": "00-abc"}},
            message_id="m-1",
            retry_count=2,
        )

        assert headers == {
            "x-dlq-retry-count": "2",
            "traceparent": "00-abc",
            "x-dlq-retry": "true",
            "x-dlq-original-id": "m-1",
        }

    def test_non_mapping_headers_are_ignored(self):
        headers = build_retry_headers({"headers": ["a"]}, message_id="m-1", retry_count=1)

        assert set(headers) == {"x-dlq-retry", "x-dlq-retry-count", "x-dlq-original-id"}

    def test_stored_metadata_is_not_modified(self):
        metadata = {"headers": {"a": "1"}}

        build_retry_headers(metadata, message_id="m-1", retry_count=1)

        assert metadata == {"headers": {"a": "1"}}

    @pytest.mark.parametrize(
        ("headers", "expected"),
        [({"x-dlq-retry": "true"}, True), ({"x-dlq-retry": "TRUE"}, True), ({}, False), (None, False)],
    )
    def test_is_dlq_retry(self, headers, expected):
        assert is_dlq_retry(headers) is expected

    def test_message_key(self):
        assert get_message_key({"key": "order-1"}, "m-1") == "order-1"
        assert get_message_key({}, "m-1") == "m-1"
        assert get_message_key(None, "m-1") == "m-1"


class TestRecordDeadLetter:
    """Tests for the consumer-side intake."""

    async def test_stores_pending_row_due_now(self, session_factory, clock):
        async with session_factory() as session:
            await record_dead_letter(
                session,
                original_topic="order.created",
                payload={"id": "order-1"},
                metadata={"key": "order-1"},
                error=ValueError("bad total"),
                now=clock.now,
            )
            await session.commit()

        async with session_factory() as session:
            message = (await session.execute(select(DeadLetterEvent))).scalar_one()

        assert message.status == DeadLetterStatus.PENDING
        assert message.retry_count == 0
        assert message.last_error == "bad total"
        assert message.message_metadata == {"key": "order-1"}
        assert message.next_retry_at.replace(tzinfo=UTC) == clock.now

    async def test_metadata_defaults_to_empty(self, session_factory):
        async with session_factory() as session:
            message = await record_dead_letter(session, original_topic="t", payload="raw body")
            await session.commit()

        assert message.message_metadata == {}
        assert message.last_error is None

    async def test_rejects_unserializable_payload(self, session_factory):
        async with session_factory() as session:
            with pytest.raises(InvalidPayloadError):
                await record_dead_letter(session, original_topic="t", payload={"x": {1, 2}})
            assert not session.new

    async def test_rejects_empty_topic(self, session_factory):
        async with session_factory() as session:
            with pytest.raises(InvalidPayloadError, match="original_topic"):
                await record_dead_letter(session, original_topic="", payload={})
