"""Pytest configuration and shared fixtures.

Organization:
    - Database Fixtures: file-backed SQLite engine and session factory
    - Collaborator Fixtures: fake publisher, recording escalation sink
    - Time Fixtures: controllable clock for backoff assertions
    - Settings Fixtures: worker settings with test-friendly defaults

Workers open and commit their own sessions, so each test gets a real
SQLite file (separate connections, real transactions) instead of a shared
in-memory connection.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import AsyncGenerator
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import pytest
from sqlalchemy.ext.asyncio import create_async_engine

from delivery_service.core.database import Base
from delivery_service.core.settings import DLQSettings, OutboxSettings, clear_all_caches
from delivery_service.infra.database import create_session_factory
from delivery_service.infra.events.outbox import models as outbox_models  # noqa: F401
from delivery_service.infra.messaging.dlq import models as dlq_models  # noqa: F401

if TYPE_CHECKING:
    from pathlib import Path

    from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

    from delivery_service.infra.messaging.dlq import DLQAlert
    from delivery_service.infra.messaging.publisher import OutgoingMessage

# Ensure tests run without external infrastructure
os.environ.setdefault("RABBIT_ENABLED", "false")
os.environ.setdefault("LOG_CONSOLE_ENABLED", "false")
os.environ.setdefault("DLQ_ALERT_LOG_ENABLED", "false")


@pytest.fixture(autouse=True)
def _reset_settings_cache():
    """Settings loaders are lru_cached; isolate tests that change the environment."""
    clear_all_caches()
    yield
    clear_all_caches()


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture
async def db_engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine]:
    """Async engine on a temporary SQLite file with all tables created.

    Yields:
        Async SQLAlchemy engine; disposed after the test.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'delivery.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory configured exactly like the production one."""
    return create_session_factory(db_engine)


# ============================================================================
# Collaborator Fixtures
# ============================================================================


@dataclass
class FakePublisher:
    """MessagePublisher double that records every call.

    Attributes:
        calls: ``(topic, message)`` for every publish attempt, failed or not
        fail_with: Raised by every publish while set
        hang: When True, publish never returns (exercises the timeout)
    """

    calls: list[tuple[str, OutgoingMessage]] = field(default_factory=list)
    fail_with: Exception | None = None
    hang: bool = False

    async def publish(self, topic: str, message: OutgoingMessage) -> None:
        self.calls.append((topic, message))
        if self.hang:
            await asyncio.Event().wait()
        if self.fail_with is not None:
            raise self.fail_with

    @property
    def topics(self) -> list[str]:
        return [topic for topic, _ in self.calls]


@pytest.fixture
def publisher() -> FakePublisher:
    """Publisher that succeeds until ``fail_with`` is set."""
    return FakePublisher()


@pytest.fixture
def failing_publisher() -> FakePublisher:
    """Publisher whose every call raises ConnectionError."""
    return FakePublisher(fail_with=ConnectionError("broker unavailable"))


@dataclass
class RecordingEscalationSink:
    """EscalationSink double keeping every alert it receives."""

    alerts: list[DLQAlert] = field(default_factory=list)
    fail_with: Exception | None = None

    async def escalate(self, alert: DLQAlert) -> None:
        self.alerts.append(alert)
        if self.fail_with is not None:
            raise self.fail_with


@pytest.fixture
def escalation_sink() -> RecordingEscalationSink:
    return RecordingEscalationSink()


# ============================================================================
# Time Fixtures
# ============================================================================


class FakeClock:
    """Callable clock returning a fixed, manually advanced UTC time."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        """Move forward by ``timedelta(**kwargs)`` and return the new time."""
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    """Clock starting at 2026-01-01T12:00:00Z."""
    return FakeClock(datetime(2026, 1, 1, 12, 0, tzinfo=UTC))


# ============================================================================
# Settings Fixtures
# ============================================================================


@pytest.fixture
def outbox_settings() -> OutboxSettings:
    """Relay settings with the documented defaults and a short publish timeout."""
    return OutboxSettings(
        poll_interval_seconds=0.01,
        batch_size=100,
        max_retries=5,
        retry_base_delay_ms=1000,
        retry_max_delay_ms=300_000,
        publish_timeout_seconds=0.2,
        claim_lease_seconds=300,
    )


@pytest.fixture
def dlq_settings() -> DLQSettings:
    """Processor settings with the documented defaults and a short publish timeout."""
    return DLQSettings(
        poll_interval_seconds=0.01,
        batch_size=100,
        max_retries=5,
        base_delay_ms=60_000,
        publish_timeout_seconds=0.2,
        claim_lease_seconds=300,
        alert_log_enabled=False,
    )
