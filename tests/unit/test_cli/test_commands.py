"""Tests for the delivery-service CLI commands.

Testing approach:
- Uses Click's CliRunner for command invocation
- Mocks the database session and worker layer so no database or broker is needed
- Tests output formatting (table and JSON) and exit codes
"""

from contextlib import asynccontextmanager
import json
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

from click.testing import CliRunner
import pytest

from delivery_service.cli.main import cli
from delivery_service.core.exceptions import (
    MessageAlreadyProcessedError,
    MessageBusyError,
    MessageNotFoundError,
)
from delivery_service.infra.events.outbox import OutboxStatus
from delivery_service.infra.messaging.dlq import DLQStatistics, WebhookEscalationSink

# =============================================================================
# Test Fixtures
# =============================================================================


@pytest.fixture
def cli_runner():
    """Create Click CLI runner for testing commands."""
    return CliRunner()


@pytest.fixture
def mock_database():
    """Patch session access so commands never open a real database."""
    session = MagicMock(name="session")

    @asynccontextmanager
    async def fake_session():
        yield session

    with (
        patch("delivery_service.infra.database.get_async_session", fake_session),
        patch("delivery_service.infra.database.get_session_factory", MagicMock()),
        patch("delivery_service.infra.database.close_database", AsyncMock()) as close,
    ):
        yield close


@pytest.fixture
def mock_publisher():
    """Patch RabbitPublisher.from_settings with an async context manager."""
    publisher = MagicMock(name="publisher")
    publisher.__aenter__ = AsyncMock(return_value=publisher)
    publisher.__aexit__ = AsyncMock(return_value=None)

    with patch(
        "delivery_service.infra.messaging.broker.RabbitPublisher.from_settings",
        return_value=publisher,
    ):
        yield publisher


@pytest.fixture
def mock_processor():
    """Patch DLQProcessor; the instance's retry_message is an AsyncMock."""
    processor = MagicMock(name="processor")
    processor.retry_message = AsyncMock(return_value=True)

    with (
        patch("delivery_service.infra.messaging.dlq.DLQProcessor", return_value=processor),
        patch("delivery_service.infra.messaging.dlq.build_escalation_sink", MagicMock()),
    ):
        yield processor


# =============================================================================
# outbox stats
# =============================================================================


class TestOutboxStats:
    def test_table_output(self, cli_runner, mock_database):
        counts = {status: 0 for status in OutboxStatus} | {OutboxStatus.PENDING: 3}
        with patch(
            "delivery_service.infra.events.outbox.OutboxRepository.count_by_status",
            AsyncMock(return_value=counts),
        ):
            result = cli_runner.invoke(cli, ["outbox", "stats"])

        assert result.exit_code == 0, result.output
        assert "Outbox Events" in result.output
        assert "PENDING:" in result.output
        mock_database.assert_awaited_once()

    def test_json_output(self, cli_runner, mock_database):
        counts = {OutboxStatus.PENDING: 1, OutboxStatus.PROCESSED: 4}
        with patch(
            "delivery_service.infra.events.outbox.OutboxRepository.count_by_status",
            AsyncMock(return_value=counts),
        ):
            result = cli_runner.invoke(cli, ["outbox", "stats", "--format", "json"])

        assert result.exit_code == 0, result.output
        assert json.loads(result.output) == {"PENDING": 1, "PROCESSED": 4}

    def test_database_error_exits_nonzero(self, cli_runner, mock_database):
        with patch(
            "delivery_service.infra.events.outbox.OutboxRepository.count_by_status",
            AsyncMock(side_effect=RuntimeError("no such table: outbox_events")),
        ):
            result = cli_runner.invoke(cli, ["outbox", "stats"])

        assert result.exit_code == 1
        assert "no such table" in result.output
        mock_database.assert_awaited_once()


# =============================================================================
# dlq stats
# =============================================================================


class TestDLQStats:
    @pytest.fixture
    def statistics(self):
        return DLQStatistics(pending=3, processed=2, failed=1, by_topic={"order.created": 3})

    def test_table_output(self, cli_runner, mock_database, statistics):
        with patch(
            "delivery_service.infra.messaging.dlq.load_statistics",
            AsyncMock(return_value=statistics),
        ):
            result = cli_runner.invoke(cli, ["dlq", "stats"])

        assert result.exit_code == 0, result.output
        assert "Dead Letters" in result.output
        assert "Pending by topic" in result.output
        assert "order.created:" in result.output

    def test_json_output(self, cli_runner, mock_database, statistics):
        with patch(
            "delivery_service.infra.messaging.dlq.load_statistics",
            AsyncMock(return_value=statistics),
        ):
            result = cli_runner.invoke(cli, ["dlq", "stats", "--format", "json"])

        assert result.exit_code == 0, result.output
        assert json.loads(result.output) == {
            "pending": 3,
            "processed": 2,
            "failed": 1,
            "by_topic": {"order.created": 3},
        }


# =============================================================================
# dlq retry
# =============================================================================


class TestDLQRetry:
    def test_republished(self, cli_runner, mock_database, mock_publisher, mock_processor):
        message_id = str(uuid4())

        result = cli_runner.invoke(cli, ["dlq", "retry", message_id])

        assert result.exit_code == 0, result.output
        assert "republished" in result.output
        mock_processor.retry_message.assert_awaited_once_with(message_id)
        mock_publisher.__aexit__.assert_awaited_once()

    def test_rescheduled(self, cli_runner, mock_database, mock_publisher, mock_processor):
        mock_processor.retry_message.return_value = False

        result = cli_runner.invoke(cli, ["dlq", "retry", str(uuid4())])

        assert result.exit_code == 0, result.output
        assert "rescheduled" in result.output

    @pytest.mark.parametrize(
        "exc",
        [MessageNotFoundError("abc"), MessageAlreadyProcessedError("abc")],
        ids=["not-found", "already-processed"],
    )
    def test_delivery_error_exits_nonzero(
        self, cli_runner, mock_database, mock_publisher, mock_processor, exc
    ):
        mock_processor.retry_message.side_effect = exc

        result = cli_runner.invoke(cli, ["dlq", "retry", "abc"])

        assert result.exit_code == 1
        assert exc.detail in result.output
        mock_database.assert_awaited_once()

    def test_busy_message_is_reported(self, cli_runner, mock_database, mock_publisher, mock_processor):
        message_id = str(uuid4())
        mock_processor.retry_message.side_effect = MessageBusyError(message_id)

        result = cli_runner.invoke(cli, ["dlq", "retry", message_id])

        assert result.exit_code == 1
        assert "being retried by another processor" in result.output
        assert "lease expires" in result.output

    @pytest.mark.parametrize("retry_error", [None, MessageNotFoundError("abc")], ids=["ok", "error"])
    def test_webhook_sink_is_closed(
        self, cli_runner, mock_database, mock_publisher, mock_processor, retry_error
    ):
        sink = MagicMock(spec=WebhookEscalationSink)
        sink.close = AsyncMock()
        mock_processor.retry_message.side_effect = retry_error

        with patch("delivery_service.infra.messaging.dlq.build_escalation_sink", return_value=sink):
            cli_runner.invoke(cli, ["dlq", "retry", "abc"])

        sink.close.assert_awaited_once()


# =============================================================================
# Top level
# =============================================================================


def test_version(cli_runner):
    result = cli_runner.invoke(cli, ["--version"])

    assert result.exit_code == 0
    assert "0.1.0" in result.output


def test_help_lists_command_groups(cli_runner):
    result = cli_runner.invoke(cli, ["--help"])

    assert result.exit_code == 0
    for name in ("db", "outbox", "dlq", "run"):
        assert name in result.output
