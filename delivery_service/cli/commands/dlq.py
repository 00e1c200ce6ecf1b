"""Dead letter commands.

Example:bash
    # Pending/processed/failed counts and pending per topic
    delivery-service dlq stats

    # Force an immediate retry of one dead letter
    delivery-service dlq retry 0193b0c2-...
"""

import sys

import click

from delivery_service.cli.utils import coro, echo_counts, echo_json, error, header, section, success, warning
from delivery_service.core.exceptions import DeliveryError, MessageBusyError


@click.group(name="dlq")
def dlq() -> None:
    """Dead letter queue commands."""


@dlq.command()
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["table", "json"]),
    default="table",
    help="Output format",
)
@coro
async def stats(output_format: str) -> None:
    """Show dead letter counts per status and pending per topic."""
    from delivery_service.infra.database import get_async_session
    from delivery_service.infra.messaging.dlq import load_statistics

    try:
        async with get_async_session() as session:
            statistics = await load_statistics(session)
    except Exception as e:
        error(f"Failed to read DLQ statistics: {e}")
        sys.exit(1)

    if output_format == "json":
        echo_json(statistics.to_dict())
        return

    header("Dead Letters")
    echo_counts(
        {
            "pending": statistics.pending,
            "processed": statistics.processed,
            "failed": statistics.failed,
        }
    )
    section("Pending by topic")
    echo_counts(statistics.by_topic)


@dlq.command()
@click.argument("message_id")
@coro
async def retry(message_id: str) -> None:
    """Reset MESSAGE_ID and republish it now."""
    from delivery_service.core.settings import get_dlq_settings
    from delivery_service.infra.database import get_session_factory
    from delivery_service.infra.messaging.broker import RabbitPublisher
    from delivery_service.infra.messaging.dlq import (
        DLQProcessor,
        WebhookEscalationSink,
        build_escalation_sink,
    )

    escalation = None
    try:
        settings = get_dlq_settings()
        escalation = build_escalation_sink(settings)
        async with RabbitPublisher.from_settings() as publisher:
            processor = DLQProcessor(
                get_session_factory(),
                publisher,
                settings,
                escalation=escalation,
            )
            republished = await processor.retry_message(message_id)
    except MessageBusyError as e:
        warning(f"{e.detail}; try again once its lease expires")
        sys.exit(1)
    except DeliveryError as e:
        error(e.detail)
        sys.exit(1)
    except Exception as e:
        error(f"Retry failed: {e}")
        sys.exit(1)
    finally:
        if isinstance(escalation, WebhookEscalationSink):
            await escalation.close()

    if republished:
        success(f"Dead letter {message_id} republished")
    else:
        warning(f"Dead letter {message_id} could not be republished, it was rescheduled")
