"""Outbox inspection commands."""

import sys

import click

from delivery_service.cli.utils import coro, echo_counts, echo_json, error, header


@click.group(name="outbox")
def outbox() -> None:
    """Transactional outbox commands."""


@outbox.command()
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["table", "json"]),
    default="table",
    help="Output format",
)
@coro
async def stats(output_format: str) -> None:
    """Show outbox event counts per status."""
    from delivery_service.infra.database import get_async_session
    from delivery_service.infra.events.outbox import OutboxRepository

    try:
        async with get_async_session() as session:
            counts = await OutboxRepository().count_by_status(session)
    except Exception as e:
        error(f"Failed to read outbox statistics: {e}")
        sys.exit(1)

    data = {status.value: count for status, count in counts.items()}
    if output_format == "json":
        echo_json(data)
        return

    header("Outbox Events")
    echo_counts(data)
