"""Run the delivery workers."""

import asyncio

import click

from delivery_service.cli.utils import error, info


@click.command(name="run")
def run() -> None:
    """Run the outbox relay and the dead letter processor until SIGINT/SIGTERM.

    Workers are enabled with OUTBOX_ENABLED and DLQ_ENABLED.

    Example:
        delivery-service run
    """
    from delivery_service.core.exceptions import DeliveryError
    from delivery_service.workers.runner import run_workers

    info("Starting delivery workers. Press Ctrl+C to stop.")
    try:
        asyncio.run(run_workers())
    except DeliveryError as e:
        error(e.detail)
        raise click.Abort() from e
    except KeyboardInterrupt:
        click.echo("\nWorkers stopped")
