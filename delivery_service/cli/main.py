"""Main CLI entry point for delivery-service commands."""

import click

from delivery_service.cli.commands import database, dlq, outbox, run
from delivery_service.infra.logging.config import setup_logging


@click.group()
@click.version_option(version="0.1.0", prog_name="delivery-service")
@click.pass_context
def cli(ctx: click.Context) -> None:
    """Delivery Service CLI - reliable event delivery workers and tools.

    \b
    Command Groups:
      db         Database connectivity and migrations
      outbox     Transactional outbox inspection
      dlq        Dead letter statistics and manual retries
      run        Run the outbox relay and the dead letter processor

    \b
    Quick Start:
      delivery-service db upgrade        # Apply migrations
      delivery-service run               # Start the workers
      delivery-service dlq stats         # Inspect dead letters
    """
    ctx.ensure_object(dict)


cli.add_command(database.db)
cli.add_command(outbox.outbox)
cli.add_command(dlq.dlq)
cli.add_command(run.run)


def main() -> None:
    """Entry point for CLI."""
    setup_logging()
    cli(obj={})


if __name__ == "__main__":
    main()
