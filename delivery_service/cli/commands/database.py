"""Database management commands.

Example:bash
    # Verify connectivity
    delivery-service db init

    # Create tables directly (local SQLite)
    delivery-service db init --create-tables

    # Apply all pending migrations
    delivery-service db upgrade
"""

import sys

import click

from delivery_service.cli.utils import coro, error, info, success


@click.group(name="db")
def db() -> None:
    """Database management commands."""


@db.command()
@click.option(
    "--create-tables",
    is_flag=True,
    help="Create the outbox and dead letter tables without migrations",
)
@coro
async def init(create_tables: bool) -> None:
    """Initialize database connection and verify connectivity."""
    from delivery_service.infra.database import get_engine, init_database

    info(f"Connecting to: {get_engine().url.render_as_string(hide_password=True)}")
    try:
        await init_database(create_tables=create_tables)
    except Exception as e:
        error(f"Failed to connect to database: {e}")
        sys.exit(1)

    success("Database connected successfully!")
    if create_tables:
        success("Tables created")


@db.command()
@click.argument("revision", default="head")
@click.option("--sql", is_flag=True, help="Print SQL instead of executing it")
@coro
async def upgrade(revision: str, sql: bool) -> None:
    """Apply migrations up to REVISION (default: head)."""
    from delivery_service.infra.database.alembic import get_alembic_commands

    info(f"Upgrading database to {revision}...")
    try:
        output = await get_alembic_commands().upgrade(revision, sql=sql)
    except Exception as e:
        error(f"Migration failed: {e}")
        sys.exit(1)

    if output:
        click.echo(output)
    success(f"Database upgraded to {revision}")


@db.command()
@click.argument("revision", default="-1")
@coro
async def downgrade(revision: str) -> None:
    """Revert migrations down to REVISION (default: one step)."""
    from delivery_service.infra.database.alembic import get_alembic_commands

    info(f"Downgrading database to {revision}...")
    try:
        output = await get_alembic_commands().downgrade(revision)
    except Exception as e:
        error(f"Downgrade failed: {e}")
        sys.exit(1)

    if output:
        click.echo(output)
    success(f"Database downgraded to {revision}")


@db.command()
@coro
async def current() -> None:
    """Show the current migration revision."""
    from delivery_service.infra.database.alembic import get_alembic_commands

    try:
        output = await get_alembic_commands().current(verbose=True)
    except Exception as e:
        error(f"Failed to read current revision: {e}")
        sys.exit(1)

    click.echo(output.strip() or "No migrations applied")
