"""Alembic environment for the outbox and dead letter tables.

The URL comes from ``DB_DATABASE_URL`` unless AlembicCommands already set
``sqlalchemy.url`` (``url_from_caller``). Online runs use a throwaway async
engine; SQLite always runs in batch mode so ALTERs are rewritten as table
copies.
"""

from __future__ import annotations

import asyncio
from logging.config import fileConfig
from typing import TYPE_CHECKING, Any

from sqlalchemy import pool
from sqlalchemy.ext.asyncio import async_engine_from_config

from alembic import context

from delivery_service.core.database.base import Base
from delivery_service.core.settings import get_db_settings

# Registers outbox_events and dead_letter_events on Base.metadata.
from delivery_service.infra.events.outbox import models as outbox_models  # noqa: F401
from delivery_service.infra.messaging.dlq import models as dlq_models  # noqa: F401

if TYPE_CHECKING:
    from alembic.operations.ops import MigrationScript
    from alembic.runtime.migration import MigrationContext
    from sqlalchemy.engine import Connection

config = context.config

if config.config_file_name is not None and not config.attributes.get("skip_logging_config"):
    fileConfig(config.config_file_name, disable_existing_loggers=False)

if not config.attributes.get("url_from_caller"):
    db_settings = get_db_settings()
    if db_settings.is_configured:
        config.set_main_option("sqlalchemy.url", db_settings.database_url)


def _skip_alembic_version(obj: Any, name: str | None, type_: str, *_: Any) -> bool:
    return not (type_ == "table" and name == "alembic_version")


def _drop_empty_autogenerate(
    _context: MigrationContext,
    _revision: Any,
    directives: list[MigrationScript],
) -> None:
    if not getattr(config.cmd_opts, "autogenerate", False) or not directives:
        return
    upgrade_ops = directives[0].upgrade_ops
    if upgrade_ops is not None and upgrade_ops.is_empty():
        directives[:] = []
        print("No schema changes, revision not written")


def _configure(**kwargs: Any) -> None:
    context.configure(
        target_metadata=Base.metadata,
        compare_type=config.attributes.get("compare_type", True),
        include_object=_skip_alembic_version,
        **kwargs,
    )
    with context.begin_transaction():
        context.run_migrations()


def _run_sync(connection: Connection) -> None:
    batch = connection.dialect.name == "sqlite" or config.attributes.get("render_as_batch", False)
    _configure(
        connection=connection,
        render_as_batch=batch,
        process_revision_directives=_drop_empty_autogenerate,
    )


async def _run_online() -> None:
    engine = async_engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    try:
        async with engine.connect() as connection:
            await connection.run_sync(_run_sync)
    finally:
        await engine.dispose()


if context.is_offline_mode():
    _configure(
        url=config.get_main_option("sqlalchemy.url"),
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
else:
    asyncio.run(_run_online())
