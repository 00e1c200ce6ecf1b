"""Run Alembic migrations from the CLI without blocking the event loop.

Example:
    commands = get_alembic_commands()
    output = await commands.upgrade("head")
    revision = await commands.current()
"""

from __future__ import annotations

import asyncio
import io
import logging
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from alembic.config import Config

from alembic import command
from delivery_service.core.settings import get_db_settings

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parents[3]


@dataclass
class AlembicCommandConfig:
    """Where the migrations live and which database they target.

    Attributes:
        url: Database URL migrations run against
        script_location: Path to alembic scripts directory
        ini_path: Path to alembic.ini
        render_as_batch: Enable batch mode (always on for SQLite)
        compare_type: Enable type comparison in autogenerate
    """

    url: str
    script_location: str = str(PROJECT_ROOT / "alembic")
    ini_path: Path = PROJECT_ROOT / "alembic.ini"
    render_as_batch: bool = False
    compare_type: bool = True

    def get_alembic_config(self, output_buffer: io.StringIO | None = None) -> Config:
        """Build an Alembic Config that writes command output to ``output_buffer``."""
        if not self.ini_path.exists():
            raise FileNotFoundError(f"alembic.ini not found at {self.ini_path}")

        config = Config(str(self.ini_path), stdout=output_buffer or io.StringIO())
        config.set_main_option("script_location", self.script_location)
        config.set_main_option("sqlalchemy.url", self.url)

        # Read by env.py
        config.attributes["url_from_caller"] = True
        config.attributes["skip_logging_config"] = True
        config.attributes["render_as_batch"] = self.render_as_batch
        config.attributes["compare_type"] = self.compare_type
        return config


class AlembicCommands:
    """Alembic operations, each run in a worker thread.

    Alembic's env.py calls ``asyncio.run`` itself, so the commands cannot
    run on the caller's event loop.
    """

    def __init__(self, config: AlembicCommandConfig) -> None:
        self.config = config

    async def _run(self, fn: Callable[..., None], *args: Any, **kwargs: Any) -> str:
        output = io.StringIO()
        alembic_config = self.config.get_alembic_config(output)
        await asyncio.to_thread(fn, alembic_config, *args, **kwargs)
        return output.getvalue()

    async def upgrade(self, revision: str = "head", *, sql: bool = False) -> str:
        """Upgrade to ``revision`` and return Alembic's output (the SQL with ``sql=True``)."""
        logger.info("Upgrading database", extra={"revision": revision, "sql": sql})
        output = await self._run(command.upgrade, revision, sql=sql)
        logger.info("Upgrade completed", extra={"revision": revision})
        return output

    async def downgrade(self, revision: str = "-1", *, sql: bool = False) -> str:
        """Downgrade to ``revision``; the default steps back one revision."""
        logger.info("Downgrading database", extra={"revision": revision, "sql": sql})
        output = await self._run(command.downgrade, revision, sql=sql)
        logger.info("Downgrade completed", extra={"revision": revision})
        return output

    async def current(self, *, verbose: bool = False) -> str:
        return await self._run(command.current, verbose=verbose)


def get_alembic_commands(url: str | None = None) -> AlembicCommands:
    """AlembicCommands for ``url`` (default: DB_DATABASE_URL)."""
    url = url or get_db_settings().database_url
    return AlembicCommands(AlembicCommandConfig(url=url))


__all__ = [
    "AlembicCommandConfig",
    "AlembicCommands",
    "get_alembic_commands",
]
