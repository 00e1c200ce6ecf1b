"""CLI command modules."""

from delivery_service.cli.commands import database, dlq, outbox, run

__all__ = [
    "database",
    "dlq",
    "outbox",
    "run",
]
