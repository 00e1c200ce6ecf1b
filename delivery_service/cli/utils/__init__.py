"""CLI utilities for running async operations and formatting output."""

from delivery_service.cli.utils.async_runner import coro
from delivery_service.cli.utils.formatters import (
    echo_counts,
    echo_json,
    error,
    header,
    info,
    section,
    success,
    warning,
)

__all__ = [
    "coro",
    "echo_counts",
    "echo_json",
    "error",
    "info",
    "success",
    "warning",
    "header",
    "section",
]
