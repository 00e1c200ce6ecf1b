"""Structured logging: JSONL output, non-blocking handlers and context binding.

Example:
    from delivery_service.infra.logging import log_context, setup_logging

    setup_logging()
    with log_context(message_id="0193..."):
        logger.info("Retrying dead letter")
"""

from .config import configure_logging, setup_logging, shutdown
from .context import (
    ContextInjectingFilter,
    clear_log_context,
    get_log_context,
    log_context,
    set_log_context,
)
from .formatters import JSONFormatter

__all__ = [
    "ContextInjectingFilter",
    "JSONFormatter",
    "clear_log_context",
    "configure_logging",
    "get_log_context",
    "log_context",
    "set_log_context",
    "setup_logging",
    "shutdown",
]
