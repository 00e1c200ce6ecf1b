"""Root logger wiring for the CLI and the worker process.

Records go from a QueueHandler on the root logger to a QueueListener
thread that owns the real handlers (stderr and an optional rotating file),
so a slow disk never stalls the relay or the DLQ processor loop.
ContextInjectingFilter sits on the QueueHandler and stamps the current
log context (worker, message_id, topic...) onto every record before it
crosses threads.
"""

from __future__ import annotations

import atexit
import logging
import logging.config
from logging.handlers import QueueHandler, QueueListener, RotatingFileHandler
from pathlib import Path
from queue import Queue
from typing import TYPE_CHECKING, Any

from delivery_service.infra.logging.context import ContextInjectingFilter
from delivery_service.infra.logging.formatters import JSONFormatter

if TYPE_CHECKING:
    from delivery_service.core.settings.logs import LoggingSettings

logger = logging.getLogger(__name__)

_log_queue: Queue[logging.LogRecord] | None = None
_listener: QueueListener | None = None
_queue_handler: QueueHandler | None = None
_LOGGING_INITIALIZED = False

TEXT_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"
TEXT_DATEFMT = "%Y-%m-%d %H:%M:%S"

# aio-pika connection chatter drowns out relay logs at INFO.
_QUIET_LOGGERS = {"aiormq": "WARNING", "aio_pika": "WARNING"}


def shutdown() -> None:
    """Flush queued records and detach the queue handler. Idempotent."""
    global _log_queue, _listener, _queue_handler

    if _listener is not None:
        _listener.stop()
        for handler in _listener.handlers:
            handler.close()
        _listener = None

    if _queue_handler is not None:
        logging.getLogger().removeHandler(_queue_handler)
        _queue_handler = None

    _log_queue = None


def setup_logging(
    log_settings: LoggingSettings | None = None,
    *,
    force: bool = False,
    **configure_kwargs: Any,
) -> None:
    """Configure logging from ``LOG_`` settings, once per process.

    Later calls are no-ops unless ``force`` is set. Keyword arguments
    override individual settings (same names as configure_logging()).
    """
    global _LOGGING_INITIALIZED

    if _LOGGING_INITIALIZED and not force:
        return

    if log_settings is None:
        from delivery_service.core.settings import get_logging_settings

        log_settings = get_logging_settings()

    configure_logging(**{**log_settings.to_logging_kwargs(), **configure_kwargs})
    _LOGGING_INITIALIZED = True


def configure_logging(
    log_level: str = "INFO",
    file_path: str | Path | None = None,
    json_logs: bool = True,
    console_enabled: bool = True,
    include_context: bool = True,
    capture_warnings: bool = True,
    file_max_bytes: int = 10 * 1024 * 1024,
    file_backup_count: int = 5,
    service_name: str = "delivery-service",
) -> None:
    """Replace the root logger's handlers.

    With neither console nor file output enabled only the levels are set
    and no listener thread is started.

    Args:
        log_level: Root level name.
        file_path: Rotating log file; parent directories are created.
        json_logs: JSONL output instead of the plain text format.
        console_enabled: Write to stderr.
        include_context: Copy log context fields onto records.
        capture_warnings: Route ``warnings.warn`` through logging.
        file_max_bytes: Rotation threshold.
        file_backup_count: Rotated files kept.
        service_name: ``service`` field on every JSON record.
    """
    global _log_queue, _listener, _queue_handler

    shutdown()
    logging.captureWarnings(capture_warnings)

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "root": {"level": log_level.upper(), "handlers": []},
            "loggers": {name: {"level": level} for name, level in _QUIET_LOGGERS.items()},
        }
    )

    path = Path(file_path) if file_path else None
    handlers = _build_handlers(
        formatter=_build_formatter(json_logs, service_name),
        console=console_enabled,
        path=path,
        max_bytes=file_max_bytes,
        backup_count=file_backup_count,
    )
    if not handlers:
        return

    _log_queue = Queue()
    _listener = QueueListener(_log_queue, *handlers, respect_handler_level=True)
    _listener.start()
    atexit.register(shutdown)

    _queue_handler = QueueHandler(_log_queue)
    if include_context:
        _queue_handler.addFilter(ContextInjectingFilter())
    logging.getLogger().addHandler(_queue_handler)

    logger.debug(
        "Logging configured",
        extra={"log_level": log_level, "json_logs": json_logs, "file_path": str(path) if path else None},
    )


def _build_handlers(
    *,
    formatter: logging.Formatter,
    console: bool,
    path: Path | None,
    max_bytes: int,
    backup_count: int,
) -> list[logging.Handler]:
    handlers: list[logging.Handler] = []
    if console:
        handlers.append(logging.StreamHandler())
    if path:
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            RotatingFileHandler(path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8")
        )
    for handler in handlers:
        handler.setFormatter(formatter)
    return handlers


def _build_formatter(json_logs: bool, service_name: str) -> logging.Formatter:
    if json_logs:
        return JSONFormatter(static={"service": service_name})
    return logging.Formatter(fmt=TEXT_FORMAT, datefmt=TEXT_DATEFMT)


__all__ = ["configure_logging", "setup_logging", "shutdown"]
