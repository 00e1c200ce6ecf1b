"""Background workers: the outbox relay and the dead letter processor.

The process entry point lives in ``delivery_service.workers.runner``.
"""

from .base import PollingWorker

__all__ = ["PollingWorker"]
