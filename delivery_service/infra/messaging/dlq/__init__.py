"""Dead letter store, intake and retry processor.

Example:
    from delivery_service.infra.messaging.dlq import DLQProcessor, record_dead_letter

    processor = DLQProcessor(session_factory, publisher)
    await processor.start()
    stats = await processor.get_statistics()
"""

from .alerting import (
    DLQAlert,
    EscalationSink,
    LoggingEscalationSink,
    NoOpEscalationSink,
    WebhookEscalationSink,
    build_escalation_sink,
)
from .calculator import calculate_delay_ms, next_retry_time
from .headers import (
    DLQ_ORIGINAL_ID_HEADER,
    DLQ_RETRY_COUNT_HEADER,
    DLQ_RETRY_HEADER,
    build_retry_headers,
    is_dlq_retry,
)
from .intake import record_dead_letter
from .models import DeadLetterEvent, DeadLetterStatus
from .processor import DLQProcessor, DLQStatistics, build_retry_message, load_statistics
from .repository import DeadLetterRepository

__all__ = [
    "DLQ_ORIGINAL_ID_HEADER",
    "DLQ_RETRY_COUNT_HEADER",
    "DLQ_RETRY_HEADER",
    "DLQAlert",
    "DLQProcessor",
    "DLQStatistics",
    "DeadLetterEvent",
    "DeadLetterRepository",
    "DeadLetterStatus",
    "EscalationSink",
    "LoggingEscalationSink",
    "NoOpEscalationSink",
    "WebhookEscalationSink",
    "build_escalation_sink",
    "build_retry_headers",
    "build_retry_message",
    "calculate_delay_ms",
    "is_dlq_retry",
    "load_statistics",
    "next_retry_time",
    "record_dead_letter",
]
