"""Retry headers attached to republished dead letters.

Consumers use these headers to recognise a redelivery and correlate it with
the stored dead letter. All header values are strings for AMQP
compatibility.
"""

from __future__ import annotations

from typing import Any

# ─────────────────────────────────────────────────────
# Header key constants (x- prefix for custom headers)
# ─────────────────────────────────────────────────────
DLQ_RETRY_HEADER = "x-dlq-retry"
DLQ_RETRY_COUNT_HEADER = "x-dlq-retry-count"
DLQ_ORIGINAL_ID_HEADER = "x-dlq-original-id"


def build_retry_headers(
    metadata: dict[str, Any] | None,
    *,
    message_id: Any,
    retry_count: int,
) -> dict[str, str]:
    """Merge the retry markers over the headers stored with the dead letter.

    Args:
        metadata: Stored metadata bag; its ``headers`` entry, when a mapping,
            supplies the original headers.
        message_id: Dead letter id, sent as ``x-dlq-original-id``.
        retry_count: Attempt number of this republish (stored count + 1).

    Returns:
        New header dict; the stored metadata is not modified.
    """
    original = (metadata or {}).get("headers")
    headers: dict[str, str] = {}
    if isinstance(original, dict):
        headers.update({str(k): str(v) for k, v in original.items()})

    headers[DLQ_RETRY_HEADER] = "true"
    headers[DLQ_RETRY_COUNT_HEADER] = str(retry_count)
    headers[DLQ_ORIGINAL_ID_HEADER] = str(message_id)
    return headers


def get_message_key(metadata: dict[str, Any] | None, message_id: Any) -> str:
    """Partition key for the republish: ``metadata["key"]`` or the dead letter id."""
    key = (metadata or {}).get("key")
    return str(key) if key else str(message_id)


def is_dlq_retry(headers: dict[str, Any] | None) -> bool:
    """Return True if an incoming message is a dead letter redelivery."""
    if not headers:
        return False
    return str(headers.get(DLQ_RETRY_HEADER, "")).lower() == "true"


__all__ = [
    "DLQ_ORIGINAL_ID_HEADER",
    "DLQ_RETRY_COUNT_HEADER",
    "DLQ_RETRY_HEADER",
    "build_retry_headers",
    "get_message_key",
    "is_dlq_retry",
]
