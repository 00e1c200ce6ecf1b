"""Prometheus metrics for the delivery pipeline.

All metrics live on a dedicated REGISTRY so tests and embedding
applications can collect them without the default process collectors.
"""

from __future__ import annotations

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram

REGISTRY = CollectorRegistry()

PUBLISH_LATENCY_BUCKETS = (0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0)

# ============================================================================
# Outbox relay
# ============================================================================

outbox_events_enqueued_total = Counter(
    "outbox_events_enqueued_total",
    "Events staged in the outbox by the writer, labeled by event type.",
    ["event_type"],
    registry=REGISTRY,
)

outbox_events_published_total = Counter(
    "outbox_events_published_total",
    "Outbox events published to the broker and marked PROCESSED.",
    ["event_type"],
    registry=REGISTRY,
)

outbox_publish_failures_total = Counter(
    "outbox_publish_failures_total",
    "Failed outbox publish attempts. outcome=retry|failed",
    ["event_type", "outcome"],
    registry=REGISTRY,
)

outbox_claims_released_total = Counter(
    "outbox_claims_released_total",
    "PROCESSING claims returned to PENDING after their lease expired.",
    registry=REGISTRY,
)

outbox_publish_duration_seconds = Histogram(
    "outbox_publish_duration_seconds",
    "Duration of a single outbox publish call.",
    buckets=PUBLISH_LATENCY_BUCKETS,
    registry=REGISTRY,
)

# ============================================================================
# Dead letter processor
# ============================================================================

dlq_messages_recorded_total = Counter(
    "dlq_messages_recorded_total",
    "Dead letters written to the store by consumers, labeled by original topic.",
    ["topic"],
    registry=REGISTRY,
)

dlq_retry_attempts_total = Counter(
    "dlq_retry_attempts_total",
    "Dead letter republish attempts. outcome=processed|rescheduled|escalated",
    ["topic", "outcome"],
    registry=REGISTRY,
)

dlq_retry_delay_seconds = Histogram(
    "dlq_retry_delay_seconds",
    "Backoff scheduled after a failed dead letter retry.",
    buckets=(1.0, 10.0, 60.0, 120.0, 300.0, 600.0, 1800.0, 3600.0, 7200.0),
    registry=REGISTRY,
)

dlq_escalations_total = Counter(
    "dlq_escalations_total",
    "Dead letters escalated after exhausting retries. delivered=true|false",
    ["topic", "delivered"],
    registry=REGISTRY,
)

# ============================================================================
# Workers
# ============================================================================

worker_ticks_total = Counter(
    "delivery_worker_ticks_total",
    "Polling worker ticks. outcome=ok|error",
    ["worker", "outcome"],
    registry=REGISTRY,
)

worker_running = Gauge(
    "delivery_worker_running",
    "1 while the polling worker loop is running.",
    ["worker"],
    registry=REGISTRY,
)
