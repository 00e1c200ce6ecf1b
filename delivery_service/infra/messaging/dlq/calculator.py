"""Retry delay calculation.

Both pipeline stages back off exponentially: the dead letter processor
after each failed republish, the outbox relay after each failed publish.
Calculations are pure functions with no I/O.
"""

from __future__ import annotations

from datetime import datetime, timedelta


def calculate_delay_ms(
    base_delay_ms: int,
    attempt: int,
    *,
    max_delay_ms: int | None = None,
    multiplier: float = 2.0,
) -> int:
    """Calculate the retry delay for a given attempt number.

    Args:
        base_delay_ms: Delay multiplied by ``multiplier**attempt``.
        attempt: Retry count after the failure being scheduled (the first
            failure passes 1).
        max_delay_ms: Optional cap on the result.
        multiplier: Backoff multiplier.

    Returns:
        Delay in milliseconds.

    Example:
        calculate_delay_ms(60000, 1)  # 120000
        calculate_delay_ms(60000, 2)  # 240000
    """
    if base_delay_ms <= 0:
        return 0
    delay = base_delay_ms * (multiplier ** max(attempt, 0))
    if max_delay_ms is not None:
        delay = min(delay, max_delay_ms)
    return int(delay)


def next_retry_time(
    now: datetime,
    base_delay_ms: int,
    attempt: int,
    *,
    max_delay_ms: int | None = None,
) -> datetime:
    """Return ``now`` plus the backoff delay for ``attempt``."""
    delay_ms = calculate_delay_ms(base_delay_ms, attempt, max_delay_ms=max_delay_ms)
    return now + timedelta(milliseconds=delay_ms)


__all__ = ["calculate_delay_ms", "next_retry_time"]
