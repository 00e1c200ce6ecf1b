"""Outbox relay settings."""

from __future__ import annotations

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class OutboxSettings(BaseSettings):
    """Configuration for the outbox relay worker.

    Environment variables use OUTBOX_ prefix (e.g., OUTBOX_BATCH_SIZE=50).

    Example:
        settings = OutboxSettings(poll_interval_seconds=0.5, max_retries=3)
    """

    enabled: bool = Field(
        default=True,
        description="Run the outbox relay alongside the service.",
    )
    poll_interval_seconds: float = Field(
        default=1.0,
        gt=0,
        le=3600,
        description="Seconds between relay ticks when the outbox is idle.",
    )
    batch_size: int = Field(
        default=100,
        ge=1,
        le=10000,
        description="Maximum events selected per tick.",
    )
    max_retries: int = Field(
        default=5,
        ge=1,
        le=100,
        description="Failed publish attempts before an event becomes FAILED.",
    )
    retry_base_delay_ms: int = Field(
        default=1000,
        ge=0,
        description="Base of the exponential retry delay (0 = retry on next tick).",
    )
    retry_max_delay_ms: int | None = Field(
        default=300000,
        ge=0,
        description="Cap on a single retry delay (None = uncapped).",
    )
    publish_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        le=300,
        description="Timeout for a single publish call.",
    )
    claim_lease_seconds: int = Field(
        default=300,
        ge=1,
        description="Age after which a PROCESSING claim is considered abandoned.",
    )
    shutdown_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        le=600,
        description="Time allowed for the in-flight tick to finish on stop.",
    )

    model_config = SettingsConfigDict(
        env_prefix="OUTBOX_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
        extra="ignore",
        env_ignore_empty=True,
    )

    @model_validator(mode="after")
    def validate_claim_lease(self) -> OutboxSettings:
        """A claim must not be released as stale while its publish can still succeed."""
        if self.claim_lease_seconds <= self.publish_timeout_seconds:
            msg = (
                f"claim_lease_seconds ({self.claim_lease_seconds}) must be > "
                f"publish_timeout_seconds ({self.publish_timeout_seconds})"
            )
            raise ValueError(msg)
        return self


__all__ = ["OutboxSettings"]
