"""Dead letter processor settings.

Values mirror the operational defaults of the dead letter sweep:
a five minute cadence, five attempts and a one minute backoff base.
"""

from __future__ import annotations

from pydantic import Field, HttpUrl, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DLQSettings(BaseSettings):
    """Configuration for the dead letter processor.

    Environment variables use DLQ_ prefix (e.g., DLQ_MAX_RETRIES=5).

    Retry delay after the n-th failed attempt is
    ``base_delay_ms * 2**n``, capped by ``max_delay_ms`` when set.

    Example:
        # Faster sweep for a staging environment
        settings = DLQSettings(poll_interval_seconds=30, base_delay_ms=5000)
    """

    # ─────────────────────────────────────────────────────
    # Enable/disable toggle
    # ─────────────────────────────────────────────────────
    enabled: bool = Field(
        default=True,
        description="Run the dead letter processor alongside the service.",
    )

    # ─────────────────────────────────────────────────────
    # Sweep cadence
    # ─────────────────────────────────────────────────────
    poll_interval_seconds: float = Field(
        default=300.0,
        gt=0,
        le=86400,
        description="Seconds between dead letter sweeps.",
    )
    batch_size: int = Field(
        default=100,
        ge=1,
        le=10000,
        description="Maximum dead letters retried per sweep.",
    )

    # ─────────────────────────────────────────────────────
    # Retry policy
    # ─────────────────────────────────────────────────────
    max_retries: int = Field(
        default=5,
        ge=1,
        le=100,
        description="Attempts before a dead letter is escalated.",
    )
    base_delay_ms: int = Field(
        default=60000,
        ge=0,
        description="Base of the exponential retry delay in milliseconds.",
    )
    max_delay_ms: int | None = Field(
        default=None,
        ge=0,
        description="Cap on a single retry delay (None = uncapped).",
    )
    publish_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        le=300,
        description="Timeout for a single republish call.",
    )
    claim_lease_seconds: int = Field(
        default=300,
        ge=1,
        description="Seconds a claimed message stays locked (claimed_until) against other processors.",
    )
    shutdown_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        le=600,
        description="Time allowed for the in-flight sweep to finish on stop.",
    )

    # ─────────────────────────────────────────────────────
    # Escalation
    # ─────────────────────────────────────────────────────
    alert_webhook_url: HttpUrl | None = Field(
        default=None,
        description="Webhook notified when a dead letter exhausts its retries.",
    )
    alert_log_enabled: bool = Field(
        default=True,
        description="Log escalations at ERROR level when no webhook is configured.",
    )
    alert_timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        le=60,
        description="HTTP timeout for the escalation webhook.",
    )

    model_config = SettingsConfigDict(
        env_prefix="DLQ_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
        extra="ignore",
        env_ignore_empty=True,
    )

    @model_validator(mode="after")
    def validate_delays(self) -> DLQSettings:
        """Ensure the delay cap is not below the base delay and a lease outlives a publish."""
        if self.max_delay_ms is not None and self.max_delay_ms < self.base_delay_ms:
            msg = (
                f"max_delay_ms ({self.max_delay_ms}) must be >= "
                f"base_delay_ms ({self.base_delay_ms})"
            )
            raise ValueError(msg)
        if self.claim_lease_seconds <= self.publish_timeout_seconds:
            msg = (
                f"claim_lease_seconds ({self.claim_lease_seconds}) must be > "
                f"publish_timeout_seconds ({self.publish_timeout_seconds})"
            )
            raise ValueError(msg)
        return self


__all__ = ["DLQSettings"]
