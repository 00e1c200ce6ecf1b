"""RabbitMQ settings for the event publisher.

Either set ``RABBIT_AMQP_URI`` or the individual ``RABBIT_HOST`` /
``RABBIT_PORT`` / ``RABBIT_USERNAME`` / ``RABBIT_PASSWORD`` /
``RABBIT_VHOST`` variables. A URI wins: its parts are copied onto the
component fields so ``url`` is always derived the same way.
"""

from __future__ import annotations

from typing import Literal
from urllib.parse import quote, unquote, urlparse

from pydantic import Field, SecretStr, computed_field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ExchangeType = Literal["topic", "direct", "fanout"]


class RabbitSettings(BaseSettings):
    """Broker connection and target exchange.

    Every event goes to one exchange; the routing key is the outbox
    ``event_type`` or the dead letter's ``original_topic``.
    """

    enabled: bool = Field(
        default=True,
        description="Publish to RabbitMQ. Workers refuse to start when disabled.",
    )
    amqp_uri: str | None = Field(
        default=None,
        description="Full AMQP URI; takes precedence over the component fields.",
    )

    host: str = Field(default="localhost", min_length=1, max_length=255)
    port: int = Field(default=5672, ge=1, le=65535, description="5671 for TLS.")
    username: str = Field(default="guest", min_length=1, max_length=100)
    password: SecretStr = Field(default=SecretStr("guest"))
    vhost: str = Field(default="/", description="Leading slash optional.")
    ssl_enabled: bool = Field(default=False, description="Use amqps://.")

    exchange_name: str = Field(
        default="domain-events",
        min_length=1,
        max_length=100,
        pattern=r"^[a-zA-Z0-9_.-]+$",
        description="Durable exchange the relay and the DLQ processor publish to.",
    )
    exchange_type: ExchangeType = Field(
        default="topic",
        description="Topic exchanges let consumers bind on event type patterns.",
    )

    connection_name: str = Field(
        default="delivery-service",
        min_length=1,
        max_length=100,
        description="Client connection name shown by the management UI.",
    )
    connection_timeout: float = Field(
        default=10.0,
        ge=0.1,
        le=120.0,
        description="Seconds allowed for the first connect before a publish fails.",
    )
    graceful_timeout: float = Field(
        default=15.0,
        ge=0.1,
        le=300.0,
        description="Seconds FastStream waits for in-flight work on close.",
    )

    model_config = SettingsConfigDict(
        env_prefix="RABBIT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
        populate_by_name=True,
        extra="ignore",
        env_ignore_empty=True,
    )

    @model_validator(mode="after")
    def _apply_uri(self) -> RabbitSettings:
        """Copy the URI's parts onto the component fields (the model is frozen)."""
        if not self.amqp_uri:
            return self

        parsed = urlparse(self.amqp_uri)
        overrides: dict[str, object] = {
            "host": parsed.hostname,
            "port": parsed.port,
            "username": unquote(parsed.username) if parsed.username else None,
            "password": SecretStr(unquote(parsed.password)) if parsed.password else None,
            "vhost": parsed.path.lstrip("/") if parsed.path not in ("", "/") else None,
        }
        for name, value in overrides.items():
            if value is not None:
                object.__setattr__(self, name, value)
        if parsed.scheme == "amqps":
            object.__setattr__(self, "ssl_enabled", True)
        return self

    @computed_field  # type: ignore[prop-decorator]
    @property
    def url(self) -> str:
        """AMQP URI built from the component fields, credentials percent-encoded."""
        password = self.password.get_secret_value()
        credentials = quote(self.username, safe="")
        if password:
            credentials += ":" + quote(password, safe="")

        vhost = self.vhost.strip("/")
        scheme = "amqps" if self.ssl_enabled else "amqp"
        return f"{scheme}://{credentials}@{self.host}:{self.port}/{quote(vhost, safe='')}"

    @property
    def is_configured(self) -> bool:
        return self.enabled and bool(self.host)

    def get_url(self) -> str:
        """Return ``url``.

        Raises:
            ValueError: If RabbitMQ is disabled.
        """
        if not self.enabled:
            raise ValueError("RabbitMQ is not enabled")
        return self.url


__all__ = ["ExchangeType", "RabbitSettings"]
