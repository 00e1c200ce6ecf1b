"""Custom exception classes for the delivery pipeline."""

from __future__ import annotations

from typing import Any


class DeliveryError(Exception):
    """Base delivery pipeline exception.

    All custom exceptions should inherit from this class.

    Attributes:
        detail: Human-readable error message.
        type: Error type identifier (stable, machine-readable).
        extra: Additional context-specific information about the error.

    Example:
            raise DeliveryError(
            detail="Dead letter message not found",
            type="dead-letter-not-found",
            extra={"message_id": "0193..."},
        )
    """

    def __init__(
        self,
        detail: str,
        type: str = "delivery-error",  # noqa: A002
        extra: dict[str, Any] | None = None,
    ) -> None:
        """Initialize delivery exception.

        Args:
            detail: Human-readable error message.
            type: Error type identifier.
            extra: Additional context about the error.
        """
        self.detail = detail
        self.type = type
        self.extra = extra or {}
        super().__init__(detail)

    def to_dict(self) -> dict[str, Any]:
        """Serialize for structured logs and CLI output."""
        return {"type": self.type, "detail": self.detail, **self.extra}


class InvalidPayloadError(DeliveryError):
    """Raised when an event payload cannot be stored as a JSON document."""

    def __init__(self, detail: str, extra: dict[str, Any] | None = None) -> None:
        super().__init__(detail=detail, type="invalid-payload", extra=extra)


class MessageNotFoundError(DeliveryError):
    """Raised when an operator targets a dead letter that does not exist."""

    def __init__(self, message_id: Any) -> None:
        super().__init__(
            detail=f"Dead letter message {message_id} not found",
            type="dead-letter-not-found",
            extra={"message_id": str(message_id)},
        )


class MessageAlreadyProcessedError(DeliveryError):
    """Raised when a manual retry targets an already processed dead letter."""

    def __init__(self, message_id: Any) -> None:
        super().__init__(
            detail=f"Dead letter message {message_id} already processed",
            type="dead-letter-already-processed",
            extra={"message_id": str(message_id)},
        )


class MessageBusyError(DeliveryError):
    """Raised when a manual retry targets a dead letter another processor holds a lease on."""

    def __init__(self, message_id: Any) -> None:
        super().__init__(
            detail=f"Dead letter message {message_id} is being retried by another processor",
            type="dead-letter-busy",
            extra={"message_id": str(message_id)},
        )


class PublisherNotConfiguredError(DeliveryError):
    """Raised when a worker needs the message broker but none is configured."""

    def __init__(self, detail: str = "Message broker is not configured") -> None:
        super().__init__(detail=detail, type="publisher-not-configured")


__all__ = [
    "DeliveryError",
    "InvalidPayloadError",
    "MessageAlreadyProcessedError",
    "MessageBusyError",
    "MessageNotFoundError",
    "PublisherNotConfiguredError",
]
