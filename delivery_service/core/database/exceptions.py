"""Repository-level errors.

Stage code translates these into the delivery errors in
``delivery_service.core.exceptions``; they never cross the CLI boundary.
"""
from __future__ import annotations

from typing import Any


class RepositoryError(Exception):
    """A repository call could not be completed.

    Attributes:
        message: Human readable description
        details: Lookup keys or other context, rendered after the message
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if not self.details:
            return self.message
        context = ", ".join(f"{key}={value!r}" for key, value in self.details.items())
        return f"{self.message} ({context})"


class NotFoundError(RepositoryError):
    """No row of ``model_name`` matches ``identifier``."""

    def __init__(self, model_name: str, identifier: dict[str, Any]) -> None:
        self.model_name = model_name
        self.identifier = identifier
        super().__init__(f"{model_name} not found", details=identifier)


__all__ = ["NotFoundError", "RepositoryError"]
