"""LOG_ settings consumed by setup_logging()."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class LoggingSettings(BaseSettings):
    """Structured logging for the CLI and the worker process.

    Example: LOG_LEVEL=DEBUG LOG_JSON=false LOG_FILE_PATH=logs/delivery.jsonl
    """

    service_name: str = Field(
        default="delivery-service",
        description="Value of the `service` field on every JSON record.",
    )
    level: LogLevel = Field(
        default="INFO",
        description="Root logger level; lowercase accepted.",
    )
    json_logs: bool = Field(
        default=True,
        validation_alias=AliasChoices("log_json", "json_logs"),
        description="JSONL output (LOG_JSON); false switches to plain text.",
    )
    console_enabled: bool = Field(
        default=True,
        description="Write records to stderr.",
    )
    file_path: Path | None = Field(
        default=None,
        description="Path to a rotating JSONL log file. None disables file logging.",
    )
    file_max_bytes: int = Field(
        default=10_485_760,  # 10 MiB
        ge=1024,
        le=1_073_741_824,
        description="Maximum log file size in bytes before rotation.",
    )
    file_backup_count: int = Field(
        default=5,
        ge=0,
        le=100,
        description="Number of rotated log files to keep.",
    )
    include_context: bool = Field(
        default=True,
        description="Inject contextvars log context (set_log_context) into records.",
    )
    capture_warnings: bool = Field(
        default=True,
        description="Forward Python warnings to the logging system.",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        env_ignore_empty=True,
    )

    @field_validator("level", mode="before")
    @classmethod
    def normalize_level(cls, v: str | None) -> str | None:
        """Normalize log level to uppercase."""
        if isinstance(v, str):
            return v.upper()
        return v

    def to_logging_kwargs(self) -> dict[str, Any]:
        """Return kwargs suitable for configure_logging(...)."""
        return {
            "service_name": self.service_name,
            "log_level": self.level,
            "json_logs": self.json_logs,
            "console_enabled": self.console_enabled,
            "file_path": str(self.file_path) if self.file_path else None,
            "file_max_bytes": self.file_max_bytes,
            "file_backup_count": self.file_backup_count,
            "include_context": self.include_context,
            "capture_warnings": self.capture_warnings,
        }


__all__ = ["LogLevel", "LoggingSettings"]
