"""Logging configuration and structured logging for model calls."""

import json
import logging
import logging.config
from datetime import datetime, timezone
from typing import Any

logger = logging.getLogger(__name__)


class JSONFormatter(logging.Formatter):
    """Serialize log records to a compact JSON string.

    Structured data passed as extra={"structured": {...}} is merged into the
    top level of the record.
    """

    def format(self, record: logging.LogRecord) -> str:
        timestamp = (
            datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat().replace("+00:00", "Z")
        )
        log_record: dict[str, Any] = {
            "ts": timestamp,
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        structured = getattr(record, "structured", None)
        if isinstance(structured, dict):
            log_record.update(structured)

        if record.exc_info:
            log_record["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(log_record, ensure_ascii=False, default=str)


def configure_logging(level: str = "INFO", json_format: bool = True) -> None:
    """Configure root logging (JSON lines by default)."""
    formatter: dict[str, Any] = (
        {"()": JSONFormatter}
        if json_format
        else {"format": "%(asctime)s %(levelname)s %(name)s: %(message)s"}
    )
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {"default": formatter},
            "handlers": {
                "default": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                },
            },
            "root": {
                "level": level.upper(),
                "handlers": ["default"],
            },
            "loggers": {
                # Request lines from the SDK's HTTP client are noise at INFO
                "httpx": {"level": "WARNING"},
            },
        }
    )


class StructuredGenerationLogger:
    """Structured logger for model calls and retries."""

    def log_call(
        self, kind: str, outcome: str, latency_ms: float, error_reason: str | None = None
    ) -> None:
        """Log one model call with structured data."""
        log_data: dict[str, Any] = {
            "kind": kind,
            "outcome": outcome,
            "latency_ms": round(latency_ms, 2),
        }

        if error_reason:
            log_data["error_reason"] = error_reason

        log_msg = f"Model call: {kind} - {outcome}"

        if outcome == "success":
            logger.info(log_msg, extra={"structured": log_data})
        else:
            logger.warning(log_msg, extra={"structured": log_data})

    def log_retry(self, kind: str, attempt: int, error_reason: str) -> None:
        """Log a failed attempt that will be retried."""
        log_data = {"kind": kind, "attempt": attempt, "outcome": "retry", "error_reason": error_reason}
        logger.warning(f"Retrying {kind} after attempt {attempt}", extra={"structured": log_data})
