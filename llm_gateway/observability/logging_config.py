"""
Structured logging configuration for the LLM gateway.

Plain `logging` with a JSONFormatter: production gets one JSON object per
line, every `logging.getLogger(__name__)` call keeps working, and
structured fields travel through `extra={...}`.

Environments:
- production: JSON to stdout (machine-readable)
- development/staging/test: Colored text to stderr (human-readable)

Usage:
    from llm_gateway.observability.logging_config import configure_logging

    configure_logging()  # auto-detects from LLM_GATEWAY_ENV

    logger = logging.getLogger(__name__)
    logger.info("provider_call_succeeded", extra={
        "provider": "cloud_b",
        "model": "gpt-4o",
        "duration_ms": 812,
    })
"""

from __future__ import annotations

import json
import logging
import os
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Optional

MAX_LOGGED_CHARS = 2000

# ─── Request Context ──────────────────────────────────────────────────

# ContextVar rather than thread-local: concurrent requests share one
# event-loop thread.
_request_id: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


def set_request_id(request_id: str) -> None:
    """
    Set the id of the request being served.

    Every log record emitted while handling that request carries it.
    """
    _request_id.set(request_id)


def get_request_id() -> Optional[str]:
    """Get the current request_id, or None outside a request."""
    return _request_id.get()


def clear_request_id() -> None:
    _request_id.set(None)


def truncate_for_log(value: Any, limit: int = MAX_LOGGED_CHARS) -> str:
    """
    Render `value` for a log line, cut to `limit` characters.

    Dicts and lists are JSON-encoded first. Provider payloads and bodies
    go through this so a long conversation cannot flood the log.
    """
    if isinstance(value, (dict, list)):
        text = json.dumps(value, default=str, ensure_ascii=False)
    else:
        text = str(value)
    if len(text) <= limit:
        return text
    return f"{text[:limit]}... [truncated {len(text) - limit} chars]"


# ─── Context Filter ───────────────────────────────────────────────────


class ContextFilter(logging.Filter):
    """Injects request_id into every log record from the request context."""

    def filter(self, record: logging.LogRecord) -> bool:
        request_id = get_request_id()
        if request_id:
            record.request_id = request_id  # type: ignore[attr-defined]
        return True


# ─── JSON Formatter (Production) ──────────────────────────────────────


# Fields we want to extract from the record's extra dict
_STANDARD_FIELDS = frozenset({
    "name", "msg", "args", "levelname", "levelno", "pathname",
    "filename", "module", "exc_info", "exc_text", "stack_info",
    "lineno", "funcName", "created", "msecs", "relativeCreated",
    "thread", "threadName", "processName", "process", "message",
    "taskName",
})


class JSONFormatter(logging.Formatter):
    """
    Outputs log records as single-line JSON objects.

    Output format:
        {"timestamp": "...", "level": "INFO", "logger": "llm_gateway.llm.service",
         "message": "completion_served", "request_id": "...", "provider": "cloud_b"}
    """

    def __init__(self, max_value_chars: int = MAX_LOGGED_CHARS):
        super().__init__()
        self.max_value_chars = max_value_chars

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if hasattr(record, "request_id"):
            entry["request_id"] = record.request_id

        for key, value in record.__dict__.items():
            if key in _STANDARD_FIELDS or key.startswith("_") or key == "request_id":
                continue
            entry[key] = self._render(value)

        if record.exc_info and record.exc_info[1]:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)

    def _render(self, value: Any) -> Any:
        """Extra value as logged: JSON-native when it fits, else cut text."""
        if value is None or isinstance(value, (bool, int, float)):
            return value
        if isinstance(value, str):
            return truncate_for_log(value, self.max_value_chars)
        try:
            encoded = json.dumps(value)
        except (TypeError, ValueError):
            return truncate_for_log(str(value), self.max_value_chars)
        if len(encoded) <= self.max_value_chars:
            return value
        return truncate_for_log(encoded, self.max_value_chars)


# ─── Dev Formatter (Local Development) ────────────────────────────────


class DevFormatter(logging.Formatter):
    """
    Colorful, human-readable logs for local development.

    Format: [HH:MM:SS] LEVEL logger: message [key=value key=value]
    """

    COLORS = {
        logging.DEBUG: "\033[36m",     # Cyan
        logging.INFO: "\033[32m",      # Green
        logging.WARNING: "\033[33m",   # Yellow
        logging.ERROR: "\033[31m",     # Red
        logging.CRITICAL: "\033[41m",  # Red background
    }
    RESET = "\033[0m"

    # Known extra fields to display inline
    _EXTRA_KEYS = (
        "request_id", "provider", "model", "duration_ms",
        "tokens", "from_cache", "error_kind", "status_code", "error",
    )
    _INLINE_VALUE_CHARS = 200

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelno, self.RESET)
        timestamp = self.formatTime(record, "%H:%M:%S")

        extras = []
        for key in self._EXTRA_KEYS:
            value = getattr(record, key, None)
            if value is not None:
                extras.append(f"{key}={truncate_for_log(value, self._INLINE_VALUE_CHARS)}")

        extra_str = f" [{' '.join(extras)}]" if extras else ""

        formatted = (
            f"{self.RESET}[{timestamp}] "
            f"{color}{record.levelname:<8}{self.RESET} "
            f"{record.name}: {record.getMessage()}{extra_str}"
        )

        if record.exc_info and record.exc_info[1]:
            formatted += f"\n{self.formatException(record.exc_info)}"

        return formatted


# ─── Configuration ────────────────────────────────────────────────────


def configure_logging(
    env: Optional[str] = None,
    level: int | str = logging.INFO,
) -> None:
    """
    Configure the root logger based on environment.

    Args:
        env: Override environment. If None, reads from LLM_GATEWAY_ENV
             (defaults to "development").
        level: Log level, as a number or a name such as "DEBUG".

    Behavior:
        - production → JSONFormatter to stdout
        - everything else → DevFormatter to stderr
    """
    env = env or os.environ.get("LLM_GATEWAY_ENV", "development").lower().strip()
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Remove existing handlers to avoid duplicates
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    if env == "production":
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(JSONFormatter())
    else:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(DevFormatter())

    handler.addFilter(ContextFilter())
    root_logger.addHandler(handler)

    # Silence noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
