# src/logging/logger.py - v3
"""Logger factory with JSON and text formatters.

Records pick up the request context (query_id, session_id, user_id,
operation) through ``RequestContextFilter``; formatters read it from the
record, or from the live context when a record bypassed the filter.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import IO, Any

from ragsearch.logging.context import get_context

ROOT_LOGGER = "ragsearch"


class RequestContextFilter(logging.Filter):
    """Stamp the current request context onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_context = get_context().as_dict()
        return True


def _request_context(record: logging.LogRecord) -> dict[str, Any]:
    ctx = getattr(record, "request_context", None)
    return ctx if ctx is not None else get_context().as_dict()


def _timestamp(record: logging.LogRecord) -> datetime:
    return datetime.fromtimestamp(record.created, tz=timezone.utc)


class JsonFormatter(logging.Formatter):
    """One JSON object per line.

    Keys: timestamp, level, logger, message, and when present context,
    elapsed_ms, data and exception.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": _timestamp(record).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        context = _request_context(record)
        if context:
            entry["context"] = context

        elapsed = getattr(record, "elapsed_ms", None)
        if elapsed is not None:
            entry["elapsed_ms"] = elapsed

        data = getattr(record, "data", None)
        if data:
            entry["data"] = data

        if record.exc_info and record.exc_info[1] is not None:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


class TextFormatter(logging.Formatter):
    """Single-line human-readable format for terminals."""

    def format(self, record: logging.LogRecord) -> str:
        context = _request_context(record)
        line = f"{_timestamp(record):%Y-%m-%d %H:%M:%S} [{record.levelname:8s}] {record.name}"
        if "operation" in context:
            line += f" [{context['operation']}]"
        if "query_id" in context:
            line += f" ({context['query_id'][:8]})"
        line += f" - {record.getMessage()}"

        elapsed = getattr(record, "elapsed_ms", None)
        if elapsed is not None:
            line += f" ({elapsed}ms)"
        if record.exc_info and record.exc_info[1] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def get_logger(name: str) -> logging.Logger:
    """Get a named logger. Configuration is applied by setup_logging()."""
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


def setup_logging(
    level: str = "INFO",
    log_format: str = "json",
    log_file: str | None = None,
    rotation: str = "10MB",
    retention: int = 30,
    stream: IO[str] | None = None,
) -> None:
    """Configure the ``ragsearch`` logger tree.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR).
        log_format: Output format ("json" or "text").
        log_file: Path to log file (None = console only).
        rotation: Max file size before rotation (e.g. "10MB").
        retention: Number of rotated files to keep.
        stream: Console stream; stderr by default so stdout stays clean
            for command output.
    """
    root = logging.getLogger(ROOT_LOGGER)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Re-init replaces handlers
    for handler in list(root.handlers):
        root.removeHandler(handler)

    formatter = JsonFormatter() if log_format == "json" else TextFormatter()
    handlers: list[logging.Handler] = [logging.StreamHandler(stream or sys.stderr)]

    if log_file:
        from ragsearch.logging.handlers import create_rotating_handler

        handlers.append(
            create_rotating_handler(log_file, rotation=rotation, retention=retention)
        )

    context_filter = RequestContextFilter()
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(context_filter)
        root.addHandler(handler)
