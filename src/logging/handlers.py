# src/logging/handlers.py - v2
"""File handler for the ragsearch log.

LOG_ROTATION takes a size ("512KB", "10MB", "1GB", or plain bytes);
"none" or "0" disables rotation. LOG_RETENTION is the backup count.
"""

from __future__ import annotations

import logging
import re
from logging.handlers import RotatingFileHandler
from pathlib import Path

_SIZE_RE = re.compile(r"^(\d+)\s*(B|KB|MB|GB)?$", re.IGNORECASE)
_MULTIPLIERS = {"B": 1, "KB": 1024, "MB": 1024**2, "GB": 1024**3}


def parse_size(size_str: str) -> int:
    """Parse ``"10MB"``-style sizes into bytes. ``"none"`` yields 0."""
    text = size_str.strip()
    if text.lower() == "none":
        return 0
    match = _SIZE_RE.match(text)
    if not match:
        raise ValueError(f"Invalid size format: {size_str!r}. Use e.g. '10MB'.")
    unit = (match.group(2) or "B").upper()
    return int(match.group(1)) * _MULTIPLIERS[unit]


def create_rotating_handler(
    log_file: str | Path,
    rotation: str = "10MB",
    retention: int = 30,
) -> logging.Handler:
    """Create the log file handler, rotating unless rotation is disabled.

    Args:
        log_file: Path to log file; parent directories are created.
        rotation: Max file size before rotation.
        retention: Number of backup files to keep.
    """
    path = Path(log_file).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)

    max_bytes = parse_size(rotation)
    if max_bytes == 0:
        return logging.FileHandler(str(path), encoding="utf-8")

    return RotatingFileHandler(
        filename=str(path),
        maxBytes=max_bytes,
        backupCount=retention,
        encoding="utf-8",
    )
