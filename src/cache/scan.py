# src/cache/scan.py - v1
"""Cursor-based key enumeration over the backing store.

All helpers page through SCAN so a large namespace is never loaded into
memory at once. Errors propagate; the cache store decides how to degrade.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)

DEFAULT_SCAN_COUNT = 100
DEFAULT_DELETE_CHUNK = 50


async def _iter_batches(client: Any, pattern: str, count: int):
    cursor = 0
    while True:
        cursor, batch = await client.scan(cursor=cursor, match=pattern, count=count)
        if batch:
            yield list(batch)
        if int(cursor) == 0:
            break


async def scan_keys(
    client: Any, pattern: str = "*", count: int = DEFAULT_SCAN_COUNT
) -> list[str]:
    """Collect every key matching ``pattern``."""
    keys: list[str] = []
    async for batch in _iter_batches(client, pattern, count):
        keys.extend(_decode(k) for k in batch)
    return keys


async def count_keys(
    client: Any, pattern: str = "*", count: int = DEFAULT_SCAN_COUNT
) -> int:
    """Count keys matching ``pattern`` one page at a time."""
    total = 0
    async for batch in _iter_batches(client, pattern, count):
        total += len(batch)
    return total


async def batch_delete_keys(
    client: Any,
    pattern: str,
    count: int = DEFAULT_SCAN_COUNT,
    chunk_size: int = DEFAULT_DELETE_CHUNK,
) -> int:
    """Delete keys matching ``pattern`` in bounded DEL chunks.

    Returns:
        Number of keys passed to DEL.
    """
    deleted = 0
    async for batch in _iter_batches(client, pattern, count):
        for i in range(0, len(batch), chunk_size):
            chunk = batch[i : i + chunk_size]
            await client.delete(*chunk)
            deleted += len(chunk)
    logger.debug("Deleted %d keys matching %s", deleted, pattern)
    return deleted


async def stream_keys(
    client: Any,
    pattern: str,
    callback: Callable[[list[str]], Awaitable[None]],
    count: int = DEFAULT_SCAN_COUNT,
) -> None:
    """Hand each page of matching keys to ``callback``."""
    async for batch in _iter_batches(client, pattern, count):
        await callback([_decode(k) for k in batch])


async def sample_keys(client: Any, pattern: str = "*", limit: int = 10) -> list[str]:
    """Return up to ``limit`` matching keys, stopping the scan early."""
    keys: list[str] = []
    async for batch in _iter_batches(client, pattern, min(limit, DEFAULT_SCAN_COUNT)):
        keys.extend(_decode(k) for k in batch)
        if len(keys) >= limit:
            return keys[:limit]
    return keys


def _decode(key: Any) -> str:
    return key.decode("utf-8") if isinstance(key, bytes) else str(key)
