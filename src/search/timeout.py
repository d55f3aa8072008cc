# src/search/timeout.py - v1
"""Per-request timeout controller.

One controller bounds one search call. Expiry sets the cancellation event
(checked cooperatively by long-running collaborators) and cancels the
awaited work. ``cleanup`` is idempotent and releases resources once.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, TypeVar

from ragsearch.search.errors import SearchTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TimeoutController:
    """Deadline shared by every awaited step of one request."""

    def __init__(self, timeout_ms: int) -> None:
        self.timeout_ms = timeout_ms
        self.cancelled = asyncio.Event()
        self._loop = asyncio.get_running_loop()
        self._deadline = self._loop.time() + timeout_ms / 1000
        self._timer: asyncio.TimerHandle | None = self._loop.call_at(
            self._deadline, self.cancelled.set
        )
        self.cleanup_count = 0

    def remaining(self) -> float:
        return max(0.0, self._deadline - self._loop.time())

    async def run(self, aw: Awaitable[T]) -> T:
        """Await ``aw`` within the remaining budget.

        Raises:
            SearchTimeoutError: The deadline passed first.
        """
        try:
            return await asyncio.wait_for(aw, timeout=self.remaining())
        except asyncio.TimeoutError as e:
            self.cancelled.set()
            raise SearchTimeoutError(
                f"Search request timed out after {self.timeout_ms}ms",
                details={"timeout_ms": self.timeout_ms},
            ) from e

    def cleanup(self) -> None:
        if self._timer is None:
            return
        self._timer.cancel()
        self._timer = None
        self.cleanup_count += 1
