# src/cache/base_cache_store.py - v2
"""Abstract typed cache store interface.

Four cache types share one store; each has its own namespace, TTL and
hit/miss counters. Implementations never raise backend failures to the
caller: reads degrade to a recorded miss, writes to ``False``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel

from ragsearch.cache.models import (
    CacheEntry,
    CacheHealth,
    CacheHealthSummary,
    CacheMetrics,
    CacheTypeConfig,
    WarmCounts,
    WarmItem,
)


class BaseCacheStore(ABC):
    """Unified interface for the typed, TTL-governed cache."""

    @abstractmethod
    async def set(
        self,
        cache_type: str,
        raw_key: str,
        payload: Any,
        ttl_override: int | None = None,
        context: str | None = None,
    ) -> bool:
        """Write ``payload`` under the type's namespace. False on failure."""

    @abstractmethod
    async def get(
        self,
        cache_type: str,
        raw_key: str,
        context: str | None = None,
        payload_model: type[BaseModel] | None = None,
    ) -> CacheEntry | None:
        """Read an entry; every miss or undecodable value counts as a miss."""

    @abstractmethod
    async def warm(
        self, items: list[WarmItem], cache_type: str = "embedding"
    ) -> WarmCounts:
        """Report which items are already cached and which need a refresh."""

    @abstractmethod
    async def health(self) -> CacheHealth:
        """Round-trip probe to the backing store."""

    @abstractmethod
    async def clear_all(self) -> bool:
        """Delete every namespaced key and reset all metrics."""

    @abstractmethod
    async def size_estimate(self) -> dict[str, int]:
        """Paginated key count per cache type."""

    @abstractmethod
    def get_cache_metrics(self) -> dict[str, CacheMetrics]:
        """Snapshot of per-type metrics."""

    @abstractmethod
    def get_cache_health(self) -> CacheHealthSummary:
        """Aggregated hit rates and tuning recommendations."""

    @abstractmethod
    def is_available(self) -> bool:
        """Whether a backing connection exists."""

    @abstractmethod
    def get_config(self, cache_type: str) -> CacheTypeConfig | None:
        """Current configuration row for ``cache_type``."""
