# src/cache/models.py - v2
"""Cache domain models: type configuration, envelopes, metrics, health.

Every value written to the backing store is a CacheEntry envelope; the
payload is immutable once written and a new write replaces it entirely.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")

CACHE_TYPES = ("embedding", "classification", "searchResult", "contextualQuery")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CacheTypeConfig(BaseModel):
    """One row of the cache-type table."""

    ttl_seconds: int
    key_prefix: str
    enable_compression: bool = False
    max_key_size: int = 1000


class CacheEntry(BaseModel, Generic[T]):
    """Envelope stored under a hashed key."""

    payload: T
    cached_at: datetime = Field(default_factory=_utcnow)


class EmbeddingPayload(BaseModel):
    """Embedding vector plus the model that produced it."""

    vector: list[float]
    model: str
    dimensions: int


class CacheMetrics(BaseModel):
    """Per-type hit/miss counters. Only the cache store mutates these."""

    hits: int = 0
    misses: int = 0
    hit_rate: float = 0.0
    total_requests: int = 0
    last_updated: datetime = Field(default_factory=_utcnow)

    def record(self, hit: bool) -> None:
        """Count one lookup and recompute the ratio in the same step."""
        if hit:
            self.hits += 1
        else:
            self.misses += 1
        self.total_requests += 1
        self.hit_rate = self.hits / self.total_requests
        self.last_updated = _utcnow()


class CacheHealth(BaseModel):
    """Result of a round-trip probe to the backing store."""

    healthy: bool
    latency_ms: float | None = None
    error: str | None = None


class OverallCacheStats(BaseModel):
    hit_rate: float
    total_requests: int


class CacheHealthSummary(BaseModel):
    """Aggregated metrics across every cache type."""

    overall: OverallCacheStats
    by_type: dict[str, CacheMetrics]
    recommendations: list[str]


class WarmItem(BaseModel):
    """One cache-warming request."""

    key: str
    context: str | None = None


class WarmCounts(BaseModel):
    """Outcome of CacheStore.warm()."""

    already_cached: int = 0
    needs_refresh: int = 0
    refresh_keys: list[str] = Field(default_factory=list)


class StoredSearchResult(BaseModel):
    """Search-result payload; documents are kept as plain dicts."""

    documents: list[dict[str, Any]]
    search_metadata: dict[str, Any] = Field(default_factory=dict)
