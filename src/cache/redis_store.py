# src/cache/redis_store.py - v2
"""Redis-based typed cache store.

Requires 'redis' package: pip install redis. Uses the asyncio client.
Every value is a JSON CacheEntry envelope, optionally zlib-compressed when
the cache type enables compression and the value exceeds the threshold.

When no connection can be established the store runs in unavailable mode:
every get is a recorded miss and every set returns False.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import time
import zlib
from typing import Any

from pydantic import BaseModel

from ragsearch.cache.base_cache_store import BaseCacheStore
from ragsearch.cache.keys import generate_cache_key
from ragsearch.cache.models import (
    CACHE_TYPES,
    CacheEntry,
    CacheHealth,
    CacheHealthSummary,
    CacheMetrics,
    CacheTypeConfig,
    EmbeddingPayload,
    OverallCacheStats,
    StoredSearchResult,
    WarmCounts,
    WarmItem,
)
from ragsearch.cache.scan import batch_delete_keys, count_keys

logger = logging.getLogger(__name__)

_ZLIB_MARKER = "zlib:"
_HIT_RATE_TARGET = 0.7

DEFAULT_TYPE_CONFIGS: dict[str, CacheTypeConfig] = {
    "embedding": CacheTypeConfig(
        ttl_seconds=24 * 60 * 60, key_prefix="embedding:",
        enable_compression=True, max_key_size=1000,
    ),
    "classification": CacheTypeConfig(
        ttl_seconds=24 * 60 * 60, key_prefix="classification:",
        enable_compression=False, max_key_size=500,
    ),
    "searchResult": CacheTypeConfig(
        ttl_seconds=60 * 60, key_prefix="search:",
        enable_compression=True, max_key_size=2000,
    ),
    "contextualQuery": CacheTypeConfig(
        ttl_seconds=6 * 60 * 60, key_prefix="context:",
        enable_compression=True, max_key_size=1500,
    ),
}


class RedisCacheStore(BaseCacheStore):
    """Redis-backed cache store shared by every search component."""

    def __init__(
        self,
        redis_url: str = "",
        type_configs: dict[str, CacheTypeConfig] | None = None,
        compression_threshold: int = 1024,
        socket_timeout_s: float = 2.0,
        client: Any = None,
    ) -> None:
        self._configs: dict[str, CacheTypeConfig] = {
            name: cfg.model_copy()
            for name, cfg in (type_configs or DEFAULT_TYPE_CONFIGS).items()
        }
        self._compression_threshold = compression_threshold
        self._metrics: dict[str, CacheMetrics] = {}
        self._reset_metrics()

        if client is not None:
            self._client = client
        elif redis_url:
            try:
                import redis.asyncio as aioredis
            except ImportError as e:
                raise ImportError(
                    "redis package required: pip install redis"
                ) from e
            try:
                self._client = aioredis.Redis.from_url(
                    redis_url,
                    decode_responses=True,
                    socket_timeout=socket_timeout_s,
                    socket_connect_timeout=socket_timeout_s,
                )
            except ValueError as e:
                logger.warning("Invalid REDIS_URL, cache disabled: %s", e)
                self._client = None
        else:
            logger.warning("REDIS_URL not set, cache running in unavailable mode")
            self._client = None

    async def connect(self) -> bool:
        """Probe the connection once; drop to unavailable mode if unreachable."""
        if self._client is None:
            return False
        try:
            await self._client.ping()
        except Exception as e:
            logger.warning("Redis unreachable, cache disabled: %s", e)
            await self._close_quietly()
            self._client = None
            return False
        logger.info("Connected to Redis cache")
        return True

    async def close(self) -> None:
        """Close the Redis connection."""
        await self._close_quietly()
        self._client = None

    # --- Core operations ---

    async def set(
        self,
        cache_type: str,
        raw_key: str,
        payload: Any,
        ttl_override: int | None = None,
        context: str | None = None,
    ) -> bool:
        config = self._require_config(cache_type)
        if not raw_key:
            raise ValueError("cache key material must be a non-empty string")
        if self._client is None:
            return False

        key = generate_cache_key(raw_key, config.key_prefix, context)
        ttl = ttl_override or config.ttl_seconds
        try:
            value = self._encode(CacheEntry(payload=payload), config)
            await self._client.set(key, value, ex=ttl)
        except Exception as e:
            logger.warning("Cache set failed for %s: %s", cache_type, e)
            return False
        return True

    async def get(
        self,
        cache_type: str,
        raw_key: str,
        context: str | None = None,
        payload_model: type[BaseModel] | None = None,
    ) -> CacheEntry | None:
        config = self._require_config(cache_type)
        metrics = self._metrics[cache_type]
        if self._client is None or not raw_key:
            metrics.record(hit=False)
            return None

        key = generate_cache_key(raw_key, config.key_prefix, context)
        try:
            raw = await self._client.get(key)
        except Exception as e:
            logger.warning("Cache get failed for %s: %s", cache_type, e)
            metrics.record(hit=False)
            return None

        if raw is None:
            metrics.record(hit=False)
            return None

        try:
            entry = self._decode(raw, payload_model)
        except (ValueError, zlib.error, binascii.Error) as e:
            logger.warning("Failed to deserialize %s cache entry: %s", cache_type, e)
            metrics.record(hit=False)
            return None

        metrics.record(hit=True)
        return entry

    async def warm(
        self, items: list[WarmItem], cache_type: str = "embedding"
    ) -> WarmCounts:
        counts = WarmCounts()
        for item in items:
            entry = await self.get(cache_type, item.key, item.context)
            if entry is not None:
                counts.already_cached += 1
            else:
                counts.needs_refresh += 1
                counts.refresh_keys.append(item.key)
        logger.info(
            "Cache warm check (%s): %d cached, %d need refresh",
            cache_type, counts.already_cached, counts.needs_refresh,
        )
        return counts

    async def health(self) -> CacheHealth:
        if self._client is None:
            return CacheHealth(healthy=False, error="Redis client not initialized")
        try:
            t0 = time.monotonic()
            await self._client.ping()
            latency = (time.monotonic() - t0) * 1000
        except Exception as e:
            return CacheHealth(healthy=False, error=str(e) or type(e).__name__)
        return CacheHealth(healthy=True, latency_ms=round(latency, 2))

    async def clear_all(self) -> bool:
        if self._client is None:
            return False
        try:
            total = 0
            for config in self._configs.values():
                total += await batch_delete_keys(self._client, f"{config.key_prefix}*")
        except Exception as e:
            logger.error("Cache clear failed: %s", e)
            return False
        logger.info("Cleared %d cache keys", total)
        self._reset_metrics()
        return True

    async def size_estimate(self) -> dict[str, int]:
        if self._client is None:
            return {}
        sizes: dict[str, int] = {}
        try:
            for cache_type, config in self._configs.items():
                sizes[cache_type] = await count_keys(
                    self._client, f"{config.key_prefix}*"
                )
        except Exception as e:
            logger.warning("Cache size estimate incomplete: %s", e)
        return sizes

    # --- Metrics and configuration ---

    def get_cache_metrics(self) -> dict[str, CacheMetrics]:
        return {name: m.model_copy() for name, m in self._metrics.items()}

    def get_cache_health(self) -> CacheHealthSummary:
        by_type = self.get_cache_metrics()
        recommendations: list[str] = []
        total_hits = 0
        total_requests = 0
        for name, metrics in by_type.items():
            total_hits += metrics.hits
            total_requests += metrics.total_requests
            if metrics.hit_rate < _HIT_RATE_TARGET:
                recommendations.append(
                    f"Low hit rate for {name}: {metrics.hit_rate:.2f}"
                )

        overall_rate = total_hits / total_requests if total_requests else 0.0
        if overall_rate < _HIT_RATE_TARGET:
            recommendations.append("Overall cache hit rate below 70% target")
        if not recommendations:
            recommendations.append("Cache performance is optimal")

        return CacheHealthSummary(
            overall=OverallCacheStats(
                hit_rate=overall_rate, total_requests=total_requests
            ),
            by_type=by_type,
            recommendations=recommendations,
        )

    def is_available(self) -> bool:
        return self._client is not None

    def get_config(self, cache_type: str) -> CacheTypeConfig | None:
        config = self._configs.get(cache_type)
        return config.model_copy() if config else None

    def update_config(self, cache_type: str, **changes: Any) -> bool:
        """Tune one cache type at runtime. Unknown types are rejected."""
        config = self._configs.get(cache_type)
        if config is None:
            return False
        self._configs[cache_type] = config.model_copy(update=changes)
        logger.info("Updated %s cache config: %s", cache_type, changes)
        return True

    # --- Typed helpers ---

    async def set_embedding(
        self,
        text: str,
        vector: list[float],
        model: str,
        context: str | None = None,
    ) -> bool:
        payload = EmbeddingPayload(vector=vector, model=model, dimensions=len(vector))
        return await self.set("embedding", text, payload, context=context)

    async def get_embedding(
        self, text: str, context: str | None = None
    ) -> EmbeddingPayload | None:
        entry = await self.get(
            "embedding", text, context, payload_model=EmbeddingPayload
        )
        return entry.payload if entry else None

    async def set_search_results(
        self,
        query: str,
        documents: list[dict[str, Any]],
        search_metadata: dict[str, Any],
        context: str | None = None,
    ) -> bool:
        """Store a result set; document embeddings are never persisted."""
        stripped = [
            {k: v for k, v in doc.items() if k != "embedding"} for doc in documents
        ]
        payload = StoredSearchResult(documents=stripped, search_metadata=search_metadata)
        return await self.set("searchResult", query, payload, context=context)

    async def get_search_results(
        self, query: str, context: str | None = None
    ) -> StoredSearchResult | None:
        entry = await self.get(
            "searchResult", query, context, payload_model=StoredSearchResult
        )
        return entry.payload if entry else None

    async def set_contextual_query(
        self, query: str, context_data: dict[str, Any], context: str | None = None
    ) -> bool:
        return await self.set("contextualQuery", query, context_data, context=context)

    async def get_contextual_query(
        self, query: str, context: str | None = None
    ) -> dict[str, Any] | None:
        entry = await self.get("contextualQuery", query, context)
        return entry.payload if entry else None

    # --- Internals ---

    def _require_config(self, cache_type: str) -> CacheTypeConfig:
        config = self._configs.get(cache_type)
        if config is None:
            raise ValueError(
                f"Unknown cache type: {cache_type!r}. "
                f"Available: {', '.join(sorted(self._configs))}"
            )
        return config

    def _reset_metrics(self) -> None:
        self._metrics = {name: CacheMetrics() for name in self._configs}
        for name in CACHE_TYPES:
            self._metrics.setdefault(name, CacheMetrics())

    def _encode(self, entry: CacheEntry, config: CacheTypeConfig) -> str:
        data = entry.model_dump_json()
        if config.enable_compression and len(data) > self._compression_threshold:
            packed = zlib.compress(data.encode("utf-8"))
            return _ZLIB_MARKER + base64.b64encode(packed).decode("ascii")
        return data

    @staticmethod
    def _decode(raw: str | bytes, payload_model: type[BaseModel] | None) -> CacheEntry:
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        if raw.startswith(_ZLIB_MARKER):
            packed = base64.b64decode(raw[len(_ZLIB_MARKER):], validate=True)
            raw = zlib.decompress(packed).decode("utf-8")
        data = json.loads(raw)
        entry = CacheEntry[Any].model_validate(data)
        if payload_model is not None:
            entry.payload = payload_model.model_validate(entry.payload)
        return entry

    async def _close_quietly(self) -> None:
        if self._client is None:
            return
        closer = getattr(self._client, "aclose", None) or getattr(self._client, "close", None)
        if closer is None:
            return
        try:
            await closer()
        except Exception as e:
            logger.debug("Error closing Redis client: %s", e)
