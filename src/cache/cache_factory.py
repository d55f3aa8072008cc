# src/cache/cache_factory.py - v3
"""Factory for cache store instantiation."""

from __future__ import annotations

from ragsearch.cache.redis_store import RedisCacheStore
from ragsearch.config.settings import Settings


def create_cache_store(settings: Settings | None = None) -> RedisCacheStore:
    """Instantiate the Redis cache store from settings.

    Args:
        settings: Application settings. ``None`` yields a store with the
            default cache-type table and no connection (unavailable mode).

    Returns:
        Configured RedisCacheStore. Call ``connect()`` before first use to
        verify reachability.
    """
    if settings is None:
        return RedisCacheStore()

    return RedisCacheStore(
        redis_url=settings.redis_url,
        type_configs=settings.cache_type_configs(),
        compression_threshold=settings.cache_compression_threshold_bytes,
        socket_timeout_s=settings.redis_socket_timeout_s,
    )
