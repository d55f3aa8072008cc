# src/cache/embedding_service.py - v1
"""Cache-first embedding generation.

The cache context folds the model name and dimensions into the request
scope, so switching models never serves a stale vector. A cached vector
whose model or dimensions disagree with the current embedder is ignored.
"""

from __future__ import annotations

import asyncio
import logging
import time

from pydantic import BaseModel

from ragsearch.cache.keys import create_cache_context
from ragsearch.cache.models import CacheMetrics
from ragsearch.cache.redis_store import RedisCacheStore
from ragsearch.embeddings.base_embedder import BaseEmbedder
from ragsearch.search.errors import ProviderError

logger = logging.getLogger(__name__)

BATCH_SIZE = 5


class EmbeddingResult(BaseModel):
    """One embedding plus where it came from."""

    embedding: list[float]
    cached: bool
    model: str
    dimensions: int
    response_time_ms: int


class EmbeddingWarmRequest(BaseModel):
    text: str
    session_id: str | None = None
    user_id: str | None = None
    context: str | None = None


class EmbeddingWarmResult(BaseModel):
    warmed: int = 0
    failed: int = 0
    cached: int = 0


class EmbeddingService:
    """Embedder wrapped with the shared cache store."""

    def __init__(self, embedder: BaseEmbedder, cache: RedisCacheStore) -> None:
        self._embedder = embedder
        self._cache = cache

    @property
    def model(self) -> str:
        return self._embedder.model_name

    @property
    def dimensions(self) -> int:
        return self._embedder.dimensions

    def cache_context(
        self,
        session_id: str | None = None,
        user_id: str | None = None,
        context: str | None = None,
    ) -> str:
        base = create_cache_context(
            session_id, user_id, {"model": self.model, "dimensions": self.dimensions}
        )
        return f"{base}:{context}" if context else base

    async def generate_embedding(
        self,
        text: str,
        session_id: str | None = None,
        user_id: str | None = None,
        context: str | None = None,
        force_fresh: bool = False,
    ) -> EmbeddingResult:
        """Return a vector for ``text``, from cache when possible.

        Raises:
            ProviderError: The embedding provider call failed.
        """
        t0 = time.monotonic()
        full_context = self.cache_context(session_id, user_id, context)

        if not force_fresh and self._cache.is_available():
            cached = await self._cache.get_embedding(text, full_context)
            if (
                cached is not None
                and cached.model == self.model
                and cached.dimensions == self.dimensions
            ):
                return EmbeddingResult(
                    embedding=cached.vector,
                    cached=True,
                    model=cached.model,
                    dimensions=cached.dimensions,
                    response_time_ms=_elapsed_ms(t0),
                )

        try:
            vector = await self._embedder.embed_query(text)
        except Exception as e:
            logger.error("Embedding generation failed: %s", e)
            raise ProviderError(
                f"Failed to generate embedding: {e}",
                details={"model": self.model},
            ) from e

        if self._cache.is_available():
            await self._cache.set_embedding(text, vector, self.model, full_context)

        return EmbeddingResult(
            embedding=vector,
            cached=False,
            model=self.model,
            dimensions=self.dimensions,
            response_time_ms=_elapsed_ms(t0),
        )

    async def generate_batch_embeddings(
        self,
        texts: list[str],
        session_id: str | None = None,
        user_id: str | None = None,
    ) -> list[EmbeddingResult]:
        """Embed ``texts`` in concurrent groups of five, preserving order."""
        results: list[EmbeddingResult] = []
        for i in range(0, len(texts), BATCH_SIZE):
            batch = texts[i : i + BATCH_SIZE]
            results.extend(
                await asyncio.gather(
                    *(self.generate_embedding(t, session_id, user_id) for t in batch)
                )
            )
        return results

    async def warm_cache(
        self, requests: list[EmbeddingWarmRequest]
    ) -> EmbeddingWarmResult:
        """Populate embeddings for known texts; failures are counted, not raised."""
        result = EmbeddingWarmResult()
        for req in requests:
            try:
                emb = await self.generate_embedding(
                    req.text, req.session_id, req.user_id, req.context
                )
            except ProviderError as e:
                logger.warning("Embedding warm-up failed for %r: %s", req.text, e)
                result.failed += 1
                continue
            if emb.cached:
                result.cached += 1
            else:
                result.warmed += 1
        return result

    def get_cache_stats(self) -> CacheMetrics:
        return self._cache.get_cache_metrics().get("embedding", CacheMetrics())

    def is_cache_available(self) -> bool:
        return self._cache.is_available()

    async def clear_cache(self) -> bool:
        """Clears every cache type; the store has no per-type delete."""
        if not self._cache.is_available():
            return False
        return await self._cache.clear_all()


def _elapsed_ms(t0: float) -> int:
    return int((time.monotonic() - t0) * 1000)
