# src/search/orchestrator.py - v3
"""Cache-first search orchestrator.

One ``search()`` call:
    validate -> cache context -> cached result? -> (embedding || classification)
    -> hybrid search -> filters -> detached write-back -> response

The cache lookup happens before the miss path and the write-back after it.
Empty result sets are never written. Every step runs under one timeout
controller whose cleanup runs exactly once per call. Warming processes its
list strictly in order and stops at the first failure.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Callable

from pydantic import ValidationError

from ragsearch.cache.embedding_service import EmbeddingService
from ragsearch.cache.keys import create_cache_context
from ragsearch.cache.models import CacheHealthSummary
from ragsearch.cache.redis_store import RedisCacheStore
from ragsearch.logging.context import set_operation, set_request_context
from ragsearch.search.documents import (
    apply_filters,
    build_search_metadata,
    filter_document_content,
    generate_search_suggestions,
    process_query,
)
from ragsearch.search.errors import SearchError
from ragsearch.search.hybrid_search import HybridSearchEngine
from ragsearch.search.models import (
    Document,
    QueryClassification,
    QueryType,
    SearchParams,
    SearchResponse,
    WarmQuery,
    WarmResult,
)
from ragsearch.search.query_classifier import QueryClassifier
from ragsearch.search.query_optimizer import QueryOptimizer
from ragsearch.search.timeout import TimeoutController
from ragsearch.search.validation import (
    MAX_LIMIT,
    MAX_QUERY_LENGTH,
    validate_search_params,
)
from ragsearch.version import __version__

logger = logging.getLogger(__name__)

WARM_RESULT_LIMIT = 10

CAPABILITIES = [
    "hybrid_search",
    "query_classification",
    "source_weighting",
    "result_caching",
    "embedding_caching",
    "contextual_caching",
    "cache_warming",
]


class SearchOrchestrator:
    """Composes cache, embeddings, classifier, optimizer and hybrid search.

    All collaborators are constructed once by the caller and shared by
    reference; the orchestrator owns no global state.
    """

    def __init__(
        self,
        cache: RedisCacheStore,
        embeddings: EmbeddingService,
        classifier: QueryClassifier,
        engine: HybridSearchEngine,
        optimizer: QueryOptimizer | None = None,
        max_query_length: int = MAX_QUERY_LENGTH,
        max_results_limit: int = MAX_LIMIT,
        timeout_factory: Callable[[int], TimeoutController] = TimeoutController,
    ) -> None:
        self._cache = cache
        self._embeddings = embeddings
        self._classifier = classifier
        self._engine = engine
        self._optimizer = optimizer
        self._max_query_length = max_query_length
        self._max_results_limit = max_results_limit
        self._timeout_factory = timeout_factory
        self._background: set[asyncio.Task] = set()

    # --- Search ---

    async def search(self, params: SearchParams) -> SearchResponse:
        """Run one cache-first search.

        Raises:
            QueryValidationError: Malformed input.
            SearchTimeoutError: The request exceeded ``params.timeout_ms``.
            ProviderError: Embedding failure.
            Exception: Index errors propagate unchanged.
        """
        validate_search_params(params, self._max_query_length, self._max_results_limit)

        query_id = str(uuid.uuid4())
        set_request_context(query_id, params.session_id, params.user_id)
        set_operation("search")

        cache_ctx = create_cache_context(
            params.session_id, params.user_id, params.source_weights
        )
        controller = self._timeout_factory(params.timeout_ms)
        t0 = time.monotonic()
        try:
            if self._cache.is_available() and not params.force_fresh:
                cached = await self._read_cached(params.query, cache_ctx, controller)
                if cached is not None:
                    stored_documents, query_type = cached
                    documents = apply_filters(stored_documents, params.filters)
                    response = self._build_response(
                        params, query_id, documents, query_type, True, t0
                    )
                    logger.info(
                        "Search cache hit (%d documents)", len(documents),
                        extra={"elapsed_ms": response.metadata.search_time_ms},
                    )
                    return response

            embedding, classification = await controller.run(
                asyncio.gather(
                    self._embeddings.generate_embedding(
                        params.query,
                        session_id=params.session_id,
                        user_id=params.user_id,
                        context=params.context,
                        force_fresh=params.force_fresh,
                    ),
                    self._classifier.classify(params.query, timeout_ms=params.timeout_ms),
                )
            )

            weights = params.source_weights or classification.weights
            result = await controller.run(
                self._engine.search(
                    query=params.query,
                    source_weights=weights,
                    limit=params.limit,
                    offset=params.offset,
                    vector=embedding.embedding,
                    config=params.config,
                )
            )
            # Unfiltered engine output is cached; filters apply per request
            if result.documents and self._cache.is_available():
                self._schedule_write_back(
                    params.query, result.documents, classification, cache_ctx
                )
            documents = apply_filters(result.documents, params.filters)

            response = self._build_response(
                params, query_id, documents, classification.type, False, t0
            )
            if self._optimizer is not None:
                optimization = await self._optimizer.optimize(
                    params.query, classification=classification
                )
                response.routing = optimization.routing
                response.token_optimization = optimization.token_optimization
            logger.info(
                "Search completed: %d documents, type=%s",
                len(documents), classification.type,
                extra={"elapsed_ms": response.metadata.search_time_ms},
            )
            return response
        except SearchError as e:
            logger.warning("Search failed (%s): %s", e.code, e.message)
            raise
        finally:
            controller.cleanup()

    async def _read_cached(
        self, query: str, cache_ctx: str, controller: TimeoutController
    ) -> tuple[list[Document], QueryType] | None:
        stored = await controller.run(self._cache.get_search_results(query, cache_ctx))
        if stored is None or not stored.documents:
            return None
        try:
            documents = [Document.model_validate(d) for d in stored.documents]
        except ValidationError as e:
            logger.warning("Discarding malformed cached result set: %s", e)
            return None
        query_type = stored.search_metadata.get("query_type", "operational")
        return documents, query_type

    def _build_response(
        self,
        params: SearchParams,
        query_id: str,
        documents: list[Document],
        query_type: QueryType,
        cache_hit: bool,
        t0: float,
    ) -> SearchResponse:
        config = params.config or self._engine.config
        metadata = build_search_metadata(
            query_id=query_id,
            documents=documents,
            search_time_ms=int((time.monotonic() - t0) * 1000),
            cache_hit=cache_hit,
            config=config,
            filters=params.filters,
        )
        return SearchResponse(
            success=True,
            results=filter_document_content(
                documents, params.include_content, params.include_embedding
            ),
            metadata=metadata,
            query=process_query(params.query, query_type, params.filters),
            suggestions=generate_search_suggestions(params.query, documents),
        )

    # --- Detached write-back ---

    def _schedule_write_back(
        self,
        query: str,
        documents: list[Document],
        classification: QueryClassification,
        cache_ctx: str,
    ) -> None:
        task = asyncio.create_task(
            self._cache.set_search_results(
                query,
                [d.model_dump(mode="json") for d in documents],
                {
                    "query_type": classification.type,
                    "total_results": len(documents),
                    "cached_at": datetime.now(timezone.utc).isoformat(),
                },
                cache_ctx,
            )
        )
        self._background.add(task)
        task.add_done_callback(self._on_write_back_done)

    def _on_write_back_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("Background cache write failed: %s", exc)
        elif task.result() is False:
            logger.debug("Background cache write skipped by store")

    async def wait_for_background(self) -> None:
        """Await pending write-backs (shutdown and tests)."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def close(self) -> None:
        await self.wait_for_background()
        await self._cache.close()

    # --- Warming ---

    async def warm_cache(self, queries: list[WarmQuery]) -> WarmResult:
        """Populate search results for known queries, stopping at the first failure."""
        set_operation("warm")
        result = WarmResult()
        # sorted() is stable: equal priorities keep list order.
        for q in sorted(queries, key=lambda w: w.priority, reverse=True):
            ctx = create_cache_context(q.session_id, q.user_id, None)
            try:
                stored = (
                    await self._cache.get_search_results(q.query, ctx)
                    if self._cache.is_available()
                    else None
                )
                if stored is not None and stored.documents:
                    result.already_cached += 1
                    continue

                embedding, classification = await asyncio.gather(
                    self._embeddings.generate_embedding(
                        q.query, session_id=q.session_id, user_id=q.user_id,
                        context=q.context,
                    ),
                    self._classifier.classify(q.query),
                )
                search = await self._engine.search(
                    query=q.query,
                    source_weights=classification.weights,
                    limit=WARM_RESULT_LIMIT,
                    offset=0,
                    vector=embedding.embedding,
                )
                if self._cache.is_available() and search.documents:
                    await self._cache.set_search_results(
                        q.query,
                        [d.model_dump(mode="json") for d in search.documents],
                        {"query_type": classification.type,
                         "total_results": search.total_results},
                        ctx,
                    )
                result.success += 1
            except Exception as e:
                logger.error("Cache warming stopped at %r: %s", q.query, e)
                result.failed += 1
                break
        logger.info(
            "Cache warming: %d warmed, %d already cached, %d failed",
            result.success, result.already_cached, result.failed,
        )
        return result

    # --- Maintenance and health ---

    def get_cache_stats(self) -> CacheHealthSummary:
        return self._cache.get_cache_health()

    async def clear_all_caches(self) -> bool:
        if not self._cache.is_available():
            return False
        self._classifier.clear_memory_cache()
        if self._optimizer is not None:
            self._optimizer.clear_cache()
        return await self._cache.clear_all()

    async def health_check(self) -> dict[str, Any]:
        set_operation("health")
        cache_health = await self._cache.health()
        return {
            "search": {"healthy": True},
            "cache": cache_health.model_dump(exclude_none=True),
            "embedding": {
                "cache_available": self._embeddings.is_cache_available(),
                "stats": self._embeddings.get_cache_stats().model_dump(mode="json"),
            },
        }


def create_health_response(cache_enabled: bool = False) -> dict[str, Any]:
    return {
        "status": "healthy",
        "version": __version__,
        "capabilities": list(CAPABILITIES),
        "limits": {
            "max_query_length": MAX_QUERY_LENGTH,
            "max_results": MAX_LIMIT,
            "timeout_ms": 30000,
        },
        "cache": {
            "enabled": bool(cache_enabled),
            "types": ["embeddings", "classifications", "searchResults", "contextualQueries"],
        },
    }


def create_unhealthy_response(error: BaseException | str) -> dict[str, Any]:
    return {
        "status": "unhealthy",
        "error": str(error) or "Unknown error",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
