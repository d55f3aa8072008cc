# src/api/facade.py - v4
"""Public API facade: builds a ready-to-use SearchOrchestrator.

Usage:
    from ragsearch.api.facade import build_search_service
    orchestrator = await build_search_service(settings)
    response = await orchestrator.search(SearchParams(query="..."))

Every collaborator is constructed once here and passed by reference.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from ragsearch.cache.cache_factory import create_cache_store
from ragsearch.cache.embedding_service import EmbeddingService
from ragsearch.config.settings import Settings
from ragsearch.embeddings.base_embedder import BaseEmbedder
from ragsearch.embeddings.embedder_factory import create_embedder
from ragsearch.index.memory_index import InMemoryDocumentIndex, load_records
from ragsearch.llm.base_client import BaseLLMClient
from ragsearch.llm.client_factory import create_llm_client
from ragsearch.search.hybrid_search import HybridSearchEngine
from ragsearch.search.models import HybridWeights, SearchConfig
from ragsearch.search.orchestrator import SearchOrchestrator
from ragsearch.search.query_classifier import QueryClassifier
from ragsearch.search.query_optimizer import QueryOptimizer

logger = logging.getLogger(__name__)


async def build_search_service(
    settings: Settings | None = None,
    records: list[dict[str, Any]] | None = None,
    embedder: BaseEmbedder | None = None,
    llm: BaseLLMClient | None = None,
) -> SearchOrchestrator:
    """Wire cache, providers, index and engine into an orchestrator.

    Args:
        settings: Global settings. Loaded from .env if None.
        records: Index records. Read from ``settings.index_corpus_path``
            when None.
        embedder: Embedding provider. Built from settings if None.
        llm: Completion provider for the classifier. Built from settings if None.

    Returns:
        SearchOrchestrator sharing one cache store across all components.
    """
    settings = settings or Settings()

    cache = create_cache_store(settings)
    if cache.is_available():
        await cache.connect()

    embedder = embedder or create_embedder(settings)
    llm = llm or create_llm_client(
        settings.classifier_provider, settings.classifier_model, settings
    )

    classifier = QueryClassifier(
        llm,
        cache=cache,
        timeout_ms=settings.classifier_timeout_ms,
        memory_ttl_seconds=settings.classifier_memory_ttl_seconds,
        memory_max_entries=settings.classifier_memory_max_entries,
    )

    if records is None:
        records = _load_corpus(settings.index_corpus_path)
    index = InMemoryDocumentIndex()
    await index.upsert(await _embed_missing(records, embedder))

    engine = HybridSearchEngine(index, _search_config(settings))

    logger.info(
        "Search service ready: %d documents, cache %s",
        await index.count(), "available" if cache.is_available() else "unavailable",
    )
    return SearchOrchestrator(
        cache=cache,
        embeddings=EmbeddingService(embedder, cache),
        classifier=classifier,
        engine=engine,
        optimizer=QueryOptimizer(
            classifier, max_cache_size=settings.optimizer_cache_max_entries
        ),
        max_query_length=settings.max_query_length,
        max_results_limit=settings.max_results_limit,
    )


def _search_config(settings: Settings) -> SearchConfig:
    return SearchConfig(
        hybrid_weights=HybridWeights(
            vector=settings.search_vector_weight,
            keyword=settings.search_keyword_weight,
        ),
        min_score=settings.search_min_score,
        max_results=settings.search_max_results,
        timeout_ms=settings.search_timeout_ms,
    )


def _load_corpus(path: Path | None) -> list[dict[str, Any]]:
    if path is None:
        logger.warning("No INDEX_CORPUS_PATH configured; index is empty")
        return []
    return load_records(path)


async def _embed_missing(
    records: list[dict[str, Any]], embedder: BaseEmbedder
) -> list[dict[str, Any]]:
    """Fill in ``embedding`` where missing, on copies; inputs are not modified."""
    missing = [i for i, r in enumerate(records) if not r.get("embedding")]
    if not missing:
        return records
    logger.info("Embedding %d index records", len(missing))
    vectors = await embedder.embed_in_batches(
        [records[i].get("content") or "" for i in missing]
    )
    prepared = list(records)
    for i, vector in zip(missing, vectors):
        prepared[i] = {**records[i], "embedding": vector}
    return prepared
