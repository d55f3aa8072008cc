# src/search/hybrid_search.py - v1
"""Hybrid (vector + keyword) search with source weighting.

One fused query per call. Each raw hit becomes a Document whose score is
``min(base * source_weight * priority, 1.0)``. Sparse records get
defaults instead of failing. Index errors propagate unchanged.
"""

from __future__ import annotations

import logging
import time
import uuid
from datetime import datetime
from typing import Any

from ragsearch.index.base_index import BaseDocumentIndex
from ragsearch.search.documents import create_document_hash
from ragsearch.search.models import (
    DOCUMENT_LANGUAGES,
    DOCUMENT_SOURCES,
    Document,
    DocumentMetadata,
    HybridSearchResult,
    SearchConfig,
    SourceWeights,
)

logger = logging.getLogger(__name__)

DEFAULT_SEARCH_CONFIG = SearchConfig()


def compute_final_score(base_score: float, source_weight: float, priority: float) -> float:
    """Weighted score, capped at 1.0."""
    return max(0.0, min(base_score * source_weight * priority, 1.0))


def process_document_result(raw: dict[str, Any], source_weights: SourceWeights) -> Document:
    """Turn one raw index hit into a scored Document."""
    source = raw.get("source") or "local"
    if source not in DOCUMENT_SOURCES:
        source = "local"
    language = raw.get("language") or "other"
    if language not in DOCUMENT_LANGUAGES:
        language = "other"

    content = raw.get("content") or ""
    priority = raw.get("priority") or 1.0
    base_score = raw.get("score") or 0.0
    weight = source_weights.get(source) or 1.0

    return Document(
        id=str(raw.get("id") or uuid.uuid4()),
        content=content,
        filepath=raw.get("filepath") or "",
        source=source,
        language=language,
        score=compute_final_score(float(base_score), float(weight), float(priority)),
        priority=float(priority),
        metadata=_build_metadata(raw, content),
        embedding=raw.get("embedding"),
    )


def _build_metadata(raw: dict[str, Any], content: str) -> DocumentMetadata:
    last_modified = raw.get("lastModified") or raw.get("last_modified")
    if isinstance(last_modified, str):
        try:
            last_modified = datetime.fromisoformat(last_modified)
        except ValueError:
            last_modified = None
    return DocumentMetadata(
        size=raw.get("size") or 0,
        word_count=len(content.split()),
        lines=content.count("\n") + 1,
        checksum=raw.get("checksum") or create_document_hash(content),
        last_modified=last_modified,
        url=raw.get("url"),
    )


class HybridSearchEngine:
    """Executes fused queries against a document index."""

    def __init__(
        self, index: BaseDocumentIndex, config: SearchConfig | None = None
    ) -> None:
        self._index = index
        self._config = config or DEFAULT_SEARCH_CONFIG

    @property
    def config(self) -> SearchConfig:
        return self._config

    async def search(
        self,
        query: str,
        source_weights: SourceWeights,
        limit: int,
        offset: int = 0,
        vector: list[float] | None = None,
        min_score: float | None = None,
        config: SearchConfig | None = None,
    ) -> HybridSearchResult:
        """Run one fused query and return documents sorted by score.

        Args:
            query: Search text for the keyword side.
            source_weights: Per-source multipliers; missing sources weigh 1.0.
            limit: Page size.
            offset: Page start.
            vector: Query embedding for the vector side.
            min_score: Floor on final scores (defaults to the config's).
            config: Per-call override of the engine configuration.
        """
        cfg = config or self._config
        floor = cfg.min_score if min_score is None else min_score

        t0 = time.monotonic()
        raw_hits = await self._index.hybrid_query(
            query=query,
            vector=vector or [],
            alpha=cfg.hybrid_weights.vector,
            limit=limit + offset,
            offset=offset,
            min_score=floor,
        )
        search_time = int((time.monotonic() - t0) * 1000)

        documents = [process_document_result(hit, source_weights) for hit in raw_hits]
        documents = [d for d in documents if d.score >= floor]
        # sorted() is stable: equal scores keep index order.
        documents = sorted(documents, key=lambda d: d.score, reverse=True)[:limit]

        logger.debug(
            "Hybrid search returned %d/%d hits in %dms",
            len(documents), len(raw_hits), search_time,
        )
        return HybridSearchResult(
            documents=documents,
            total_results=len(documents),
            search_time_ms=search_time,
        )

    async def check_connection(self) -> None:
        await self._index.ping()
