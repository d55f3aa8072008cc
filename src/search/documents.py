# src/search/documents.py - v1
"""Document helpers: checksums, projections, filters, counts, suggestions
and the search metadata/processed-query records."""

from __future__ import annotations

import hashlib
import re
from collections import Counter
from typing import Any

from ragsearch.search.models import (
    DOCUMENT_LANGUAGES,
    DOCUMENT_SOURCES,
    Document,
    ProcessedQuery,
    QueryType,
    SearchConfig,
    SearchFilters,
    SearchMetadata,
)

_SUGGESTION_WORD = re.compile(r"\b\w{4,}\b")
_NON_WORD = re.compile(r"[^\w\s]")

_STOPWORDS = frozenset(
    "the and for are but not you all can had her was one our out day get has "
    "him his how man may new now old see two way who boy did its let put say "
    "she too use".split()
)


def create_document_hash(content: str) -> str:
    """MD5 of the content, used for dedup only."""
    return hashlib.md5(content.encode("utf-8")).hexdigest()  # noqa: S324


def filter_document_content(
    documents: list[Document], include_content: bool, include_embedding: bool
) -> list[dict[str, Any]]:
    """Lighter projections for the response. Originals are left untouched."""
    projected = []
    for doc in documents:
        data = doc.model_dump(mode="json")
        if not include_content:
            data["content"] = ""
        if not include_embedding:
            data.pop("embedding", None)
        projected.append(data)
    return projected


def apply_filters(documents: list[Document], filters: SearchFilters | None) -> list[Document]:
    if filters is None:
        return documents
    result = documents
    if filters.sources:
        result = [d for d in result if d.source in filters.sources]
    if filters.languages:
        result = [d for d in result if d.language in filters.languages]
    if filters.min_score is not None:
        result = [d for d in result if d.score >= filters.min_score]
    return result


def count_documents_by_source(documents: list[Document]) -> dict[str, int]:
    counts = dict.fromkeys(DOCUMENT_SOURCES, 0)
    for doc in documents:
        counts[doc.source] += 1
    return counts


def count_documents_by_language(documents: list[Document]) -> dict[str, int]:
    counts = dict.fromkeys(DOCUMENT_LANGUAGES, 0)
    for doc in documents:
        counts[doc.language] += 1
    return counts


def calculate_score_range(documents: list[Document]) -> tuple[float, float]:
    """Return ``(max_score, min_score)``; both 0 for an empty list."""
    if not documents:
        return 0.0, 0.0
    scores = [d.score for d in documents]
    return max(scores), min(scores)


def generate_search_suggestions(query: str, documents: list[Document]) -> list[str]:
    """Refinements built from the leading words of the top three documents."""
    keywords: dict[str, None] = {}
    for doc in documents[:3]:
        for word in _SUGGESTION_WORD.findall(doc.content.lower())[:5]:
            keywords.setdefault(word, None)

    lowered = query.lower()
    return [
        f"{query} {word}"
        for word in list(keywords)[:3]
        if word not in lowered
    ]


def extract_keywords(content: str, max_keywords: int = 10) -> list[str]:
    """Most frequent non-stopword terms of three or more characters."""
    words = [
        w
        for w in _NON_WORD.sub(" ", content.lower()).split()
        if len(w) >= 3 and w not in _STOPWORDS
    ]
    return [w for w, _ in Counter(words).most_common(max_keywords)]


def build_search_metadata(
    query_id: str,
    documents: list[Document],
    search_time_ms: int,
    cache_hit: bool,
    config: SearchConfig,
    filters: SearchFilters | None = None,
) -> SearchMetadata:
    max_score, min_score = calculate_score_range(documents)
    return SearchMetadata(
        query_id=query_id,
        total_results=len(documents),
        max_score=max_score,
        min_score=min_score,
        search_time_ms=search_time_ms,
        cache_hit=cache_hit,
        source_counts=count_documents_by_source(documents),
        language_counts=count_documents_by_language(documents),
        filters=filters,
        config=config,
    )


def process_query(
    query: str, query_type: QueryType, filters: SearchFilters | None = None
) -> ProcessedQuery:
    processed = query.strip().lower()
    return ProcessedQuery(
        original=query,
        processed=processed,
        tokens=processed.split(),
        query_type=query_type,
        filters=filters,
    )
