# src/search/query_classifier.py - v2
"""Query classifier: technical / business / operational, with source weights.

Calls a completion provider under a hard timeout and looks weights up from
a static table. Results are cached in two levels (in-process TTL map in
front of the shared cache store) keyed by the normalized query only.
Provider errors become a deterministic fallback unless the caller opts out.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections import OrderedDict
from typing import Mapping

from pydantic import ValidationError

from ragsearch.cache.keys import normalize_query
from ragsearch.cache.redis_store import RedisCacheStore
from ragsearch.llm.base_client import BaseLLMClient
from ragsearch.llm.models import Message
from ragsearch.search.errors import (
    QueryClassificationError,
    QueryValidationError,
    normalize_provider_error,
)
from ragsearch.search.models import (
    QUERY_TYPES,
    ClassificationMetrics,
    ClassificationResponse,
    QueryClassification,
    QueryType,
    SourceWeights,
)

logger = logging.getLogger(__name__)

SOURCE_WEIGHT_CONFIGS: dict[str, SourceWeights] = {
    "technical": {"github": 1.5, "web": 0.5},
    "business": {"github": 0.5, "web": 1.5},
    "operational": {"github": 1.0, "web": 1.0},
}
DEFAULT_WEIGHTS: SourceWeights = {"github": 1.0, "web": 1.0}

CACHED_REASONING = "cached response"

CLASSIFICATION_SYSTEM_PROMPT = """\
You are an expert at classifying user queries for a RAG system containing code repositories and business documentation.

Classify queries into these categories:

1. TECHNICAL: Code implementation, API usage, programming concepts, architectural details, debugging
   - Examples: "How do I implement React hooks?", "What's the TypeScript interface?", "Fix this error"

2. BUSINESS: Product features, user stories, business requirements, processes, policies
   - Examples: "What features does the product have?", "How do users onboard?", "What's our pricing?"

3. OPERATIONAL: Deployment, configuration, DevOps, workflows, setup procedures
   - Examples: "How do I deploy?", "What's the CI/CD process?", "How to configure environment?"

Return confidence score (0-1) and brief reasoning."""


class _MemoryTTLCache:
    """Process-local LRU map with per-entry expiry, capped at ``max_size``."""

    def __init__(self, ttl_seconds: float, max_size: int = 1000) -> None:
        self._ttl = ttl_seconds
        self._max_size = max_size
        self._entries: OrderedDict[str, tuple[QueryClassification, float]] = OrderedDict()

    def get(self, key: str) -> QueryClassification | None:
        item = self._entries.get(key)
        if item is None:
            return None
        value, expires = item
        if expires <= time.monotonic():
            del self._entries[key]
            return None
        self._entries.move_to_end(key)
        return value

    def set(self, key: str, value: QueryClassification) -> None:
        self._entries[key] = (value, time.monotonic() + self._ttl)
        self._entries.move_to_end(key)
        if len(self._entries) > self._max_size:
            self._purge_expired()
        while len(self._entries) > self._max_size:
            self._entries.popitem(last=False)

    def _purge_expired(self) -> None:
        now = time.monotonic()
        for key in [k for k, (_, expires) in self._entries.items() if expires <= now]:
            del self._entries[key]

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


def apply_source_weights(
    query_type: QueryType,
    table: Mapping[str, SourceWeights] = SOURCE_WEIGHT_CONFIGS,
) -> SourceWeights:
    return dict(table[query_type])


def create_fallback_classification(
    query: str, error: QueryClassificationError
) -> QueryClassification:
    return QueryClassification(
        query=query,
        type="operational",
        confidence=0.0,
        weights=dict(DEFAULT_WEIGHTS),
        reasoning=f"Fallback classification due to error: {error.message}",
        cached=False,
    )


def validate_classification(classification: QueryClassification) -> bool:
    """Structural sanity check used before trusting a stored classification."""
    weights = classification.weights
    return (
        bool(classification.query.strip())
        and classification.type in QUERY_TYPES
        and 0.0 <= classification.confidence <= 1.0
        and isinstance(weights.get("github"), (int, float))
        and isinstance(weights.get("web"), (int, float))
        and weights["github"] > 0
        and weights["web"] > 0
    )


class QueryClassifier:
    """LLM-backed classifier with aggressive caching."""

    def __init__(
        self,
        llm: BaseLLMClient,
        cache: RedisCacheStore | None = None,
        timeout_ms: int = 5000,
        memory_ttl_seconds: float = 24 * 60 * 60,
        weight_table: Mapping[str, SourceWeights] | None = None,
        memory_max_entries: int = 1000,
    ) -> None:
        self._llm = llm
        self._cache = cache
        self._timeout_ms = timeout_ms
        self._memory = _MemoryTTLCache(memory_ttl_seconds, memory_max_entries)
        self._weights = dict(weight_table or SOURCE_WEIGHT_CONFIGS)

    async def classify(
        self,
        query: str,
        timeout_ms: int | None = None,
        use_cache: bool = True,
        fallback: bool = True,
    ) -> QueryClassification:
        """Classify ``query``; never raises provider errors when ``fallback``.

        Raises:
            QueryValidationError: Empty query.
            QueryClassificationError: Provider failure with ``fallback=False``.
        """
        trimmed = query.strip() if query else ""
        if not trimmed:
            raise QueryValidationError("Query cannot be empty", code="QUERY_TOO_SHORT")

        timeout = timeout_ms or self._timeout_ms
        key = normalize_query(trimmed)

        if use_cache:
            cached = await self._get_cached(key)
            if cached is not None:
                return cached.model_copy(
                    update={"query": trimmed, "cached": True, "reasoning": CACHED_REASONING}
                )

        try:
            response = await self._classify_with_llm(trimmed, timeout)
        except Exception as e:
            error = normalize_provider_error(e, timeout)
            if not fallback:
                if error is e:
                    raise
                raise error from e
            logger.warning(
                "Classification failed (%s), using fallback weights: %s",
                error.code, error.message,
            )
            return create_fallback_classification(trimmed, error)

        classification = QueryClassification(
            query=trimmed,
            type=response.type,
            confidence=response.confidence,
            weights=apply_source_weights(response.type, self._weights),
            reasoning=response.reasoning,
            cached=False,
        )
        if use_cache:
            await self._set_cached(key, classification)
        return classification

    async def classify_many(
        self, queries: list[str], timeout_ms: int | None = None, use_cache: bool = True
    ) -> list[QueryClassification]:
        return list(
            await asyncio.gather(
                *(self.classify(q, timeout_ms, use_cache) for q in queries)
            )
        )

    async def classify_with_metrics(
        self, query: str, timeout_ms: int | None = None, use_cache: bool = True
    ) -> tuple[QueryClassification, ClassificationMetrics]:
        """Classify and report latency and where the answer came from."""
        t0 = time.monotonic()
        try:
            classification = await self.classify(
                query, timeout_ms, use_cache, fallback=False
            )
            source = "cache" if classification.cached else "openai"
        except QueryClassificationError as e:
            logger.warning("Classification fell back: %s", e.message)
            classification = create_fallback_classification(query.strip(), e)
            source = "fallback"

        metrics = ClassificationMetrics(
            response_time_ms=int((time.monotonic() - t0) * 1000),
            cache_hit=classification.cached,
            confidence=classification.confidence,
            source=source,
        )
        return classification, metrics

    def memory_cache_size(self) -> int:
        return len(self._memory)

    def clear_memory_cache(self) -> None:
        self._memory.clear()

    # --- Internals ---

    async def _classify_with_llm(self, query: str, timeout_ms: int) -> ClassificationResponse:
        # wait_for cancels the provider call on expiry.
        response = await asyncio.wait_for(
            self._llm.complete(
                messages=[Message(role="user", content=f'Classify this query: "{query}"')],
                system=CLASSIFICATION_SYSTEM_PROMPT,
                max_tokens=200,
                temperature=0.0,
                response_format=ClassificationResponse,
            ),
            timeout=timeout_ms / 1000,
        )
        try:
            return ClassificationResponse.model_validate(json.loads(response.content))
        except (ValidationError, json.JSONDecodeError) as e:
            raise QueryClassificationError(
                "Classification response validation failed",
                code="INVALID_RESPONSE",
                details={"response": response.content[:500]},
            ) from e

    async def _get_cached(self, key: str) -> QueryClassification | None:
        hit = self._memory.get(key)
        if hit is not None:
            return hit
        if self._cache is None or not self._cache.is_available():
            return None
        entry = await self._cache.get(
            "classification", key, payload_model=QueryClassification
        )
        if entry is None or not validate_classification(entry.payload):
            return None
        self._memory.set(key, entry.payload)
        return entry.payload

    async def _set_cached(self, key: str, classification: QueryClassification) -> None:
        self._memory.set(key, classification)
        if self._cache is not None and self._cache.is_available():
            await self._cache.set("classification", key, classification)
