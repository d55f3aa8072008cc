# src/search/query_optimizer.py - v2
"""Query optimizer: complexity, confidence, token budget and routing.

Every scoring step is a pure function over constant lookup tables (passed
in as a LexiconTables so they can be tuned). QueryOptimizer composes them
behind the classifier, memoizes the aggregate result per normalized query,
and keeps running metrics. Optimization never raises: internal failures
produce a result built from a low-confidence operational classification.

Lexical matching is substring-based on the lowercased query, so "or"
also matches inside "for" and "how" inside "show".
"""

from __future__ import annotations

import logging
import math
import re
import time
from collections import OrderedDict
from dataclasses import dataclass

from ragsearch.cache.keys import normalize_query
from ragsearch.search.models import (
    ComplexityAnalysis,
    ConfidenceScore,
    HistoricalPerformance,
    OptimizationMetrics,
    QueryClassification,
    QueryOptimizationResult,
    RoutingDecision,
    TokenOptimizationConfig,
)
from ragsearch.search.query_classifier import QueryClassifier

logger = logging.getLogger(__name__)

FULL_PIPELINE_TOKEN_BASELINE = 1500


@dataclass(frozen=True)
class LexiconTables:
    """Keyword lists driving complexity analysis."""

    question_words: tuple[str, ...] = (
        "what", "how", "why", "when", "where", "which", "who", "explain", "describe",
    )
    conjunctions: tuple[str, ...] = (
        "and", "or", "but", "with", "plus", "using", "including",
    )
    technical_terms: tuple[str, ...] = (
        "api", "implement", "architect", "system", "pipeline", "database",
        "auth", "redis", "middleware", "limiting", "codebase", "search",
    )


DEFAULT_LEXICON = LexiconTables()

_CLARITY_PATTERN = re.compile(
    r"^(what|how|why|when|where|which|who|explain|describe|show|tell)", re.IGNORECASE
)

# level -> (estimated_tokens, required_context, reasoning)
_COMPLEXITY_BASELINES: dict[str, tuple[int, int, str]] = {
    "simple": (300, 1000, "Simple single-concept query"),
    "ambiguous": (200, 1500, "Vague query lacking specificity"),
    "complex": (1500, 4000, "Complex multi-part query requiring comprehensive analysis"),
    "moderate": (800, 2500, "Multi-concept query with moderate complexity"),
}

# level -> (max_tokens, optimal_sources, context_strategy, prompt_template)
_TOKEN_TABLE: dict[str, tuple[int, int, str, str]] = {
    "simple": (500, 2, "minimal", "concise"),
    "moderate": (1000, 3, "balanced", "standard"),
    "complex": (2000, 5, "comprehensive", "detailed"),
    "ambiguous": (800, 4, "balanced", "standard"),
}


def _round_half_up(value: float, digits: int = 0) -> float:
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


def analyze_complexity(
    query: str,
    classification: QueryClassification,
    lexicon: LexiconTables = DEFAULT_LEXICON,
) -> ComplexityAnalysis:
    word_count = len(query.split())
    lowered = query.lower()

    question_matches = sum(1 for w in lexicon.question_words if w in lowered)
    conjunction_matches = sum(1 for w in lexicon.conjunctions if w in lowered)
    technical_matches = sum(1 for w in lexicon.technical_terms if w in lowered)

    concept_count = max(1, question_matches + conjunction_matches)
    technical_depth = min(1.0, technical_matches / 2)

    if word_count <= 8 and concept_count <= 2 and question_matches > 0:
        level = "simple"
    elif word_count <= 5 and (question_matches == 0 or word_count <= 2):
        level = "ambiguous"
    elif word_count > 15 or concept_count >= 4 or technical_depth > 0.6:
        level = "complex"
    else:
        level = "moderate"

    tokens, context, reasoning = _COMPLEXITY_BASELINES[level]
    if technical_depth > 0.5:
        tokens = int(_round_half_up(tokens * 1.3))
        context = int(_round_half_up(context * 1.2))

    return ComplexityAnalysis(
        complexity=level,
        word_count=word_count,
        concept_count=concept_count,
        technical_depth=technical_depth,
        estimated_tokens=tokens,
        required_context=context,
        reasoning=reasoning,
    )


def score_confidence(
    query: str,
    classification: QueryClassification,
    complexity: ComplexityAnalysis,
    historical: HistoricalPerformance | None = None,
) -> ConfidenceScore:
    word_count = len(query.split())
    if _CLARITY_PATTERN.match(query.strip()):
        query_clarity = min(1.0, 0.6 + word_count / 50)
    else:
        query_clarity = min(0.8, word_count / 30)

    # Anything above 0.7 maps to 0.9; the raw confidence is not used there.
    source_coverage = 0.9 if classification.confidence > 0.7 else classification.confidence
    historical_success = historical.avg_success_rate if historical else 0.7

    overall = 0.4 * query_clarity + 0.4 * source_coverage + 0.2 * historical_success
    if complexity.complexity == "ambiguous":
        overall *= 0.5

    return ConfidenceScore(
        overall=min(1.0, max(0.0, overall)),
        query_clarity=query_clarity,
        source_coverage=source_coverage,
        historical_success=historical_success,
        reasoning=(
            f"Confidence based on clarity ({query_clarity:.2f}), "
            f"source coverage ({source_coverage:.2f}), "
            f"and historical success ({historical_success:.2f})"
        ),
    )


def optimize_tokens(
    complexity: ComplexityAnalysis,
    confidence: ConfidenceScore,
    classification: QueryClassification,
) -> TokenOptimizationConfig:
    max_tokens, sources, strategy, template = _TOKEN_TABLE[complexity.complexity]
    if confidence.overall < 0.5:
        sources += 1

    optimized = min(
        max_tokens + complexity.required_context * 0.2, FULL_PIPELINE_TOKEN_BASELINE
    )
    savings = max(0.0, FULL_PIPELINE_TOKEN_BASELINE - optimized)

    return TokenOptimizationConfig(
        max_tokens=max_tokens,
        optimal_sources=sources,
        context_strategy=strategy,
        prompt_template=template,
        estimated_savings=int(_round_half_up(savings)),
    )


def route(
    complexity: ComplexityAnalysis,
    confidence: ConfidenceScore,
    classification: QueryClassification,
    token_config: TokenOptimizationConfig,
) -> RoutingDecision:
    level = complexity.complexity
    weights = dict(classification.weights)

    if level == "simple" and confidence.overall > 0.7:
        decision = dict(
            strategy="cached", min_sources=1, max_sources=2,
            skip_memory=True, use_reranking=False,
            reasoning="Simple high-confidence query - use cached/lightweight processing",
        )
    elif confidence.overall < 0.5 or level == "ambiguous":
        weights = {"github": 1.0, "web": 1.0}
        decision = dict(
            strategy="fallback", min_sources=3, max_sources=6,
            skip_memory=False, use_reranking=True,
            reasoning="Low confidence or ambiguous query - use fallback with expanded search",
        )
    elif level == "complex" or complexity.technical_depth > 0.7:
        decision = dict(
            strategy="full", min_sources=4, max_sources=8,
            skip_memory=False, use_reranking=True,
            reasoning="Complex or technical query - use full RAG pipeline",
        )
    else:
        decision = dict(
            strategy="lightweight", min_sources=2, max_sources=4,
            skip_memory=confidence.overall > 0.6,
            use_reranking=complexity.concept_count > 2,
            reasoning="Moderate query - use lightweight processing",
        )

    github = weights.get("github", 1.0)
    web = weights.get("web", 1.0)
    if classification.type == "technical" and complexity.technical_depth > 0.5:
        weights = {
            "github": _round_half_up(github * 1.41, 2),
            "web": _round_half_up(web * 0.6, 2),
        }
    elif classification.type == "business":
        weights = {
            "github": _round_half_up(github * 0.6, 2),
            "web": _round_half_up(web * 1.41, 2),
        }

    return RoutingDecision(source_weights=weights, **decision)


class QueryOptimizer:
    """Composes the classifier and the scoring steps; caches per query.

    The memo is an LRU capped at ``max_cache_size``. Entries are keyed by
    the normalized query plus, when the caller supplies one, the
    classification it was computed from.
    """

    def __init__(
        self,
        classifier: QueryClassifier,
        lexicon: LexiconTables = DEFAULT_LEXICON,
        max_cache_size: int = 1000,
    ) -> None:
        self._classifier = classifier
        self._lexicon = lexicon
        self._max_cache_size = max_cache_size
        self._cache: OrderedDict[str, QueryOptimizationResult] = OrderedDict()
        self._reset_metrics()

    async def optimize(
        self,
        query: str,
        use_cache: bool = True,
        include_historical: bool = False,
        classification: QueryClassification | None = None,
    ) -> QueryOptimizationResult:
        """Full pipeline. ``classification`` skips the classifier call."""
        t0 = time.monotonic()
        key = _memo_key(query, classification, include_historical)

        if use_cache and key in self._cache:
            self._cache_hits += 1
            self._cache.move_to_end(key)
            return self._cache[key].model_copy(update={"cached": True})

        self._cache_misses += 1
        self._total += 1

        try:
            if classification is None:
                classification, _ = await self._classifier.classify_with_metrics(query)
            result = self._compose(query, classification, include_historical, t0)
        except Exception as e:
            logger.warning("Optimization failed, using fallback: %s", e)
            return self._fallback(query, t0)

        self._remember(key, result)
        self._strategy_count[result.routing.strategy] += 1
        self._savings_sum += result.token_optimization.estimated_savings
        self._confidence_sum += result.confidence.overall
        self._scored += 1
        return result

    def get_metrics(self) -> OptimizationMetrics:
        lookups = self._cache_hits + self._cache_misses
        avg_savings = self._savings_sum / self._scored if self._scored else 0.0
        avg_conf = self._confidence_sum / self._scored if self._scored else 0.0
        return OptimizationMetrics(
            total_optimizations=self._total,
            cache_hit_rate=self._cache_hits / lookups if lookups else 0.0,
            avg_token_savings=int(_round_half_up(avg_savings)),
            avg_confidence=_round_half_up(avg_conf, 2),
            strategy_distribution=dict(self._strategy_count),
        )

    def cache_size(self) -> int:
        return len(self._cache)

    def clear_cache(self) -> None:
        """Drop memoized results and reset metrics."""
        self._cache.clear()
        self._reset_metrics()

    # --- Internals ---

    def _remember(self, key: str, result: QueryOptimizationResult) -> None:
        self._cache[key] = result
        self._cache.move_to_end(key)
        while len(self._cache) > self._max_cache_size:
            self._cache.popitem(last=False)

    def _compose(
        self,
        query: str,
        classification: QueryClassification,
        include_historical: bool,
        t0: float,
    ) -> QueryOptimizationResult:
        complexity = analyze_complexity(query, classification, self._lexicon)
        # TODO: look up real history once per-query outcome tracking exists.
        historical = HistoricalPerformance() if include_historical else None
        confidence = score_confidence(query, classification, complexity, historical)
        tokens = optimize_tokens(complexity, confidence, classification)
        routing = route(complexity, confidence, classification, tokens)
        return QueryOptimizationResult(
            query=query,
            classification=classification,
            complexity=complexity,
            confidence=confidence,
            token_optimization=tokens,
            routing=routing,
            historical=historical,
            optimization_time_ms=int((time.monotonic() - t0) * 1000),
            cached=False,
        )

    def _fallback(self, query: str, t0: float) -> QueryOptimizationResult:
        classification = QueryClassification(
            query=query,
            type="operational",
            confidence=0.3,
            weights={"github": 1.0, "web": 1.0},
            reasoning="Fallback due to optimization error",
            cached=False,
        )
        return self._compose(query, classification, False, t0)

    def _reset_metrics(self) -> None:
        self._total = 0
        self._cache_hits = 0
        self._cache_misses = 0
        self._strategy_count = {"cached": 0, "lightweight": 0, "full": 0, "fallback": 0}
        self._savings_sum = 0
        self._confidence_sum = 0.0
        self._scored = 0


def _memo_key(
    query: str,
    classification: QueryClassification | None,
    include_historical: bool,
) -> str:
    key = normalize_query(query)
    if include_historical:
        key += "|hist"
    if classification is not None:
        weights = ",".join(f"{k}={v}" for k, v in sorted(classification.weights.items()))
        key += f"|{classification.type}|{classification.confidence}|{weights}"
    return key
