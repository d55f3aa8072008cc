# tests/unit/search/test_unit_query_optimizer.py - v2
"""Tests for search/query_optimizer.py - scoring tables and routing."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from ragsearch.search.models import HistoricalPerformance, QueryClassification
from ragsearch.search.query_classifier import QueryClassifier
from ragsearch.search.query_optimizer import (
    LexiconTables,
    QueryOptimizer,
    analyze_complexity,
    optimize_tokens,
    route,
    score_confidence,
)


def _classification(query: str, query_type: str = "technical", confidence: float = 0.9):
    weights = {
        "technical": {"github": 1.5, "web": 0.5},
        "business": {"github": 0.5, "web": 1.5},
        "operational": {"github": 1.0, "web": 1.0},
    }[query_type]
    return QueryClassification(
        query=query, type=query_type, confidence=confidence,
        weights=weights, reasoning="test",
    )


def _pipeline(query: str, classification: QueryClassification):
    complexity = analyze_complexity(query, classification)
    confidence = score_confidence(query, classification, complexity)
    tokens = optimize_tokens(complexity, confidence, classification)
    return complexity, confidence, tokens, route(complexity, confidence, classification, tokens)


class TestAnalyzeComplexity:
    def test_simple_question(self):
        c = analyze_complexity("What is Redis?", _classification("What is Redis?"))
        assert c.complexity == "simple"
        assert c.word_count == 3
        assert c.concept_count == 1
        assert c.technical_depth == 0.5
        assert c.estimated_tokens == 300
        assert c.required_context == 1000

    def test_single_word_is_ambiguous(self):
        c = analyze_complexity("it", _classification("it"))
        assert c.complexity == "ambiguous"
        assert c.estimated_tokens == 200

    def test_moderate(self):
        q = "Redis cache eviction policy settings for production clusters"
        assert analyze_complexity(q, _classification(q)).complexity == "moderate"

    def test_long_query_is_complex(self):
        q = " ".join(["word"] * 16)
        assert analyze_complexity(q, _classification(q)).complexity == "complex"

    def test_technical_depth_scales_budget(self):
        q = "How do I implement the auth middleware?"
        c = analyze_complexity(q, _classification(q))
        assert c.technical_depth == 1.0
        assert c.estimated_tokens == 390
        assert c.required_context == 1200

    def test_custom_lexicon(self):
        lexicon = LexiconTables(question_words=("wie",), conjunctions=(), technical_terms=())
        c = analyze_complexity("wie geht das", _classification("wie geht das"), lexicon)
        assert c.complexity == "simple"


class TestScoring:
    def test_confidence_components(self):
        q = "What is Redis?"
        cls = _classification(q)
        conf = score_confidence(q, cls, analyze_complexity(q, cls))
        assert conf.query_clarity == pytest.approx(0.66)
        assert conf.source_coverage == 0.9
        assert conf.historical_success == 0.7
        assert conf.overall == pytest.approx(0.764)

    def test_low_classifier_confidence_passes_through(self):
        q = "What is Redis?"
        cls = _classification(q, confidence=0.6)
        conf = score_confidence(q, cls, analyze_complexity(q, cls))
        assert conf.source_coverage == 0.6

    def test_ambiguous_halves_confidence(self):
        cls = _classification("it")
        conf = score_confidence("it", cls, analyze_complexity("it", cls))
        assert conf.overall < 0.3

    def test_historical_used_when_given(self):
        q = "What is Redis?"
        cls = _classification(q)
        conf = score_confidence(
            q, cls, analyze_complexity(q, cls), HistoricalPerformance(avg_success_rate=0.2)
        )
        assert conf.historical_success == 0.2

    def test_token_budget_simple(self):
        _, _, tokens, _ = _pipeline("What is Redis?", _classification("What is Redis?"))
        assert tokens.max_tokens == 500
        assert tokens.optimal_sources == 2
        assert tokens.context_strategy == "minimal"
        assert tokens.prompt_template == "concise"
        assert tokens.estimated_savings == 800

    def test_low_confidence_adds_source(self):
        _, _, tokens, _ = _pipeline("it", _classification("it"))
        assert tokens.optimal_sources == 5
        assert tokens.estimated_savings == 400


class TestRoute:
    def test_simple_query_cached(self):
        *_, routing = _pipeline("What is Redis?", _classification("What is Redis?"))
        assert routing.strategy == "cached"
        assert routing.skip_memory is True
        assert routing.use_reranking is False
        assert routing.source_weights == {"github": 1.5, "web": 0.5}

    def test_ambiguous_query_fallback(self):
        *_, routing = _pipeline("it", _classification("it"))
        assert routing.strategy == "fallback"
        assert routing.min_sources == 3
        assert routing.max_sources == 6
        assert routing.source_weights == {"github": 1.0, "web": 1.0}

    def test_technical_depth_boosts_github(self):
        q = "How do I implement the auth middleware?"
        *_, routing = _pipeline(q, _classification(q))
        assert routing.strategy == "cached"
        assert routing.source_weights["github"] == pytest.approx(2.115, abs=0.006)
        assert routing.source_weights["web"] == pytest.approx(0.3)

    def test_business_boosts_web(self):
        q = "What features does the product have?"
        *_, routing = _pipeline(q, _classification(q, "business"))
        assert routing.source_weights["github"] == pytest.approx(0.3)
        assert routing.source_weights["web"] == pytest.approx(2.115, abs=0.006)

    def test_complex_query_full(self):
        q = " ".join(["word"] * 16)
        *_, routing = _pipeline(q, _classification(q, confidence=0.95))
        assert routing.strategy == "full"
        assert routing.use_reranking is True


class TestQueryOptimizer:
    @pytest.mark.asyncio
    async def test_optimize_with_classifier(self, fake_llm):
        optimizer = QueryOptimizer(QueryClassifier(fake_llm))
        result = await optimizer.optimize("What is Redis?")
        assert result.classification.type == "technical"
        assert result.routing.strategy == "cached"
        assert result.cached is False

    @pytest.mark.asyncio
    async def test_memoized(self, fake_llm):
        optimizer = QueryOptimizer(QueryClassifier(fake_llm))
        await optimizer.optimize("What is Redis?")
        again = await optimizer.optimize("  what is redis? ")
        assert again.cached is True

        metrics = optimizer.get_metrics()
        assert metrics.total_optimizations == 1
        assert metrics.cache_hit_rate == 0.5
        assert metrics.strategy_distribution["cached"] == 1

    @pytest.mark.asyncio
    async def test_given_classification_skips_classifier(self):
        classifier = MagicMock(spec=QueryClassifier)
        classifier.classify_with_metrics = AsyncMock()
        optimizer = QueryOptimizer(classifier)
        result = await optimizer.optimize("it", classification=_classification("it"))
        classifier.classify_with_metrics.assert_not_awaited()
        assert result.routing.strategy == "fallback"

    @pytest.mark.asyncio
    async def test_failure_uses_low_confidence_fallback(self):
        classifier = MagicMock(spec=QueryClassifier)
        classifier.classify_with_metrics = AsyncMock(side_effect=RuntimeError("boom"))
        result = await QueryOptimizer(classifier).optimize("What is Redis?")
        assert result.classification.type == "operational"
        assert result.classification.confidence == 0.3
        assert result.routing.strategy == "lightweight"

    @pytest.mark.asyncio
    async def test_include_historical(self, fake_llm):
        result = await QueryOptimizer(QueryClassifier(fake_llm)).optimize(
            "What is Redis?", include_historical=True
        )
        assert result.historical is not None
        assert result.confidence.historical_success == 0.7

    @pytest.mark.asyncio
    async def test_clear_cache(self, fake_llm):
        optimizer = QueryOptimizer(QueryClassifier(fake_llm))
        await optimizer.optimize("What is Redis?")
        optimizer.clear_cache()
        assert optimizer.get_metrics().total_optimizations == 0
        assert (await optimizer.optimize("What is Redis?")).cached is False

    @pytest.mark.asyncio
    async def test_memo_bounded(self, fake_llm):
        optimizer = QueryOptimizer(QueryClassifier(fake_llm), max_cache_size=2)
        for q in ("What is Redis?", "How to deploy?", "Pricing plans?"):
            await optimizer.optimize(q)
        assert optimizer.cache_size() == 2
        assert (await optimizer.optimize("What is Redis?")).cached is False

    @pytest.mark.asyncio
    async def test_given_classification_part_of_key(self):
        classifier = MagicMock(spec=QueryClassifier)
        optimizer = QueryOptimizer(classifier)
        q = "What features does the product have?"
        technical = await optimizer.optimize(q, classification=_classification(q))
        business = await optimizer.optimize(q, classification=_classification(q, "business"))

        assert business.cached is False
        assert business.classification.type == "business"
        assert technical.routing.source_weights != business.routing.source_weights
        again = await optimizer.optimize(q, classification=_classification(q, "business"))
        assert again.cached is True

    @pytest.mark.asyncio
    async def test_running_averages(self):
        optimizer = QueryOptimizer(MagicMock(spec=QueryClassifier))
        await optimizer.optimize("What is Redis?", classification=_classification("What is Redis?"))
        await optimizer.optimize("it", classification=_classification("it"))
        metrics = optimizer.get_metrics()
        assert metrics.total_optimizations == 2
        assert metrics.avg_token_savings == 600
