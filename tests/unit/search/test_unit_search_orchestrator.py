# tests/unit/search/test_unit_search_orchestrator.py - v2
"""Tests for search/orchestrator.py - cache-first search over doubles."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from ragsearch.cache.embedding_service import EmbeddingService
from ragsearch.index.memory_index import InMemoryDocumentIndex
from ragsearch.search.errors import ProviderError, QueryValidationError, SearchTimeoutError
from ragsearch.search.hybrid_search import HybridSearchEngine
from ragsearch.search.models import (
    Document,
    HybridSearchResult,
    SearchFilters,
    SearchParams,
    WarmQuery,
)
from ragsearch.search.orchestrator import (
    SearchOrchestrator,
    create_health_response,
    create_unhealthy_response,
)
from ragsearch.search.query_classifier import QueryClassifier
from ragsearch.search.query_optimizer import QueryOptimizer
from ragsearch.search.timeout import TimeoutController


class SlowIndex(InMemoryDocumentIndex):
    async def hybrid_query(self, *args, **kwargs):
        await asyncio.sleep(0.5)
        return []


@pytest.fixture
def controllers() -> list[TimeoutController]:
    return []


@pytest.fixture
def build(cache_store, fake_embedder, fake_llm, sample_records, controllers):
    """Factory for orchestrators sharing the same doubles."""

    def _build(cache=None, records=None, engine=None, optimizer=False, timeout_ms=None):
        cache = cache if cache is not None else cache_store
        classifier = QueryClassifier(fake_llm, cache=cache)
        if engine is None:
            index = InMemoryDocumentIndex(sample_records if records is None else records)
            engine = HybridSearchEngine(index)

        def factory(ms: int) -> TimeoutController:
            controller = TimeoutController(timeout_ms or ms)
            controllers.append(controller)
            return controller

        return SearchOrchestrator(
            cache=cache,
            embeddings=EmbeddingService(fake_embedder, cache),
            classifier=classifier,
            engine=engine,
            optimizer=QueryOptimizer(classifier) if optimizer else None,
            timeout_factory=factory,
        )

    return _build


def _search_keys(fake_redis) -> list[str]:
    return [k for k in fake_redis.data if k.startswith("search:")]


class TestSearch:
    @pytest.mark.asyncio
    async def test_miss_then_hit(self, build, fake_embedder):
        orchestrator = build()
        params = SearchParams(query="redis caching")

        first = await orchestrator.search(params)
        await orchestrator.wait_for_background()
        second = await orchestrator.search(params)

        assert first.success is True
        assert first.metadata.cache_hit is False
        assert first.results
        assert second.metadata.cache_hit is True
        assert [r["id"] for r in second.results] == [r["id"] for r in first.results]
        assert second.query.query_type == "technical"
        assert fake_embedder.calls == ["redis caching"]

    @pytest.mark.asyncio
    async def test_result_shape(self, build):
        response = await build().search(SearchParams(query="Redis caching"))
        assert response.results[0]["id"] == "doc-redis"
        assert "embedding" not in response.results[0]
        assert response.query.processed == "redis caching"
        assert response.query.tokens == ["redis", "caching"]
        assert response.metadata.total_results == len(response.results)
        assert response.metadata.max_score >= response.metadata.min_score
        assert response.metadata.source_counts["github"] >= 1
        assert response.routing is None

    @pytest.mark.asyncio
    async def test_force_fresh_bypasses_cache_read(self, build, fake_embedder):
        orchestrator = build()
        await orchestrator.search(SearchParams(query="redis caching"))
        await orchestrator.wait_for_background()

        response = await orchestrator.search(
            SearchParams(query="redis caching", force_fresh=True)
        )
        assert response.metadata.cache_hit is False
        assert len(fake_embedder.calls) == 2

    @pytest.mark.asyncio
    async def test_empty_results_not_written(self, build, fake_redis):
        orchestrator = build(records=[])
        response = await orchestrator.search(SearchParams(query="redis caching"))
        await orchestrator.wait_for_background()

        assert response.results == []
        assert response.metadata.max_score == 0.0
        assert _search_keys(fake_redis) == []

    @pytest.mark.asyncio
    async def test_results_written_once(self, build, fake_redis):
        orchestrator = build()
        await orchestrator.search(SearchParams(query="redis caching"))
        await orchestrator.wait_for_background()
        assert len(_search_keys(fake_redis)) == 1

    @pytest.mark.asyncio
    async def test_weight_override_scopes_cache(self, build):
        orchestrator = build()
        await orchestrator.search(SearchParams(query="redis caching"))
        await orchestrator.wait_for_background()

        response = await orchestrator.search(
            SearchParams(query="redis caching", source_weights={"github": 0.5, "web": 2.0})
        )
        assert response.metadata.cache_hit is False

    @pytest.mark.asyncio
    async def test_unavailable_cache(self, build, unavailable_store):
        response = await build(cache=unavailable_store).search(
            SearchParams(query="redis caching")
        )
        assert response.metadata.cache_hit is False
        assert response.results

    @pytest.mark.asyncio
    async def test_filters_and_projection(self, build):
        response = await build().search(
            SearchParams(
                query="pricing redis caching",
                source_weights={"github": 1.0, "web": 1.0},
                filters=SearchFilters(sources=["web"]),
                include_content=False,
            )
        )
        assert response.results
        assert {r["source"] for r in response.results} == {"web"}
        assert all(r["content"] == "" for r in response.results)
        assert response.metadata.filters.sources == ["web"]

    @pytest.mark.asyncio
    async def test_filters_do_not_narrow_cached_results(self, build):
        records = [
            {"id": "gh", "content": "deploy guide", "source": "github",
             "embedding": [0.5, 0.5, 0.5, 0.5]},
            {"id": "web", "content": "deploy guide", "source": "web",
             "embedding": [0.5, 0.5, 0.5, 0.5]},
        ]
        orchestrator = build(records=records)
        weights = {"github": 1.0, "web": 1.0}

        def params(sources=None):
            return SearchParams(
                query="deploy guide",
                source_weights=weights,
                filters=SearchFilters(sources=sources) if sources else None,
            )

        web_only = await orchestrator.search(params(["web"]))
        await orchestrator.wait_for_background()
        unfiltered = await orchestrator.search(params())
        github_only = await orchestrator.search(params(["github"]))

        assert [r["id"] for r in web_only.results] == ["web"]
        assert unfiltered.metadata.cache_hit is True
        assert {r["id"] for r in unfiltered.results} == {"gh", "web"}
        assert github_only.metadata.cache_hit is True
        assert [r["id"] for r in github_only.results] == ["gh"]

    @pytest.mark.asyncio
    async def test_classifier_failure_uses_default_weights(self, build, fake_llm):
        fake_llm.error = RuntimeError("provider down")
        response = await build().search(SearchParams(query="redis caching"))
        assert response.success is True
        assert response.query.query_type == "operational"

    @pytest.mark.asyncio
    async def test_optimizer_adds_routing(self, build):
        response = await build(optimizer=True).search(SearchParams(query="What is Redis?"))
        assert response.routing is not None
        assert response.routing.strategy == "cached"
        assert response.token_optimization.prompt_template == "concise"

    @pytest.mark.asyncio
    async def test_background_write_failure_not_raised(self, build, cache_store):
        cache_store.set_search_results = AsyncMock(side_effect=RuntimeError("write failed"))
        orchestrator = build()
        response = await orchestrator.search(SearchParams(query="redis caching"))
        await orchestrator.wait_for_background()
        assert response.success is True
        cache_store.set_search_results.assert_awaited_once()


class TestSearchErrors:
    @pytest.mark.asyncio
    async def test_empty_query(self, build, fake_embedder):
        with pytest.raises(QueryValidationError) as exc_info:
            await build().search(SearchParams(query="   "))
        assert exc_info.value.code == "QUERY_TOO_SHORT"
        assert fake_embedder.calls == []

    @pytest.mark.asyncio
    async def test_query_too_long(self, build):
        with pytest.raises(QueryValidationError) as exc_info:
            await build().search(SearchParams(query="x" * 1001))
        assert exc_info.value.code == "QUERY_TOO_LONG"

    @pytest.mark.asyncio
    async def test_bad_pagination(self, build):
        with pytest.raises(QueryValidationError) as exc_info:
            await build().search(SearchParams(query="q", limit=0))
        assert exc_info.value.code == "INVALID_PAGINATION"

    @pytest.mark.asyncio
    async def test_embedding_failure_propagates(self, build, fake_embedder, controllers):
        fake_embedder.error = RuntimeError("embedding quota")
        with pytest.raises(ProviderError, match="embedding quota"):
            await build().search(SearchParams(query="redis caching"))
        assert controllers[0].cleanup_count == 1

    @pytest.mark.asyncio
    async def test_timeout(self, build, controllers):
        orchestrator = build(engine=HybridSearchEngine(SlowIndex()), timeout_ms=50)
        with pytest.raises(SearchTimeoutError) as exc_info:
            await orchestrator.search(SearchParams(query="redis caching"))
        assert exc_info.value.code == "TIMEOUT"
        assert controllers[0].cancelled.is_set()
        assert controllers[0].cleanup_count == 1

    @pytest.mark.asyncio
    async def test_cleanup_once_on_success_and_hit(self, build, controllers):
        orchestrator = build()
        await orchestrator.search(SearchParams(query="redis caching"))
        await orchestrator.wait_for_background()
        await orchestrator.search(SearchParams(query="redis caching"))
        assert [c.cleanup_count for c in controllers] == [1, 1]


class TestWarmCache:
    @pytest.mark.asyncio
    async def test_stops_at_first_failure(self, build, fake_embedder):
        engine = MagicMock(spec=HybridSearchEngine)
        engine.search = AsyncMock(
            side_effect=[
                HybridSearchResult(
                    documents=[Document(id="a", content="alpha", score=0.5)],
                    total_results=1,
                    search_time_ms=1,
                ),
                RuntimeError("index down"),
                HybridSearchResult(documents=[], total_results=0, search_time_ms=1),
            ]
        )
        orchestrator = build(engine=engine)

        result = await orchestrator.warm_cache(
            [WarmQuery(query="first"), WarmQuery(query="second"), WarmQuery(query="third")]
        )
        assert result.success == 1
        assert result.failed == 1
        assert result.already_cached == 0
        assert engine.search.await_count == 2
        assert fake_embedder.calls == ["first", "second"]

    @pytest.mark.asyncio
    async def test_already_cached_skipped(self, build, fake_embedder):
        orchestrator = build()
        await orchestrator.search(SearchParams(query="redis caching"))
        await orchestrator.wait_for_background()

        result = await orchestrator.warm_cache(
            [WarmQuery(query="redis caching"), WarmQuery(query="auth middleware")]
        )
        assert result.already_cached == 1
        assert result.success == 1
        assert fake_embedder.calls == ["redis caching", "auth middleware"]

    @pytest.mark.asyncio
    async def test_warmed_entry_serves_search(self, build):
        orchestrator = build()
        await orchestrator.warm_cache([WarmQuery(query="redis caching")])
        response = await orchestrator.search(SearchParams(query="redis caching"))
        assert response.metadata.cache_hit is True

    @pytest.mark.asyncio
    async def test_priority_order(self, build, fake_embedder):
        orchestrator = build()
        await orchestrator.warm_cache(
            [WarmQuery(query="low"), WarmQuery(query="high", priority=5)]
        )
        assert fake_embedder.calls == ["high", "low"]


class TestMaintenance:
    @pytest.mark.asyncio
    async def test_clear_all_caches(self, build, fake_redis):
        orchestrator = build()
        await orchestrator.search(SearchParams(query="redis caching"))
        await orchestrator.wait_for_background()

        assert await orchestrator.clear_all_caches() is True
        assert fake_redis.data == {}

    @pytest.mark.asyncio
    async def test_clear_all_caches_resets_optimizer(self, build):
        orchestrator = build(optimizer=True)
        await orchestrator.search(SearchParams(query="redis caching"))
        await orchestrator.wait_for_background()
        assert orchestrator._optimizer.cache_size() == 1

        await orchestrator.clear_all_caches()
        assert orchestrator._optimizer.cache_size() == 0
        assert orchestrator._optimizer.get_metrics().total_optimizations == 0

    @pytest.mark.asyncio
    async def test_clear_unavailable(self, build, unavailable_store):
        assert await build(cache=unavailable_store).clear_all_caches() is False

    @pytest.mark.asyncio
    async def test_cache_stats(self, build):
        orchestrator = build()
        await orchestrator.search(SearchParams(query="redis caching"))
        stats = orchestrator.get_cache_stats()
        assert stats.by_type["searchResult"].misses == 1
        assert stats.overall.total_requests >= 1

    @pytest.mark.asyncio
    async def test_health_check(self, build):
        health = await build().health_check()
        assert health["search"] == {"healthy": True}
        assert health["cache"]["healthy"] is True
        assert health["embedding"]["cache_available"] is True
        assert "hits" in health["embedding"]["stats"]

    @pytest.mark.asyncio
    async def test_close_waits_and_closes(self, build, fake_redis):
        orchestrator = build()
        await orchestrator.search(SearchParams(query="redis caching"))
        await orchestrator.close()
        assert len(_search_keys(fake_redis)) == 1
        assert fake_redis.closed is True


class TestHealthResponses:
    def test_healthy(self):
        response = create_health_response(cache_enabled=True)
        assert response["status"] == "healthy"
        assert "cache_warming" in response["capabilities"]
        assert response["limits"] == {
            "max_query_length": 1000, "max_results": 100, "timeout_ms": 30000,
        }
        assert response["cache"]["enabled"] is True
        assert response["cache"]["types"] == [
            "embeddings", "classifications", "searchResults", "contextualQueries",
        ]

    def test_unhealthy(self):
        response = create_unhealthy_response(RuntimeError("redis down"))
        assert response["status"] == "unhealthy"
        assert response["error"] == "redis down"
        assert "timestamp" in response
