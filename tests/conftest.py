# tests/conftest.py - v2
"""Shared test fixtures for the unit tests.

Provides an in-memory Redis double, a deterministic embedder, a scripted
completion provider and a small document corpus. No network I/O.
"""

from __future__ import annotations

import asyncio
import fnmatch
import json
from typing import Any

import pytest

from ragsearch.cache.redis_store import RedisCacheStore
from ragsearch.embeddings.base_embedder import BaseEmbedder
from ragsearch.llm.base_client import BaseLLMClient
from ragsearch.llm.models import LLMResponse, Message


# === Doubles ===


class FakeRedis:
    """Subset of redis.asyncio.Redis backed by a dict."""

    def __init__(self) -> None:
        self.data: dict[str, str] = {}
        self.ttls: dict[str, int | None] = {}
        self.fail = False
        self.closed = False
        self.set_calls = 0
        self.get_calls = 0

    def _check(self) -> None:
        if self.fail:
            raise ConnectionError("redis down")

    async def get(self, key: str) -> str | None:
        self._check()
        self.get_calls += 1
        return self.data.get(key)

    async def set(self, key: str, value: str, ex: int | None = None) -> bool:
        self._check()
        self.set_calls += 1
        self.data[key] = value
        self.ttls[key] = ex
        return True

    async def delete(self, *keys: str) -> int:
        self._check()
        removed = 0
        for key in keys:
            if self.data.pop(key, None) is not None:
                removed += 1
            self.ttls.pop(key, None)
        return removed

    async def scan(self, cursor: int = 0, match: str = "*", count: int = 100):
        self._check()
        keys = sorted(k for k in self.data if fnmatch.fnmatchcase(k, match))
        start = int(cursor)
        batch = keys[start : start + count]
        nxt = start + count
        return (0 if nxt >= len(keys) else nxt), batch

    async def ping(self) -> bool:
        self._check()
        return True

    async def aclose(self) -> None:
        self.closed = True


class FakeEmbedder(BaseEmbedder):
    """Deterministic vectors derived from character codes."""

    def __init__(self, dims: int = 4, model: str = "fake-embed") -> None:
        self._dims = dims
        self._model = model
        self.calls: list[str] = []
        self.error: Exception | None = None

    def _vector(self, text: str) -> list[float]:
        vec = [0.0] * self._dims
        for i, ch in enumerate(text.lower()):
            vec[i % self._dims] += (ord(ch) % 13) / 13
        return [v + 0.01 for v in vec]

    async def embed_texts(self, texts: list[str]) -> list[list[float]]:
        return [self._vector(t) for t in texts]

    async def embed_query(self, query: str) -> list[float]:
        self.calls.append(query)
        if self.error is not None:
            raise self.error
        return self._vector(query)

    @property
    def dimensions(self) -> int:
        return self._dims

    @property
    def provider_name(self) -> str:
        return "fake"

    @property
    def model_name(self) -> str:
        return self._model


class FakeLLM(BaseLLMClient):
    """Completion provider returning a scripted classification."""

    def __init__(
        self,
        query_type: str = "technical",
        confidence: float = 0.9,
        content: str | None = None,
    ) -> None:
        self.content = content or json.dumps(
            {"type": query_type, "confidence": confidence, "reasoning": "scripted"}
        )
        self.error: Exception | None = None
        self.delay_s = 0.0
        self.calls: list[list[Message]] = []

    async def complete(
        self,
        messages: list[Message],
        system: str | None = None,
        max_tokens: int = 1024,
        temperature: float = 0.0,
        response_format: Any = None,
    ) -> LLMResponse:
        self.calls.append(messages)
        if self.delay_s:
            await asyncio.sleep(self.delay_s)
        if self.error is not None:
            raise self.error
        return LLMResponse(
            content=self.content,
            input_tokens=20,
            output_tokens=10,
            model="fake-llm",
            provider="fake",
            latency_ms=1,
        )

    @property
    def provider_name(self) -> str:
        return "fake"

    @property
    def model_name(self) -> str:
        return "fake-llm"


# === FIXTURES ===


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def cache_store(fake_redis: FakeRedis) -> RedisCacheStore:
    """Available store over the in-memory Redis double."""
    return RedisCacheStore(client=fake_redis)


@pytest.fixture
def unavailable_store() -> RedisCacheStore:
    """Store with no connection (unavailable mode)."""
    return RedisCacheStore()


@pytest.fixture
def fake_embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def fake_llm() -> FakeLLM:
    return FakeLLM()


@pytest.fixture
def sample_records() -> list[dict[str, Any]]:
    """Small corpus across sources and languages."""
    return [
        {
            "id": "doc-redis",
            "content": "Redis is an in-memory data store used for caching.",
            "filepath": "docs/redis.md",
            "source": "github",
            "language": "markdown",
            "priority": 1.0,
            "embedding": [0.9, 0.1, 0.0, 0.1],
        },
        {
            "id": "doc-auth",
            "content": "Authentication middleware validates tokens on every request.",
            "filepath": "src/auth.ts",
            "source": "github",
            "language": "typescript",
            "priority": 1.0,
            "embedding": [0.1, 0.9, 0.1, 0.0],
        },
        {
            "id": "doc-pricing",
            "content": "Pricing plans and onboarding for business customers.",
            "filepath": "https://example.com/pricing",
            "source": "web",
            "language": "text",
            "priority": 1.0,
            "embedding": [0.0, 0.1, 0.9, 0.1],
        },
    ]
