# tests/unit/embeddings/test_unit_embedders.py - v2
"""Tests for embeddings/embedder_factory.py and the OpenAI embedder."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from ragsearch.config.settings import Settings
from ragsearch.embeddings.base_embedder import BaseEmbedder
from ragsearch.embeddings.embedder_factory import (
    UnsupportedEmbeddingProviderError,
    create_embedder,
)
from ragsearch.embeddings.openai_embedder import OpenAIEmbedder


class TestCreateEmbedder:
    def test_default(self):
        embedder = create_embedder()
        assert isinstance(embedder, OpenAIEmbedder)
        assert embedder.dimensions == 1024
        assert embedder.model_name == "text-embedding-3-large"

    def test_from_settings(self):
        s = Settings(
            _env_file=None, embedding_model="text-embedding-3-small", embedding_dimensions=256
        )
        embedder = create_embedder(s)
        assert embedder.model_name == "text-embedding-3-small"
        assert embedder.dimensions == 256

    def test_unknown_provider(self):
        s = Settings(_env_file=None, embedding_provider="nope")
        with pytest.raises(UnsupportedEmbeddingProviderError):
            create_embedder(s)

    def test_abstract_base(self):
        with pytest.raises(TypeError):
            BaseEmbedder()  # type: ignore[abstract]


class TestOpenAIEmbedder:
    @pytest.mark.asyncio
    async def test_embed_query_passes_dimensions(self):
        embedder = OpenAIEmbedder(model="text-embedding-3-large", api_key="k", dimensions=3)
        sdk = MagicMock()
        sdk.embeddings.create = AsyncMock(
            return_value=SimpleNamespace(data=[SimpleNamespace(embedding=[0.1, 0.2, 0.3])])
        )
        embedder._OpenAIEmbedder__client = sdk

        assert await embedder.embed_query("hello") == [0.1, 0.2, 0.3]
        kwargs = sdk.embeddings.create.call_args.kwargs
        assert kwargs == {
            "input": ["hello"], "model": "text-embedding-3-large", "dimensions": 3,
        }

    @pytest.mark.asyncio
    async def test_embed_texts_order(self):
        embedder = OpenAIEmbedder(api_key="k", dimensions=1)
        sdk = MagicMock()
        sdk.embeddings.create = AsyncMock(
            return_value=SimpleNamespace(
                data=[SimpleNamespace(embedding=[1.0]), SimpleNamespace(embedding=[2.0])]
            )
        )
        embedder._OpenAIEmbedder__client = sdk
        assert await embedder.embed_texts(["a", "b"]) == [[1.0], [2.0]]


class TestEmbedInBatches:
    @pytest.mark.asyncio
    async def test_splits_requests(self, fake_embedder):
        fake_embedder.max_batch_size = 2
        fake_embedder.embed_texts = AsyncMock(side_effect=lambda texts: [[float(len(t))] for t in texts])
        vectors = await fake_embedder.embed_in_batches(["a", "bb", "ccc"])
        assert vectors == [[1.0], [2.0], [3.0]]
        assert fake_embedder.embed_texts.await_count == 2

    @pytest.mark.asyncio
    async def test_empty_input(self, fake_embedder):
        assert await fake_embedder.embed_in_batches([]) == []
