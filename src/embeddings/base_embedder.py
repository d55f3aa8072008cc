# src/embeddings/base_embedder.py - v3
"""Abstract embedding provider interface."""

from __future__ import annotations

from abc import ABC, abstractmethod


class BaseEmbedder(ABC):
    """Text -> vector provider used for queries and index records."""

    # Upper bound on inputs per provider request
    max_batch_size: int = 512

    @abstractmethod
    async def embed_texts(self, texts: list[str]) -> list[list[float]]:
        """Embed a batch of texts into vectors, in input order."""

    @abstractmethod
    async def embed_query(self, query: str) -> list[float]:
        """Embed a single query."""

    async def embed_in_batches(self, texts: list[str]) -> list[list[float]]:
        """Embed any number of texts, ``max_batch_size`` per request."""
        vectors: list[list[float]] = []
        for start in range(0, len(texts), self.max_batch_size):
            vectors.extend(await self.embed_texts(texts[start:start + self.max_batch_size]))
        return vectors

    @property
    @abstractmethod
    def dimensions(self) -> int:
        """Output vector dimensions."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Provider identifier."""

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Model identifier."""
