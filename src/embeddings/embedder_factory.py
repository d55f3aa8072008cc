# src/embeddings/embedder_factory.py - v4
"""Factory: instantiate the embedding provider named in settings."""

from __future__ import annotations

import logging
from typing import Any

from ragsearch.config.settings import Settings
from ragsearch.embeddings.base_embedder import BaseEmbedder
from ragsearch.llm.registry import ProviderRegistry

logger = logging.getLogger(__name__)


class UnsupportedEmbeddingProviderError(ValueError):
    """Raised when an embedding provider is not registered."""


PROVIDERS = ProviderRegistry(
    "embedding",
    {"openai": "ragsearch.embeddings.openai_embedder.OpenAIEmbedder"},
    UnsupportedEmbeddingProviderError,
)


def create_embedder(settings: Settings | None = None) -> BaseEmbedder:
    """Instantiate the configured embedding provider.

    Args:
        settings: Uses EMBEDDING_PROVIDER, EMBEDDING_MODEL and
            EMBEDDING_DIMENSIONS. ``None`` gives the OpenAI defaults.
    """
    if settings is None:
        return PROVIDERS.resolve("openai")()

    provider = settings.embedding_provider
    cls = PROVIDERS.resolve(provider)
    kwargs: dict[str, Any] = {
        "model": settings.embedding_model,
        "dimensions": settings.embedding_dimensions,
    }
    if provider == "openai":
        kwargs.update(api_key=settings.openai_api_key, base_url=settings.openai_base_url)

    logger.debug(
        "Creating embedder: provider=%s, model=%s, dimensions=%d",
        provider, settings.embedding_model, settings.embedding_dimensions,
    )
    return cls(**kwargs)


def register_embedding_provider(name: str, class_path: str) -> None:
    """Register a custom provider implementing BaseEmbedder."""
    PROVIDERS.register(name, class_path)
