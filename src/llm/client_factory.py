# src/llm/client_factory.py - v4
"""Factory: instantiate the completion provider used by the classifier."""

from __future__ import annotations

import logging
from typing import Any

from ragsearch.config.settings import Settings
from ragsearch.llm.base_client import BaseLLMClient
from ragsearch.llm.registry import ProviderRegistry

logger = logging.getLogger(__name__)


class UnsupportedProviderError(ValueError):
    """Raised when a provider is not registered."""


PROVIDERS = ProviderRegistry(
    "LLM",
    {"openai": "ragsearch.llm.adapters.openai_adapter.OpenAIAdapter"},
    UnsupportedProviderError,
)


def _settings_kwargs(provider: str, settings: Settings) -> dict[str, Any]:
    if provider == "openai":
        return {"api_key": settings.openai_api_key, "base_url": settings.openai_base_url}
    return {}


def create_llm_client(
    provider: str,
    model: str,
    settings: Settings | None = None,
    **kwargs: Any,
) -> BaseLLMClient:
    """Build a completion client.

    Args:
        provider: Registered provider name (``openai`` or a custom one).
        model: Model name, e.g. ``gpt-4o-mini``.
        settings: Source of credentials and endpoint; explicit kwargs win.
        **kwargs: Extra constructor arguments for the adapter.

    Raises:
        UnsupportedProviderError: If provider is not registered.
    """
    adapter_cls = PROVIDERS.resolve(provider)

    init_kwargs = _settings_kwargs(provider, settings) if settings is not None else {}
    init_kwargs.update(kwargs)
    init_kwargs["model"] = model

    logger.debug("Creating LLM client: provider=%s, model=%s", provider, model)
    return adapter_cls(**init_kwargs)


def register_provider(name: str, class_path: str) -> None:
    """Register a custom adapter implementing BaseLLMClient."""
    PROVIDERS.register(name, class_path)
