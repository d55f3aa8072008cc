# tests/unit/llm/test_unit_client_factory.py - v2
"""Tests for llm/client_factory.py and the BaseLLMClient contract."""

from __future__ import annotations

import pytest

from ragsearch.config.settings import Settings
from ragsearch.llm import client_factory
from ragsearch.llm.adapters.openai_adapter import OpenAIAdapter
from ragsearch.llm.base_client import BaseLLMClient
from ragsearch.llm.client_factory import (
    UnsupportedProviderError,
    create_llm_client,
    register_provider,
)


class TestBaseLLMClient:
    def test_cannot_instantiate(self):
        with pytest.raises(TypeError):
            BaseLLMClient()  # type: ignore[abstract]


class TestCreateLLMClient:
    def test_openai(self):
        s = Settings(_env_file=None, openai_api_key="sk-test")
        client = create_llm_client("openai", "gpt-4o-mini", s)
        assert isinstance(client, OpenAIAdapter)
        assert client.model_name == "gpt-4o-mini"
        assert client.provider_name == "openai"

    def test_unknown_provider(self):
        with pytest.raises(UnsupportedProviderError, match="Available: openai"):
            create_llm_client("nope", "m")

    def test_register_provider(self):
        register_provider(
            "custom", "ragsearch.llm.adapters.openai_adapter.OpenAIAdapter"
        )
        try:
            client = create_llm_client("custom", "my-model")
            assert client.model_name == "my-model"
        finally:
            client_factory.PROVIDERS.unregister("custom")

    def test_explicit_kwargs_win(self):
        s = Settings(_env_file=None, openai_api_key="sk-settings")
        client = create_llm_client("openai", "gpt-4o-mini", s, api_key="sk-explicit")
        assert client._api_key == "sk-explicit"

    def test_base_url_from_settings(self):
        s = Settings(_env_file=None, openai_base_url="http://localhost:8080/v1")
        client = create_llm_client("openai", "gpt-4o-mini", s)
        assert client._base_url == "http://localhost:8080/v1"
