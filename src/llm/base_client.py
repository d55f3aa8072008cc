# src/llm/base_client.py - v2
"""Abstract completion-provider interface."""

from __future__ import annotations

from abc import ABC, abstractmethod

from pydantic import BaseModel

from ragsearch.llm.models import LLMResponse, Message


class BaseLLMClient(ABC):
    """Unified interface for completion providers.

    Implementations must tolerate task cancellation: callers bound every
    call with ``asyncio.wait_for`` and rely on the cancellation reaching
    the underlying HTTP request.
    """

    @abstractmethod
    async def complete(
        self,
        messages: list[Message],
        system: str | None = None,
        max_tokens: int = 1024,
        temperature: float = 0.0,
        response_format: type[BaseModel] | None = None,
    ) -> LLMResponse:
        """Text completion, optionally constrained to a JSON schema."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Provider identifier."""

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Model identifier."""
