# src/llm/adapters/openai_adapter.py - v3
"""OpenAI chat-completions adapter implementing BaseLLMClient.

Structured outputs use ``json_schema`` response formats derived from the
pydantic model. SDK-level retries are off by default: classification
calls are bounded by a short timeout and fall back instead of retrying.
"""

from __future__ import annotations

import logging
import time
from typing import Any

from pydantic import BaseModel

from ragsearch.llm.base_client import BaseLLMClient
from ragsearch.llm.models import LLMResponse, Message

logger = logging.getLogger(__name__)


class OpenAIAdapter(BaseLLMClient):
    """Chat completions against the OpenAI API (or a compatible endpoint)."""

    def __init__(
        self,
        model: str = "gpt-4o-mini",
        api_key: str = "",
        base_url: str | None = None,
        max_retries: int = 0,
        **kwargs: Any,
    ):
        self._model = model
        self._api_key = api_key
        self._base_url = base_url
        self._max_retries = max_retries
        self.__client = None

    @property
    def _client(self):
        if self.__client is None:
            try:
                import openai
            except ImportError as e:
                raise ImportError(
                    "openai package required: pip install openai"
                ) from e
            self.__client = openai.AsyncOpenAI(
                api_key=self._api_key,
                base_url=self._base_url,
                max_retries=self._max_retries,
            )
        return self.__client

    async def complete(
        self,
        messages: list[Message],
        system: str | None = None,
        max_tokens: int = 1024,
        temperature: float = 0.0,
        response_format: type[BaseModel] | None = None,
    ) -> LLMResponse:
        payload = [m.model_dump() for m in messages]
        if system:
            payload.insert(0, {"role": "system", "content": system})

        request: dict[str, Any] = {
            "model": self._model,
            "messages": payload,
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        if response_format is not None:
            request["response_format"] = {
                "type": "json_schema",
                "json_schema": {
                    "name": response_format.__name__,
                    "schema": response_format.model_json_schema(),
                },
            }

        started = time.monotonic()
        resp = await self._client.chat.completions.create(**request)
        latency_ms = int((time.monotonic() - started) * 1000)

        choice = resp.choices[0]
        finish_reason = getattr(choice, "finish_reason", None)
        if finish_reason == "length":
            logger.warning("Completion truncated at max_tokens=%d", max_tokens)

        usage = resp.usage
        return LLMResponse(
            content=choice.message.content or "",
            input_tokens=usage.prompt_tokens if usage else 0,
            output_tokens=usage.completion_tokens if usage else 0,
            model=self._model,
            provider=self.provider_name,
            latency_ms=latency_ms,
            finish_reason=finish_reason,
            raw_response=resp,
        )

    async def aclose(self) -> None:
        """Close the underlying HTTP client if one was created."""
        if self.__client is not None:
            await self.__client.close()
            self.__client = None

    @property
    def provider_name(self) -> str:
        return "openai"

    @property
    def model_name(self) -> str:
        return self._model
