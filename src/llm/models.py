# src/llm/models.py - v3
"""Completion-provider types: Message and the normalized LLMResponse."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel


class Message(BaseModel):
    """Single chat message."""

    role: Literal["user", "assistant", "system"]
    content: str


class LLMResponse(BaseModel):
    """Provider-neutral completion result.

    ``content`` holds the raw text; for structured calls it is the JSON
    document the caller validates against its own schema.
    """

    content: str
    input_tokens: int = 0
    output_tokens: int = 0
    model: str
    provider: str
    latency_ms: int = 0
    finish_reason: str | None = None
    raw_response: Any = None

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens
