# src/logging/context.py - v2
"""Contextual logging support: attach query_id, session_id, user_id and
operation to log records.

Context variables are task-local under asyncio, so concurrent searches
never see each other's values.
"""

from __future__ import annotations

import contextvars
from dataclasses import dataclass
from typing import Any

_query_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "query_id", default=None
)
_session_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "session_id", default=None
)
_user_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "user_id", default=None
)
_operation: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "operation", default=None
)


@dataclass
class LogContext:
    """Immutable snapshot of current logging context."""

    query_id: str | None = None
    session_id: str | None = None
    user_id: str | None = None
    operation: str | None = None

    def as_dict(self) -> dict[str, Any]:
        """Return non-None fields as dict for JSON log injection."""
        return {k: v for k, v in self.__dict__.items() if v is not None}


def get_context() -> LogContext:
    """Snapshot current context variables."""
    return LogContext(
        query_id=_query_id.get(),
        session_id=_session_id.get(),
        user_id=_user_id.get(),
        operation=_operation.get(),
    )


def set_request_context(
    query_id: str, session_id: str | None = None, user_id: str | None = None
) -> None:
    """Set request-level context (called once per search call)."""
    _query_id.set(query_id)
    _session_id.set(session_id)
    _user_id.set(user_id)


def set_operation(operation: str | None) -> None:
    """Name the current orchestrator operation (search, warm, health...)."""
    _operation.set(operation)


def clear_context() -> None:
    """Reset all context variables."""
    _query_id.set(None)
    _session_id.set(None)
    _user_id.set(None)
    _operation.set(None)
