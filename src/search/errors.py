# src/search/errors.py - v2
"""Search error taxonomy and the error envelope returned to callers.

Validation errors always surface. Provider errors are normalized to a
code (TIMEOUT, INVALID_RESPONSE, PROVIDER_ERROR); the classifier and the
optimizer turn them into fallbacks, everything else propagates them.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from pydantic import ValidationError

logger = logging.getLogger(__name__)

_STATUS_BY_CODE: dict[str, int] = {
    "QUERY_TOO_SHORT": 400,
    "QUERY_TOO_LONG": 400,
    "INVALID_PAGINATION": 400,
    "INVALID_TIMEOUT": 400,
    "INVALID_FILTERS": 400,
    "TIMEOUT": 408,
    "INVALID_RESPONSE": 500,
    "PROVIDER_ERROR": 500,
    "SERVICE_UNAVAILABLE": 500,
}


class SearchError(Exception):
    """Base class for errors carrying a machine-readable code."""

    default_code = "SERVICE_UNAVAILABLE"

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}

    @property
    def status(self) -> int:
        """HTTP-style status hint for the calling layer."""
        return _STATUS_BY_CODE.get(self.code, 500)

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class QueryValidationError(SearchError):
    """Malformed search input. Never retried."""

    default_code = "QUERY_TOO_SHORT"


class ProviderError(SearchError):
    """Embedding, completion or index call failed or timed out."""

    default_code = "PROVIDER_ERROR"


class QueryClassificationError(ProviderError):
    """Classifier provider failure, normalized."""


class SearchTimeoutError(SearchError):
    """The per-request timeout controller fired."""

    default_code = "TIMEOUT"


def normalize_provider_error(
    exc: BaseException, timeout_ms: int | None = None
) -> QueryClassificationError:
    """Map any provider-side exception onto a coded classification error."""
    if isinstance(exc, QueryClassificationError):
        return exc
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
        return QueryClassificationError(
            f"Classification timeout after {timeout_ms}ms",
            code="TIMEOUT",
            details={"timeout_ms": timeout_ms},
        )
    if isinstance(exc, (ValidationError, json.JSONDecodeError)):
        return QueryClassificationError(
            "Classification response validation failed",
            code="INVALID_RESPONSE",
            details={"error": str(exc)},
        )
    return QueryClassificationError(
        f"Classification provider error: {exc}",
        code="PROVIDER_ERROR",
        details={"error_type": type(exc).__name__},
    )


def describe_error(exc: BaseException, query_id: str | None = None) -> dict[str, Any]:
    """Build the ``{success: False, error: {...}}`` envelope for any exception."""
    if isinstance(exc, SearchError):
        error = exc.to_dict()
    elif isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
        error = {"code": "TIMEOUT", "message": "Search request timed out", "details": {}}
    else:
        error = {
            "code": "SERVICE_UNAVAILABLE",
            "message": str(exc) or "An unknown error occurred",
            "details": {},
        }
    error["queryId"] = query_id
    return {"success": False, "error": error}


def error_status(exc: BaseException) -> int:
    if isinstance(exc, SearchError):
        return exc.status
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
        return 408
    return 500
