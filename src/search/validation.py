# src/search/validation.py - v1
"""Input validation for search requests. Failures raise QueryValidationError."""

from __future__ import annotations

from ragsearch.search.errors import QueryValidationError
from ragsearch.search.models import SearchParams

MAX_QUERY_LENGTH = 1000
MAX_LIMIT = 100
MIN_TIMEOUT_MS = 1000
MAX_TIMEOUT_MS = 30000


def validate_query_constraints(query: str, max_length: int = MAX_QUERY_LENGTH) -> None:
    if not query or not query.strip():
        raise QueryValidationError("Query cannot be empty", code="QUERY_TOO_SHORT")
    if len(query) > max_length:
        raise QueryValidationError(
            f"Query exceeds maximum length of {max_length} characters",
            code="QUERY_TOO_LONG",
            details={"length": len(query), "max_length": max_length},
        )


def validate_pagination(limit: int, offset: int, max_limit: int = MAX_LIMIT) -> None:
    if limit < 1 or limit > max_limit:
        raise QueryValidationError(
            f"Limit must be between 1 and {max_limit}",
            code="INVALID_PAGINATION",
            details={"limit": limit},
        )
    if offset < 0:
        raise QueryValidationError(
            "Offset cannot be negative",
            code="INVALID_PAGINATION",
            details={"offset": offset},
        )


def validate_timeout(timeout_ms: int) -> None:
    if timeout_ms < MIN_TIMEOUT_MS or timeout_ms > MAX_TIMEOUT_MS:
        raise QueryValidationError(
            f"Timeout must be between {MIN_TIMEOUT_MS}ms and {MAX_TIMEOUT_MS}ms",
            code="INVALID_TIMEOUT",
            details={"timeout_ms": timeout_ms},
        )


def validate_search_params(
    params: SearchParams,
    max_query_length: int = MAX_QUERY_LENGTH,
    max_limit: int = MAX_LIMIT,
) -> None:
    """Run every request-level check; the first violation wins."""
    validate_query_constraints(params.query, max_query_length)
    validate_pagination(params.limit, params.offset, max_limit)
    validate_timeout(params.timeout_ms)
    if params.source_weights is not None:
        bad = {k: v for k, v in params.source_weights.items() if v <= 0}
        if bad:
            raise QueryValidationError(
                "Source weights must be positive",
                code="INVALID_FILTERS",
                details={"weights": bad},
            )
