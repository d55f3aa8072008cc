# src/index/base_index.py - v1
"""Abstract document index interface.

The index answers one fused vector+keyword query and returns raw hit
records. Records may be sparse; the hybrid search engine fills defaults.
Connectivity errors propagate to the caller.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class BaseDocumentIndex(ABC):
    """Unified interface for document index backends."""

    @abstractmethod
    async def hybrid_query(
        self,
        query: str,
        vector: list[float],
        alpha: float,
        limit: int,
        offset: int = 0,
        min_score: float = 0.0,
    ) -> list[dict[str, Any]]:
        """Fused query; ``alpha`` is the vector share of the fused score.

        Returns:
            Hit records in ranked order, each with at least ``score`` when
            the backend provides one (``id``, ``content``, ``source``,
            ``filepath``, ``language``, ``priority``, ... when present).
        """

    @abstractmethod
    async def ping(self) -> None:
        """Raise if the index is unreachable."""

    @abstractmethod
    async def count(self) -> int:
        """Number of indexed records."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Backend identifier."""
