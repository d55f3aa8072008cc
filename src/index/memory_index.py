# src/index/memory_index.py - v1
"""In-process document index with relative-score fusion.

Vector side: cosine similarity (numpy). Keyword side: share of query terms
present in content or filepath. Each side is min-max normalized over the
candidate set, then fused as ``alpha * vector + (1 - alpha) * keyword``.
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any

import numpy as np

from ragsearch.index.base_index import BaseDocumentIndex

logger = logging.getLogger(__name__)

_TOKEN = re.compile(r"\w+")


class InMemoryDocumentIndex(BaseDocumentIndex):
    """Holds records in memory; suitable for local runs and tests."""

    def __init__(self, records: list[dict[str, Any]] | None = None) -> None:
        self._records: list[dict[str, Any]] = []
        self._matrix: np.ndarray | None = None
        if records:
            self._add(records)

    async def upsert(self, records: list[dict[str, Any]]) -> None:
        """Insert or replace records by ``id``."""
        self._add(records)

    async def hybrid_query(
        self,
        query: str,
        vector: list[float],
        alpha: float,
        limit: int,
        offset: int = 0,
        min_score: float = 0.0,
    ) -> list[dict[str, Any]]:
        if not self._records:
            return []

        vec_scores = _min_max(self._vector_scores(vector))
        kw_scores = _min_max(self._keyword_scores(query))
        fused = alpha * vec_scores + (1.0 - alpha) * kw_scores

        # Stable sort keeps insertion order on ties.
        order = np.argsort(-fused, kind="stable")
        hits: list[dict[str, Any]] = []
        for idx in order:
            score = float(fused[idx])
            if score <= min_score:
                continue
            hit = dict(self._records[idx])
            hit["score"] = score
            hits.append(hit)
        return hits[offset : offset + limit]

    async def ping(self) -> None:
        return None

    async def count(self) -> int:
        return len(self._records)

    @property
    def provider_name(self) -> str:
        return "memory"

    # --- Internals ---

    def _add(self, records: list[dict[str, Any]]) -> None:
        by_id = {r.get("id"): i for i, r in enumerate(self._records) if r.get("id")}
        for rec in records:
            pos = by_id.get(rec.get("id")) if rec.get("id") else None
            if pos is None:
                self._records.append(dict(rec))
            else:
                self._records[pos] = dict(rec)
        self._matrix = None
        logger.debug("Index now holds %d records", len(self._records))

    def _embedding_matrix(self, dims: int) -> np.ndarray:
        if self._matrix is None or self._matrix.shape[1] != dims:
            rows = []
            for rec in self._records:
                emb = rec.get("embedding")
                rows.append(emb if emb is not None and len(emb) == dims else [0.0] * dims)
            self._matrix = np.asarray(rows, dtype=np.float64).reshape(len(rows), dims)
        return self._matrix

    def _vector_scores(self, vector: list[float]) -> np.ndarray:
        if not vector:
            return np.zeros(len(self._records))
        q = np.asarray(vector, dtype=np.float64)
        matrix = self._embedding_matrix(q.shape[0])
        norms = np.maximum(np.linalg.norm(matrix, axis=1), 1e-10)
        sims = (matrix @ q) / (norms * max(float(np.linalg.norm(q)), 1e-10))
        return np.clip(sims, 0.0, 1.0)

    def _keyword_scores(self, query: str) -> np.ndarray:
        terms = set(_TOKEN.findall(query.lower()))
        if not terms:
            return np.zeros(len(self._records))
        scores = []
        for rec in self._records:
            text = f"{rec.get('content', '')} {rec.get('filepath', '')}".lower()
            scores.append(len(terms & set(_TOKEN.findall(text))) / len(terms))
        return np.asarray(scores, dtype=np.float64)


def _min_max(values: np.ndarray) -> np.ndarray:
    lo = float(values.min())
    hi = float(values.max())
    if hi - lo < 1e-12:
        return np.where(values > 0, 1.0, 0.0)
    return (values - lo) / (hi - lo)


def load_records(path: Path) -> list[dict[str, Any]]:
    """Read one JSON record per line; blank lines are skipped."""
    records = []
    with Path(path).open(encoding="utf-8") as f:
        for line_no, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                records.append(json.loads(line))
            except json.JSONDecodeError as e:
                raise ValueError(f"{path}:{line_no}: invalid JSON record: {e}") from e
    return records
