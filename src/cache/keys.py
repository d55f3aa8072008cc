# src/cache/keys.py - v1
"""Deterministic cache-key and cache-context derivation.

Keys are SHA-256 over the normalized key material, prefixed by the cache
type's namespace. Contexts are short MD5 fingerprints of the request scope
(session, user, weights) so that differently-scoped requests for the same
literal query never share an entry.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any, Mapping


def generate_cache_key(data: str, key_prefix: str, context: str | None = None) -> str:
    """Build the namespaced key for ``data`` under an optional context.

    Args:
        data: Raw key material (query text, classification input, ...).
        key_prefix: Namespace string of the cache type (e.g. "search:").
        context: Scope fingerprint; different values yield different keys.

    Returns:
        ``key_prefix`` followed by a 64-char hex digest.
    """
    material = f"{data}:{context}" if context else data
    digest = hashlib.sha256(material.lower().strip().encode("utf-8")).hexdigest()
    return f"{key_prefix}{digest}"


def create_cache_context(
    session_id: str | None = None,
    user_id: str | None = None,
    source_weights: Mapping[str, Any] | None = None,
) -> str:
    """Return an 8-char fingerprint of the request scope."""
    parts = [
        session_id or "anonymous",
        user_id or "guest",
        json.dumps(dict(source_weights), sort_keys=True) if source_weights else "default",
    ]
    return hashlib.md5("::".join(parts).encode("utf-8")).hexdigest()[:8]  # noqa: S324


def normalize_query(query: str) -> str:
    """Lowercased, trimmed form used as classification/optimizer cache key."""
    return query.strip().lower()
