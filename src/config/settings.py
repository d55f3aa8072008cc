# src/config/settings.py - v4
"""Typed configuration loaded from .env via pydantic-settings.

Single source of truth for deployment-specific settings: Redis, the
cache-type table, providers, search defaults and logging. The cache-type
table is the one piece of tunable persisted configuration; every row can
be overridden through the environment (e.g. CACHE_SEARCH_RESULT_TTL_SECONDS).
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ragsearch.cache.models import CacheTypeConfig


class ConfigurationError(Exception):
    """Raised when configuration is internally inconsistent."""


class Settings(BaseSettings):
    """Application settings loaded from .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # === Redis ===
    redis_url: str = ""
    redis_socket_timeout_s: float = 2.0

    # === Cache-type table ===
    cache_embedding_ttl_seconds: int = 24 * 60 * 60
    cache_embedding_prefix: str = "embedding:"
    cache_embedding_compression: bool = True

    cache_classification_ttl_seconds: int = 24 * 60 * 60
    cache_classification_prefix: str = "classification:"
    cache_classification_compression: bool = False

    # Shorter: indexed content changes faster than embeddings do.
    cache_search_result_ttl_seconds: int = 1 * 60 * 60
    cache_search_result_prefix: str = "search:"
    cache_search_result_compression: bool = True

    cache_contextual_query_ttl_seconds: int = 6 * 60 * 60
    cache_contextual_query_prefix: str = "context:"
    cache_contextual_query_compression: bool = True

    cache_compression_threshold_bytes: int = 1024

    # === Providers ===
    openai_api_key: str = ""
    openai_base_url: str | None = None
    embedding_provider: str = "openai"
    embedding_model: str = "text-embedding-3-large"
    embedding_dimensions: int = 1024
    classifier_provider: str = "openai"
    classifier_model: str = "gpt-4o-mini"
    classifier_timeout_ms: int = 5000
    classifier_memory_ttl_seconds: int = 24 * 60 * 60
    classifier_memory_max_entries: int = 1000
    optimizer_cache_max_entries: int = 1000

    # === Search ===
    search_vector_weight: float = 0.75
    search_keyword_weight: float = 0.25
    search_min_score: float = 0.1
    search_max_results: int = 10
    search_timeout_ms: int = 5000
    max_query_length: int = 1000
    max_results_limit: int = 100

    # === Index ===
    # JSONL corpus loaded into the in-memory index by the CLI.
    index_corpus_path: Path | None = None

    # === Logging ===
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "text"] = "json"
    log_file: Path | None = None
    log_rotation: str = "10MB"
    log_retention: int = 30

    # --- Validators ---

    @field_validator(
        "cache_embedding_ttl_seconds",
        "cache_classification_ttl_seconds",
        "cache_search_result_ttl_seconds",
        "cache_contextual_query_ttl_seconds",
    )
    @classmethod
    def validate_ttl(cls, v: int) -> int:  # noqa: N805
        if v <= 0:
            raise ValueError("cache TTL must be > 0 seconds")
        return v

    @field_validator("classifier_memory_max_entries", "optimizer_cache_max_entries")
    @classmethod
    def validate_cache_size(cls, v: int) -> int:  # noqa: N805
        if v < 1:
            raise ValueError("in-process cache size must be >= 1")
        return v

    @model_validator(mode="after")
    def validate_config_consistency(self) -> Settings:
        """Collect cross-field violations and raise them together."""
        errors: list[str] = []

        if abs(self.search_vector_weight + self.search_keyword_weight - 1.0) > 0.01:
            errors.append(
                "SEARCH_VECTOR_WEIGHT + SEARCH_KEYWORD_WEIGHT must equal 1.0"
            )

        if not 0.0 <= self.search_min_score <= 1.0:
            errors.append("SEARCH_MIN_SCORE must be within [0, 1]")

        if not 1000 <= self.search_timeout_ms <= 30000:
            errors.append("SEARCH_TIMEOUT_MS must be between 1000 and 30000")

        if self.search_max_results > self.max_results_limit:
            errors.append("SEARCH_MAX_RESULTS must be <= MAX_RESULTS_LIMIT")

        if errors:
            raise ConfigurationError("; ".join(errors))

        return self

    # --- Helpers ---

    def cache_type_configs(self) -> dict[str, CacheTypeConfig]:
        """Materialize the cache-type table keyed by cache type name."""
        return {
            "embedding": CacheTypeConfig(
                ttl_seconds=self.cache_embedding_ttl_seconds,
                key_prefix=self.cache_embedding_prefix,
                enable_compression=self.cache_embedding_compression,
                max_key_size=1000,
            ),
            "classification": CacheTypeConfig(
                ttl_seconds=self.cache_classification_ttl_seconds,
                key_prefix=self.cache_classification_prefix,
                enable_compression=self.cache_classification_compression,
                max_key_size=500,
            ),
            "searchResult": CacheTypeConfig(
                ttl_seconds=self.cache_search_result_ttl_seconds,
                key_prefix=self.cache_search_result_prefix,
                enable_compression=self.cache_search_result_compression,
                max_key_size=2000,
            ),
            "contextualQuery": CacheTypeConfig(
                ttl_seconds=self.cache_contextual_query_ttl_seconds,
                key_prefix=self.cache_contextual_query_prefix,
                enable_compression=self.cache_contextual_query_compression,
                max_key_size=1500,
            ),
        }


def load_settings(**overrides: object) -> Settings:
    """Load settings from .env with optional overrides.

    Args:
        **overrides: Field-level overrides (for testing or per-process config).

    Returns:
        Validated Settings instance.

    Raises:
        ConfigurationError: If configuration is internally inconsistent.
    """
    return Settings(**overrides)  # type: ignore[arg-type]
