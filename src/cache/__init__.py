"""Typed Redis cache store, cache keys and the embedding cache service."""
