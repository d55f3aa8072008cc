# src/llm/registry.py - v1
"""Name -> adapter class registry shared by the provider factories.

Entries are dotted class paths so optional SDKs are imported only when
their provider is actually selected.
"""

from __future__ import annotations

import importlib
import logging

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """Lazily-imported provider classes keyed by provider name."""

    def __init__(
        self,
        kind: str,
        entries: dict[str, str],
        error_cls: type[ValueError] = ValueError,
    ) -> None:
        self._kind = kind
        self._entries = dict(entries)
        self._error_cls = error_cls

    def names(self) -> list[str]:
        return sorted(self._entries)

    def register(self, name: str, class_path: str) -> None:
        self._entries[name] = class_path
        logger.info("Registered %s provider: %s -> %s", self._kind, name, class_path)

    def unregister(self, name: str) -> None:
        self._entries.pop(name, None)

    def resolve(self, name: str) -> type:
        """Import and return the class registered under ``name``.

        Raises:
            The registry's error class if ``name`` is unknown.
        """
        class_path = self._entries.get(name)
        if class_path is None:
            raise self._error_cls(
                f"Unsupported {self._kind} provider: {name!r}. "
                f"Available: {', '.join(self.names())}"
            )
        module_path, class_name = class_path.rsplit(".", 1)
        return getattr(importlib.import_module(module_path), class_name)
