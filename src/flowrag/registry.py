"""Provider registry for flowrag.

Maps (category, name) strings to factory functions that create provider
and stage instances.
Example: ``registry.create("stage", "chunk", "s3", context)`` → ``ChunkStage``.
"""

from __future__ import annotations

import importlib
import logging
from typing import TYPE_CHECKING, Any

from flowrag.exceptions import PluginError

if TYPE_CHECKING:
    from collections.abc import Callable

__all__ = ["ProviderRegistry", "default_registry"]

logger = logging.getLogger(__name__)

# Modules whose import registers the built-in providers and stage kinds.
_BUILTIN_MODULES = ("flowrag.embed", "flowrag.chat", "flowrag.fetch", "flowrag.stages")


class ProviderRegistry:
    """Factory registry that maps (category, name) → instance.

    Categories used by flowrag: ``"embedding"``, ``"chat"``, ``"fetch"``
    and ``"stage"`` (keyed by stage kind).

    When ``auto_discover`` is ``True``, the first lookup triggers a lazy
    import of the built-in provider modules so they are registered
    without an explicit import.

    Usage::

        registry = ProviderRegistry()
        registry.register("fetch", "local", lambda cfg, client: LocalFetcher(cfg))
        fetcher = registry.create("fetch", "local", config.fetch, client)
    """

    def __init__(self, *, auto_discover: bool = False) -> None:
        self._factories: dict[str, dict[str, Callable[..., Any]]] = {}
        self._auto_discover = auto_discover
        self._discovered = False

    def register(
        self,
        category: str,
        name: str,
        factory: Callable[..., Any],
    ) -> None:
        """Register a factory.

        Args:
            category: Registry category (e.g. "embedding", "stage").
            name: Provider or stage-kind name (e.g. "openai", "chunk").
            factory: Callable that builds the instance from the arguments
                passed to :meth:`create`.

        Raises:
            PluginError: If a factory with the same category+name already exists.
        """
        if category not in self._factories:
            self._factories[category] = {}

        if name in self._factories[category]:
            raise PluginError(f"Provider '{name}' already registered in category '{category}'")

        self._factories[category][name] = factory
        logger.debug("Registered provider %s/%s", category, name)

    def _ensure_discovered(self) -> None:
        """Lazily import built-in provider modules on first use."""
        if self._discovered or not self._auto_discover:
            return
        self._discovered = True
        for module in _BUILTIN_MODULES:
            importlib.import_module(module)

    def create(self, category: str, name: str, *args: Any, **kwargs: Any) -> Any:
        """Create an instance from the registry.

        Args:
            category: Registry category.
            name: Provider or stage-kind name.
            *args: Positional arguments forwarded to the factory.
            **kwargs: Keyword arguments forwarded to the factory.

        Returns:
            The instance built by the factory.

        Raises:
            PluginError: If the category or name is not registered.
        """
        self._ensure_discovered()

        if category not in self._factories:
            raise PluginError(
                f"Unknown provider category '{category}'. Available: {sorted(self._factories)}"
            )

        if name not in self._factories[category]:
            raise PluginError(
                f"Unknown provider '{name}' in category '{category}'. "
                f"Available: {sorted(self._factories[category])}"
            )

        factory = self._factories[category][name]
        logger.debug("Creating provider %s/%s", category, name)
        return factory(*args, **kwargs)

    def list_providers(self, category: str) -> list[str]:
        """List registered names for a category."""
        self._ensure_discovered()
        if category not in self._factories:
            return []
        return sorted(self._factories[category])

    def has_provider(self, category: str, name: str) -> bool:
        """Check whether a factory is registered."""
        self._ensure_discovered()
        return category in self._factories and name in self._factories[category]


default_registry = ProviderRegistry(auto_discover=True)
