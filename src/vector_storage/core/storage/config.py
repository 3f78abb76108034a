"""Backend registry: maps backend type names to store factories.

A registry is built once (usually by ``create_default_registry``) and
handed to ``VectorStoreManager``. The accelerator provider is resolved at
the same time and shared by every in-memory store the registry creates.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable

from vector_storage.core.acceleration import AcceleratorProvider, resolve_accelerator
from vector_storage.core.config import CHROMA_BACKEND, IN_MEMORY_BACKEND
from vector_storage.core.errors import UnknownBackendError

if TYPE_CHECKING:
    from vector_storage.core.config import VectorStoreConfig
    from vector_storage.core.storage.vector import VectorStore

BackendFactory = Callable[["VectorStoreConfig"], "VectorStore"]


class BackendRegistry:
    """Registry of vector store factories keyed by backend type."""

    def __init__(self, accelerator: AcceleratorProvider | None = None) -> None:
        self.accelerator = accelerator if accelerator is not None else resolve_accelerator()
        self._factories: dict[str, BackendFactory] = {}

    def register(self, name: str, factory: BackendFactory) -> None:
        """Register (or replace) the factory for a backend type."""
        self._factories[name] = factory

    def names(self) -> list[str]:
        return sorted(self._factories)

    def __contains__(self, name: object) -> bool:
        return name in self._factories

    def create(self, config: "VectorStoreConfig") -> "VectorStore":
        """Create an unconnected store for ``config.type``.

        Raises:
            UnknownBackendError: If no factory is registered for the type
        """
        factory = self._factories.get(config.type)
        if factory is None:
            raise UnknownBackendError(
                f"Unknown vector store backend '{config.type}'. Registered: {self.names()}",
                "create",
            )
        return factory(config)

    def create_fallback(self, config: "VectorStoreConfig") -> "VectorStore":
        """Create the in-memory store used when the configured backend fails."""
        fallback_config = config.as_fallback()
        return self.create(fallback_config)


def _create_in_memory(accelerator: AcceleratorProvider) -> BackendFactory:
    def factory(config: "VectorStoreConfig") -> "VectorStore":
        from vector_storage.core.storage.memory import InMemoryVectorStore

        return InMemoryVectorStore(config, accelerator)

    return factory


def _create_chroma(config: "VectorStoreConfig") -> "VectorStore":
    from vector_storage.core.storage.chroma import ChromaVectorStore

    return ChromaVectorStore(config)


def create_default_registry(accelerator: AcceleratorProvider | None = None) -> BackendRegistry:
    """Registry with the built-in in-memory and chroma backends."""
    registry = BackendRegistry(accelerator)
    registry.register(IN_MEMORY_BACKEND, _create_in_memory(registry.accelerator))
    registry.register(CHROMA_BACKEND, _create_chroma)
    return registry


def create_vector_store(config: "VectorStoreConfig") -> "VectorStore":
    """Create an unconnected vector store instance from config.

    Args:
        config: Vector store configuration

    Returns:
        Vector store instance (InMemoryVectorStore or ChromaVectorStore)
    """
    return create_default_registry().create(config)
