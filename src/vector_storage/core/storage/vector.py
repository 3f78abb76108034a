"""Vector store interface shared by every backend."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Sequence

from vector_storage.core.config import DEFAULT_LIST_LIMIT, DEFAULT_SEARCH_LIMIT
from vector_storage.core.filters import FilterSpec, SearchFilters
from vector_storage.core.models import VectorStoreResult

Filters = FilterSpec | SearchFilters | None


class VectorStore(ABC):
    """Abstract interface for vector storage backends.

    Every operation on a disconnected store raises ``NotConnectedError``.
    """

    @abstractmethod
    def connect(self) -> None:
        """Open the collection, loading persisted state if any. Idempotent."""
        ...

    @abstractmethod
    def disconnect(self) -> None:
        """Flush state if persistence is enabled and release resources. Idempotent."""
        ...

    @abstractmethod
    def is_connected(self) -> bool:
        ...

    @abstractmethod
    def insert(
        self,
        vectors: Sequence[Sequence[float]],
        ids: Sequence[int],
        payloads: Sequence[dict[str, Any]],
    ) -> None:
        """Insert entries; existing ids are replaced."""
        ...

    @abstractmethod
    def search(
        self,
        query: Sequence[float],
        limit: int = DEFAULT_SEARCH_LIMIT,
        filters: Filters = None,
    ) -> list[VectorStoreResult]:
        """Search for similar vectors, best first."""
        ...

    @abstractmethod
    def get(self, vector_id: int) -> VectorStoreResult | None:
        """Get an entry by ID, or None if absent."""
        ...

    @abstractmethod
    def update(self, vector_id: int, vector: Sequence[float], payload: dict[str, Any]) -> None:
        """Replace the vector and payload of an existing entry."""
        ...

    @abstractmethod
    def delete(self, vector_id: int) -> None:
        """Delete an entry by ID."""
        ...

    @abstractmethod
    def delete_collection(self) -> None:
        """Remove all entries."""
        ...

    @abstractmethod
    def list(
        self,
        filters: Filters = None,
        limit: int = DEFAULT_LIST_LIMIT,
        offset: int = 0,
    ) -> tuple[list[VectorStoreResult], int]:
        """Return a page of matching entries and the total number of matches."""
        ...

    @abstractmethod
    def get_backend_type(self) -> str:
        ...

    @abstractmethod
    def get_dimension(self) -> int:
        ...

    @abstractmethod
    def get_collection_name(self) -> str:
        ...
