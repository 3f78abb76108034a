"""Accelerated index providers.

The approximate/exact index talks to a native similarity library only
through ``AcceleratorProvider``. A provider reports whether it is usable via
``available``; when it is not, the index simply runs linear scans. FAISS is
the built-in accelerated provider and ``UnavailableAccelerator`` stands in
when FAISS cannot be imported.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any

import numpy as np

logger = logging.getLogger(__name__)


class AcceleratedIndex(ABC):
    """A native index holding unit-length vectors under integer ids.

    Scores returned by ``search`` are inner products, which equal cosine
    similarity because callers only add normalized vectors.
    """

    supports_remove: bool = True

    @property
    @abstractmethod
    def ntotal(self) -> int:
        """Number of vectors held."""
        ...

    @abstractmethod
    def add_with_ids(self, vectors: np.ndarray, ids: np.ndarray) -> None:
        """Add a float32 matrix of vectors under int64 ids."""
        ...

    @abstractmethod
    def search(self, query: np.ndarray, k: int) -> tuple[np.ndarray, np.ndarray]:
        """Return (scores, ids) for the k best matches; missing slots have id -1."""
        ...

    @abstractmethod
    def remove_ids(self, ids: np.ndarray) -> int:
        """Remove vectors by id, returning how many were removed."""
        ...

    @abstractmethod
    def reset(self) -> None:
        """Remove all vectors."""
        ...

    @abstractmethod
    def write(self, path: str) -> None:
        """Write the index to a file."""
        ...


class AcceleratorProvider(ABC):
    """Factory for accelerated indices with an availability probe."""

    name: str = "unknown"

    @property
    @abstractmethod
    def available(self) -> bool:
        """Whether indices can be created by this provider."""
        ...

    @abstractmethod
    def create_index(self, dimension: int, algorithm: str) -> AcceleratedIndex:
        """Create an empty index for the given algorithm."""
        ...

    @abstractmethod
    def read_index(self, path: str, dimension: int) -> AcceleratedIndex:
        """Load an index previously written with ``AcceleratedIndex.write``."""
        ...


class UnavailableAccelerator(AcceleratorProvider):
    """Provider used when no native library can be loaded."""

    name = "unavailable"

    def __init__(self, reason: str = "no accelerated index library installed") -> None:
        self.reason = reason

    @property
    def available(self) -> bool:
        return False

    def create_index(self, dimension: int, algorithm: str) -> AcceleratedIndex:
        raise RuntimeError(f"Accelerated index unavailable: {self.reason}")

    def read_index(self, path: str, dimension: int) -> AcceleratedIndex:
        raise RuntimeError(f"Accelerated index unavailable: {self.reason}")


class FaissIndex(AcceleratedIndex):
    """Wrapper around ``faiss.IndexIDMap2(faiss.IndexFlatIP)``."""

    def __init__(self, faiss_module: Any, index: Any) -> None:
        self._faiss = faiss_module
        self._index = index

    @property
    def ntotal(self) -> int:
        return int(self._index.ntotal)

    @property
    def dimension(self) -> int:
        return int(self._index.d)

    def add_with_ids(self, vectors: np.ndarray, ids: np.ndarray) -> None:
        self._index.add_with_ids(
            np.ascontiguousarray(vectors, dtype=np.float32),
            np.ascontiguousarray(ids, dtype=np.int64),
        )

    def search(self, query: np.ndarray, k: int) -> tuple[np.ndarray, np.ndarray]:
        scores, ids = self._index.search(
            np.ascontiguousarray(query, dtype=np.float32).reshape(1, -1), k
        )
        return scores[0], ids[0]

    def remove_ids(self, ids: np.ndarray) -> int:
        return int(self._index.remove_ids(np.ascontiguousarray(ids, dtype=np.int64)))

    def reset(self) -> None:
        self._index.reset()

    def write(self, path: str) -> None:
        self._faiss.write_index(self._index, path)


class FaissAccelerator(AcceleratorProvider):
    """FAISS-backed provider. The module is imported on first probe."""

    name = "faiss"

    def __init__(self) -> None:
        self._faiss: Any = None
        self._probed = False

    def _load(self) -> Any:
        if not self._probed:
            self._probed = True
            try:
                import faiss

                self._faiss = faiss
            except ImportError as e:
                logger.warning("FAISS not available, accelerated search disabled: %s", e)
                self._faiss = None
        return self._faiss

    @property
    def available(self) -> bool:
        return self._load() is not None

    def _require(self) -> Any:
        faiss = self._load()
        if faiss is None:
            raise RuntimeError("FAISS not installed. Please install faiss-cpu package.")
        return faiss

    def create_index(self, dimension: int, algorithm: str) -> AcceleratedIndex:
        faiss = self._require()
        if algorithm != "flat":
            raise ValueError(f"Unsupported ANN algorithm: {algorithm}")
        return FaissIndex(faiss, faiss.IndexIDMap2(faiss.IndexFlatIP(dimension)))

    def read_index(self, path: str, dimension: int) -> AcceleratedIndex:
        faiss = self._require()
        index = faiss.read_index(path)
        if int(index.d) != dimension:
            raise ValueError(
                f"Persisted index dimension {index.d} does not match expected {dimension}"
            )
        if not isinstance(index, faiss.IndexIDMap2):
            index = faiss.IndexIDMap2(index)
        return FaissIndex(faiss, index)


_PROVIDERS: dict[str, type[AcceleratorProvider]] = {
    "faiss": FaissAccelerator,
}


def resolve_accelerator(name: str | None = "faiss") -> AcceleratorProvider:
    """Resolve an accelerator provider by name.

    Returns an ``UnavailableAccelerator`` when the name is unknown, is None,
    or the library behind it cannot be imported. Never raises.
    """
    if name is None:
        return UnavailableAccelerator("acceleration disabled")

    provider_cls = _PROVIDERS.get(name)
    if provider_cls is None:
        logger.warning("Unknown accelerator provider '%s', using linear scan", name)
        return UnavailableAccelerator(f"unknown provider '{name}'")

    provider = provider_cls()
    if not provider.available:
        return UnavailableAccelerator(f"{name} could not be imported")
    return provider
