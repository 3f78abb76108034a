"""In-memory vector store backend.

Vectors live in an ``ANNIndex``; payloads live in a local id -> payload
mapping. With persistence enabled both are written through to
``ann_index_path`` after every mutation and reloaded on connect.
"""

from __future__ import annotations

import copy
import logging
import threading
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Sequence

from vector_storage.core.acceleration import AcceleratorProvider
from vector_storage.core.ann_index import ANNIndex
from vector_storage.core.config import (
    DEFAULT_LIST_LIMIT,
    DEFAULT_SEARCH_LIMIT,
    IN_MEMORY_BACKEND,
    VectorStoreConfig,
)
from vector_storage.core.errors import (
    CapacityExceededError,
    InvalidInputError,
    NotConnectedError,
    VectorNotFoundError,
)
from vector_storage.core.filters import SearchFilters
from vector_storage.core.models import IndexStats, VectorStoreResult
from vector_storage.core.storage.vector import Filters, VectorStore
from vector_storage.core.utils import validate_dimension, validate_ids
from vector_storage.utils.serialization import read_json, write_json

logger = logging.getLogger(__name__)

PAYLOADS_FILE = "payloads.json"


class InMemoryVectorStore(VectorStore):
    """In-memory vector store with optional accelerated search and persistence.

    Operations run under a re-entrant lock, so ``update`` (remove, then add)
    is never observed half-applied by another thread.

    Example:
        store = InMemoryVectorStore(VectorStoreConfig(collection_name="docs", dimension=3))
        store.connect()
        store.insert([[1.0, 0.0, 0.0]], [1], [{"title": "Doc"}])
        results = store.search([1.0, 0.0, 0.0], limit=5)
    """

    def __init__(
        self,
        config: VectorStoreConfig,
        accelerator: AcceleratorProvider | None = None,
    ) -> None:
        self.config = config
        self._accelerator = accelerator
        self._lock = threading.RLock()
        self._index: ANNIndex | None = None
        self._payloads: dict[int, dict[str, Any]] = {}
        self._connected = False

    @property
    def _persist(self) -> bool:
        return self.config.ann_persist_index and self.config.ann_index_path is not None

    # Lifecycle

    def connect(self) -> None:
        with self._lock:
            if self._connected:
                logger.debug("In-memory store '%s' already connected", self.config.collection_name)
                return

            if self._persist:
                try:
                    Path(self.config.ann_index_path).mkdir(parents=True, exist_ok=True)
                except OSError as e:
                    logger.warning("Failed to create persistence directory: %s", e)

            index = ANNIndex(self.config.to_index_config(), self._accelerator)
            index.initialize()
            self._index = index
            self._payloads = self._load_payloads() if self._persist else {}
            self._reconcile()
            self._connected = True

            logger.info(
                "In-memory store '%s' connected (vectors=%d, using_ann=%s)",
                self.config.collection_name,
                len(index),
                index.get_stats().using_ann,
            )

    def disconnect(self) -> None:
        with self._lock:
            if not self._connected:
                logger.debug("In-memory store '%s' already disconnected", self.config.collection_name)
                return

            if self._persist:
                self._save_payloads()
            if self._index is not None:
                self._index.disconnect()

            self._index = None
            self._payloads = {}
            self._connected = False
            logger.info("In-memory store '%s' disconnected", self.config.collection_name)

    def is_connected(self) -> bool:
        return self._connected

    # CRUD

    def insert(
        self,
        vectors: Sequence[Sequence[float]],
        ids: Sequence[int],
        payloads: Sequence[dict[str, Any]],
    ) -> None:
        with self._lock:
            index = self._require_index("insert")

            if not (len(vectors) == len(ids) == len(payloads)):
                raise InvalidInputError(
                    "Vectors, IDs, and payloads must have the same length", "insert"
                )
            checked_ids = validate_ids(ids, "insert")
            for position, (vector, payload) in enumerate(zip(vectors, payloads)):
                if vector is None or not isinstance(payload, Mapping):
                    raise InvalidInputError(
                        f"Invalid input at index {position}: vector and payload mapping are required",
                        "insert",
                    )
                validate_dimension(vector, self.config.dimension, "insert")

            new_ids = {vector_id for vector_id in checked_ids if vector_id not in self._payloads}
            if len(self._payloads) + len(new_ids) > self.config.max_vectors:
                raise CapacityExceededError(self.config.max_vectors, len(new_ids))

            index.add_vectors(vectors, checked_ids)
            for vector_id, payload in zip(checked_ids, payloads):
                self._payloads[vector_id] = copy.deepcopy(dict(payload))

            logger.debug(
                "Inserted %d vectors into '%s'", len(checked_ids), self.config.collection_name
            )
            self._write_through()

    def search(
        self,
        query: Sequence[float],
        limit: int = DEFAULT_SEARCH_LIMIT,
        filters: Filters = None,
    ) -> list[VectorStoreResult]:
        with self._lock:
            index = self._require_index("search")
            validate_dimension(query, self.config.dimension, "search")
            parsed = SearchFilters.parse(filters)

            predicate = parsed.as_predicate(self._payloads.get) if parsed else None
            hits = index.search(query, limit, predicate)
            return [
                VectorStoreResult(
                    id=hit.id,
                    score=hit.score,
                    payload=copy.deepcopy(self._payloads.get(hit.id, {})),
                    vector=index.get_vector(hit.id),
                )
                for hit in hits
            ]

    def get(self, vector_id: int) -> VectorStoreResult | None:
        with self._lock:
            index = self._require_index("get")
            payload = self._payloads.get(vector_id)
            if payload is None:
                return None
            return VectorStoreResult(
                id=vector_id,
                score=1.0,
                payload=copy.deepcopy(payload),
                vector=index.get_vector(vector_id),
            )

    def update(self, vector_id: int, vector: Sequence[float], payload: dict[str, Any]) -> None:
        with self._lock:
            index = self._require_index("update")
            # 1.0 and True hash like 1, so the id is checked before anything is removed
            checked_id = validate_ids([vector_id], "update")[0]
            validate_dimension(vector, self.config.dimension, "update")
            if not isinstance(payload, Mapping):
                raise InvalidInputError("Payload mapping is required", "update")
            if checked_id not in self._payloads:
                raise VectorNotFoundError(checked_id, "update")

            index.remove_vectors([checked_id])
            index.add_vectors([vector], [checked_id])
            self._payloads[checked_id] = copy.deepcopy(dict(payload))

            logger.debug("Updated vector %s in '%s'", vector_id, self.config.collection_name)
            self._write_through()

    def delete(self, vector_id: int) -> None:
        with self._lock:
            index = self._require_index("delete")
            vector_id = validate_ids([vector_id], "delete")[0]
            if vector_id not in self._payloads and vector_id not in index:
                logger.warning("Vector %s not found for deletion", vector_id)
                return

            index.remove_vectors([vector_id])
            self._payloads.pop(vector_id, None)

            logger.debug("Deleted vector %s from '%s'", vector_id, self.config.collection_name)
            self._write_through()

    def delete_collection(self) -> None:
        with self._lock:
            index = self._require_index("delete_collection")
            count = len(self._payloads)
            index.clear()
            self._payloads.clear()

            logger.info(
                "Deleted collection '%s' with %d vectors", self.config.collection_name, count
            )
            self._write_through()

    def list(
        self,
        filters: Filters = None,
        limit: int = DEFAULT_LIST_LIMIT,
        offset: int = 0,
    ) -> tuple[list[VectorStoreResult], int]:
        with self._lock:
            index = self._require_index("list")
            if limit < 0 or offset < 0:
                raise InvalidInputError("limit and offset must be non-negative", "list")
            parsed = SearchFilters.parse(filters)

            results: list[VectorStoreResult] = []
            count = 0
            for vector_id, payload in self._payloads.items():
                if not parsed.matches(payload):
                    continue
                if count >= offset and len(results) < limit:
                    results.append(
                        VectorStoreResult(
                            id=vector_id,
                            score=1.0,
                            payload=copy.deepcopy(payload),
                            vector=index.get_vector(vector_id),
                        )
                    )
                count += 1

            logger.debug("Listed %d of %d vectors", len(results), count)
            return results, count

    # Introspection

    def get_backend_type(self) -> str:
        return IN_MEMORY_BACKEND

    def get_dimension(self) -> int:
        return self.config.dimension

    def get_collection_name(self) -> str:
        return self.config.collection_name

    def get_ann_stats(self) -> IndexStats | None:
        """Index statistics, or None when disconnected."""
        return self._index.get_stats() if self._index is not None else None

    # Persistence

    def _payloads_path(self) -> Path:
        assert self.config.ann_index_path is not None
        return Path(self.config.ann_index_path) / PAYLOADS_FILE

    def _write_through(self) -> None:
        """Persist payloads and index after a mutation; failures are logged only."""
        if not self._persist:
            return
        self._save_payloads()
        assert self._index is not None and self.config.ann_index_path is not None
        try:
            self._index.save(self.config.ann_index_path)
        except OSError as e:
            logger.error("Failed to save index for '%s': %s", self.config.collection_name, e)

    def _save_payloads(self) -> None:
        path = self._payloads_path()
        data = {
            "collection": self.config.collection_name,
            "payloads": {str(vector_id): payload for vector_id, payload in self._payloads.items()},
        }
        try:
            write_json(path, data)
            logger.debug("Saved %d payloads to %s", len(self._payloads), path)
        except (OSError, TypeError, ValueError) as e:
            logger.error("Failed to save payloads to %s: %s", path, e)

    def _load_payloads(self) -> dict[int, dict[str, Any]]:
        path = self._payloads_path()
        if not path.exists():
            logger.debug("No existing payloads file found at %s", path)
            return {}
        try:
            data = read_json(path)
            stored = data["payloads"]
            if not isinstance(stored, Mapping):
                raise ValueError("'payloads' is not an object")
            payloads: dict[int, dict[str, Any]] = {}
            for key, value in stored.items():
                if not isinstance(value, Mapping):
                    raise ValueError(f"payload {key} is not an object")
                payloads[int(key)] = dict(value)
        except (OSError, ValueError, TypeError, KeyError) as e:
            logger.warning(
                "Could not load payloads file %s: %s. Starting with an empty payload map.", path, e
            )
            return {}
        logger.info("Loaded %d payloads from %s", len(payloads), path)
        return payloads

    def _reconcile(self) -> None:
        """Align loaded payloads with loaded vectors."""
        assert self._index is not None
        vector_ids = set(self._index.ids())
        orphans = [vector_id for vector_id in self._payloads if vector_id not in vector_ids]
        for vector_id in orphans:
            del self._payloads[vector_id]
        missing = [vector_id for vector_id in self._index.ids() if vector_id not in self._payloads]
        for vector_id in missing:
            self._payloads[vector_id] = {}
        if orphans or missing:
            logger.warning(
                "Reconciled '%s': dropped %d payloads without vectors, added %d empty payloads",
                self.config.collection_name,
                len(orphans),
                len(missing),
            )

    def _require_index(self, operation: str) -> ANNIndex:
        if not self._connected or self._index is None:
            raise NotConnectedError(operation)
        return self._index
