"""Approximate/exact nearest neighbor index.

``ANNIndex`` keeps every vector in an id -> vector mapping and, when an
accelerated provider is available, mirrors the same vectors into a native
index. Each search picks a path:

    use_ann = accelerated index in effect AND count >= min_dataset_size

The mapping is the source of truth. It backs the linear scan and the
persisted metadata, so losing the accelerated index (missing library,
failed add, failed rebuild) never loses data; it only disables the
accelerated path.
"""

from __future__ import annotations

import logging
import os
import time
from pathlib import Path
from typing import Callable, Sequence

import numpy as np

from vector_storage.core.acceleration import (
    AcceleratedIndex,
    AcceleratorProvider,
    resolve_accelerator,
)
from vector_storage.core.config import DEFAULT_SEARCH_LIMIT, ANNIndexConfig
from vector_storage.core.errors import InvalidInputError, NotConnectedError
from vector_storage.core.models import ANNSearchResult, IndexStats, SearchMetrics
from vector_storage.core.utils import (
    batch_cosine_similarity,
    compute_distance,
    l2_normalize,
    validate_dimension,
    validate_ids,
)
from vector_storage.utils.serialization import read_json, write_json

logger = logging.getLogger(__name__)

INDEX_FILE = "index.faiss"
METADATA_FILE = "index_meta.json"
PLACEHOLDER_MARKER = b"VECTOR_STORAGE_PLACEHOLDER\n"
METADATA_VERSION = 1

# Filtered accelerated searches fetch k * OVERFETCH_FACTOR candidates
OVERFETCH_FACTOR = 10

IdPredicate = Callable[[int], bool]


class ANNIndex:
    """Vector index with an accelerated path and a linear-scan fallback.

    Example:
        index = ANNIndex(ANNIndexConfig(dimension=3, min_dataset_size=2))
        index.initialize()
        index.add_vectors([[1, 0, 0], [0, 1, 0]], [1, 2])
        hits = index.search([1, 0, 0], k=1)
    """

    def __init__(
        self,
        config: ANNIndexConfig,
        accelerator: AcceleratorProvider | None = None,
    ) -> None:
        self.config = config
        self._accelerator = accelerator if accelerator is not None else resolve_accelerator()
        self._vectors: dict[int, np.ndarray] = {}
        self._ann: AcceleratedIndex | None = None
        self._connected = False
        self._stats = IndexStats(algorithm=config.algorithm)

        logger.debug(
            "ANNIndex: created (algorithm=%s, dimension=%d, max_vectors=%d)",
            config.algorithm,
            config.dimension,
            config.max_vectors,
        )

    # Lifecycle

    def initialize(self) -> None:
        """Load persisted state or build an empty accelerated index.

        Idempotent. Never raises because of the accelerated library: any
        failure leaves the index connected in linear-scan mode.
        """
        if self._connected:
            return

        index_path = self.config.index_path
        if self.config.persist_index and index_path and self._metadata_path(index_path).exists():
            self.load(index_path)
        elif self.config.algorithm != "brute-force":
            try:
                self._ann = self._create_accelerated()
                self._stats.using_ann = True
                self._stats.algorithm = self.config.algorithm
            except Exception as e:
                logger.warning(
                    "ANNIndex: failed to initialize accelerated index, falling back to brute-force: %s",
                    e,
                )
                self._disable_acceleration()

        self._connected = True
        logger.info(
            "ANNIndex: initialized (algorithm=%s, using_ann=%s, vectors=%d)",
            self._stats.algorithm,
            self._stats.using_ann,
            len(self._vectors),
        )

    def disconnect(self) -> None:
        """Persist state if configured, then release everything."""
        if not self._connected:
            return

        if self.config.persist_index and self.config.index_path:
            try:
                self.save(self.config.index_path)
            except OSError as e:
                logger.error("ANNIndex: failed to save index on disconnect: %s", e)

        self._connected = False
        self._vectors.clear()
        self._ann = None
        self._stats.vector_count = 0
        self._stats.using_ann = False
        logger.debug("ANNIndex: disconnected")

    def is_connected(self) -> bool:
        return self._connected

    # Mutations

    def add_vectors(self, vectors: Sequence[Sequence[float]], ids: Sequence[int]) -> None:
        """Add or replace vectors under the given ids.

        All inputs are validated before anything is stored.
        """
        self._require_connected("add_vectors")
        if len(vectors) != len(ids):
            raise InvalidInputError(
                f"Vectors and IDs must have the same length ({len(vectors)} != {len(ids)})",
                "add_vectors",
            )
        checked_ids = validate_ids(ids, "add_vectors")
        for vector in vectors:
            validate_dimension(vector, self.config.dimension, "add_vectors")

        if not checked_ids:
            return

        batch: dict[int, np.ndarray] = {}
        for vector_id, vector in zip(checked_ids, vectors):
            batch[vector_id] = np.array(vector, dtype=np.float64)

        replaced = [vector_id for vector_id in batch if vector_id in self._vectors]
        self._vectors.update(batch)

        if self._ann_in_effect():
            if replaced and not self._try_remove_ids(replaced):
                # Rebuild reads the mapping, which already holds the new batch
                self._rebuild_accelerated()
            else:
                self._add_to_accelerated(list(batch.keys()), list(batch.values()))

        self._stats.vector_count = len(self._vectors)
        logger.debug(
            "ANNIndex: added %d vectors (total %d)", len(batch), self._stats.vector_count
        )

    def remove_vectors(self, ids: Sequence[int]) -> None:
        """Remove vectors by id; unknown ids are ignored."""
        self._require_connected("remove_vectors")
        present = [vector_id for vector_id in ids if vector_id in self._vectors]
        for vector_id in present:
            del self._vectors[vector_id]

        if present and self._ann_in_effect():
            self._remove_from_accelerated(present)

        self._stats.vector_count = len(self._vectors)
        logger.debug(
            "ANNIndex: removed %d vectors (total %d)", len(present), self._stats.vector_count
        )

    def clear(self) -> None:
        """Remove every vector from the mapping and the accelerated index."""
        self._require_connected("clear")
        self._vectors.clear()
        self._stats.vector_count = 0

        if self._ann is not None:
            try:
                self._ann.reset()
            except Exception as e:
                logger.warning("ANNIndex: failed to reset accelerated index: %s", e)
                self._disable_acceleration()

        logger.debug("ANNIndex: cleared all vectors")

    # Queries

    def search(
        self,
        query: Sequence[float],
        k: int = DEFAULT_SEARCH_LIMIT,
        predicate: IdPredicate | None = None,
    ) -> list[ANNSearchResult]:
        """Return up to k results ordered by descending score.

        Args:
            query: Query vector
            k: Maximum number of results
            predicate: Optional filter over ids
        """
        self._require_connected("search")
        validate_dimension(query, self.config.dimension, "search")
        if k < 1:
            raise InvalidInputError(f"Search limit must be positive, got {k}", "search")

        start = time.perf_counter()
        query_array = np.asarray(query, dtype=np.float64)

        # Count changes between calls, so the policy is re-evaluated every time
        use_ann = self._ann_in_effect() and len(self._vectors) >= self.config.min_dataset_size
        from_ann = use_ann

        if use_ann:
            try:
                results = self._search_accelerated(query_array, k, predicate)
            except Exception as e:
                logger.warning(
                    "ANNIndex: accelerated search failed, falling back to brute-force: %s", e
                )
                results = self._search_linear(query_array, k, predicate)
                from_ann = False
        else:
            results = self._search_linear(query_array, k, predicate)

        query_time = max(1.0, round((time.perf_counter() - start) * 1000, 3))
        self._stats.last_search_metrics = SearchMetrics(
            query_time=query_time,
            result_count=len(results),
            from_ann=from_ann,
        )

        logger.debug(
            "ANNIndex: search completed (from_ann=%s, results=%d, vectors=%d, %.3fms)",
            from_ann,
            len(results),
            len(self._vectors),
            query_time,
        )
        return results

    def get_vector(self, vector_id: int) -> list[float] | None:
        """Copy of the stored vector, or None."""
        vector = self._vectors.get(vector_id)
        return vector.tolist() if vector is not None else None

    def ids(self) -> list[int]:
        return list(self._vectors.keys())

    def __len__(self) -> int:
        return len(self._vectors)

    def __contains__(self, vector_id: object) -> bool:
        return vector_id in self._vectors

    def get_stats(self) -> IndexStats:
        """Snapshot of index statistics."""
        self._stats.vector_count = len(self._vectors)
        return self._stats.copy()

    # Persistence

    def save(self, path: str | os.PathLike[str]) -> None:
        """Write the accelerated index (or a placeholder) and metadata to ``path``.

        ``path`` is a directory; it is created if missing.
        """
        directory = Path(path)
        directory.mkdir(parents=True, exist_ok=True)
        index_file = directory / INDEX_FILE
        tmp_index = directory / f".{INDEX_FILE}.tmp"

        using_ann = self._ann_in_effect()
        wrote_index = False
        if using_ann and self._ann is not None:
            try:
                self._ann.write(str(tmp_index))
                os.replace(tmp_index, index_file)
                wrote_index = True
            except Exception as e:
                logger.warning(
                    "ANNIndex: failed to write accelerated index, writing placeholder: %s", e
                )
        if not wrote_index:
            tmp_index.write_bytes(PLACEHOLDER_MARKER)
            os.replace(tmp_index, index_file)

        metadata = {
            "version": METADATA_VERSION,
            "dimension": self.config.dimension,
            "algorithm": self._stats.algorithm,
            "count": len(self._vectors),
            "using_ann": using_ann,
            "vectors": {str(vector_id): vector.tolist() for vector_id, vector in self._vectors.items()},
        }
        write_json(self._metadata_path(directory), metadata)
        logger.info(
            "ANNIndex: saved %d vectors to %s (accelerated=%s)",
            len(self._vectors),
            directory,
            wrote_index,
        )

    def load(self, path: str | os.PathLike[str]) -> None:
        """Replace current state with the state persisted under ``path``.

        Missing or corrupt files leave the index empty in linear-scan mode
        instead of raising.
        """
        directory = Path(path)
        self._vectors = {}
        self._ann = None
        self._stats.using_ann = False
        self._stats.build_time = None

        try:
            metadata = read_json(self._metadata_path(directory))
            vectors = self._parse_metadata(metadata)
        except FileNotFoundError:
            logger.info("ANNIndex: no persisted state at %s, starting empty", directory)
            self._finish_load()
            return
        except (OSError, ValueError, TypeError, KeyError) as e:
            logger.warning(
                "ANNIndex: could not load persisted state from %s, starting empty: %s",
                directory,
                e,
            )
            self._finish_load()
            return

        self._vectors = vectors
        if metadata.get("using_ann") and self.config.algorithm != "brute-force":
            self._restore_accelerated(directory / INDEX_FILE)
        else:
            self._stats.algorithm = "brute-force"

        self._finish_load()
        logger.info(
            "ANNIndex: loaded %d vectors from %s (using_ann=%s)",
            len(self._vectors),
            directory,
            self._stats.using_ann,
        )

    # Internals

    def _finish_load(self) -> None:
        self._stats.vector_count = len(self._vectors)
        self._connected = True

    def _parse_metadata(self, metadata: dict) -> dict[int, np.ndarray]:
        if not isinstance(metadata, dict):
            raise ValueError("metadata is not an object")
        dimension = metadata["dimension"]
        if dimension != self.config.dimension:
            raise ValueError(
                f"persisted dimension {dimension} does not match configured {self.config.dimension}"
            )
        stored = metadata["vectors"]
        if not isinstance(stored, dict):
            raise ValueError("metadata 'vectors' is not an object")
        vectors: dict[int, np.ndarray] = {}
        for key, values in stored.items():
            if not isinstance(values, list) or len(values) != dimension:
                raise ValueError(f"persisted vector {key} is not a list of {dimension} numbers")
            vectors[int(key)] = np.array(values, dtype=np.float64)
        return vectors

    def _restore_accelerated(self, index_file: Path) -> None:
        """Bring back the accelerated index after a load, rebuilding if needed."""
        if not self._accelerator.available:
            logger.warning("ANNIndex: persisted index was accelerated but no accelerator is available")
            self._disable_acceleration()
            return

        if index_file.exists() and index_file.read_bytes()[: len(PLACEHOLDER_MARKER)] != PLACEHOLDER_MARKER:
            try:
                start = time.perf_counter()
                ann = self._accelerator.read_index(str(index_file), self.config.dimension)
                if ann.ntotal == len(self._vectors):
                    self._ann = ann
                    self._stats.using_ann = True
                    self._stats.algorithm = self.config.algorithm
                    self._stats.build_time = (time.perf_counter() - start) * 1000
                    return
                logger.warning(
                    "ANNIndex: persisted index holds %d vectors but metadata holds %d, rebuilding",
                    ann.ntotal,
                    len(self._vectors),
                )
            except Exception as e:
                logger.warning("ANNIndex: failed to read persisted index, rebuilding: %s", e)

        self._rebuild_accelerated()

    def _create_accelerated(self) -> AcceleratedIndex:
        if not self._accelerator.available:
            raise RuntimeError(f"accelerator '{self._accelerator.name}' is not available")
        return self._accelerator.create_index(self.config.dimension, self.config.algorithm)

    def _ann_in_effect(self) -> bool:
        return self._stats.using_ann and self._ann is not None

    def _disable_acceleration(self) -> None:
        self._ann = None
        self._stats.using_ann = False
        self._stats.algorithm = "brute-force"

    def _add_to_accelerated(self, ids: list[int], vectors: list[np.ndarray]) -> None:
        assert self._ann is not None
        try:
            matrix = l2_normalize(np.vstack(vectors)).astype(np.float32)
            self._ann.add_with_ids(matrix, np.asarray(ids, dtype=np.int64))
        except Exception as e:
            # The mapping already holds these vectors, linear scan stays correct
            logger.error("ANNIndex: failed to add to accelerated index, disabling it: %s", e)
            self._disable_acceleration()

    def _try_remove_ids(self, ids: list[int]) -> bool:
        """Per-id removal from the accelerated index; False if unsupported or failed."""
        assert self._ann is not None
        if not self._ann.supports_remove:
            return False
        try:
            self._ann.remove_ids(np.asarray(ids, dtype=np.int64))
        except Exception as e:
            logger.warning("ANNIndex: per-id removal failed, rebuilding accelerated index: %s", e)
            return False
        return True

    def _remove_from_accelerated(self, ids: list[int]) -> None:
        if not self._try_remove_ids(ids):
            self._rebuild_accelerated()

    def _rebuild_accelerated(self) -> None:
        """Recreate the accelerated index from the mapping, or disable it."""
        start = time.perf_counter()
        try:
            ann = self._create_accelerated()
            if self._vectors:
                matrix = l2_normalize(np.vstack(list(self._vectors.values()))).astype(np.float32)
                ann.add_with_ids(matrix, np.asarray(list(self._vectors.keys()), dtype=np.int64))
        except Exception as e:
            logger.error("ANNIndex: failed to rebuild accelerated index, disabling it: %s", e)
            self._disable_acceleration()
            return

        self._ann = ann
        self._stats.using_ann = True
        self._stats.algorithm = self.config.algorithm
        self._stats.build_time = (time.perf_counter() - start) * 1000
        logger.debug(
            "ANNIndex: rebuilt accelerated index with %d vectors in %.3fms",
            len(self._vectors),
            self._stats.build_time,
        )

    def _search_accelerated(
        self,
        query: np.ndarray,
        k: int,
        predicate: IdPredicate | None,
    ) -> list[ANNSearchResult]:
        assert self._ann is not None
        total = self._ann.ntotal
        fetch_k = k if predicate is None else k * OVERFETCH_FACTOR
        fetch_k = min(fetch_k, total)
        if fetch_k <= 0:
            return []

        normalized = l2_normalize(query.reshape(1, -1)).astype(np.float32)
        scores, ids = self._ann.search(normalized[0], fetch_k)

        results: list[ANNSearchResult] = []
        for score, vector_id in zip(scores, ids):
            vector_id = int(vector_id)
            if vector_id < 0 or vector_id not in self._vectors:
                continue
            if predicate is not None and not predicate(vector_id):
                continue
            similarity = float(max(-1.0, min(1.0, float(score))))
            results.append(
                ANNSearchResult(
                    id=vector_id,
                    score=similarity,
                    distance=compute_distance(similarity),
                    from_ann=True,
                )
            )

        results.sort(key=lambda r: r.score, reverse=True)
        return results[:k]

    def _search_linear(
        self,
        query: np.ndarray,
        k: int,
        predicate: IdPredicate | None,
    ) -> list[ANNSearchResult]:
        candidate_ids = [
            vector_id
            for vector_id in self._vectors
            if predicate is None or predicate(vector_id)
        ]
        if not candidate_ids:
            return []

        matrix = np.vstack([self._vectors[vector_id] for vector_id in candidate_ids])
        scores = batch_cosine_similarity(query, matrix)
        order = np.argsort(-scores, kind="stable")[:k]
        return [
            ANNSearchResult(id=candidate_ids[i], score=float(scores[i]), from_ann=False)
            for i in order
        ]

    def _require_connected(self, operation: str) -> None:
        if not self._connected:
            raise NotConnectedError(operation)

    @staticmethod
    def _metadata_path(directory: str | os.PathLike[str]) -> Path:
        return Path(directory) / METADATA_FILE
