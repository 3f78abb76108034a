"""Vector storage manager.

Single entry point for the storage system: picks a backend from
configuration, connects with one level of fallback to the in-memory
backend, reports health, and runs the normalization maintenance job.

Connection states::

    DISCONNECTED -> CONNECTING -> CONNECTED
    DISCONNECTED -> CONNECTING -> CONNECTING_FALLBACK -> CONNECTED_FALLBACK

Any failure that leaves no usable backend returns to DISCONNECTED after
cleaning up partially connected stores.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Sequence

from vector_storage.core.config import (
    DEFAULT_SHUTDOWN_TIMEOUT,
    IN_MEMORY_BACKEND,
    VectorStorageSettings,
    VectorStoreConfig,
)
from vector_storage.core.errors import DisconnectTimeoutError, InvalidInputError, NotConnectedError
from vector_storage.core.models import (
    BackendInfo,
    HealthCheckResult,
    NormalizationResult,
    VectorStoreInfo,
)
from vector_storage.core.storage.config import BackendRegistry, create_default_registry
from vector_storage.core.utils import validate_dimension
from vector_storage.embedding.base import CallableEmbedding, EmbeddingFunction
from vector_storage.embedding.normalization import (
    NormalizationConfig,
    normalize_text_for_retrieval,
)

if TYPE_CHECKING:
    from vector_storage.core.storage.vector import VectorStore

logger = logging.getLogger(__name__)

NORMALIZED_FLAG = "normalized"
TEXT_FIELDS = ("text", "content")

Normalizer = Callable[[str, NormalizationConfig], str]


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTING_FALLBACK = "connecting_fallback"
    CONNECTED = "connected"
    CONNECTED_FALLBACK = "connected_fallback"


class VectorStoreManager:
    """Manages the lifecycle of a vector storage backend.

    Example:
        manager = VectorStoreManager(VectorStoreConfig(type="chroma", dimension=384))
        store = manager.connect()  # falls back to in-memory if chroma fails

        store.insert([vector], [1], [{"title": "Document"}])
        results = store.search(query_vector, 5)

        manager.disconnect()
    """

    def __init__(
        self,
        config: VectorStoreConfig,
        registry: BackendRegistry | None = None,
        shutdown_timeout: float = DEFAULT_SHUTDOWN_TIMEOUT,
    ) -> None:
        self.config = config
        self.registry = registry if registry is not None else create_default_registry()
        self.shutdown_timeout = shutdown_timeout

        self._store: VectorStore | None = None
        self._state = ConnectionState.DISCONNECTED
        self._connection_attempts = 0
        self._last_error: Exception | None = None
        self._backend_type = "unknown"
        self._connection_time: float = 0.0

        logger.debug(
            "VectorStoreManager: initialized (type=%s, collection=%s, dimension=%d)",
            config.type,
            config.collection_name,
            config.dimension,
        )

    @classmethod
    def from_settings(
        cls,
        settings: VectorStorageSettings | None = None,
        registry: BackendRegistry | None = None,
    ) -> "VectorStoreManager":
        """Build a manager from environment settings."""
        settings = settings or VectorStorageSettings()
        return cls(settings.to_store_config(), registry, settings.shutdown_timeout)

    # Introspection

    @property
    def state(self) -> ConnectionState:
        return self._state

    def get_config(self) -> VectorStoreConfig:
        return self.config

    def get_store(self) -> "VectorStore | None":
        """The connected store, or None."""
        if not self._is_connected_state() or self._store is None:
            return None
        return self._store

    def is_connected(self) -> bool:
        return self._is_connected_state() and self._store is not None and self._store.is_connected()

    def get_info(self) -> VectorStoreInfo:
        """Connection status, backend details and connection diagnostics."""
        return VectorStoreInfo(
            connected=self._is_connected_state(),
            backend=BackendInfo(
                type=self._backend_type,
                connected=self._store.is_connected() if self._store is not None else False,
                fallback=self._state is ConnectionState.CONNECTED_FALLBACK,
                collection_name=self.config.collection_name,
                dimension=self.config.dimension,
            ),
            connection_attempts=self._connection_attempts,
            last_error=str(self._last_error) if self._last_error is not None else None,
        )

    # Lifecycle

    def connect(self) -> "VectorStore":
        """Connect to the configured backend, falling back to in-memory.

        Returns the live store. Calling it again while connected returns the
        same store.

        Raises:
            Exception: The configured backend's error when no backend could
                be connected
        """
        if self._is_connected_state() and self._store is not None:
            logger.debug("VectorStoreManager: already connected (%s)", self._backend_type)
            return self._store

        self._connection_attempts += 1
        self._state = ConnectionState.CONNECTING
        start = time.perf_counter()
        logger.debug(
            "VectorStoreManager: connection attempt %d for '%s'",
            self._connection_attempts,
            self.config.collection_name,
        )

        store: VectorStore | None = None
        try:
            store = self.registry.create(self.config)
            store.connect()
            self._backend_type = self.config.type
            self._state = ConnectionState.CONNECTED
        except Exception as backend_error:
            self._last_error = backend_error
            self._cleanup(store)
            store = None
            logger.warning(
                "VectorStoreManager: backend '%s' failed to connect: %s",
                self.config.type,
                backend_error,
            )

            if self.config.type == IN_MEMORY_BACKEND:
                self._reset()
                raise

            self._state = ConnectionState.CONNECTING_FALLBACK
            try:
                store = self.registry.create_fallback(self.config)
                store.connect()
            except Exception as fallback_error:
                logger.error(
                    "VectorStoreManager: fallback backend failed to connect: %s", fallback_error
                )
                self._cleanup(store)
                self._reset()
                raise backend_error from fallback_error

            self._backend_type = IN_MEMORY_BACKEND
            self._state = ConnectionState.CONNECTED_FALLBACK
            logger.warning(
                "VectorStoreManager: connected to fallback backend '%s' (original type '%s')",
                IN_MEMORY_BACKEND,
                self.config.type,
            )

        self._store = store
        self._connection_time = (time.perf_counter() - start) * 1000
        logger.info(
            "VectorStoreManager: vector storage connected (backend=%s, fallback=%s, %.1fms)",
            self._backend_type,
            self._state is ConnectionState.CONNECTED_FALLBACK,
            self._connection_time,
        )
        return store

    def disconnect(self) -> None:
        """Shut the backend down within ``shutdown_timeout`` seconds.

        Errors and timeouts propagate, but the manager is always left
        DISCONNECTED.
        """
        if not self._is_connected_state():
            logger.debug("VectorStoreManager: already disconnected")
            return

        logger.info("VectorStoreManager: disconnecting vector storage backend")
        store = self._store
        try:
            if store is not None and store.is_connected():
                self._disconnect_with_timeout(store)
                logger.info("VectorStoreManager: disconnected successfully")
        except Exception as e:
            logger.error("VectorStoreManager: disconnect error: %s", e)
            raise
        finally:
            self._reset()

    def health_check(self) -> HealthCheckResult:
        """Report backend status and a latency measurement. No side effects."""
        if not self._is_connected_state() or self._store is None:
            return HealthCheckResult(
                backend=False,
                overall=False,
                details={"backend": {"status": "not_connected"}},
            )

        if not self._store.is_connected():
            return HealthCheckResult(
                backend=False,
                overall=False,
                details={"backend": {"status": "unhealthy"}},
            )

        try:
            # Read-only round trip through the backend
            start = time.perf_counter()
            _, count = self._store.list(limit=0)
            latency = (time.perf_counter() - start) * 1000
        except Exception as e:
            logger.error("VectorStoreManager: health check failed: %s", e)
            return HealthCheckResult(
                backend=False,
                overall=False,
                details={"backend": {"status": "error", "error": str(e)}},
            )

        logger.debug("VectorStoreManager: health check (count=%d, %.3fms)", count, latency)
        return HealthCheckResult(
            backend=True,
            overall=True,
            details={
                "backend": {
                    "status": "healthy",
                    "latency": latency,
                    "count": count,
                }
            },
        )

    # Maintenance

    def normalize_data(
        self,
        embedder: EmbeddingFunction | Callable[[str], Sequence[float]] | None = None,
        config: NormalizationConfig | None = None,
        batch_size: int = 100,
        force: bool = False,
        normalizer: Normalizer | None = None,
    ) -> NormalizationResult:
        """Re-normalize and re-embed every entry of the collection.

        Pages through the collection ``batch_size`` entries at a time. Entries
        already carrying ``normalized: True`` are skipped unless ``force``;
        entries without text are skipped; entries whose normalization,
        embedding or write fails are counted as failed. Each page is written
        before the next is read, so an interrupted run keeps its progress.

        Args:
            embedder: Embedding generator or ``embed(text)`` callable;
                defaults to the sentence-transformers embedding
            config: Normalization settings
            batch_size: Entries per page
            force: Re-embed entries that are already normalized
            normalizer: Text normalization function

        Returns:
            Counts of updated, skipped and failed entries
        """
        store = self.get_store()
        if store is None:
            raise NotConnectedError("normalize_data")
        if batch_size < 1:
            raise InvalidInputError(f"batch_size must be positive, got {batch_size}", "normalize_data")

        embedding = self._resolve_embedder(embedder, store.get_dimension())
        config = config or NormalizationConfig()
        normalize = normalizer or normalize_text_for_retrieval
        dimension = store.get_dimension()
        result = NormalizationResult()

        logger.info("VectorStoreManager: starting data normalization (force=%s)", force)

        offset = 0
        while True:
            page, total = store.list(limit=batch_size, offset=offset)
            if not page:
                break

            pending: list[tuple[int, str, str, dict[str, Any]]] = []
            for entry in page:
                payload = entry.payload or {}
                if not force and payload.get(NORMALIZED_FLAG):
                    result.skipped += 1
                    continue

                field, text = _extract_text(payload)
                if field is None:
                    result.skipped += 1
                    continue

                try:
                    normalized_text = normalize(text, config)
                except Exception as e:
                    logger.error("VectorStoreManager: failed to normalize entry %s: %s", entry.id, e)
                    result.failed += 1
                    continue
                pending.append((entry.id, field, normalized_text, payload))

            ids: list[int] = []
            vectors: list[list[float]] = []
            payloads: list[dict[str, Any]] = []
            embedded = self._embed_page(embedding, [item[2] for item in pending])
            for (vector_id, field, normalized_text, payload), embedded_vector in zip(pending, embedded):
                try:
                    if isinstance(embedded_vector, Exception):
                        raise embedded_vector
                    vector = [float(x) for x in embedded_vector]
                    validate_dimension(vector, dimension, "normalize_data")
                except Exception as e:
                    logger.error("VectorStoreManager: failed to embed entry %s: %s", vector_id, e)
                    result.failed += 1
                    continue

                ids.append(vector_id)
                vectors.append(vector)
                payloads.append({**payload, field: normalized_text, NORMALIZED_FLAG: True})

            if ids:
                self._write_batch(store, ids, vectors, payloads, result)

            offset += len(page)
            if offset >= total:
                break

        logger.info(
            "VectorStoreManager: normalization completed (updated=%d, skipped=%d, failed=%d)",
            result.updated,
            result.skipped,
            result.failed,
        )
        return result

    # Internals

    def _is_connected_state(self) -> bool:
        return self._state in (ConnectionState.CONNECTED, ConnectionState.CONNECTED_FALLBACK)

    def _reset(self) -> None:
        self._store = None
        self._state = ConnectionState.DISCONNECTED
        self._backend_type = "unknown"
        self._connection_time = 0.0

    def _cleanup(self, store: "VectorStore | None") -> None:
        """Disconnect a store left half-open by a failed connection."""
        if store is None:
            return
        try:
            if store.is_connected():
                store.disconnect()
        except Exception as e:
            logger.error("VectorStoreManager: error during cleanup disconnect: %s", e)

    def _disconnect_with_timeout(self, store: "VectorStore") -> None:
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="vector-store-shutdown")
        try:
            future = executor.submit(store.disconnect)
            try:
                future.result(timeout=self.shutdown_timeout)
            except FutureTimeoutError as e:
                raise DisconnectTimeoutError(
                    f"Disconnect timed out after {self.shutdown_timeout}s", "disconnect"
                ) from e
        finally:
            executor.shutdown(wait=False)

    def _resolve_embedder(
        self,
        embedder: EmbeddingFunction | Callable[[str], Sequence[float]] | None,
        dimension: int,
    ) -> EmbeddingFunction:
        if isinstance(embedder, EmbeddingFunction):
            return embedder
        if embedder is not None:
            return CallableEmbedding(embedder, dimension)

        from vector_storage.embedding.default import DefaultEmbedding

        return DefaultEmbedding()

    def _embed_page(
        self,
        embedding: EmbeddingFunction,
        texts: list[str],
    ) -> list[Sequence[float] | Exception]:
        """Embed a page in one batch call, per text if the batch fails.

        Each slot holds a vector or the exception raised for that text.
        """
        if not texts:
            return []
        try:
            vectors = embedding.embed_batch(texts)
            if len(vectors) != len(texts):
                raise ValueError(f"embed_batch returned {len(vectors)} vectors for {len(texts)} texts")
            return list(vectors)
        except Exception as e:
            logger.warning(
                "VectorStoreManager: batch embedding of %d texts failed, embedding individually: %s",
                len(texts),
                e,
            )

        results: list[Sequence[float] | Exception] = []
        for text in texts:
            try:
                results.append(embedding.embed(text))
            except Exception as e:
                results.append(e)
        return results

    def _write_batch(
        self,
        store: "VectorStore",
        ids: list[int],
        vectors: list[list[float]],
        payloads: list[dict[str, Any]],
        result: NormalizationResult,
    ) -> None:
        try:
            store.insert(vectors, ids, payloads)
            result.updated += len(ids)
            return
        except Exception as e:
            logger.warning(
                "VectorStoreManager: batch write of %d entries failed, retrying individually: %s",
                len(ids),
                e,
            )

        for vector_id, vector, payload in zip(ids, vectors, payloads):
            try:
                store.update(vector_id, vector, payload)
                result.updated += 1
            except Exception as e:
                logger.error("VectorStoreManager: failed to write entry %s: %s", vector_id, e)
                result.failed += 1


def _extract_text(payload: dict[str, Any]) -> tuple[str | None, str]:
    """First non-empty text field of a payload, as (field, text)."""
    for field in TEXT_FIELDS:
        value = payload.get(field)
        if isinstance(value, str) and value.strip():
            return field, value
    return None, ""
