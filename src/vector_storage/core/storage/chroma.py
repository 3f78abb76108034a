"""ChromaDB vector store backend.

Runs an embedded ChromaDB client (ephemeral or persistent). Payloads are
kept whole as the JSON document of each record; their scalar fields are
also copied into Chroma metadata so the filter operators can be pushed
down as ``where`` clauses.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any, Sequence

import chromadb
from chromadb.api import ClientAPI
from chromadb.config import Settings

from vector_storage.core.config import (
    CHROMA_BACKEND,
    DEFAULT_LIST_LIMIT,
    DEFAULT_SEARCH_LIMIT,
    ChromaConfig,
    VectorStoreConfig,
)
from vector_storage.core.errors import (
    BackendConnectionError,
    CapacityExceededError,
    InvalidInputError,
    NotConnectedError,
    VectorNotFoundError,
)
from vector_storage.core.filters import AnyOf, Equals, Range, SearchFilters
from vector_storage.core.models import VectorStoreResult
from vector_storage.core.storage.vector import Filters, VectorStore
from vector_storage.core.utils import compute_similarity_score, validate_dimension, validate_ids
from vector_storage.utils.serialization import PayloadEncoder

logger = logging.getLogger(__name__)

ID_FIELD = "_vs_id"
SCALAR_TYPES = (str, int, float, bool)


def _to_metadata(vector_id: int, payload: Mapping[str, Any]) -> dict[str, Any]:
    metadata: dict[str, Any] = {ID_FIELD: vector_id}
    for key, value in payload.items():
        if key != ID_FIELD and isinstance(value, SCALAR_TYPES):
            metadata[key] = value
    return metadata


def build_where(filters: SearchFilters) -> dict[str, Any] | None:
    """Translate filters into a Chroma ``where`` clause."""
    clauses: list[dict[str, Any]] = []
    for condition in filters.conditions:
        if isinstance(condition, Equals):
            if not isinstance(condition.value, SCALAR_TYPES):
                raise InvalidInputError(
                    f"Chroma backend only filters on scalar values (field '{condition.field}')",
                    "filter",
                )
            clauses.append({condition.field: {"$eq": condition.value}})
        elif isinstance(condition, Range):
            for op, bound in condition.bounds().items():
                clauses.append({condition.field: {f"${op}": bound}})
        elif isinstance(condition, AnyOf):
            clauses.append({condition.field: {"$in": list(condition.values)}})

    if not clauses:
        return None
    if len(clauses) == 1:
        return clauses[0]
    return {"$and": clauses}


class ChromaVectorStore(VectorStore):
    """ChromaDB-backed vector store."""

    def __init__(self, config: VectorStoreConfig) -> None:
        self.config = config
        self._chroma_config = config.chroma or ChromaConfig()
        self._client: ClientAPI | None = None
        self._collection: chromadb.Collection | None = None

    def connect(self) -> None:
        if self._collection is not None:
            logger.debug("Chroma store '%s' already connected", self.config.collection_name)
            return

        settings = Settings(anonymized_telemetry=False)
        try:
            if self._chroma_config.is_persistent_mode():
                client = chromadb.PersistentClient(path=self._chroma_config.path, settings=settings)
            else:
                client = chromadb.Client(settings=settings)
            collection = client.get_or_create_collection(
                name=self.config.collection_name,
                metadata={"hnsw:space": "cosine"},
            )
        except Exception as e:
            raise BackendConnectionError(
                f"Failed to connect to ChromaDB collection '{self.config.collection_name}': {e}",
                "connect",
            ) from e

        self._client = client
        self._collection = collection
        logger.info(
            "Chroma store '%s' connected (mode=%s, count=%d)",
            self.config.collection_name,
            self._chroma_config.mode,
            collection.count(),
        )

    def disconnect(self) -> None:
        if self._collection is None:
            logger.debug("Chroma store '%s' already disconnected", self.config.collection_name)
            return
        self._client = None
        self._collection = None
        logger.info("Chroma store '%s' disconnected", self.config.collection_name)

    def is_connected(self) -> bool:
        return self._collection is not None

    def insert(
        self,
        vectors: Sequence[Sequence[float]],
        ids: Sequence[int],
        payloads: Sequence[dict[str, Any]],
    ) -> None:
        collection = self._require_collection("insert")
        if not (len(vectors) == len(ids) == len(payloads)):
            raise InvalidInputError("Vectors, IDs, and payloads must have the same length", "insert")
        checked_ids = validate_ids(ids, "insert")
        for position, (vector, payload) in enumerate(zip(vectors, payloads)):
            if vector is None or not isinstance(payload, Mapping):
                raise InvalidInputError(
                    f"Invalid input at index {position}: vector and payload mapping are required",
                    "insert",
                )
            validate_dimension(vector, self.config.dimension, "insert")
        if not checked_ids:
            return

        keys = [str(vector_id) for vector_id in checked_ids]
        existing = set(collection.get(ids=keys, include=[])["ids"])
        new_count = len(set(keys) - existing)
        if collection.count() + new_count > self.config.max_vectors:
            raise CapacityExceededError(self.config.max_vectors, new_count)

        collection.upsert(
            ids=keys,
            embeddings=[[float(x) for x in vector] for vector in vectors],
            metadatas=[_to_metadata(i, p) for i, p in zip(checked_ids, payloads)],
            documents=[json.dumps(dict(p), cls=PayloadEncoder) for p in payloads],
        )
        logger.debug("Inserted %d vectors into '%s'", len(keys), self.config.collection_name)

    def search(
        self,
        query: Sequence[float],
        limit: int = DEFAULT_SEARCH_LIMIT,
        filters: Filters = None,
    ) -> list[VectorStoreResult]:
        collection = self._require_collection("search")
        validate_dimension(query, self.config.dimension, "search")
        if limit < 1:
            raise InvalidInputError(f"Search limit must be positive, got {limit}", "search")
        where = build_where(SearchFilters.parse(filters))

        n_results = min(limit, collection.count())
        if n_results == 0:
            return []

        response = collection.query(
            query_embeddings=[[float(x) for x in query]],
            n_results=n_results,
            where=where,
            include=["distances", "documents", "embeddings"],
        )
        ids = response["ids"][0]
        distances = response["distances"][0]
        documents = response["documents"][0]
        embeddings = response["embeddings"][0] if response.get("embeddings") is not None else None

        results = []
        for position, key in enumerate(ids):
            results.append(
                VectorStoreResult(
                    id=int(key),
                    score=compute_similarity_score(float(distances[position])),
                    payload=json.loads(documents[position]),
                    vector=self._as_list(embeddings, position),
                )
            )
        results.sort(key=lambda r: r.score, reverse=True)
        return results

    def get(self, vector_id: int) -> VectorStoreResult | None:
        collection = self._require_collection("get")
        response = collection.get(ids=[str(vector_id)], include=["documents", "embeddings"])
        if not response["ids"]:
            return None
        return VectorStoreResult(
            id=vector_id,
            score=1.0,
            payload=json.loads(response["documents"][0]),
            vector=self._as_list(response.get("embeddings"), 0),
        )

    def update(self, vector_id: int, vector: Sequence[float], payload: dict[str, Any]) -> None:
        collection = self._require_collection("update")
        validate_dimension(vector, self.config.dimension, "update")
        if not isinstance(payload, Mapping):
            raise InvalidInputError("Payload mapping is required", "update")
        if not collection.get(ids=[str(vector_id)], include=[])["ids"]:
            raise VectorNotFoundError(vector_id, "update")

        collection.update(
            ids=[str(vector_id)],
            embeddings=[[float(x) for x in vector]],
            metadatas=[_to_metadata(vector_id, payload)],
            documents=[json.dumps(dict(payload), cls=PayloadEncoder)],
        )

    def delete(self, vector_id: int) -> None:
        collection = self._require_collection("delete")
        collection.delete(ids=[str(vector_id)])

    def delete_collection(self) -> None:
        self._require_collection("delete_collection")
        assert self._client is not None
        self._client.delete_collection(self.config.collection_name)
        self._collection = self._client.create_collection(
            name=self.config.collection_name,
            metadata={"hnsw:space": "cosine"},
        )
        logger.info("Deleted collection '%s'", self.config.collection_name)

    def list(
        self,
        filters: Filters = None,
        limit: int = DEFAULT_LIST_LIMIT,
        offset: int = 0,
    ) -> tuple[list[VectorStoreResult], int]:
        collection = self._require_collection("list")
        if limit < 0 or offset < 0:
            raise InvalidInputError("limit and offset must be non-negative", "list")
        where = build_where(SearchFilters.parse(filters))

        total = len(collection.get(where=where, include=[])["ids"])
        if limit == 0 or offset >= total:
            return [], total

        response = collection.get(
            where=where,
            limit=limit,
            offset=offset,
            include=["documents", "embeddings"],
        )
        embeddings = response.get("embeddings")
        results = [
            VectorStoreResult(
                id=int(key),
                score=1.0,
                payload=json.loads(response["documents"][position]),
                vector=self._as_list(embeddings, position),
            )
            for position, key in enumerate(response["ids"])
        ]
        return results, total

    def get_backend_type(self) -> str:
        return CHROMA_BACKEND

    def get_dimension(self) -> int:
        return self.config.dimension

    def get_collection_name(self) -> str:
        return self.config.collection_name

    @staticmethod
    def _as_list(embeddings: Any, position: int) -> list[float] | None:
        if embeddings is None or len(embeddings) <= position:
            return None
        return [float(x) for x in embeddings[position]]

    def _require_collection(self, operation: str) -> chromadb.Collection:
        if self._collection is None:
            raise NotConnectedError(operation)
        return self._collection
