"""Data models for search results, statistics and manager introspection."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any


@dataclass
class ANNSearchResult:
    """A raw hit returned by the index.

    Attributes:
        id: Vector id
        score: Cosine similarity in [-1, 1]
        distance: Raw distance reported by the accelerated index, if any
        from_ann: Whether the hit came from the accelerated path
    """

    id: int
    score: float
    distance: float | None = None
    from_ann: bool = False


@dataclass
class VectorStoreResult:
    """A full record returned by a vector store."""

    id: int
    score: float
    payload: dict[str, Any] = field(default_factory=dict)
    vector: list[float] | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize result to dict."""
        return {
            "id": self.id,
            "score": self.score,
            "payload": copy.deepcopy(self.payload),
            "vector": list(self.vector) if self.vector is not None else None,
        }


@dataclass
class SearchMetrics:
    """Timing and outcome of the most recent index search."""

    query_time: float
    result_count: int
    from_ann: bool


@dataclass
class IndexStats:
    """Observability snapshot of an index.

    Attributes:
        vector_count: Number of stored vectors
        using_ann: Whether the accelerated index is currently in effect
        algorithm: Effective algorithm ("brute-force" after a failed init)
        build_time: Milliseconds spent on the last accelerated build
        last_search_metrics: Metrics of the most recent search
    """

    vector_count: int = 0
    using_ann: bool = False
    algorithm: str = "brute-force"
    build_time: float | None = None
    last_search_metrics: SearchMetrics | None = None

    def copy(self) -> "IndexStats":
        return copy.deepcopy(self)

    def to_dict(self) -> dict[str, Any]:
        metrics = self.last_search_metrics
        return {
            "vector_count": self.vector_count,
            "using_ann": self.using_ann,
            "algorithm": self.algorithm,
            "build_time": self.build_time,
            "last_search_metrics": (
                {
                    "query_time": metrics.query_time,
                    "result_count": metrics.result_count,
                    "from_ann": metrics.from_ann,
                }
                if metrics
                else None
            ),
        }


@dataclass
class HealthCheckResult:
    """Result of a manager health check."""

    backend: bool
    overall: bool
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class BackendInfo:
    """Description of the backend currently held by a manager."""

    type: str
    connected: bool
    fallback: bool
    collection_name: str
    dimension: int


@dataclass
class VectorStoreInfo:
    """Manager introspection snapshot."""

    connected: bool
    backend: BackendInfo
    connection_attempts: int
    last_error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "connected": self.connected,
            "backend": {
                "type": self.backend.type,
                "connected": self.backend.connected,
                "fallback": self.backend.fallback,
                "collection_name": self.backend.collection_name,
                "dimension": self.backend.dimension,
            },
            "connection_attempts": self.connection_attempts,
            "last_error": self.last_error,
        }


@dataclass
class NormalizationResult:
    """Outcome counts of a normalization run."""

    updated: int = 0
    skipped: int = 0
    failed: int = 0

    def to_dict(self) -> dict[str, int]:
        return {"updated": self.updated, "skipped": self.skipped, "failed": self.failed}
