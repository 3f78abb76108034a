"""Core components for vector storage."""

from vector_storage.core.ann_index import ANNIndex
from vector_storage.core.config import (
    ANNIndexConfig,
    ChromaConfig,
    VectorStorageSettings,
    VectorStoreConfig,
)
from vector_storage.core.filters import SearchFilters
from vector_storage.core.manager import VectorStoreManager
from vector_storage.core.models import (
    ANNSearchResult,
    HealthCheckResult,
    IndexStats,
    VectorStoreInfo,
    VectorStoreResult,
)

__all__ = [
    "ANNIndex",
    "ANNIndexConfig",
    "ChromaConfig",
    "VectorStorageSettings",
    "VectorStoreConfig",
    "SearchFilters",
    "VectorStoreManager",
    "ANNSearchResult",
    "HealthCheckResult",
    "IndexStats",
    "VectorStoreInfo",
    "VectorStoreResult",
]
