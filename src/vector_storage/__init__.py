"""
Vector Storage

A vector store for semantic retrieval with pluggable backends.

Features:
- Cosine similarity search over fixed-dimension vectors with payload filters
- In-memory backend with optional FAISS acceleration and disk persistence
- ChromaDB backend for embedded persistent collections
- Manager with automatic fallback to the in-memory backend and health checks
- Text normalization and re-embedding maintenance job
"""

from vector_storage.core.ann_index import ANNIndex
from vector_storage.core.config import ANNIndexConfig, VectorStorageSettings, VectorStoreConfig
from vector_storage.core.errors import (
    CapacityExceededError,
    NotConnectedError,
    VectorDimensionError,
    VectorNotFoundError,
    VectorStoreError,
)
from vector_storage.core.manager import VectorStoreManager
from vector_storage.core.models import NormalizationResult, VectorStoreResult
from vector_storage.core.storage.memory import InMemoryVectorStore
from vector_storage.core.storage.vector import VectorStore
from vector_storage.core.utils import cosine_similarity

__version__ = "0.1.0"
__all__ = [
    "ANNIndex",
    "ANNIndexConfig",
    "VectorStorageSettings",
    "VectorStoreConfig",
    "CapacityExceededError",
    "NotConnectedError",
    "VectorDimensionError",
    "VectorNotFoundError",
    "VectorStoreError",
    "VectorStoreManager",
    "NormalizationResult",
    "VectorStoreResult",
    "InMemoryVectorStore",
    "VectorStore",
    "cosine_similarity",
]
