"""Vector store backends.

- VectorStore: Abstract interface for vector similarity search
- InMemoryVectorStore: In-memory store with optional acceleration and persistence
- ChromaVectorStore: ChromaDB vector store implementation
- BackendRegistry: Maps backend type names to store factories
"""

from vector_storage.core.storage.vector import VectorStore
from vector_storage.core.storage.memory import InMemoryVectorStore
from vector_storage.core.storage.config import (
    BackendRegistry,
    create_default_registry,
    create_vector_store,
)

__all__ = [
    "VectorStore",
    "InMemoryVectorStore",
    "BackendRegistry",
    "create_default_registry",
    "create_vector_store",
]
