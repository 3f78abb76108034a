"""Embedding functions and text normalization."""

from vector_storage.embedding.base import CallableEmbedding, EmbeddingFunction
from vector_storage.embedding.default import DefaultEmbedding
from vector_storage.embedding.normalization import (
    NormalizationConfig,
    normalize_text_for_retrieval,
)

__all__ = [
    "CallableEmbedding",
    "EmbeddingFunction",
    "DefaultEmbedding",
    "NormalizationConfig",
    "normalize_text_for_retrieval",
]
