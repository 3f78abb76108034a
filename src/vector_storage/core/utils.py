"""Similarity primitives and input validation helpers.

These functions are shared by the index and every backend. They hold no
state and never mutate their inputs.
"""

from __future__ import annotations

import math
from typing import Any, Sequence

import numpy as np

from vector_storage.core.errors import InvalidInputError, VectorDimensionError


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Compute cosine similarity between two vectors.

    Returns 0.0 when either vector has zero magnitude instead of dividing
    by zero.

    Args:
        a: First vector
        b: Second vector

    Returns:
        Similarity in range [-1, 1]

    Example:
        >>> cosine_similarity([1.0, 0.0], [1.0, 0.0])
        1.0
        >>> cosine_similarity([1.0, 0.0], [0.0, 0.0])
        0.0
    """
    dot = 0.0
    norm_a = 0.0
    norm_b = 0.0
    for x, y in zip(a, b):
        dot += x * y
        norm_a += x * x
        norm_b += y * y

    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0

    similarity = dot / (math.sqrt(norm_a) * math.sqrt(norm_b))
    # Clamp floating point drift
    return max(-1.0, min(1.0, similarity))


def batch_cosine_similarity(query: np.ndarray, matrix: np.ndarray) -> np.ndarray:
    """Cosine similarity of one query against each row of a matrix.

    Rows (or a query) with zero magnitude score 0.0.
    """
    if matrix.size == 0:
        return np.zeros(0, dtype=np.float64)

    query_norm = np.linalg.norm(query)
    row_norms = np.linalg.norm(matrix, axis=1)
    if query_norm == 0.0:
        return np.zeros(matrix.shape[0], dtype=np.float64)

    denom = row_norms * query_norm
    dots = matrix @ query
    scores = np.divide(dots, denom, out=np.zeros_like(dots, dtype=np.float64), where=denom > 0)
    return np.clip(scores, -1.0, 1.0)


def l2_normalize(vectors: np.ndarray) -> np.ndarray:
    """Scale each row to unit length, leaving zero rows untouched."""
    norms = np.linalg.norm(vectors, axis=1, keepdims=True)
    safe = np.where(norms == 0.0, 1.0, norms)
    return vectors / safe


def validate_dimension(vector: Sequence[float], dimension: int, operation: str | None = None) -> None:
    """Raise VectorDimensionError if vector length differs from dimension."""
    if len(vector) != dimension:
        raise VectorDimensionError(dimension, len(vector), operation)


def validate_ids(ids: Sequence[Any], operation: str | None = None) -> list[int]:
    """Check that every id is an integer (bools excluded)."""
    checked: list[int] = []
    for position, vector_id in enumerate(ids):
        if isinstance(vector_id, bool) or not isinstance(vector_id, (int, np.integer)):
            raise InvalidInputError(
                f"Invalid id at index {position}: integer id required, got {vector_id!r}",
                operation,
            )
        checked.append(int(vector_id))
    return checked


def compute_similarity_score(distance: float) -> float:
    """Convert cosine distance to similarity.

    Example:
        >>> compute_similarity_score(0.0)  # Perfect match
        1.0
        >>> compute_similarity_score(2.0)  # Opposite
        -1.0
    """
    return 1.0 - distance


def compute_distance(score: float) -> float:
    """Convert cosine similarity to cosine distance in [0, 2]."""
    return 1.0 - score
