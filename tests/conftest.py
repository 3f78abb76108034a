"""Shared test fixtures."""

import uuid
from pathlib import Path

import numpy as np
import pytest

import sys

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from vector_storage.core.acceleration import (  # noqa: E402
    AcceleratedIndex,
    AcceleratorProvider,
    UnavailableAccelerator,
)
from vector_storage.utils.serialization import read_json, write_json  # noqa: E402


class FakeIndex(AcceleratedIndex):
    """Numpy-backed stand-in for a native inner-product index."""

    def __init__(self, dimension: int, fail_add: bool = False, fail_remove: bool = False) -> None:
        self.dimension = dimension
        self.fail_add = fail_add
        self.fail_remove = fail_remove
        self.vectors: dict[int, np.ndarray] = {}
        self.search_calls = 0

    @property
    def ntotal(self) -> int:
        return len(self.vectors)

    def add_with_ids(self, vectors: np.ndarray, ids: np.ndarray) -> None:
        if self.fail_add:
            raise RuntimeError("add failed")
        for vector_id, vector in zip(ids, vectors):
            self.vectors[int(vector_id)] = np.array(vector, dtype=np.float32)

    def search(self, query: np.ndarray, k: int) -> tuple[np.ndarray, np.ndarray]:
        self.search_calls += 1
        ids = list(self.vectors)
        scores = np.array([float(self.vectors[i] @ query) for i in ids], dtype=np.float32)
        order = np.argsort(-scores, kind="stable")[:k]
        out_scores = np.full(k, -np.inf, dtype=np.float32)
        out_ids = np.full(k, -1, dtype=np.int64)
        for slot, position in enumerate(order):
            out_scores[slot] = scores[position]
            out_ids[slot] = ids[position]
        return out_scores, out_ids

    def remove_ids(self, ids: np.ndarray) -> int:
        if self.fail_remove:
            raise RuntimeError("remove failed")
        removed = 0
        for vector_id in ids:
            if self.vectors.pop(int(vector_id), None) is not None:
                removed += 1
        return removed

    def reset(self) -> None:
        self.vectors.clear()

    def write(self, path: str) -> None:
        write_json(
            path,
            {
                "dimension": self.dimension,
                "vectors": {str(k): v.tolist() for k, v in self.vectors.items()},
            },
        )


class FakeAccelerator(AcceleratorProvider):
    """Accelerator provider producing FakeIndex instances."""

    name = "fake"

    def __init__(self, fail_add: bool = False, fail_remove: bool = False, fail_create: bool = False) -> None:
        self.fail_add = fail_add
        self.fail_remove = fail_remove
        self.fail_create = fail_create
        self.created: list[FakeIndex] = []
        self.reads = 0

    @property
    def available(self) -> bool:
        return True

    def create_index(self, dimension: int, algorithm: str) -> AcceleratedIndex:
        if self.fail_create:
            raise RuntimeError("create failed")
        index = FakeIndex(dimension, self.fail_add, self.fail_remove)
        self.created.append(index)
        return index

    def read_index(self, path: str, dimension: int) -> AcceleratedIndex:
        self.reads += 1
        data = read_json(path)
        index = FakeIndex(data["dimension"])
        for key, values in data["vectors"].items():
            index.vectors[int(key)] = np.array(values, dtype=np.float32)
        self.created.append(index)
        return index


@pytest.fixture
def fake_accelerator() -> FakeAccelerator:
    return FakeAccelerator()


@pytest.fixture
def no_accelerator() -> UnavailableAccelerator:
    return UnavailableAccelerator("disabled for tests")


@pytest.fixture
def collection_name() -> str:
    """Unique collection name so embedded ChromaDB clients never collide."""
    return f"test_{uuid.uuid4().hex[:12]}"
