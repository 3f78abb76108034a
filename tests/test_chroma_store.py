"""Tests for the ChromaDB vector store (embedded ephemeral client)."""

import pytest

from vector_storage.core.config import ChromaConfig, VectorStoreConfig
from vector_storage.core.errors import (
    CapacityExceededError,
    InvalidInputError,
    NotConnectedError,
    VectorNotFoundError,
)
from vector_storage.core.filters import SearchFilters
from vector_storage.core.storage.chroma import ChromaVectorStore, build_where


@pytest.fixture
def store(collection_name):
    s = ChromaVectorStore(
        VectorStoreConfig(
            type="chroma",
            collection_name=collection_name,
            dimension=3,
            max_vectors=10,
            chroma=ChromaConfig(mode="ephemeral"),
        )
    )
    s.connect()
    yield s
    s.delete_collection()
    s.disconnect()


class TestBuildWhere:
    """Test cases for filter translation."""

    def test_empty(self) -> None:
        assert build_where(SearchFilters.parse(None)) is None

    def test_single_equality(self) -> None:
        assert build_where(SearchFilters.parse({"tag": "a"})) == {"tag": {"$eq": "a"}}

    def test_combined(self) -> None:
        where = build_where(SearchFilters.parse({"tag": "a", "lang": {"any": ["en"]}}))
        assert where == {"$and": [{"tag": {"$eq": "a"}}, {"lang": {"$in": ["en"]}}]}

    def test_range(self) -> None:
        where = build_where(SearchFilters.parse({"year": {"gte": 2000}}))
        assert where == {"year": {"$gte": 2000}}

    def test_non_scalar_equality_rejected(self) -> None:
        with pytest.raises(InvalidInputError):
            build_where(SearchFilters.parse({"tags": ["a", "b"]}))


class TestChromaVectorStore:
    """Test cases for ChromaVectorStore."""

    def test_requires_connection(self, collection_name) -> None:
        store = ChromaVectorStore(VectorStoreConfig(type="chroma", collection_name=collection_name, dimension=3))
        assert not store.is_connected()
        with pytest.raises(NotConnectedError):
            store.search([1.0, 0.0, 0.0])

    def test_insert_and_search(self, store) -> None:
        store.insert(
            [[1.0, 0.0, 0.0], [0.0, 1.0, 0.0], [0.0, 0.0, 1.0]],
            [1, 2, 3],
            [{"tag": "a"}, {"tag": "b"}, {"tag": "a", "nested": {"k": [1]}}],
        )
        results = store.search([1.0, 0.0, 0.0], limit=2, filters={"tag": "a"})
        assert [r.id for r in results] == [1, 3]
        assert results[0].score == pytest.approx(1.0, abs=1e-4)
        assert results[1].payload == {"tag": "a", "nested": {"k": [1]}}

    def test_get_update_delete(self, store) -> None:
        store.insert([[1.0, 0.0, 0.0]], [1], [{"title": "one"}])
        assert store.get(1).payload == {"title": "one"}
        assert store.get(2) is None

        store.update(1, [0.0, 1.0, 0.0], {"title": "uno"})
        result = store.get(1)
        assert result.payload == {"title": "uno"}
        assert result.vector == pytest.approx([0.0, 1.0, 0.0])

        with pytest.raises(VectorNotFoundError):
            store.update(2, [0.0, 1.0, 0.0], {})

        store.delete(1)
        assert store.get(1) is None

    def test_list(self, store) -> None:
        store.insert(
            [[1.0, float(i), 0.0] for i in range(4)],
            [1, 2, 3, 4],
            [{"even": i % 2 == 0} for i in range(4)],
        )
        page, total = store.list(limit=2)
        assert len(page) == 2
        assert total == 4

        page, total = store.list(filters={"even": True})
        assert {r.id for r in page} == {1, 3}
        assert total == 2

    def test_capacity(self, store) -> None:
        store.insert([[1.0, 0.0, float(i)] for i in range(10)], list(range(10)), [{}] * 10)
        with pytest.raises(CapacityExceededError):
            store.insert([[1.0, 1.0, 1.0]], [10], [{}])
        store.insert([[1.0, 1.0, 1.0]], [0], [{"replaced": True}])
        assert store.get(0).payload == {"replaced": True}

    def test_introspection(self, store, collection_name) -> None:
        assert store.get_backend_type() == "chroma"
        assert store.get_dimension() == 3
        assert store.get_collection_name() == collection_name
