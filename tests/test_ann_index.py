"""Tests for ANNIndex search paths, fallback and persistence."""

import json

import numpy as np
import pytest

from conftest import FakeAccelerator
from vector_storage.core.ann_index import INDEX_FILE, METADATA_FILE, PLACEHOLDER_MARKER, ANNIndex
from vector_storage.core.config import ANNIndexConfig
from vector_storage.core.errors import InvalidInputError, NotConnectedError, VectorDimensionError


def _random_vectors(count: int, dimension: int, seed: int = 0) -> list[list[float]]:
    rng = np.random.default_rng(seed)
    return rng.normal(size=(count, dimension)).tolist()


def _make_index(accelerator, dimension: int = 4, min_dataset_size: int = 3, **kwargs) -> ANNIndex:
    index = ANNIndex(
        ANNIndexConfig(dimension=dimension, min_dataset_size=min_dataset_size, **kwargs),
        accelerator,
    )
    index.initialize()
    return index


class TestANNIndexBasics:
    """Test cases for lifecycle and validation."""

    def test_requires_initialize(self, fake_accelerator) -> None:
        index = ANNIndex(ANNIndexConfig(dimension=3), fake_accelerator)
        with pytest.raises(NotConnectedError):
            index.search([1.0, 0.0, 0.0])
        with pytest.raises(NotConnectedError):
            index.add_vectors([[1.0, 0.0, 0.0]], [1])

    def test_initialize_is_idempotent(self, fake_accelerator) -> None:
        index = _make_index(fake_accelerator)
        index.initialize()
        assert len(fake_accelerator.created) == 1
        assert index.is_connected()

    def test_dimension_mismatch(self, fake_accelerator) -> None:
        index = _make_index(fake_accelerator, dimension=3)
        with pytest.raises(VectorDimensionError):
            index.add_vectors([[1.0, 0.0]], [1])
        with pytest.raises(VectorDimensionError):
            index.search([1.0, 0.0])

    def test_length_mismatch_stores_nothing(self, fake_accelerator) -> None:
        index = _make_index(fake_accelerator, dimension=2)
        with pytest.raises(InvalidInputError):
            index.add_vectors([[1.0, 0.0], [0.0, 1.0]], [1])
        assert len(index) == 0

    def test_bad_vector_in_batch_stores_nothing(self, fake_accelerator) -> None:
        index = _make_index(fake_accelerator, dimension=2)
        with pytest.raises(VectorDimensionError):
            index.add_vectors([[1.0, 0.0], [0.0, 1.0, 0.0]], [1, 2])
        assert len(index) == 0

    def test_non_positive_k_rejected(self, fake_accelerator) -> None:
        index = _make_index(fake_accelerator, dimension=2)
        with pytest.raises(InvalidInputError):
            index.search([1.0, 0.0], k=0)

    def test_get_vector_returns_copy(self, fake_accelerator) -> None:
        index = _make_index(fake_accelerator, dimension=2)
        index.add_vectors([[1.0, 2.0]], [7])
        vector = index.get_vector(7)
        assert vector == [1.0, 2.0]
        vector[0] = 99.0
        assert index.get_vector(7) == [1.0, 2.0]
        assert index.get_vector(8) is None
        assert 7 in index and index.ids() == [7]

    def test_disconnect_clears_state(self, fake_accelerator) -> None:
        index = _make_index(fake_accelerator, dimension=2)
        index.add_vectors([[1.0, 0.0]], [1])
        index.disconnect()
        assert not index.is_connected()
        assert len(index) == 0
        index.disconnect()


class TestANNIndexSearch:
    """Test cases for search path selection."""

    def test_small_dataset_uses_linear_scan(self, fake_accelerator) -> None:
        """Below min_dataset_size every search is a linear scan."""
        index = _make_index(fake_accelerator, dimension=4, min_dataset_size=100)
        index.add_vectors(_random_vectors(5, 4), [1, 2, 3, 4, 5])

        results = index.search([1.0, 0.0, 0.0, 0.0], k=3)
        assert len(results) == 3
        assert all(not r.from_ann for r in results)
        stats = index.get_stats()
        assert stats.last_search_metrics is not None
        assert stats.last_search_metrics.from_ann is False
        assert fake_accelerator.created[0].search_calls == 0

    def test_large_dataset_uses_accelerated_path(self, fake_accelerator) -> None:
        index = _make_index(fake_accelerator, dimension=8, min_dataset_size=10)
        vectors = _random_vectors(50, 8)
        index.add_vectors(vectors, list(range(50)))

        results = index.search(vectors[7], k=5)
        assert len(results) == 5
        assert all(r.from_ann for r in results)
        assert results[0].id == 7
        assert results[0].score == pytest.approx(1.0, abs=1e-5)
        assert results[0].distance == pytest.approx(1.0 - results[0].score)
        scores = [r.score for r in results]
        assert scores == sorted(scores, reverse=True)
        assert index.get_stats().last_search_metrics.from_ann is True

    def test_paths_agree_on_ranking(self, fake_accelerator, no_accelerator) -> None:
        vectors = _random_vectors(30, 6, seed=3)
        accelerated = _make_index(fake_accelerator, dimension=6, min_dataset_size=1)
        linear = _make_index(no_accelerator, dimension=6, min_dataset_size=1)
        accelerated.add_vectors(vectors, list(range(30)))
        linear.add_vectors(vectors, list(range(30)))

        query = _random_vectors(1, 6, seed=9)[0]
        fast = accelerated.search(query, k=5)
        slow = linear.search(query, k=5)
        assert [r.id for r in fast] == [r.id for r in slow]
        for a, b in zip(fast, slow):
            assert a.score == pytest.approx(b.score, abs=1e-5)

    def test_result_count_bounded(self, fake_accelerator) -> None:
        index = _make_index(fake_accelerator, dimension=2, min_dataset_size=1)
        index.add_vectors([[1.0, 0.0], [0.0, 1.0]], [1, 2])
        assert len(index.search([1.0, 1.0], k=10)) == 2

    def test_empty_index_returns_nothing(self, fake_accelerator) -> None:
        index = _make_index(fake_accelerator, dimension=2, min_dataset_size=0)
        assert index.search([1.0, 0.0]) == []

    def test_predicate_filters_accelerated_results(self, fake_accelerator) -> None:
        index = _make_index(fake_accelerator, dimension=4, min_dataset_size=1)
        vectors = _random_vectors(40, 4, seed=5)
        index.add_vectors(vectors, list(range(40)))

        results = index.search(vectors[0], k=5, predicate=lambda vector_id: vector_id % 2 == 1)
        assert results
        assert all(r.id % 2 == 1 for r in results)
        assert all(r.from_ann for r in results)

    def test_query_time_floor(self, no_accelerator) -> None:
        index = _make_index(no_accelerator, dimension=2)
        index.add_vectors([[1.0, 0.0]], [1])
        index.search([1.0, 0.0])
        assert index.get_stats().last_search_metrics.query_time >= 1.0


class TestANNIndexFallback:
    """Test cases for degrading to the linear scan."""

    def test_unavailable_accelerator(self, no_accelerator) -> None:
        index = _make_index(no_accelerator, dimension=3, min_dataset_size=0)
        stats = index.get_stats()
        assert stats.using_ann is False
        assert stats.algorithm == "brute-force"

        index.add_vectors([[1.0, 0.0, 0.0], [0.0, 1.0, 0.0]], [1, 2])
        results = index.search([1.0, 0.0, 0.0], k=1)
        assert results[0].id == 1
        assert results[0].from_ann is False

    def test_create_failure_falls_back(self) -> None:
        index = _make_index(FakeAccelerator(fail_create=True), dimension=2)
        assert index.is_connected()
        assert index.get_stats().using_ann is False

    def test_brute_force_algorithm_never_accelerates(self, fake_accelerator) -> None:
        index = _make_index(fake_accelerator, dimension=2, min_dataset_size=0, algorithm="brute-force")
        index.add_vectors([[1.0, 0.0]], [1])
        assert index.search([1.0, 0.0])[0].from_ann is False
        assert fake_accelerator.created == []

    def test_add_failure_disables_acceleration(self) -> None:
        """A failing native add keeps data searchable via the linear scan."""
        index = _make_index(FakeAccelerator(fail_add=True), dimension=2, min_dataset_size=0)
        index.add_vectors([[1.0, 0.0], [0.0, 1.0]], [1, 2])

        assert len(index) == 2
        assert index.get_stats().using_ann is False
        results = index.search([0.0, 1.0], k=1)
        assert results[0].id == 2
        assert results[0].from_ann is False

    def test_remove_failure_rebuilds(self) -> None:
        accelerator = FakeAccelerator(fail_remove=True)
        index = _make_index(accelerator, dimension=2, min_dataset_size=0)
        index.add_vectors([[1.0, 0.0], [0.0, 1.0], [1.0, 1.0]], [1, 2, 3])
        index.remove_vectors([1])

        assert len(accelerator.created) == 2
        assert accelerator.created[-1].ntotal == 2
        assert index.get_stats().using_ann is True
        assert all(r.id != 1 for r in index.search([1.0, 0.0], k=3))

    def test_replacing_ids_does_not_duplicate(self, fake_accelerator) -> None:
        index = _make_index(fake_accelerator, dimension=2, min_dataset_size=0)
        index.add_vectors([[1.0, 0.0], [0.0, 1.0]], [1, 2])
        index.add_vectors([[0.0, 1.0]], [1])

        assert len(index) == 2
        assert fake_accelerator.created[-1].ntotal == 2
        assert index.get_vector(1) == [0.0, 1.0]

    def test_remove_unknown_ids_ignored(self, fake_accelerator) -> None:
        index = _make_index(fake_accelerator, dimension=2)
        index.add_vectors([[1.0, 0.0]], [1])
        index.remove_vectors([5, 6])
        assert len(index) == 1

    def test_clear(self, fake_accelerator) -> None:
        index = _make_index(fake_accelerator, dimension=2, min_dataset_size=0)
        index.add_vectors([[1.0, 0.0]], [1])
        index.clear()
        assert len(index) == 0
        assert fake_accelerator.created[-1].ntotal == 0
        assert index.search([1.0, 0.0]) == []


class TestANNIndexPersistence:
    """Test cases for save/load."""

    def test_round_trip_accelerated(self, tmp_path, fake_accelerator) -> None:
        vectors = _random_vectors(12, 4, seed=1)
        index = _make_index(fake_accelerator, dimension=4, min_dataset_size=5)
        index.add_vectors(vectors, list(range(100, 112)))
        before = index.search(vectors[3], k=4)
        index.save(tmp_path)

        assert (tmp_path / INDEX_FILE).exists()
        metadata = json.loads((tmp_path / METADATA_FILE).read_text())
        assert metadata["count"] == 12
        assert metadata["using_ann"] is True
        assert metadata["dimension"] == 4

        restored = ANNIndex(ANNIndexConfig(dimension=4, min_dataset_size=5), fake_accelerator)
        restored.load(tmp_path)
        assert restored.is_connected()
        assert len(restored) == 12
        assert restored.get_stats().using_ann is True
        assert fake_accelerator.reads == 1

        after = restored.search(vectors[3], k=4)
        assert [r.id for r in after] == [r.id for r in before]
        assert all(r.from_ann for r in after)

    def test_round_trip_linear_mode(self, tmp_path, no_accelerator, fake_accelerator) -> None:
        """Linear-mode state writes a placeholder and reloads in linear mode."""
        index = _make_index(no_accelerator, dimension=2, min_dataset_size=0)
        index.add_vectors([[1.0, 0.0], [0.0, 1.0]], [1, 2])
        index.save(tmp_path)

        assert (tmp_path / INDEX_FILE).read_bytes() == PLACEHOLDER_MARKER

        restored = ANNIndex(ANNIndexConfig(dimension=2, min_dataset_size=0), fake_accelerator)
        restored.load(tmp_path)
        assert len(restored) == 2
        assert restored.get_stats().using_ann is False
        assert restored.search([0.0, 1.0], k=1)[0].id == 2

    def test_load_rebuilds_when_index_file_missing(self, tmp_path, fake_accelerator) -> None:
        index = _make_index(fake_accelerator, dimension=2, min_dataset_size=0)
        index.add_vectors([[1.0, 0.0], [0.0, 1.0]], [1, 2])
        index.save(tmp_path)
        (tmp_path / INDEX_FILE).unlink()

        restored = ANNIndex(ANNIndexConfig(dimension=2, min_dataset_size=0), fake_accelerator)
        restored.load(tmp_path)
        assert restored.get_stats().using_ann is True
        assert restored.search([1.0, 0.0], k=1)[0].from_ann is True

    def test_load_without_accelerator_uses_linear(self, tmp_path, fake_accelerator, no_accelerator) -> None:
        index = _make_index(fake_accelerator, dimension=2, min_dataset_size=0)
        index.add_vectors([[1.0, 0.0]], [1])
        index.save(tmp_path)

        restored = ANNIndex(ANNIndexConfig(dimension=2, min_dataset_size=0), no_accelerator)
        restored.load(tmp_path)
        assert len(restored) == 1
        assert restored.get_stats().using_ann is False

    def test_load_missing_directory_is_empty(self, tmp_path, fake_accelerator) -> None:
        index = ANNIndex(ANNIndexConfig(dimension=2), fake_accelerator)
        index.load(tmp_path / "missing")
        assert index.is_connected()
        assert len(index) == 0

    def test_load_corrupt_metadata_is_empty(self, tmp_path, fake_accelerator) -> None:
        (tmp_path / METADATA_FILE).write_text("{not json")
        index = ANNIndex(ANNIndexConfig(dimension=2), fake_accelerator)
        index.load(tmp_path)
        assert index.is_connected()
        assert len(index) == 0
        assert index.get_stats().using_ann is False

    def test_load_vectors_with_wrong_shape_is_empty(self, tmp_path, no_accelerator) -> None:
        (tmp_path / METADATA_FILE).write_text(json.dumps({"dimension": 3, "vectors": []}))
        index = ANNIndex(ANNIndexConfig(dimension=3), no_accelerator)
        index.load(tmp_path)
        assert index.is_connected()
        assert len(index) == 0

    def test_load_non_list_vector_is_empty(self, tmp_path, no_accelerator) -> None:
        (tmp_path / METADATA_FILE).write_text(json.dumps({"dimension": 3, "vectors": {"1": 5}}))
        index = ANNIndex(ANNIndexConfig(dimension=3), no_accelerator)
        index.load(tmp_path)
        assert len(index) == 0

    def test_load_dimension_mismatch_is_empty(self, tmp_path, no_accelerator) -> None:
        index = _make_index(no_accelerator, dimension=3)
        index.add_vectors([[1.0, 0.0, 0.0]], [1])
        index.save(tmp_path)

        other = ANNIndex(ANNIndexConfig(dimension=2), no_accelerator)
        other.load(tmp_path)
        assert len(other) == 0

    def test_initialize_loads_persisted_state(self, tmp_path, fake_accelerator) -> None:
        config = ANNIndexConfig(dimension=2, persist_index=True, index_path=str(tmp_path))
        index = ANNIndex(config, fake_accelerator)
        index.initialize()
        index.add_vectors([[1.0, 0.0]], [1])
        index.disconnect()

        reopened = ANNIndex(config, fake_accelerator)
        reopened.initialize()
        assert reopened.get_vector(1) == [1.0, 0.0]


class TestFaissIndex:
    """Test cases against the real FAISS library."""

    def test_faiss_search_and_persist(self, tmp_path) -> None:
        pytest.importorskip("faiss")
        from vector_storage.core.acceleration import FaissAccelerator

        accelerator = FaissAccelerator()
        assert accelerator.available

        vectors = _random_vectors(20, 8, seed=2)
        index = _make_index(accelerator, dimension=8, min_dataset_size=5)
        index.add_vectors(vectors, list(range(20)))
        index.remove_vectors([0])

        results = index.search(vectors[4], k=3)
        assert results[0].id == 4
        assert all(r.from_ann for r in results)
        assert all(r.id != 0 for r in index.search(vectors[0], k=19))

        index.save(tmp_path)
        restored = ANNIndex(ANNIndexConfig(dimension=8, min_dataset_size=5), accelerator)
        restored.load(tmp_path)
        assert len(restored) == 19
        assert restored.get_stats().using_ann is True
        assert restored.search(vectors[4], k=1)[0].id == 4
