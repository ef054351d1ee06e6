"""
Unit tests for IVFIndex.
"""

import pytest
import numpy as np
from numpy.testing import assert_array_equal

from ivfann.clustering import (
    ClusteringResult,
    HierarchicalKMeans,
    KMeans,
    KMeansType,
    LloydKMeans,
    MiniBatchKMeans,
)
from ivfann.core.exceptions import (
    DimensionMismatchError,
    IndexNotBuiltError,
    InvalidInput,
    InvalidModelState,
)
from ivfann.distance import MetricType
from ivfann.index import IndexStats, IVFIndex, SearchResult, create_index


class FixedKMeans(KMeans):
    """Strategy returning a prepared result, for exercising build checks."""

    def __init__(self, result, metric_type=MetricType.L2SQ_DISTANCE):
        super().__init__(metric_type=metric_type, random_state=0)
        self.result = result

    @property
    def kmeans_type(self):
        return KMeansType.LLOYD

    def fit(self, data):
        return self.result

    def predict(self, data, model):
        return np.zeros(len(data), dtype=np.int64)


def fixed_result(centroids, assignments, sizes=None):
    assignments = np.asarray(assignments, dtype=np.int64)
    centroids = np.asarray(centroids, dtype=np.float32)
    if sizes is None:
        sizes = np.bincount(assignments, minlength=len(centroids))
    return ClusteringResult(
        centroids=centroids,
        assignments=assignments,
        cluster_sizes=np.asarray(sizes, dtype=np.int64),
        loss=0.0,
    )


def brute_force(index, query, top_k):
    distances = index.kmeans.calculator.distances(query, index._vectors)
    order = np.argsort(distances, kind="stable")[:top_k]
    return order, distances[order]


class TestIVFIndexBuild:
    """Building the inverted lists."""

    @pytest.fixture
    def index(self, random_vectors):
        index = IVFIndex(LloydKMeans(cluster_count=8, random_state=0))
        index.build(random_vectors)
        return index

    def test_state_after_build(self, index, random_vectors):
        assert index.is_built
        assert index.size == len(random_vectors)
        assert len(index) == len(random_vectors)
        assert index.dimension == random_vectors.shape[1]
        assert index.cluster_count == 8
        assert index.centroids.shape == (8, random_vectors.shape[1])
        assert index.metric_type is MetricType.L2SQ_DISTANCE

    def test_inverted_lists_partition_dataset(self, index, random_vectors):
        members = np.concatenate(
            [index.get_cluster_members(c) for c in range(index.cluster_count)]
        )
        assert_array_equal(np.sort(members), np.arange(len(random_vectors)))

    def test_lists_follow_assignments_in_order(self, index):
        assignments = index.clustering_result.assignments
        for cluster_id in range(index.cluster_count):
            expected = np.flatnonzero(assignments == cluster_id)
            assert_array_equal(index.get_cluster_members(cluster_id), expected)

    def test_reference_scenario(self):
        data = np.random.default_rng(42).random((1000, 8), dtype=np.float32)
        index = IVFIndex(
            LloydKMeans(cluster_count=10, max_iterations=50, tolerance=1e-4, random_state=42)
        )
        index.build(data)

        sizes = [len(index.get_cluster_members(c)) for c in range(10)]
        assert sum(sizes) == 1000
        assert all(size > 0 for size in sizes)

    def test_custom_ids(self, random_vectors):
        ids = np.arange(len(random_vectors)) * 10 + 7
        index = IVFIndex(LloydKMeans(cluster_count=4, random_state=0))
        index.build(random_vectors, ids=ids)

        results = index.search(random_vectors[3], top_k=1)
        assert results[0].id == 37

        members = np.concatenate(
            [index.get_cluster_members(c) for c in range(index.cluster_count)]
        )
        assert_array_equal(np.sort(members), np.sort(ids))

    def test_ids_length_mismatch(self, random_vectors):
        index = IVFIndex(LloydKMeans(cluster_count=4, random_state=0))
        with pytest.raises(InvalidInput, match="ids"):
            index.build(random_vectors, ids=[1, 2, 3])
        assert not index.is_built

    def test_non_integer_ids(self, random_vectors):
        index = IVFIndex(LloydKMeans(cluster_count=4, random_state=0))
        with pytest.raises(InvalidInput):
            index.build(random_vectors, ids=np.linspace(0, 1, len(random_vectors)))

    @pytest.mark.parametrize("data", [None, [], [[1.0, 2.0], [1.0]]])
    def test_bad_dataset(self, data):
        index = IVFIndex(LloydKMeans(cluster_count=1, random_state=0))
        with pytest.raises(InvalidInput):
            index.build(data)

    def test_stores_copy_of_vectors(self, random_vectors):
        data = random_vectors.copy()
        index = IVFIndex(LloydKMeans(cluster_count=4, random_state=0))
        index.build(data)

        query = data[5].copy()
        data[:] = 100.0

        results = index.search(query, top_k=1, n_probe=4)
        assert results[0].id == 5
        assert results[0].distance == pytest.approx(0.0)

    def test_rebuild_replaces_state(self, random_vectors, blob_vectors):
        index = IVFIndex(LloydKMeans(cluster_count=4, random_state=0))
        index.build(random_vectors)
        index.build(blob_vectors)

        assert index.size == len(blob_vectors)
        assert index.dimension == blob_vectors.shape[1]
        with pytest.raises(DimensionMismatchError):
            index.search(random_vectors[0])

    def test_requires_strategy(self):
        with pytest.raises(InvalidInput):
            IVFIndex(None)
        with pytest.raises(InvalidInput):
            IVFIndex("lloyd")


class TestIVFIndexModelValidation:
    """Clustering output is checked before any state changes."""

    @pytest.fixture
    def data(self):
        return np.array(
            [[0.0, 0.0], [0.1, 0.0], [5.0, 5.0], [5.1, 5.0]], dtype=np.float32
        )

    @pytest.mark.parametrize(
        "result",
        [
            fixed_result(np.empty((0, 2)), []),
            fixed_result([[0.0, 0.0], [5.0, 5.0]], [0, 0, 1]),
            fixed_result([[0.0, 0.0, 0.0], [5.0, 5.0, 5.0]], [0, 0, 1, 1]),
            fixed_result([[0.0, 0.0], [5.0, 5.0]], [0, 0, 1, 1], sizes=[3, -1]),
            fixed_result([[0.0, 0.0], [5.0, 5.0]], [0, 0, 1, 1], sizes=[2, 1]),
            fixed_result([[0.0, 0.0], [5.0, 5.0]], [0, 0, 1, 2], sizes=[2, 2]),
            fixed_result([[0.0, 0.0], [5.0, 5.0]], [0, -1, 1, 1], sizes=[2, 2]),
        ],
        ids=[
            "no-centroids",
            "short-assignments",
            "wrong-dimension",
            "negative-size",
            "size-sum",
            "assignment-too-large",
            "assignment-negative",
        ],
    )
    def test_broken_result(self, data, result):
        index = IVFIndex(FixedKMeans(result))
        with pytest.raises(InvalidModelState):
            index.build(data)
        assert not index.is_built

    def test_failed_rebuild_keeps_previous_state(self, data):
        good = fixed_result([[0.05, 0.0], [5.05, 5.0]], [0, 0, 1, 1])
        strategy = FixedKMeans(good)
        index = IVFIndex(strategy)
        index.build(data)

        strategy.result = fixed_result([[0.0, 0.0]], [0, 0, 0])
        with pytest.raises(InvalidModelState):
            index.build(data)

        assert index.is_built
        assert index.cluster_count == 2
        assert index.size == 4

    def test_empty_cluster_allowed(self, data):
        result = fixed_result([[0.05, 0.0], [5.05, 5.0], [9.0, 9.0]], [0, 0, 1, 1])
        index = IVFIndex(FixedKMeans(result))
        index.build(data)

        assert len(index.get_cluster_members(2)) == 0
        results = index.search([9.0, 9.0], top_k=4, n_probe=3)
        assert [r.id for r in results] == [3, 2, 1, 0]
        assert index.stats().extra["empty_clusters"] == 1


class TestIVFIndexSearch:
    """Coarse routing and fine scan."""

    @pytest.fixture
    def index(self, random_vectors):
        index = IVFIndex(LloydKMeans(cluster_count=8, random_state=0))
        index.build(random_vectors)
        return index

    def test_search_before_build(self):
        index = IVFIndex(LloydKMeans(cluster_count=2))
        with pytest.raises(IndexNotBuiltError):
            index.search(np.zeros(3, dtype=np.float32))
        with pytest.raises(InvalidInput):
            index.search(np.zeros(3, dtype=np.float32))

    def test_query_dimension_mismatch(self, index):
        with pytest.raises(DimensionMismatchError):
            index.search(np.zeros(3, dtype=np.float32))

    @pytest.mark.parametrize("top_k", [0, -1])
    def test_bad_top_k(self, index, random_vectors, top_k):
        with pytest.raises(InvalidInput, match="top_k"):
            index.search(random_vectors[0], top_k=top_k)

    def test_full_probe_is_exact(self, index, rng, random_vectors):
        for _ in range(10):
            query = rng.standard_normal(random_vectors.shape[1]).astype(np.float32)
            results = index.search(query, top_k=10, n_probe=index.cluster_count)

            expected_ids, expected_distances = brute_force(index, query, 10)
            assert [r.id for r in results] == expected_ids.tolist()
            assert [r.distance for r in results] == pytest.approx(
                expected_distances.tolist()
            )

    def test_n_probe_clamped(self, index, random_vectors):
        query = random_vectors[11]
        assert index.search(query, top_k=5, n_probe=0) == index.search(query, top_k=5, n_probe=1)
        assert (
            index.search(query, top_k=5, n_probe=1000)
            == index.search(query, top_k=5, n_probe=index.cluster_count)
        )

    def test_results_sorted(self, index, random_vectors):
        results = index.search(random_vectors[0], top_k=25, n_probe=3)
        distances = [r.distance for r in results]
        assert distances == sorted(distances)

    def test_result_count_bounded(self, index, random_vectors):
        query = random_vectors[0]
        results = index.search(query, top_k=1000, n_probe=2)

        probed = np.argsort(
            index.kmeans.calculator.distances(query, index.centroids), kind="stable"
        )[:2]
        available = sum(len(index.get_cluster_members(c)) for c in probed)

        assert len(results) == available
        assert {r.cluster_id for r in results} <= set(probed.tolist())

    def test_top_k_limits_results(self, index, random_vectors):
        assert len(index.search(random_vectors[0], top_k=3, n_probe=8)) == 3

    def test_identical_vector_returns_itself(self, index, random_vectors):
        for i in (0, 17, 199):
            results = index.search(random_vectors[i], top_k=1, n_probe=1)
            assert results[0].id == i
            assert results[0].distance == pytest.approx(0.0)

    def test_cluster_id_reported(self, index, random_vectors):
        assignments = index.clustering_result.assignments
        results = index.search(random_vectors[42], top_k=5, n_probe=8)
        for result in results:
            assert isinstance(result, SearchResult)
            assert result.cluster_id == assignments[result.id]

    def test_search_is_repeatable(self, index, random_vectors):
        first = index.search(random_vectors[3], top_k=10, n_probe=2)
        second = index.search(random_vectors[3], top_k=10, n_probe=2)
        assert first == second
        assert first is not second

    def test_search_batch(self, index, random_vectors):
        batches = index.search_batch(random_vectors[:4], top_k=2, n_probe=2)

        assert len(batches) == 4
        for i, results in enumerate(batches):
            assert results == index.search(random_vectors[i], top_k=2, n_probe=2)

    def test_search_batch_dimension_mismatch(self, index):
        with pytest.raises(DimensionMismatchError):
            index.search_batch(np.zeros((2, 3), dtype=np.float32))


class TestIVFIndexOrdering:
    """Ordering rules that callers rely on."""

    def test_equal_distances_keep_scan_order(self):
        data = np.array([[0.0, 0.0], [1.0, 0.0], [0.0, 1.0], [-1.0, 0.0]], dtype=np.float32)
        index = IVFIndex(LloydKMeans(cluster_count=1, random_state=0))
        index.build(data)

        query = np.zeros(2, dtype=np.float32)
        assert [r.id for r in index.search(query, top_k=4)] == [0, 1, 2, 3]
        # Later equal-distance entries never evict earlier ones
        assert [r.id for r in index.search(query, top_k=2)] == [0, 1]

    def test_dot_product_lower_wins(self):
        """Raw dot product ranks the smallest (most negative) value first."""
        data = np.array([[1.0, 0.0], [2.0, 0.0], [-1.0, 0.0], [3.0, 0.0]], dtype=np.float32)
        index = IVFIndex(
            LloydKMeans(cluster_count=1, metric_type=MetricType.DOT_PRODUCT, random_state=0)
        )
        index.build(data)

        results = index.search(np.array([1.0, 0.0], dtype=np.float32), top_k=4)

        assert [r.id for r in results] == [2, 0, 1, 3]
        assert [r.distance for r in results] == pytest.approx([-1.0, 1.0, 2.0, 3.0])

    def test_coarse_tie_goes_to_lower_cluster(self):
        data = np.array([[-1.0, 0.0], [1.0, 0.0]], dtype=np.float32)
        result = fixed_result([[-1.0, 0.0], [1.0, 0.0]], [0, 1])
        index = IVFIndex(FixedKMeans(result))
        index.build(data)

        results = index.search(np.zeros(2, dtype=np.float32), top_k=2, n_probe=1)

        assert len(results) == 1
        assert results[0].cluster_id == 0
        assert results[0].id == 0

    def test_probe_order_follows_centroid_distance(self):
        data = np.array([[0.0], [10.0], [20.0]], dtype=np.float32)
        result = fixed_result([[0.0], [10.0], [20.0]], [0, 1, 2])
        index = IVFIndex(FixedKMeans(result))
        index.build(data)

        results = index.search(np.array([19.0], dtype=np.float32), top_k=3, n_probe=2)

        assert [r.id for r in results] == [2, 1]


class TestIVFIndexStrategies:
    """The index works with every clustering strategy."""

    @pytest.mark.parametrize(
        "kmeans",
        [
            LloydKMeans(cluster_count=4, random_state=0),
            MiniBatchKMeans(cluster_count=4, batch_size=64, random_state=0),
            HierarchicalKMeans(branch_factor=2, max_depth=3, random_state=0),
        ],
        ids=["lloyd", "mini_batch", "hierarchical"],
    )
    def test_blob_search(self, kmeans, blob_vectors, blob_labels):
        index = IVFIndex(kmeans)
        index.build(blob_vectors)

        results = index.search(blob_vectors[60], top_k=10, n_probe=1)

        assert results[0].id == 60
        assert all(blob_labels[r.id] == blob_labels[60] for r in results)

    def test_create_index(self, blob_vectors):
        index = create_index("mini_batch", "l2sq", "scipy", cluster_count=4, batch_size=32, random_state=1)
        index.build(blob_vectors)

        assert index.kmeans.kmeans_type is KMeansType.MINI_BATCH
        assert index.cluster_count == 4


class TestIVFIndexStats:

    def test_stats_before_build(self):
        stats = IVFIndex(LloydKMeans(cluster_count=2)).stats()

        assert isinstance(stats, IndexStats)
        assert not stats.is_built
        assert stats.vector_count == 0
        assert stats.cluster_count == 0
        assert stats.memory_bytes == 0

    def test_stats_after_build(self, blob_vectors):
        index = IVFIndex(LloydKMeans(cluster_count=4, random_state=0))
        index.build(blob_vectors)

        stats = index.stats()
        sizes = stats.extra["cluster_sizes"]

        assert stats.is_built
        assert stats.index_type == "ivf"
        assert stats.metric == "l2sq"
        assert stats.engine == "numpy"
        assert stats.vector_count == 200
        assert stats.cluster_count == 4
        assert stats.memory_bytes > blob_vectors.nbytes
        assert stats.build_time_seconds >= 0.0
        assert sizes["min"] == sizes["max"] == 50
        assert sizes["mean"] == pytest.approx(50.0)
        assert sizes["std"] == pytest.approx(0.0)
        assert stats.extra["empty_clusters"] == 0
        assert stats.extra["clustering"] == "lloyd"

        as_dict = stats.to_dict()
        assert as_dict["vector_count"] == 200
        assert "memory_mb" in as_dict

    def test_cluster_members_out_of_range(self, blob_vectors):
        index = IVFIndex(LloydKMeans(cluster_count=4, random_state=0))
        index.build(blob_vectors)

        with pytest.raises(InvalidInput):
            index.get_cluster_members(4)
        with pytest.raises(InvalidInput):
            index.get_cluster_members(-1)

    def test_cluster_members_before_build(self):
        with pytest.raises(IndexNotBuiltError):
            IVFIndex(LloydKMeans(cluster_count=2)).get_cluster_members(0)
