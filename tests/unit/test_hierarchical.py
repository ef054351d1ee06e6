"""
Unit tests for hierarchical k-means.
"""

import pytest
import numpy as np
from numpy.testing import assert_allclose, assert_array_equal

from ivfann.clustering import (
    HierarchicalKMeans,
    HierarchicalNode,
    HierarchicalResult,
    LloydKMeans,
)
from ivfann.core.exceptions import DimensionMismatchError, InvalidInput


class TestHierarchicalFit:
    """Tree construction."""

    @pytest.fixture
    def fitted(self, random_vectors):
        kmeans = HierarchicalKMeans(branch_factor=3, max_depth=4, random_state=7)
        return kmeans, kmeans.fit(random_vectors)

    def test_result_shape(self, fitted, random_vectors):
        _, result = fitted

        assert isinstance(result, HierarchicalResult)
        assert isinstance(result.root, HierarchicalNode)
        assert result.centroids.shape[1] == random_vectors.shape[1]
        assert len(result.assignments) == len(random_vectors)
        assert result.cluster_sizes.sum() == len(random_vectors)
        assert (result.cluster_sizes > 0).all()

    def test_leaves_numbered_depth_first(self, fitted):
        _, result = fitted
        leaves = list(result.root.iter_leaves())

        assert [leaf.leaf_id for leaf in leaves] == list(range(result.cluster_count))
        for leaf in leaves:
            assert_array_equal(result.centroids[leaf.leaf_id], leaf.centroid)
            assert len(leaf.point_indices) == result.cluster_sizes[leaf.leaf_id]

    def test_leaf_points_partition_dataset(self, fitted, random_vectors):
        _, result = fitted
        indices = np.concatenate(
            [leaf.point_indices for leaf in result.root.iter_leaves()]
        )

        assert_array_equal(np.sort(indices), np.arange(len(random_vectors)))
        for leaf in result.root.iter_leaves():
            assert (result.assignments[leaf.point_indices] == leaf.leaf_id).all()

    def test_depth_and_branching_bounds(self, fitted):
        kmeans, result = fitted

        assert result.root.depth() <= kmeans.max_depth
        stack = [result.root]
        while stack:
            node = stack.pop()
            if node.is_leaf:
                assert node.level <= kmeans.max_depth - 1
            else:
                assert 2 <= len(node.children) <= kmeans.branch_factor
                assert node.point_indices is None
                stack.extend(node.children)

    def test_predict_reproduces_training_assignments(self, fitted, random_vectors):
        kmeans, result = fitted
        assert_array_equal(kmeans.predict(random_vectors, result), result.assignments)

    def test_loss_is_sum_of_leaf_distances(self, fitted, random_vectors):
        kmeans, result = fitted
        expected = sum(
            kmeans.calculator.distance(v, result.centroids[c])
            for v, c in zip(random_vectors, result.assignments)
        )
        assert result.loss == pytest.approx(expected, rel=1e-4)

    def test_root_centroid_is_mean(self, fitted, random_vectors):
        _, result = fitted
        assert_allclose(result.root.centroid, random_vectors.mean(axis=0), atol=1e-5)

    def test_single_level_tree(self, random_vectors):
        result = HierarchicalKMeans(max_depth=1, random_state=0).fit(random_vectors)

        assert result.root.is_leaf
        assert result.cluster_count == 1
        assert_array_equal(result.assignments, np.zeros(len(random_vectors)))
        assert_allclose(result.centroids[0], random_vectors.mean(axis=0), atol=1e-5)

    def test_small_dataset_not_split(self):
        data = np.random.default_rng(0).random((3, 2), dtype=np.float32)
        result = HierarchicalKMeans(branch_factor=2, random_state=0).fit(data)

        # Default min_cluster_size is 4
        assert result.root.is_leaf
        assert result.cluster_count == 1

    def test_identical_points_single_leaf(self):
        data = np.ones((20, 3), dtype=np.float32)
        result = HierarchicalKMeans(branch_factor=2, random_state=0).fit(data)

        assert result.cluster_count == 1
        assert result.loss == pytest.approx(0.0)

    def test_blobs_two_levels(self, blob_vectors, blob_labels):
        result = HierarchicalKMeans(
            branch_factor=4, max_depth=2, random_state=0
        ).fit(blob_vectors)

        assert result.cluster_count == 4
        assert_array_equal(result.cluster_sizes, [50, 50, 50, 50])
        for leaf_id in range(4):
            members = blob_labels[result.assignments == leaf_id]
            assert len(set(members.tolist())) == 1

    def test_deterministic_with_seed(self, random_vectors):
        first = HierarchicalKMeans(branch_factor=2, max_depth=3, random_state=5).fit(random_vectors)
        second = HierarchicalKMeans(branch_factor=2, max_depth=3, random_state=5).fit(random_vectors)

        assert_array_equal(first.centroids, second.centroids)
        assert_array_equal(first.assignments, second.assignments)

    def test_cosine_engine(self, random_vectors, engine):
        kmeans = HierarchicalKMeans(
            branch_factor=2,
            max_depth=3,
            metric_type="cosine",
            metric_engine=engine,
            random_state=1,
        )
        result = kmeans.fit(random_vectors)

        assert result.cluster_sizes.sum() == len(random_vectors)
        assert_array_equal(kmeans.predict(random_vectors, result), result.assignments)


class TestHierarchicalConfiguration:

    def test_default_min_cluster_size(self):
        assert HierarchicalKMeans().min_cluster_size == 4
        assert HierarchicalKMeans(branch_factor=8).min_cluster_size == 16
        assert HierarchicalKMeans(branch_factor=8, min_cluster_size=2).min_cluster_size == 2

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"branch_factor": 1},
            {"branch_factor": 0},
            {"max_depth": 0},
            {"min_cluster_size": 0},
            {"max_iterations_per_level": 0},
            {"tolerance": -1e-3},
        ],
    )
    def test_bad_configuration(self, kwargs):
        with pytest.raises(InvalidInput):
            HierarchicalKMeans(**kwargs)


class TestHierarchicalPredict:

    @pytest.fixture
    def fitted(self, blob_vectors):
        kmeans = HierarchicalKMeans(branch_factor=4, max_depth=2, random_state=0)
        return kmeans, kmeans.fit(blob_vectors)

    def test_routes_new_points(self, fitted):
        kmeans, result = fitted
        queries = result.centroids + 0.05

        assert_array_equal(kmeans.predict(queries, result), np.arange(4))

    def test_requires_tree(self, fitted, blob_vectors):
        kmeans, _ = fitted
        flat = LloydKMeans(cluster_count=4, random_state=0).fit(blob_vectors)

        with pytest.raises(InvalidInput, match="HierarchicalResult"):
            kmeans.predict(blob_vectors, flat)

    def test_null_model(self, fitted, blob_vectors):
        kmeans, _ = fitted
        with pytest.raises(InvalidInput):
            kmeans.predict(blob_vectors, None)

    def test_dimension_mismatch(self, fitted):
        kmeans, result = fitted
        with pytest.raises(DimensionMismatchError):
            kmeans.predict(np.zeros((2, 5), dtype=np.float32), result)
