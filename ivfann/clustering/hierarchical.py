"""
Hierarchical (tree-structured) k-means.

The dataset is split recursively: every internal node runs a small Lloyd
k-means over its points and hands each non-empty sub-cluster to a child.
Leaves are numbered depth-first once the whole tree exists, and the leaf
centroids form the flat clustering seen by the IVF index.

Queries are routed greedily from the root to the nearest child at every
level. There is no backtracking, so a point can end up in a leaf that is
not its globally nearest leaf centroid.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Union

import numpy as np
from numpy.typing import NDArray

from ..core.exceptions import DimensionMismatchError, InvalidInput, InvalidModelState
from ..distance import Metric, MetricEngine, MetricType
from ..utils.logging import get_logger
from ..utils.validation import (
    ArrayLike,
    validate_dataset,
    validate_positive_int,
    validate_tolerance,
)
from .base import (
    ClusteringResult,
    KMeans,
    KMeansType,
    RandomState,
    count_cluster_sizes,
)
from .lloyd import LloydKMeans


logger = get_logger(__name__)


@dataclass(eq=False)
class HierarchicalNode:
    """
    Node of the clustering tree.

    Internal nodes own their children; leaves own the indices of the
    points that ended up in them. ``leaf_id`` stays -1 until the tree is
    numbered.
    """

    level: int
    centroid: NDArray
    children: List["HierarchicalNode"] = field(default_factory=list)
    point_indices: Optional[NDArray] = None
    leaf_id: int = -1

    @property
    def is_leaf(self) -> bool:
        return not self.children

    def iter_leaves(self) -> Iterator["HierarchicalNode"]:
        """Yield leaves in depth-first order."""
        if self.is_leaf:
            yield self
            return
        for child in self.children:
            yield from child.iter_leaves()

    def depth(self) -> int:
        """Number of levels below and including this node."""
        if self.is_leaf:
            return 1
        return 1 + max(child.depth() for child in self.children)

    def __repr__(self) -> str:
        if self.is_leaf:
            size = 0 if self.point_indices is None else len(self.point_indices)
            return f"HierarchicalNode(level={self.level}, leaf_id={self.leaf_id}, size={size})"
        return f"HierarchicalNode(level={self.level}, children={len(self.children)})"


@dataclass(frozen=True, eq=False, repr=False)
class HierarchicalResult(ClusteringResult):
    """Flat view of the tree plus the tree itself for routing."""

    root: Optional[HierarchicalNode] = None


class HierarchicalKMeans(KMeans):
    """
    Hierarchical k-means built from bounded Lloyd sub-fits.

    Example:
        >>> kmeans = HierarchicalKMeans(branch_factor=4, max_depth=3, random_state=1)
        >>> result = kmeans.fit(vectors)
        >>> result.cluster_count   # number of leaves
        >>> kmeans.predict(vectors, result)

    Parameters:
        branch_factor: Maximum children per internal node (>= 2)
        max_depth: Maximum number of tree levels; the root is level 0 and
            nodes at level ``max_depth - 1`` are always leaves
        min_cluster_size: Nodes with fewer points are not split.
            Defaults to ``max(2 * branch_factor, 2)``
        max_iterations_per_level: Lloyd iteration cap for every sub-fit
        tolerance: Lloyd convergence tolerance for every sub-fit
    """

    def __init__(
        self,
        branch_factor: int = 2,
        max_depth: int = 6,
        min_cluster_size: Optional[int] = None,
        max_iterations_per_level: int = 50,
        tolerance: float = 1e-4,
        metric_type: Union[str, MetricType] = MetricType.L2SQ_DISTANCE,
        metric_engine: Union[str, MetricEngine, Metric] = MetricEngine.NUMPY,
        random_state: RandomState = None,
    ):
        self.branch_factor = validate_positive_int(branch_factor, "branch_factor")
        if self.branch_factor < 2:
            raise InvalidInput(f"branch_factor must be >= 2, got {branch_factor}")
        self.max_depth = validate_positive_int(max_depth, "max_depth")
        if min_cluster_size is None:
            min_cluster_size = max(2 * self.branch_factor, 2)
        self.min_cluster_size = validate_positive_int(min_cluster_size, "min_cluster_size")
        self.max_iterations_per_level = validate_positive_int(
            max_iterations_per_level, "max_iterations_per_level"
        )
        self.tolerance = validate_tolerance(tolerance)

        super().__init__(metric_type, metric_engine, random_state)

    @property
    def kmeans_type(self) -> KMeansType:
        return KMeansType.HIERARCHICAL

    # =========================================================================
    # FIT
    # =========================================================================

    def fit(self, data: ArrayLike) -> HierarchicalResult:
        data = validate_dataset(data)
        sample_count = len(data)

        all_indices = np.arange(sample_count, dtype=np.int64)
        root_centroid = data.mean(axis=0, dtype=np.float64).astype(np.float32)
        root = self._build_node(data, all_indices, root_centroid, level=0)

        # Number leaves only after the whole tree exists
        leaves = list(root.iter_leaves())
        assignments = np.full(sample_count, -1, dtype=np.int64)
        for leaf_id, leaf in enumerate(leaves):
            leaf.leaf_id = leaf_id
            assignments[leaf.point_indices] = leaf_id

        if (assignments < 0).any():
            raise InvalidModelState("some points were not assigned to any leaf")

        centroids = np.stack([leaf.centroid for leaf in leaves]).astype(np.float32)
        loss = 0.0
        for leaf in leaves:
            leaf_distances = self._calculator.distances(
                leaf.centroid, data[leaf.point_indices]
            )
            loss += float(np.sum(leaf_distances, dtype=np.float64))
        sizes = count_cluster_sizes(assignments, len(leaves))

        logger.debug(
            f"Hierarchical k-means: n={sample_count}, leaves={len(leaves)}, "
            f"depth={root.depth()}, loss={loss:.6g}"
        )

        return HierarchicalResult(
            centroids=centroids,
            assignments=assignments,
            cluster_sizes=sizes,
            loss=loss,
            root=root,
        )

    def _build_node(
        self,
        data: NDArray,
        indices: NDArray,
        centroid: NDArray,
        level: int,
    ) -> HierarchicalNode:
        point_count = len(indices)

        if level >= self.max_depth - 1 or point_count < self.min_cluster_size:
            return HierarchicalNode(level, centroid, point_indices=indices)

        local_cluster_count = min(self.branch_factor, point_count)
        if local_cluster_count < 2:
            return HierarchicalNode(level, centroid, point_indices=indices)

        sub_kmeans = LloydKMeans(
            cluster_count=local_cluster_count,
            metric_type=self._metric_type,
            metric_engine=self._metric_engine,
            max_iterations=self.max_iterations_per_level,
            tolerance=self.tolerance,
            random_state=self._rng,
        )
        sub_result = sub_kmeans.fit(data[indices])
        labels = sub_result.assignments

        non_empty = np.flatnonzero(sub_result.cluster_sizes)
        if len(non_empty) < 2:
            # Splitting gave no benefit
            return HierarchicalNode(level, centroid, point_indices=indices)

        children = [
            self._build_node(
                data,
                indices[labels == cluster],
                sub_result.centroids[cluster].copy(),
                level + 1,
            )
            for cluster in non_empty
        ]
        return HierarchicalNode(level, centroid, children=children)

    # =========================================================================
    # PREDICT
    # =========================================================================

    def predict(self, data: ArrayLike, model: ClusteringResult) -> NDArray:
        """
        Route every point greedily down the tree to a leaf id.

        At each internal node the point moves to the child with the
        nearest centroid; ties go to the first child.
        """
        data = validate_dataset(data)

        if model is None:
            raise InvalidInput("model must be non-null")
        if not isinstance(model, HierarchicalResult) or model.root is None:
            raise InvalidInput("model must be a HierarchicalResult with a tree root")
        if len(model.root.centroid) != data.shape[1]:
            raise DimensionMismatchError(
                f"data dimension {data.shape[1]} does not match "
                f"tree centroid dimension {len(model.root.centroid)}"
            )

        labels = np.full(len(data), -1, dtype=np.int64)
        self._route(data, np.arange(len(data), dtype=np.int64), model.root, labels)
        return labels

    def _route(
        self,
        data: NDArray,
        indices: NDArray,
        node: HierarchicalNode,
        labels: NDArray,
    ) -> None:
        if len(indices) == 0:
            return

        if node.is_leaf:
            if node.leaf_id < 0:
                raise InvalidModelState("leaf node has no leaf id assigned")
            labels[indices] = node.leaf_id
            return

        child_centroids = np.stack([child.centroid for child in node.children])
        distances = self._calculator.pairwise(data[indices], child_centroids)
        nearest = np.argmin(distances, axis=1)

        for child_idx, child in enumerate(node.children):
            self._route(data, indices[nearest == child_idx], child, labels)

    def __repr__(self) -> str:
        return (
            f"HierarchicalKMeans(branch_factor={self.branch_factor}, "
            f"max_depth={self.max_depth}, min_cluster_size={self.min_cluster_size}, "
            f"metric_type='{self.metric_type}')"
        )
