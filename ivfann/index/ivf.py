"""
IVF (Inverted File) Index Implementation.

IVF is a clustering-based approximate nearest neighbor algorithm that:
1. Partitions the vector space into clusters with a k-means strategy
2. Assigns each vector to its cluster's inverted list
3. At search time, scans only the lists of the nearest clusters

Key Features:
    - Pluggable clustering (Lloyd, Mini-Batch, Hierarchical)
    - Pluggable distance engine, shared with the clustering strategy
    - Tunable accuracy vs speed tradeoff (n_probe)
    - Exact search when every cluster is probed

Reference:
    Jegou, H., Douze, M., & Schmid, C. (2011).
    "Product quantization for nearest neighbor search."
    IEEE transactions on pattern analysis and machine intelligence.
"""

from __future__ import annotations

import heapq
import time
from typing import Any, Dict, List, Optional, Tuple, Union

import numpy as np
from numpy.typing import NDArray

from ..clustering import ClusteringResult, KMeans
from ..core.exceptions import IndexNotBuiltError, InvalidInput, InvalidModelState
from ..distance import Metric, MetricEngine, MetricType
from ..utils.logging import get_logger
from ..utils.validation import (
    ArrayLike,
    validate_dataset,
    validate_ids,
    validate_positive_int,
    validate_vector,
)
from .base import BaseIndex, IndexStats, IndexType, SearchResult


logger = get_logger(__name__)


class IVFIndex(BaseIndex):
    """
    IVF (Inverted File) flat index.

    Vectors are stored uncompressed; the clustering strategy decides the
    partition and supplies the distance calculator used for both coarse
    routing and the fine scan.

    Example:
        >>> kmeans = LloydKMeans(cluster_count=100, random_state=42)
        >>> index = IVFIndex(kmeans)
        >>> index.build(vectors)
        >>>
        >>> results = index.search(query, top_k=10, n_probe=8)
        >>> [(r.id, r.distance) for r in results]

    Parameters:
        n_probe: Clusters to scan per query, clamped to [1, cluster_count]
            - Higher = better recall, slower search
            - n_probe == cluster_count gives exact search

    Complexity:
        - Build: one clustering fit plus O(n) list construction
        - Search: O(k * d) coarse + O((n/k) * n_probe * d) fine
        - Memory: O(n * d + k * d)
    """

    def __init__(self, kmeans: KMeans):
        if kmeans is None:
            raise InvalidInput("kmeans must be non-null")
        if not isinstance(kmeans, KMeans):
            raise InvalidInput(
                f"kmeans must be a KMeans strategy, got {type(kmeans).__name__}"
            )

        self._kmeans = kmeans
        self._calculator = kmeans.calculator

        self._dimension = 0
        self._centroids: Optional[NDArray] = None
        self._inverted_lists: List[NDArray] = []
        self._vectors: Optional[NDArray] = None
        self._ids: Optional[NDArray] = None
        self._model: Optional[ClusteringResult] = None
        self._build_time = 0.0

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def index_type(self) -> IndexType:
        return IndexType.IVF

    @property
    def kmeans(self) -> KMeans:
        """Clustering strategy used by ``build()``."""
        return self._kmeans

    @property
    def metric_type(self) -> MetricType:
        return self._kmeans.metric_type

    @property
    def metric_engine(self) -> Union[MetricEngine, Metric]:
        return self._kmeans.metric_engine

    @property
    def dimension(self) -> int:
        """Vector dimension, 0 before the first build."""
        return self._dimension

    @property
    def cluster_count(self) -> int:
        return len(self._inverted_lists)

    @property
    def size(self) -> int:
        return 0 if self._vectors is None else len(self._vectors)

    @property
    def is_built(self) -> bool:
        return self._centroids is not None

    @property
    def centroids(self) -> Optional[NDArray]:
        """Cluster centroids (read-only view), or None before build."""
        return self._centroids

    @property
    def clustering_result(self) -> Optional[ClusteringResult]:
        """Clustering output of the last successful build."""
        return self._model

    # =========================================================================
    # BUILD
    # =========================================================================

    def build(self, vectors: ArrayLike, ids: Optional[ArrayLike] = None) -> None:
        """
        Cluster the dataset and build one inverted list per cluster.

        Any previous state is replaced only once the new state has been
        computed and validated; on failure the index is left unchanged.

        Args:
            vectors: Array of vectors (n, dimension)
            ids: Optional external integer ids (length n), defaults to 0..n-1

        Raises:
            InvalidInput: Empty or ragged dataset, or bad ids
            InvalidModelState: The clustering output is inconsistent
        """
        data = validate_dataset(vectors, name="vectors")
        sample_count, dimension = data.shape
        external_ids = validate_ids(ids, sample_count)

        start = time.perf_counter()
        model = self._kmeans.fit(data)
        self._check_model(model, sample_count, dimension)

        assignments = np.asarray(model.assignments, dtype=np.int64)
        cluster_count = len(model.centroids)

        # Stable sort keeps dataset order inside every list
        order = np.argsort(assignments, kind="stable")
        bounds = np.cumsum(np.bincount(assignments, minlength=cluster_count))[:-1]
        inverted_lists = np.split(order, bounds)
        for inv_list in inverted_lists:
            inv_list.flags.writeable = False

        centroids = np.array(model.centroids, dtype=np.float32)
        centroids.flags.writeable = False
        stored = data.copy()
        stored.flags.writeable = False
        external_ids.flags.writeable = False

        build_time = time.perf_counter() - start

        self._dimension = dimension
        self._centroids = centroids
        self._inverted_lists = inverted_lists
        self._vectors = stored
        self._ids = external_ids
        self._model = model
        self._build_time = build_time

        logger.info(
            f"Built IVF index: {sample_count} vectors, {cluster_count} clusters, "
            f"{self._kmeans.kmeans_type.value} clustering in {build_time:.3f}s"
        )

    def _check_model(
        self,
        model: ClusteringResult,
        sample_count: int,
        dimension: int,
    ) -> None:
        if model is None:
            raise InvalidModelState("clustering returned no result")

        centroids = model.centroids
        if centroids is None or len(centroids) == 0:
            raise InvalidModelState("clustering returned no centroids")
        centroids = np.asarray(centroids)
        if centroids.ndim != 2 or centroids.shape[1] != dimension:
            raise InvalidModelState(
                f"centroid shape {centroids.shape} does not match "
                f"data dimension {dimension}"
            )

        assignments = np.asarray(model.assignments)
        if assignments.ndim != 1 or len(assignments) != sample_count:
            raise InvalidModelState(
                f"expected {sample_count} assignments, got {len(assignments)}"
            )
        if sample_count and (
            assignments.min() < 0 or assignments.max() >= len(centroids)
        ):
            raise InvalidModelState("cluster assignment out of range")

        sizes = np.asarray(model.cluster_sizes)
        if len(sizes) != len(centroids):
            raise InvalidModelState(
                f"expected {len(centroids)} cluster sizes, got {len(sizes)}"
            )
        if (sizes < 0).any():
            raise InvalidModelState("negative cluster size")
        if int(sizes.sum()) != sample_count:
            raise InvalidModelState(
                f"cluster sizes sum to {int(sizes.sum())}, expected {sample_count}"
            )

    # =========================================================================
    # SEARCH OPERATIONS
    # =========================================================================

    def search(
        self,
        query: ArrayLike,
        top_k: int = 10,
        n_probe: int = 1,
    ) -> List[SearchResult]:
        """
        Search for the top_k nearest neighbors among the n_probe nearest
        clusters.

        Results are sorted by ascending distance; equal distances keep
        the order in which they were scanned.

        Raises:
            IndexNotBuiltError: If build() has not completed
            DimensionMismatchError: If the query length differs from the index
            InvalidInput: If top_k is not positive
        """
        if not self.is_built:
            raise IndexNotBuiltError("Index must be built before searching")

        query = validate_vector(query, self._dimension)
        top_k = validate_positive_int(top_k, "top_k")

        if self.cluster_count == 0:
            return []

        probes = self._select_clusters(query, n_probe)
        return self._scan(query, probes, top_k)

    def _select_clusters(self, query: NDArray, n_probe: int) -> NDArray:
        """Indices of the n_probe nearest centroids; ties go to the lower id."""
        n_probe = max(1, min(int(n_probe), self.cluster_count))
        centroid_distances = self._calculator.distances(query, self._centroids)
        return np.argsort(centroid_distances, kind="stable")[:n_probe]

    def _scan(
        self,
        query: NDArray,
        probes: NDArray,
        top_k: int,
    ) -> List[SearchResult]:
        # Max-heap on (distance, scan order): the root is the entry to evict
        heap: List[Tuple[float, int, int, int]] = []
        scan_order = 0

        for cluster_id in probes:
            members = self._inverted_lists[cluster_id]
            if len(members) == 0:
                continue

            distances = self._calculator.distances(query, self._vectors[members])

            for local_idx, dist in zip(members.tolist(), distances.tolist()):
                entry = (-dist, -scan_order, local_idx, int(cluster_id))
                scan_order += 1
                if len(heap) < top_k:
                    heapq.heappush(heap, entry)
                elif dist < -heap[0][0]:
                    heapq.heapreplace(heap, entry)

        heap.sort(reverse=True)
        return [
            SearchResult(
                id=int(self._ids[local_idx]),
                distance=-neg_dist,
                cluster_id=cluster_id,
            )
            for neg_dist, _, local_idx, cluster_id in heap
        ]

    def search_batch(
        self,
        queries: ArrayLike,
        top_k: int = 10,
        n_probe: int = 1,
    ) -> List[List[SearchResult]]:
        """
        Search with multiple queries.

        Args:
            queries: Array of query vectors (n, dimension)
            top_k: Number of results per query
            n_probe: Clusters to scan per query

        Returns:
            List of result lists
        """
        if not self.is_built:
            raise IndexNotBuiltError("Index must be built before searching")

        queries = validate_dataset(queries, name="queries")
        return [self.search(q, top_k=top_k, n_probe=n_probe) for q in queries]

    # =========================================================================
    # INSPECTION
    # =========================================================================

    def get_cluster_members(self, cluster_id: int) -> NDArray:
        """
        External ids stored in a cluster's inverted list, in dataset order.

        Raises:
            IndexNotBuiltError: If build() has not completed
            InvalidInput: If cluster_id is out of range
        """
        if not self.is_built:
            raise IndexNotBuiltError("Index must be built before inspecting clusters")
        if not 0 <= cluster_id < self.cluster_count:
            raise InvalidInput(f"Invalid cluster_id: {cluster_id}")

        return self._ids[self._inverted_lists[cluster_id]]

    def stats(self) -> IndexStats:
        """Get index statistics."""
        cluster_sizes = np.array(
            [len(inv_list) for inv_list in self._inverted_lists], dtype=np.int64
        )

        memory_bytes = 0
        if self.is_built:
            memory_bytes = (
                self._vectors.nbytes
                + self._centroids.nbytes
                + self._ids.nbytes
                + sum(inv_list.nbytes for inv_list in self._inverted_lists)
            )

        has_clusters = len(cluster_sizes) > 0
        extra: Dict[str, Any] = {
            "clustering": self._kmeans.kmeans_type.value,
            "cluster_sizes": {
                "min": int(cluster_sizes.min()) if has_clusters else 0,
                "max": int(cluster_sizes.max()) if has_clusters else 0,
                "mean": float(cluster_sizes.mean()) if has_clusters else 0.0,
                "std": float(cluster_sizes.std()) if has_clusters else 0.0,
            },
            "empty_clusters": int((cluster_sizes == 0).sum()),
            "loss": self._model.loss if self._model is not None else None,
        }

        return IndexStats(
            index_type=self.index_type.value,
            dimension=self._dimension,
            metric=self.metric_type.value,
            engine=self._calculator.metric.name,
            vector_count=self.size,
            cluster_count=self.cluster_count,
            memory_bytes=memory_bytes,
            is_built=self.is_built,
            build_time_seconds=self._build_time,
            extra=extra,
        )

    def __repr__(self) -> str:
        return (
            f"IVFIndex(clustering='{self._kmeans.kmeans_type.value}', "
            f"metric='{self.metric_type.value}', size={self.size}, "
            f"clusters={self.cluster_count})"
        )
