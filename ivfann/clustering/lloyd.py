"""
Lloyd's k-means.

Classic batch k-means: every iteration assigns all points to their
nearest centroid and moves each centroid to the mean of its points,
until the largest centroid move drops to the tolerance.

Complexity:
    - Per iteration: O(n * k * d)
    - Memory: O(n * k) for the assignment distance matrix
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

import numpy as np
from numpy.typing import NDArray

from ..core.exceptions import InvalidInput
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
    assign_points,
    count_cluster_sizes,
    kmeans_plus_plus,
    max_centroid_shift,
    recompute_centroids,
    repair_empty_clusters,
)


logger = get_logger(__name__)


@dataclass(frozen=True, eq=False, repr=False)
class LloydResult(ClusteringResult):
    """Lloyd clustering result with the number of iterations performed."""

    iterations: int = 0


class LloydKMeans(KMeans):
    """
    Lloyd's k-means with k-means++ seeding and empty-cluster repair.

    Example:
        >>> kmeans = LloydKMeans(cluster_count=10, max_iterations=50, random_state=42)
        >>> result = kmeans.fit(vectors)
        >>> result.cluster_sizes.sum() == len(vectors)
        True
        >>> labels = kmeans.predict(queries, result)

    Parameters:
        cluster_count: Number of clusters k (must not exceed the sample count)
        max_iterations: Upper bound on assignment/update rounds
        tolerance: Stop once no centroid moves more than this distance
    """

    def __init__(
        self,
        cluster_count: int = 16,
        metric_type: Union[str, MetricType] = MetricType.L2SQ_DISTANCE,
        metric_engine: Union[str, MetricEngine, Metric] = MetricEngine.NUMPY,
        max_iterations: int = 300,
        tolerance: float = 1e-4,
        random_state: RandomState = None,
    ):
        self.cluster_count = validate_positive_int(cluster_count, "cluster_count")
        self.max_iterations = validate_positive_int(max_iterations, "max_iterations")
        self.tolerance = validate_tolerance(tolerance)

        super().__init__(metric_type, metric_engine, random_state)

    @property
    def kmeans_type(self) -> KMeansType:
        return KMeansType.LLOYD

    def fit(self, data: ArrayLike) -> LloydResult:
        data = validate_dataset(data)
        sample_count = len(data)

        if self.cluster_count > sample_count:
            raise InvalidInput(
                f"cluster_count ({self.cluster_count}) must be <= "
                f"number of samples ({sample_count})"
            )

        calculator = self._calculator
        centroids = kmeans_plus_plus(data, self.cluster_count, calculator, self._rng)

        performed_iterations = 0

        for iteration in range(self.max_iterations):
            labels, point_errors = assign_points(data, centroids, calculator)

            new_centroids, cluster_sizes = recompute_centroids(
                data, labels, self.cluster_count
            )

            repaired = repair_empty_clusters(
                data, new_centroids, cluster_sizes, labels, point_errors, self._rng
            )
            if repaired:
                logger.debug(
                    f"Iteration {iteration + 1}: repaired {repaired} empty clusters"
                )
                new_centroids, cluster_sizes = recompute_centroids(
                    data, labels, self.cluster_count
                )

            max_shift = max_centroid_shift(centroids, new_centroids, calculator)
            centroids = new_centroids
            performed_iterations = iteration + 1

            logger.debug(f"Iteration {performed_iterations}: max_shift={max_shift:.6g}")

            if max_shift <= self.tolerance:
                break

        labels, point_errors = assign_points(data, centroids, calculator)
        loss = float(np.sum(point_errors, dtype=np.float64))
        sizes = count_cluster_sizes(labels, self.cluster_count)

        logger.debug(
            f"Lloyd k-means: k={self.cluster_count}, n={sample_count}, "
            f"iterations={performed_iterations}, loss={loss:.6g}"
        )

        return LloydResult(
            centroids=centroids,
            assignments=labels,
            cluster_sizes=sizes,
            loss=loss,
            iterations=performed_iterations,
        )

    def predict(self, data: ArrayLike, model: ClusteringResult) -> NDArray:
        data = validate_dataset(data)
        centroids = self._check_model_centroids(
            data, model, ClusteringResult, self.cluster_count
        )
        labels, _ = assign_points(data, centroids, self._calculator)
        return labels

    def __repr__(self) -> str:
        return (
            f"LloydKMeans(cluster_count={self.cluster_count}, "
            f"max_iterations={self.max_iterations}, tolerance={self.tolerance}, "
            f"metric_type='{self.metric_type}')"
        )
