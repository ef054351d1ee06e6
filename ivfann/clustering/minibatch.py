"""
Mini-Batch k-means.

Each iteration samples a batch of points with replacement and moves only
the centroids that batch touched, using an exact streaming mean over all
points a centroid has absorbed so far. A final full pass over the whole
dataset produces labels, repairs empty clusters and computes the loss.

Reference:
    Sculley, D. (2010). "Web-scale k-means clustering."
    Proceedings of the 19th international conference on World Wide Web.
"""

from __future__ import annotations

import math
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
    recompute_centroids,
    repair_empty_clusters,
)


logger = get_logger(__name__)


@dataclass(frozen=True, eq=False, repr=False)
class MiniBatchResult(ClusteringResult):
    """Mini-Batch clustering result with the number of iterations performed."""

    iterations: int = 0


class MiniBatchKMeans(KMeans):
    """
    Mini-Batch k-means with k-means++ seeding.

    Example:
        >>> kmeans = MiniBatchKMeans(cluster_count=64, batch_size=512, random_state=7)
        >>> result = kmeans.fit(vectors)

    Parameters:
        cluster_count: Number of clusters k (must not exceed the sample count)
        batch_size: Points sampled per iteration (capped at the sample count)
        max_iterations: Upper bound on batch iterations
        max_no_improvement_iterations: Consecutive iterations whose average
            batch loss changed by at most ``tolerance`` before stopping
        tolerance: Loss-change threshold counted as "no improvement"
    """

    def __init__(
        self,
        cluster_count: int = 16,
        batch_size: int = 1024,
        metric_type: Union[str, MetricType] = MetricType.L2SQ_DISTANCE,
        metric_engine: Union[str, MetricEngine, Metric] = MetricEngine.NUMPY,
        max_iterations: int = 300,
        tolerance: float = 1e-4,
        max_no_improvement_iterations: int = 50,
        random_state: RandomState = None,
    ):
        self.cluster_count = validate_positive_int(cluster_count, "cluster_count")
        self.batch_size = validate_positive_int(batch_size, "batch_size")
        self.max_iterations = validate_positive_int(max_iterations, "max_iterations")
        self.max_no_improvement_iterations = validate_positive_int(
            max_no_improvement_iterations, "max_no_improvement_iterations"
        )
        self.tolerance = validate_tolerance(tolerance)

        super().__init__(metric_type, metric_engine, random_state)

    @property
    def kmeans_type(self) -> KMeansType:
        return KMeansType.MINI_BATCH

    def fit(self, data: ArrayLike) -> MiniBatchResult:
        data = validate_dataset(data)
        sample_count = len(data)

        if self.cluster_count > sample_count:
            raise InvalidInput(
                f"cluster_count ({self.cluster_count}) must be <= "
                f"number of samples ({sample_count})"
            )

        calculator = self._calculator
        centroids = kmeans_plus_plus(data, self.cluster_count, calculator, self._rng)

        # Points absorbed by each centroid over all batches so far
        cluster_counts = np.zeros(self.cluster_count, dtype=np.int64)

        actual_batch_size = min(self.batch_size, sample_count)
        performed_iterations = 0
        last_average_loss = math.inf
        no_improvement = 0

        for _ in range(self.max_iterations):
            batch_indices = self._rng.integers(0, sample_count, size=actual_batch_size)
            batch = data[batch_indices]

            batch_labels, batch_errors = assign_points(batch, centroids, calculator)
            average_loss = float(np.sum(batch_errors, dtype=np.float64)) / actual_batch_size

            self._update_centroids(centroids, cluster_counts, batch, batch_labels)
            performed_iterations += 1

            if not math.isfinite(average_loss):
                logger.warning(
                    f"Mini-batch loss became non-finite at iteration "
                    f"{performed_iterations}; stopping early"
                )
                break

            if abs(last_average_loss - average_loss) <= self.tolerance:
                no_improvement += 1
                if no_improvement >= self.max_no_improvement_iterations:
                    break
            else:
                no_improvement = 0

            last_average_loss = average_loss

        logger.debug(
            f"Mini-batch phase finished after {performed_iterations} iterations "
            f"(last average batch loss {last_average_loss:.6g})"
        )

        # Full pass over the whole dataset
        labels, point_errors = assign_points(data, centroids, calculator)
        new_centroids, cluster_sizes = recompute_centroids(data, labels, self.cluster_count)

        repaired = repair_empty_clusters(
            data, new_centroids, cluster_sizes, labels, point_errors, self._rng
        )
        if repaired:
            logger.debug(f"Repaired {repaired} empty clusters after mini-batch phase")
            new_centroids, cluster_sizes = recompute_centroids(
                data, labels, self.cluster_count
            )

        centroids = new_centroids
        labels, point_errors = assign_points(data, centroids, calculator)
        loss = float(np.sum(point_errors, dtype=np.float64))
        sizes = count_cluster_sizes(labels, self.cluster_count)

        logger.debug(
            f"Mini-batch k-means: k={self.cluster_count}, n={sample_count}, "
            f"iterations={performed_iterations}, loss={loss:.6g}"
        )

        return MiniBatchResult(
            centroids=centroids,
            assignments=labels,
            cluster_sizes=sizes,
            loss=loss,
            iterations=performed_iterations,
        )

    def _update_centroids(
        self,
        centroids: NDArray,
        cluster_counts: NDArray,
        batch: NDArray,
        batch_labels: NDArray,
    ) -> None:
        """Streaming-mean update of the centroids touched by a batch."""
        batch_counts = np.bincount(batch_labels, minlength=self.cluster_count)
        batch_sums = np.zeros(centroids.shape, dtype=np.float64)
        np.add.at(batch_sums, batch_labels, batch)

        touched = np.flatnonzero(batch_counts)
        old_counts = cluster_counts[touched]
        new_counts = old_counts + batch_counts[touched]

        centroids[touched] = (
            centroids[touched] * old_counts[:, np.newaxis] + batch_sums[touched]
        ) / new_counts[:, np.newaxis]
        cluster_counts[touched] = new_counts

    def predict(self, data: ArrayLike, model: ClusteringResult) -> NDArray:
        data = validate_dataset(data)
        centroids = self._check_model_centroids(
            data, model, ClusteringResult, self.cluster_count
        )
        labels, _ = assign_points(data, centroids, self._calculator)
        return labels

    def __repr__(self) -> str:
        return (
            f"MiniBatchKMeans(cluster_count={self.cluster_count}, "
            f"batch_size={self.batch_size}, max_iterations={self.max_iterations}, "
            f"metric_type='{self.metric_type}')"
        )
