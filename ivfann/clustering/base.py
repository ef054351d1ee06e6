"""
Abstract base class and shared steps for k-means clustering strategies.

This module defines the interface every clustering strategy implements,
the immutable result types, and the numerical building blocks shared by
Lloyd and Mini-Batch k-means: k-means++ seeding, nearest-centroid
assignment, centroid recomputation and empty-cluster repair.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple, Union

import numpy as np
from numpy.typing import NDArray

from ..core.exceptions import DimensionMismatchError, InvalidInput, InvalidModelState
from ..distance import (
    DistanceCalculator,
    Metric,
    MetricEngine,
    MetricType,
    get_engine,
)
from ..utils.validation import ArrayLike


RandomState = Union[None, int, np.random.Generator]


class KMeansType(str, Enum):
    """Available clustering strategies."""

    LLOYD = "lloyd"
    MINI_BATCH = "mini_batch"
    HIERARCHICAL = "hierarchical"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def from_name(cls, name: Union[str, "KMeansType"]) -> "KMeansType":
        if isinstance(name, cls):
            return name
        key = str(name).strip().lower().replace("-", "_")
        for member in cls:
            if key in (member.value, member.name.lower()):
                return member
        raise InvalidInput(
            f"Unknown clustering type: '{name}'. "
            f"Available: {[m.value for m in cls]}"
        )


def _freeze(array):
    if isinstance(array, np.ndarray):
        array.flags.writeable = False
    return array


@dataclass(frozen=True, eq=False)
class ClusteringResult:
    """
    Output of a clustering ``fit()``.

    Attributes:
        centroids: Array of shape (k, d), float32
        assignments: Cluster index per input point, shape (n,)
        cluster_sizes: Number of points per cluster, shape (k,)
        loss: Sum over points of the distance to their centroid

    The arrays are made read-only on construction.
    """

    centroids: NDArray
    assignments: NDArray
    cluster_sizes: NDArray
    loss: float

    def __post_init__(self):
        _freeze(self.centroids)
        _freeze(self.assignments)
        _freeze(self.cluster_sizes)

    @property
    def cluster_count(self) -> int:
        return len(self.centroids)

    @property
    def dimension(self) -> int:
        return self.centroids.shape[1] if self.centroids.ndim == 2 else 0

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(clusters={self.cluster_count}, "
            f"points={len(self.assignments)}, loss={self.loss:.4f})"
        )


def resolve_random_state(random_state: RandomState) -> np.random.Generator:
    """
    Turn a seed or generator into the generator a strategy will own.

    A Generator is used as-is (shared with the caller, never reseeded).
    """
    if isinstance(random_state, np.random.Generator):
        return random_state
    if random_state is None:
        return np.random.default_rng()
    if isinstance(random_state, (int, np.integer)) and not isinstance(random_state, bool):
        return np.random.default_rng(int(random_state))
    raise InvalidInput(
        "random_state must be None, an int seed or a numpy Generator, "
        f"got {type(random_state).__name__}"
    )


def _resolve_engine_key(engine: Union[str, MetricEngine, Metric]) -> Union[MetricEngine, Metric]:
    if isinstance(engine, (MetricEngine, Metric)):
        return engine
    try:
        return MetricEngine.from_name(engine)
    except InvalidInput:
        # Externally registered engine
        return get_engine(engine)


class KMeans(ABC):
    """
    Abstract base class for clustering strategies.

    A strategy is configured once with a distance kind, an engine and a
    random source; ``fit()`` may be called repeatedly and draws from the
    same random source each time.
    """

    def __init__(
        self,
        metric_type: Union[str, MetricType] = MetricType.L2SQ_DISTANCE,
        metric_engine: Union[str, MetricEngine, Metric] = MetricEngine.NUMPY,
        random_state: RandomState = None,
    ):
        if metric_type is None or metric_engine is None:
            raise InvalidInput("metric_type and metric_engine must be non-null")

        self._metric_type = MetricType.from_name(metric_type)
        self._metric_engine = _resolve_engine_key(metric_engine)
        self._calculator = DistanceCalculator(self._metric_type, self._metric_engine)
        self._rng = resolve_random_state(random_state)

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def metric_type(self) -> MetricType:
        """Distance kind used for assignment and search."""
        return self._metric_type

    @property
    def metric_engine(self) -> Union[MetricEngine, Metric]:
        """Configured distance engine."""
        return self._metric_engine

    @property
    def calculator(self) -> DistanceCalculator:
        """Resolved distance calculator shared with consumers."""
        return self._calculator

    @property
    @abstractmethod
    def kmeans_type(self) -> KMeansType:
        """Return the clustering type."""

    # =========================================================================
    # ABSTRACT METHODS
    # =========================================================================

    @abstractmethod
    def fit(self, data: ArrayLike) -> ClusteringResult:
        """
        Cluster a dataset.

        Args:
            data: Array of shape (n, d)

        Returns:
            ClusteringResult for the dataset

        Raises:
            InvalidInput: If data is empty, ragged or zero-dimensional
        """

    @abstractmethod
    def predict(self, data: ArrayLike, model: ClusteringResult) -> NDArray:
        """
        Assign points to clusters of a previously fitted model.

        Returns:
            Cluster index per point, shape (n,)
        """

    # =========================================================================
    # SHARED VALIDATION
    # =========================================================================

    def _check_model_centroids(
        self,
        data: NDArray,
        model: ClusteringResult,
        expected_type: type,
        expected_count: int,
    ) -> NDArray:
        if model is None:
            raise InvalidInput("model must be non-null")
        if not isinstance(model, expected_type):
            raise InvalidInput(
                f"model must be a {expected_type.__name__}, "
                f"got {type(model).__name__}"
            )

        centroids = model.centroids
        if centroids is None or len(centroids) == 0:
            raise InvalidInput("model must contain at least one centroid")
        if len(centroids) != expected_count:
            raise InvalidInput(
                f"model cluster count ({len(centroids)}) does not match "
                f"this configuration ({expected_count})"
            )
        if centroids.ndim != 2 or centroids.shape[1] == 0:
            raise InvalidInput("centroids must have positive dimension")
        if centroids.shape[1] != data.shape[1]:
            raise DimensionMismatchError(
                f"data dimension {data.shape[1]} does not match "
                f"centroid dimension {centroids.shape[1]}"
            )
        return centroids

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(metric_type='{self._metric_type}', "
            f"engine='{self._calculator.metric.name}')"
        )


# =============================================================================
# SHARED K-MEANS STEPS
# =============================================================================

def kmeans_plus_plus(
    data: NDArray,
    cluster_count: int,
    calculator: DistanceCalculator,
    rng: np.random.Generator,
) -> NDArray:
    """
    Seed centroids with k-means++.

    The weight of a point is its distance to the nearest centroid chosen
    so far (squared Euclidean for L2SQ). Each new centroid is the first
    point whose cumulative weight reaches a uniform threshold in
    ``[0, total)``; the last point is used if rounding keeps the running
    sum below the threshold, and a uniform pick is used when the total
    weight is exactly zero.

    Random draws, in order: one ``integers`` for the first centroid,
    then per further centroid either one ``random`` or one ``integers``.
    """
    sample_count, dimension = data.shape
    centroids = np.empty((cluster_count, dimension), dtype=np.float32)

    first_idx = int(rng.integers(sample_count))
    centroids[0] = data[first_idx]

    min_distances = calculator.distances(centroids[0], data).astype(np.float64)

    for c in range(1, cluster_count):
        cumulative = np.cumsum(min_distances)
        total_weight = cumulative[-1]

        if total_weight == 0.0:
            chosen_idx = int(rng.integers(sample_count))
        else:
            threshold = rng.random() * total_weight
            reached = np.flatnonzero(cumulative >= threshold)
            chosen_idx = int(reached[0]) if len(reached) else sample_count - 1

        centroids[c] = data[chosen_idx]
        np.minimum(
            min_distances,
            calculator.distances(centroids[c], data),
            out=min_distances,
        )

    return centroids


def assign_points(
    data: NDArray,
    centroids: NDArray,
    calculator: DistanceCalculator,
) -> Tuple[NDArray, NDArray]:
    """
    Assign each point to its nearest centroid.

    Ties go to the lowest centroid index.

    Returns:
        Tuple of (labels, per-point distance to the chosen centroid)
    """
    distances = calculator.pairwise(data, centroids)
    labels = np.argmin(distances, axis=1).astype(np.int64)
    errors = distances[np.arange(len(data)), labels]
    return labels, errors


def recompute_centroids(
    data: NDArray,
    labels: NDArray,
    cluster_count: int,
) -> Tuple[NDArray, NDArray]:
    """
    Recompute every centroid as the mean of its assigned points.

    Empty clusters get an all-zero centroid; callers repair them.

    Returns:
        Tuple of (centroids, cluster_sizes)
    """
    sizes = np.bincount(labels, minlength=cluster_count).astype(np.int64)
    sums = np.zeros((cluster_count, data.shape[1]), dtype=np.float64)
    np.add.at(sums, labels, data)

    centroids = np.zeros((cluster_count, data.shape[1]), dtype=np.float32)
    non_empty = sizes > 0
    centroids[non_empty] = sums[non_empty] / sizes[non_empty, np.newaxis]
    return centroids, sizes


def _steal_from_largest(
    labels: NDArray,
    sizes: NDArray,
    errors: Optional[NDArray],
    taken: NDArray,
) -> int:
    largest = int(np.argmax(sizes))
    if sizes[largest] <= 1:
        return -1

    candidates = np.flatnonzero((labels == largest) & ~taken)
    if len(candidates) == 0:
        return -1
    if errors is None:
        return int(candidates[0])
    return int(candidates[np.argmax(errors[candidates])])


def _global_worst(
    labels: NDArray,
    errors: Optional[NDArray],
    taken: NDArray,
) -> int:
    candidates = np.flatnonzero(~taken & (labels >= 0))
    if len(candidates) == 0:
        return -1
    if errors is None:
        return int(candidates[0])
    return int(candidates[np.argmax(errors[candidates])])


def repair_empty_clusters(
    data: NDArray,
    centroids: NDArray,
    sizes: NDArray,
    labels: NDArray,
    errors: Optional[NDArray],
    rng: np.random.Generator,
) -> int:
    """
    Give every empty cluster one point, in cluster-id order.

    The donor is the worst-fit not-yet-moved member of the currently
    largest cluster (when it has more than one member), then the
    globally worst-fit not-yet-moved point, then a uniformly random
    point. The receiving centroid becomes that point.

    ``centroids``, ``sizes`` and ``labels`` are updated in place.

    Returns:
        Number of clusters repaired
    """
    sample_count = len(data)
    taken = np.zeros(sample_count, dtype=bool)
    repaired = 0

    for empty_cluster in range(len(sizes)):
        if sizes[empty_cluster] != 0:
            continue

        chosen_idx = _steal_from_largest(labels, sizes, errors, taken)
        if chosen_idx == -1:
            chosen_idx = _global_worst(labels, errors, taken)
        if chosen_idx == -1:
            chosen_idx = int(rng.integers(sample_count))

        taken[chosen_idx] = True

        old_cluster = int(labels[chosen_idx])
        labels[chosen_idx] = empty_cluster
        sizes[empty_cluster] = 1
        if old_cluster >= 0:
            sizes[old_cluster] = max(0, sizes[old_cluster] - 1)

        centroids[empty_cluster] = data[chosen_idx]
        repaired += 1

    return repaired


def max_centroid_shift(
    old_centroids: NDArray,
    new_centroids: NDArray,
    calculator: DistanceCalculator,
) -> float:
    """Largest distance between a centroid and its updated position."""
    max_shift = 0.0
    for old, new in zip(old_centroids, new_centroids):
        shift = calculator.distance(old, new)
        if shift > max_shift:
            max_shift = shift
    return max_shift


def count_cluster_sizes(labels: NDArray, cluster_count: int) -> NDArray:
    """Count points per cluster from final labels."""
    if len(labels) and (labels.min() < 0 or labels.max() >= cluster_count):
        raise InvalidModelState(
            f"invalid cluster label (expected 0..{cluster_count - 1})"
        )
    return np.bincount(labels, minlength=cluster_count).astype(np.int64)
