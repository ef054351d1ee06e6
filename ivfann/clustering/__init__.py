"""
Clustering strategies for building IVF coarse quantizers.

Available strategies:
    - LloydKMeans: batch k-means over the full dataset
    - MiniBatchKMeans: k-means driven by random batches
    - HierarchicalKMeans: recursive k-means tree, leaves become clusters

Example:
    >>> from ivfann.clustering import create_kmeans
    >>>
    >>> kmeans = create_kmeans("lloyd", cluster_count=32, random_state=0)
    >>> result = kmeans.fit(vectors)
    >>> labels = kmeans.predict(queries, result)
"""

from typing import Any, Union

from ..core.exceptions import InvalidInput
from ..distance import Metric, MetricEngine, MetricType

from .base import (
    KMeans,
    KMeansType,
    ClusteringResult,
    RandomState,
    resolve_random_state,
    kmeans_plus_plus,
    assign_points,
    recompute_centroids,
    repair_empty_clusters,
)
from .lloyd import LloydKMeans, LloydResult
from .minibatch import MiniBatchKMeans, MiniBatchResult
from .hierarchical import HierarchicalKMeans, HierarchicalNode, HierarchicalResult

__all__ = [
    # Base
    "KMeans",
    "KMeansType",
    "ClusteringResult",
    "RandomState",
    "resolve_random_state",
    # Shared steps
    "kmeans_plus_plus",
    "assign_points",
    "recompute_centroids",
    "repair_empty_clusters",
    # Strategies
    "LloydKMeans",
    "LloydResult",
    "MiniBatchKMeans",
    "MiniBatchResult",
    "HierarchicalKMeans",
    "HierarchicalNode",
    "HierarchicalResult",
    # Factory
    "create_kmeans",
]


_ALLOWED_PARAMS = {
    KMeansType.LLOYD: {
        "cluster_count", "max_iterations", "tolerance", "random_state",
    },
    KMeansType.MINI_BATCH: {
        "cluster_count", "batch_size", "max_iterations",
        "max_no_improvement_iterations", "tolerance", "random_state",
    },
    KMeansType.HIERARCHICAL: {
        "branch_factor", "max_depth", "min_cluster_size",
        "max_iterations_per_level", "tolerance", "random_state",
    },
}


def create_kmeans(
    kmeans_type: Union[str, KMeansType] = KMeansType.LLOYD,
    metric_type: Union[str, MetricType] = MetricType.L2SQ_DISTANCE,
    metric_engine: Union[str, MetricEngine, Metric] = MetricEngine.NUMPY,
    **params: Any,
) -> KMeans:
    """
    Factory function to create a clustering strategy.

    Parameters not given fall back to each strategy's defaults:

        lloyd:        cluster_count=16, max_iterations=300, tolerance=1e-4
        mini_batch:   cluster_count=16, batch_size=1024, max_iterations=300,
                      max_no_improvement_iterations=50, tolerance=1e-4
        hierarchical: branch_factor=2, max_depth=6,
                      min_cluster_size=max(2 * branch_factor, 2),
                      max_iterations_per_level=50, tolerance=1e-4

    Args:
        kmeans_type: Strategy name or KMeansType
        metric_type: Distance kind
        metric_engine: Distance engine name, enum member or Metric instance
        **params: Strategy-specific parameters

    Returns:
        Configured KMeans instance

    Raises:
        InvalidInput: Unknown strategy or a parameter it does not accept
    """
    kmeans_type = KMeansType.from_name(kmeans_type)

    unknown = set(params) - _ALLOWED_PARAMS[kmeans_type]
    if unknown:
        raise InvalidInput(
            f"Unsupported parameters for {kmeans_type.value}: {sorted(unknown)}"
        )

    if kmeans_type == KMeansType.LLOYD:
        return LloydKMeans(metric_type=metric_type, metric_engine=metric_engine, **params)
    elif kmeans_type == KMeansType.MINI_BATCH:
        return MiniBatchKMeans(metric_type=metric_type, metric_engine=metric_engine, **params)
    else:
        return HierarchicalKMeans(metric_type=metric_type, metric_engine=metric_engine, **params)
