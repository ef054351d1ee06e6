"""
Index implementations for ivfann.

Available Indices:
    - IVFIndex: Inverted file index over a pluggable k-means partition

Example:
    >>> from ivfann.index import IVFIndex, create_index
    >>>
    >>> index = create_index("mini_batch", cluster_count=64, batch_size=256)
    >>> index.build(vectors)
    >>> results = index.search(query, top_k=10, n_probe=4)
"""

from typing import Any, Union

from ..clustering import KMeansType, create_kmeans
from ..distance import Metric, MetricEngine, MetricType

from .base import (
    BaseIndex,
    IndexStats,
    SearchResult,
    IndexType,
)
from .ivf import IVFIndex

__all__ = [
    # Base
    "BaseIndex",
    "IndexStats",
    "SearchResult",
    "IndexType",
    # IVF
    "IVFIndex",
    # Factory
    "create_index",
]


def create_index(
    kmeans_type: Union[str, KMeansType] = KMeansType.LLOYD,
    metric_type: Union[str, MetricType] = MetricType.L2SQ_DISTANCE,
    metric_engine: Union[str, MetricEngine, Metric] = MetricEngine.NUMPY,
    **params: Any,
) -> IVFIndex:
    """
    Factory function to create an unbuilt IVF index.

    Args:
        kmeans_type: Clustering strategy ("lloyd", "mini_batch", "hierarchical")
        metric_type: Distance kind
        metric_engine: Distance engine
        **params: Clustering parameters, see ``create_kmeans``

    Example:
        >>> index = create_index("hierarchical", "cosine", "scipy", branch_factor=4)
    """
    return IVFIndex(create_kmeans(kmeans_type, metric_type, metric_engine, **params))
