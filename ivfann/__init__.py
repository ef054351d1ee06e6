"""
ivfann - Inverted-file approximate nearest neighbour search.

Build an IVF index over dense float32 vectors with a choice of
clustering strategies and distance engines.

Example:
    >>> import numpy as np
    >>> from ivfann import LloydKMeans, IVFIndex
    >>>
    >>> vectors = np.random.default_rng(0).random((1000, 8), dtype=np.float32)
    >>> index = IVFIndex(LloydKMeans(cluster_count=10, random_state=42))
    >>> index.build(vectors)
    >>> index.search(vectors[0], top_k=5, n_probe=3)
"""

__version__ = "0.1.0"
__author__ = "ivfann contributors"

from .core import (
    IVFError,
    InvalidInput,
    DimensionMismatchError,
    IndexNotBuiltError,
    InvalidModelState,
)
from .distance import (
    Metric,
    MetricType,
    MetricEngine,
    DistanceCalculator,
    get_engine,
    register_engine,
    list_engines,
)
from .clustering import (
    KMeans,
    KMeansType,
    ClusteringResult,
    LloydKMeans,
    MiniBatchKMeans,
    HierarchicalKMeans,
    HierarchicalNode,
    create_kmeans,
)
from .index import (
    IVFIndex,
    SearchResult,
    IndexStats,
    create_index,
)
from .utils import setup_logger, get_logger

__all__ = [
    # Errors
    "IVFError",
    "InvalidInput",
    "DimensionMismatchError",
    "IndexNotBuiltError",
    "InvalidModelState",
    # Distance
    "Metric",
    "MetricType",
    "MetricEngine",
    "DistanceCalculator",
    "get_engine",
    "register_engine",
    "list_engines",
    # Clustering
    "KMeans",
    "KMeansType",
    "ClusteringResult",
    "LloydKMeans",
    "MiniBatchKMeans",
    "HierarchicalKMeans",
    "HierarchicalNode",
    "create_kmeans",
    # Index
    "IVFIndex",
    "SearchResult",
    "IndexStats",
    "create_index",
    # Logging
    "setup_logger",
    "get_logger",
]
