"""
Distance metrics for vector similarity search.

Supported kinds:
    - l2sq: squared Euclidean distance (smaller = more similar)
    - cosine: cosine distance (smaller = more similar)
    - dot: raw dot product, ranked "lower wins" like the other kinds
    - hamming: bit distance over packed byte codes (engine method only)

Engines:
    - scalar: reference pure-Python loops
    - numpy: SIMD-vectorized kernels
    - scipy: native SciPy/BLAS routines

Example:
    >>> from ivfann.distance import MetricType, MetricEngine, DistanceCalculator
    >>> import numpy as np
    >>>
    >>> a = np.array([0.0, 0.0], dtype=np.float32)
    >>> b = np.array([3.0, 4.0], dtype=np.float32)
    >>>
    >>> MetricType.L2SQ_DISTANCE.distance(MetricEngine.NUMPY, a, b)
    25.0
"""

from .metrics import (
    Metric,
    MetricType,
    ScalarMetric,
    NumpyMetric,
    ScipyMetric,
)

from .registry import (
    MetricEngine,
    EngineInfo,
    DistanceCalculator,
    get_engine,
    register_engine,
    list_engines,
    engine_exists,
)

__all__ = [
    # Contract and engines
    "Metric",
    "MetricType",
    "ScalarMetric",
    "NumpyMetric",
    "ScipyMetric",
    # Registry
    "MetricEngine",
    "EngineInfo",
    "DistanceCalculator",
    "get_engine",
    "register_engine",
    "list_engines",
    "engine_exists",
]
