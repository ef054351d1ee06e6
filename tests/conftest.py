"""
Pytest fixtures for ivfann tests.
"""

import pytest
import numpy as np

from ivfann.distance import MetricEngine, MetricType


ALL_ENGINES = [MetricEngine.SCALAR, MetricEngine.NUMPY, MetricEngine.SCIPY]
ALL_METRICS = [
    MetricType.L2SQ_DISTANCE,
    MetricType.DOT_PRODUCT,
    MetricType.COSINE_DISTANCE,
]


@pytest.fixture
def rng() -> np.random.Generator:
    """Seeded random generator."""
    return np.random.default_rng(12345)


@pytest.fixture
def dimension() -> int:
    """Default dimension for test vectors."""
    return 8


@pytest.fixture
def random_vectors(rng: np.random.Generator, dimension: int) -> np.ndarray:
    """Generate random vectors (200 vectors)."""
    return rng.standard_normal((200, dimension)).astype(np.float32)


@pytest.fixture
def blob_vectors(rng: np.random.Generator) -> np.ndarray:
    """Four well separated blobs of 50 points in 4-d."""
    centers = np.array(
        [
            [10.0, 0.0, 0.0, 0.0],
            [0.0, 10.0, 0.0, 0.0],
            [0.0, 0.0, 10.0, 0.0],
            [0.0, 0.0, 0.0, 10.0],
        ],
        dtype=np.float32,
    )
    points = [
        center + rng.normal(scale=0.1, size=(50, 4)).astype(np.float32)
        for center in centers
    ]
    return np.concatenate(points).astype(np.float32)


@pytest.fixture
def blob_labels() -> np.ndarray:
    """True blob membership for ``blob_vectors``."""
    return np.repeat(np.arange(4), 50)


@pytest.fixture(params=ALL_ENGINES, ids=lambda e: e.value)
def engine(request) -> MetricEngine:
    """Every built-in distance engine."""
    return request.param


@pytest.fixture(params=ALL_METRICS, ids=lambda m: m.value)
def metric_type(request) -> MetricType:
    """Every distance kind."""
    return request.param
