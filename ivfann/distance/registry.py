"""
Distance engine registry and factory.

Provides a unified interface for looking up metric engines by name,
plugging in external engines, and binding a (kind, engine) pair into
a calculator for use in hot loops.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Union

import numpy as np
from numpy.typing import NDArray

from ..core.exceptions import InvalidInput
from .metrics import (
    Metric,
    MetricType,
    NumpyMetric,
    ScalarMetric,
    ScipyMetric,
    Vector,
    VectorBatch,
)


class MetricEngine(str, Enum):
    """Built-in distance engines."""

    SCALAR = "scalar"
    NUMPY = "numpy"
    SCIPY = "scipy"

    def __str__(self) -> str:
        return self.value

    @property
    def metric(self) -> Metric:
        """The engine implementation registered under this name."""
        return _registry.get(self.value).metric

    @classmethod
    def from_name(cls, name: Union[str, "MetricEngine"]) -> "MetricEngine":
        """Parse a built-in engine from its value, member name or alias."""
        if isinstance(name, cls):
            return name
        canonical = _registry.canonical_name(str(name).strip().lower())
        for member in cls:
            if member.value == canonical:
                return member
        raise InvalidInput(
            f"Unknown metric engine: '{name}'. "
            f"Available: {[m.value for m in cls]}"
        )


@dataclass
class EngineInfo:
    """Information about a distance engine."""

    name: str
    metric: Metric
    description: str
    is_reference: bool = False

    def __repr__(self) -> str:
        return f"EngineInfo(name='{self.name}', is_reference={self.is_reference})"


# =============================================================================
# ENGINE REGISTRY
# =============================================================================

class EngineRegistry:
    """
    Registry for distance engines.

    Allows looking up engines by name and registering custom engines.
    """

    def __init__(self):
        self._engines: Dict[str, EngineInfo] = {}
        self._aliases: Dict[str, str] = {}
        self._register_builtins()

    def _register_builtins(self) -> None:
        self.register(
            EngineInfo(
                name="scalar",
                metric=ScalarMetric(),
                description="Reference pure-Python loops",
                is_reference=True,
            ),
            aliases=["reference", "python"],
        )
        self.register(
            EngineInfo(
                name="numpy",
                metric=NumpyMetric(),
                description="SIMD-vectorized NumPy kernels",
            ),
            aliases=["simd", "vectorized", "vector_api"],
        )
        self.register(
            EngineInfo(
                name="scipy",
                metric=ScipyMetric(),
                description="Native SciPy/BLAS routines",
            ),
            aliases=["native", "accelerated", "blas"],
        )

    def register(
        self,
        info: EngineInfo,
        aliases: Optional[List[str]] = None,
    ) -> None:
        """
        Register a distance engine.

        Args:
            info: EngineInfo object
            aliases: Optional list of alternative names
        """
        if not isinstance(info.metric, Metric):
            raise InvalidInput(
                f"engine '{info.name}' must implement Metric, "
                f"got {type(info.metric).__name__}"
            )
        self._engines[info.name] = info

        if aliases:
            for alias in aliases:
                self._aliases[alias] = info.name

    def canonical_name(self, name: str) -> str:
        return self._aliases.get(name, name)

    def get(self, name: str) -> EngineInfo:
        """
        Get engine info by name or alias.

        Raises:
            InvalidInput: If the engine is not registered
        """
        canonical = self.canonical_name(name)

        if canonical not in self._engines:
            available = list(self._engines.keys())
            raise InvalidInput(
                f"Unknown metric engine: '{name}'. Available: {available}"
            )

        return self._engines[canonical]

    def list_engines(self) -> List[str]:
        """List all registered engine names."""
        return list(self._engines.keys())

    def __contains__(self, name: str) -> bool:
        return self.canonical_name(name) in self._engines


# =============================================================================
# GLOBAL REGISTRY AND CONVENIENCE FUNCTIONS
# =============================================================================

_registry = EngineRegistry()


def get_engine(engine: Union[str, MetricEngine, Metric]) -> Metric:
    """
    Resolve an engine name, enum member or instance to a Metric.

    Example:
        >>> metric = get_engine("simd")
        >>> metric.l2_distance(a, b)
    """
    if isinstance(engine, Metric):
        return engine
    if isinstance(engine, MetricEngine):
        engine = engine.value
    return _registry.get(str(engine).strip().lower()).metric


def register_engine(
    name: str,
    metric: Metric,
    description: str = "",
    aliases: Optional[List[str]] = None,
) -> None:
    """
    Register an external distance engine.

    Example:
        >>> class MyMetric(NumpyMetric):
        ...     name = "mine"
        >>> register_engine("mine", MyMetric())
    """
    _registry.register(
        EngineInfo(
            name=name,
            metric=metric,
            description=description or f"Custom engine: {name}",
        ),
        aliases,
    )


def list_engines() -> List[str]:
    """List all available engine names."""
    return _registry.list_engines()


def engine_exists(name: str) -> bool:
    """Check if an engine (or alias) is registered."""
    return name in _registry


# =============================================================================
# RESOLVED CALCULATOR
# =============================================================================

class DistanceCalculator:
    """
    A distance kind bound to one engine.

    Resolution happens once in the constructor; the bound kernel is
    what clustering and search loops call.

    Example:
        >>> calc = DistanceCalculator(MetricType.L2SQ_DISTANCE, "numpy")
        >>> dist = calc.distance(vec_a, vec_b)
        >>> dists = calc.distances(query, collection)
    """

    def __init__(
        self,
        metric_type: Union[str, MetricType] = MetricType.L2SQ_DISTANCE,
        engine: Union[str, MetricEngine, Metric] = MetricEngine.NUMPY,
    ):
        self.metric_type = MetricType.from_name(metric_type)
        self.metric = get_engine(engine)
        self._fn = self.metric.kernel(self.metric_type)

    def distance(self, a: Vector, b: Vector) -> float:
        """Compute distance between two vectors."""
        return self._fn(a, b)

    def distances(self, query: Vector, vectors: VectorBatch) -> NDArray[np.float32]:
        """Compute distances from query to every row of vectors."""
        return self.metric.distances(self.metric_type, query, vectors)

    def pairwise(self, X: VectorBatch, Y: VectorBatch) -> NDArray[np.float32]:
        """Compute the (len(X), len(Y)) distance matrix."""
        return self.metric.pairwise(self.metric_type, X, Y)

    def __repr__(self) -> str:
        return (
            f"DistanceCalculator(metric_type='{self.metric_type}', "
            f"engine='{self.metric.name}')"
        )
