"""
Core distance metric implementations.

Three interchangeable engines implement the same :class:`Metric`
contract:

    - ScalarMetric: reference implementation, plain Python loops
    - NumpyMetric: SIMD-vectorized NumPy kernels
    - ScipyMetric: native compiled routines from SciPy/BLAS

Distance kinds return smaller values for closer vectors, except
DOT_PRODUCT which is the raw inner product and is still ranked
"lower wins" by every consumer in this package.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from enum import Enum
from typing import Callable, Dict, Union

import numpy as np
from numpy.typing import NDArray
from scipy.linalg import blas
from scipy.spatial import distance as spd

from ..core.exceptions import InvalidInput


# Type aliases
Vector = NDArray[np.floating]
VectorBatch = NDArray[np.floating]
BinaryCode = Union[bytes, bytearray, NDArray[np.uint8]]
KernelFunction = Callable[[Vector, Vector], float]


class MetricType(str, Enum):
    """Distance kinds understood by every engine."""

    L2SQ_DISTANCE = "l2sq"
    DOT_PRODUCT = "dot"
    COSINE_DISTANCE = "cosine"

    def __str__(self) -> str:
        return self.value

    def distance(self, engine, a: Vector, b: Vector) -> float:
        """
        Compute this kind of distance with the given engine.

        Args:
            engine: A MetricEngine, an engine name, or a Metric instance
            a: First vector
            b: Second vector
        """
        metric = engine if isinstance(engine, Metric) else _resolve_engine(engine)
        return metric.distance(self, a, b)

    @classmethod
    def from_name(cls, name: Union[str, "MetricType"]) -> "MetricType":
        """Parse a metric kind from its value, member name or alias."""
        if isinstance(name, cls):
            return name
        key = str(name).strip().lower()
        canonical = _METRIC_ALIASES.get(key, key)
        for member in cls:
            if member.value == canonical or member.name.lower() == canonical:
                return member
        raise InvalidInput(
            f"Unknown metric type: '{name}'. "
            f"Available: {[m.value for m in cls]}"
        )


_METRIC_ALIASES: Dict[str, str] = {
    "l2": "l2sq",
    "l2_squared": "l2sq",
    "euclidean_squared": "l2sq",
    "sqeuclidean": "l2sq",
    "dot_product": "dot",
    "inner_product": "dot",
    "ip": "dot",
    "cosine_distance": "cosine",
}


def _resolve_engine(engine) -> "Metric":
    # Deferred to avoid a cycle with the registry
    from .registry import get_engine

    return get_engine(engine)


def _check_codes(a: BinaryCode, b: BinaryCode) -> tuple:
    codes_a = np.frombuffer(bytes(a), dtype=np.uint8)
    codes_b = np.frombuffer(bytes(b), dtype=np.uint8)
    if codes_a.shape != codes_b.shape:
        raise InvalidInput(
            f"binary codes must have equal length, got "
            f"{codes_a.shape[0]} and {codes_b.shape[0]}"
        )
    return codes_a, codes_b


# =============================================================================
# METRIC CONTRACT
# =============================================================================

class Metric(ABC):
    """
    Capability contract shared by all distance engines.

    Single-pair kernels are abstract. Batch helpers default to loops
    over the single-pair kernels; vectorized engines override them.
    """

    name: str = "abstract"

    @abstractmethod
    def l2_distance(self, a: Vector, b: Vector) -> float:
        """Squared Euclidean distance: sum((a_i - b_i)^2)."""

    @abstractmethod
    def dot_product(self, a: Vector, b: Vector) -> float:
        """Inner product: sum(a_i * b_i)."""

    @abstractmethod
    def cosine_distance(self, a: Vector, b: Vector) -> float:
        """1 - cosine similarity; 1.0 when either vector has zero norm."""

    @abstractmethod
    def hamming_distance_b8(self, a: BinaryCode, b: BinaryCode) -> int:
        """Number of differing bits between two bit-packed byte codes."""

    def kernel(self, kind: MetricType) -> KernelFunction:
        """Return the bound single-pair function for a distance kind."""
        if kind is MetricType.L2SQ_DISTANCE:
            return self.l2_distance
        if kind is MetricType.DOT_PRODUCT:
            return self.dot_product
        if kind is MetricType.COSINE_DISTANCE:
            return self.cosine_distance
        raise InvalidInput(f"Unsupported metric type: {kind!r}")

    def distance(self, kind: MetricType, a: Vector, b: Vector) -> float:
        return self.kernel(kind)(a, b)

    def distances(
        self,
        kind: MetricType,
        query: Vector,
        vectors: VectorBatch,
    ) -> NDArray[np.float32]:
        """
        Distances from one query to every row of ``vectors``.

        Args:
            kind: Distance kind
            query: Vector of shape (d,)
            vectors: Matrix of shape (n, d)

        Returns:
            float32 array of shape (n,)
        """
        fn = self.kernel(kind)
        return np.array([fn(query, v) for v in vectors], dtype=np.float32)

    def pairwise(
        self,
        kind: MetricType,
        X: VectorBatch,
        Y: VectorBatch,
    ) -> NDArray[np.float32]:
        """
        Distance matrix between rows of X (n, d) and rows of Y (m, d).

        Column j holds the distances from ``Y[j]`` to every row of X.
        """
        result = np.empty((len(X), len(Y)), dtype=np.float32)
        for j in range(len(Y)):
            result[:, j] = self.distances(kind, Y[j], X)
        return result

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name='{self.name}')"


# =============================================================================
# REFERENCE ENGINE
# =============================================================================

def _as_floats(v) -> list:
    if isinstance(v, np.ndarray):
        return v.tolist()
    return [float(x) for x in v]


class ScalarMetric(Metric):
    """
    Reference engine: one multiply-add per element in plain Python.

    Slow, but every other engine is measured against it.
    """

    name = "scalar"

    def l2_distance(self, a: Vector, b: Vector) -> float:
        sum_sq = 0.0
        for x, y in zip(_as_floats(a), _as_floats(b)):
            diff = x - y
            sum_sq += diff * diff
        return float(np.float32(sum_sq))

    def dot_product(self, a: Vector, b: Vector) -> float:
        total = 0.0
        for x, y in zip(_as_floats(a), _as_floats(b)):
            total += x * y
        return float(np.float32(total))

    def cosine_distance(self, a: Vector, b: Vector) -> float:
        dot = sum_a = sum_b = 0.0
        for x, y in zip(_as_floats(a), _as_floats(b)):
            dot += x * y
            sum_a += x * x
            sum_b += y * y

        if sum_a == 0.0 or sum_b == 0.0:
            return 1.0

        similarity = dot / (math.sqrt(sum_a) * math.sqrt(sum_b))
        similarity = min(1.0, max(-1.0, similarity))
        return float(np.float32(1.0 - similarity))

    def hamming_distance_b8(self, a: BinaryCode, b: BinaryCode) -> int:
        codes_a, codes_b = _check_codes(a, b)
        distance = 0
        for x, y in zip(codes_a.tolist(), codes_b.tolist()):
            distance += bin(x ^ y).count("1")
        return distance


# =============================================================================
# VECTORIZED ENGINE
# =============================================================================

class NumpyMetric(Metric):
    """
    NumPy engine: whole-vector kernels that run on SIMD inner loops.

    Batch operations broadcast a query against a matrix in a single call.
    """

    name = "numpy"

    def l2_distance(self, a: Vector, b: Vector) -> float:
        diff = np.asarray(a, dtype=np.float32) - np.asarray(b, dtype=np.float32)
        return float(np.dot(diff, diff))

    def dot_product(self, a: Vector, b: Vector) -> float:
        return float(np.dot(
            np.asarray(a, dtype=np.float32),
            np.asarray(b, dtype=np.float32),
        ))

    def cosine_distance(self, a: Vector, b: Vector) -> float:
        a = np.asarray(a, dtype=np.float32)
        b = np.asarray(b, dtype=np.float32)
        norm_a = np.linalg.norm(a)
        norm_b = np.linalg.norm(b)
        if norm_a == 0.0 or norm_b == 0.0:
            return 1.0
        similarity = np.clip(np.dot(a, b) / (norm_a * norm_b), -1.0, 1.0)
        return float(np.float32(1.0 - similarity))

    def hamming_distance_b8(self, a: BinaryCode, b: BinaryCode) -> int:
        codes_a, codes_b = _check_codes(a, b)
        return int(np.unpackbits(np.bitwise_xor(codes_a, codes_b)).sum())

    def distances(
        self,
        kind: MetricType,
        query: Vector,
        vectors: VectorBatch,
    ) -> NDArray[np.float32]:
        query = np.asarray(query, dtype=np.float32)
        vectors = np.asarray(vectors, dtype=np.float32)

        if kind is MetricType.L2SQ_DISTANCE:
            diff = vectors - query
            return np.sum(diff * diff, axis=1, dtype=np.float32)

        if kind is MetricType.DOT_PRODUCT:
            return (vectors @ query).astype(np.float32, copy=False)

        if kind is MetricType.COSINE_DISTANCE:
            q_norm = np.linalg.norm(query)
            v_norms = np.linalg.norm(vectors, axis=1)
            result = np.ones(len(vectors), dtype=np.float32)
            if q_norm == 0.0:
                return result
            nonzero = v_norms > 0.0
            similarity = (vectors[nonzero] @ query) / (v_norms[nonzero] * q_norm)
            result[nonzero] = 1.0 - np.clip(similarity, -1.0, 1.0)
            return result

        raise InvalidInput(f"Unsupported metric type: {kind!r}")


# =============================================================================
# NATIVE ENGINE
# =============================================================================

class ScipyMetric(Metric):
    """
    Native engine backed by ``scipy.spatial.distance`` and BLAS.

    Single-pair and batch kernels both run in compiled code.
    """

    name = "scipy"

    @staticmethod
    def _vec(v) -> NDArray[np.float32]:
        return np.ascontiguousarray(v, dtype=np.float32)

    def l2_distance(self, a: Vector, b: Vector) -> float:
        return float(np.float32(spd.sqeuclidean(self._vec(a), self._vec(b))))

    def dot_product(self, a: Vector, b: Vector) -> float:
        return float(blas.sdot(self._vec(a), self._vec(b)))

    def cosine_distance(self, a: Vector, b: Vector) -> float:
        a = self._vec(a)
        b = self._vec(b)
        if not a.any() or not b.any():
            return 1.0
        return float(np.float32(np.clip(spd.cosine(a, b), 0.0, 2.0)))

    def hamming_distance_b8(self, a: BinaryCode, b: BinaryCode) -> int:
        codes_a, codes_b = _check_codes(a, b)
        if codes_a.size == 0:
            return 0
        bits_a = np.unpackbits(codes_a).astype(bool)
        bits_b = np.unpackbits(codes_b).astype(bool)
        # scipy returns the fraction of differing positions
        return int(round(spd.hamming(bits_a, bits_b) * bits_a.size))

    def distances(
        self,
        kind: MetricType,
        query: Vector,
        vectors: VectorBatch,
    ) -> NDArray[np.float32]:
        return self.pairwise(kind, vectors, self._vec(query)[np.newaxis, :])[:, 0]

    def pairwise(
        self,
        kind: MetricType,
        X: VectorBatch,
        Y: VectorBatch,
    ) -> NDArray[np.float32]:
        X = np.ascontiguousarray(X, dtype=np.float32)
        Y = np.ascontiguousarray(Y, dtype=np.float32)

        if kind is MetricType.L2SQ_DISTANCE:
            return spd.cdist(X, Y, "sqeuclidean").astype(np.float32)

        if kind is MetricType.DOT_PRODUCT:
            return blas.sgemm(1.0, X, Y, trans_b=True).astype(np.float32, copy=False)

        if kind is MetricType.COSINE_DISTANCE:
            result = np.ones((len(X), len(Y)), dtype=np.float32)
            x_nonzero = np.flatnonzero(X.any(axis=1))
            y_nonzero = np.flatnonzero(Y.any(axis=1))
            if len(x_nonzero) and len(y_nonzero):
                block = spd.cdist(X[x_nonzero], Y[y_nonzero], "cosine")
                result[np.ix_(x_nonzero, y_nonzero)] = np.clip(block, 0.0, 2.0)
            return result

        raise InvalidInput(f"Unsupported metric type: {kind!r}")
