"""
Input validation utilities.

Every check raises :class:`~ivfann.core.exceptions.InvalidInput` (or a
subclass) before any caller state is modified.
"""

from __future__ import annotations

from numbers import Integral, Real
from typing import Any, Optional, Sequence, Union

import numpy as np
from numpy.typing import NDArray

from ..core.exceptions import DimensionMismatchError, InvalidInput


ArrayLike = Union[NDArray, Sequence[Sequence[float]]]


def validate_dataset(data: Optional[ArrayLike], name: str = "data") -> NDArray:
    """
    Validate a dataset and return it as a contiguous float32 matrix.

    Args:
        data: 2-D array or sequence of equal-length rows
        name: Name used in error messages

    Returns:
        Array of shape (n, d) with dtype float32

    Raises:
        InvalidInput: If data is None, empty, ragged or zero-dimensional
    """
    if data is None:
        raise InvalidInput(f"{name} must be non-null")

    if isinstance(data, np.ndarray):
        if data.ndim != 2:
            raise InvalidInput(
                f"{name} must be a 2-D array of vectors, got {data.ndim}-D"
            )
        if data.shape[0] == 0:
            raise InvalidInput(f"{name} must be non-empty")
        matrix = data
    else:
        rows = list(data)
        if not rows:
            raise InvalidInput(f"{name} must be non-empty")

        first = rows[0]
        if first is None or not hasattr(first, "__len__"):
            raise InvalidInput(f"{name}[0] must be a non-null vector")
        dimension = len(first)
        for i, row in enumerate(rows):
            if not hasattr(row, "__len__") or len(row) != dimension:
                raise InvalidInput(
                    f"all vectors in {name} must be non-null and have the "
                    f"same dimension (row {i} differs from {dimension})"
                )
        matrix = np.asarray(rows, dtype=np.float32)
        if matrix.ndim != 2:
            raise InvalidInput(f"{name} must contain flat numeric vectors")

    if matrix.shape[1] == 0:
        raise InvalidInput(f"vectors in {name} must have positive dimension")

    return np.ascontiguousarray(matrix, dtype=np.float32)


def validate_vector(
    vector: Optional[ArrayLike],
    dimension: int,
    name: str = "query",
) -> NDArray:
    """
    Validate a single vector against an expected dimension.

    Raises:
        InvalidInput: If vector is None or not 1-D
        DimensionMismatchError: If its length differs from dimension
    """
    if vector is None:
        raise InvalidInput(f"{name} must be non-null")

    array = np.asarray(vector, dtype=np.float32)
    if array.ndim != 1:
        raise InvalidInput(f"{name} must be a 1-D vector, got {array.ndim}-D")

    if array.shape[0] != dimension:
        raise DimensionMismatchError(
            f"{name} dimension {array.shape[0]} does not match "
            f"index dimension {dimension}"
        )

    return array


def validate_positive_int(value: Any, name: str) -> int:
    """Validate that value is an integer > 0."""
    if isinstance(value, bool) or not isinstance(value, Integral):
        raise InvalidInput(
            f"{name} must be an integer, got {type(value).__name__}"
        )
    if value <= 0:
        raise InvalidInput(f"{name} must be > 0, got {value}")
    return int(value)


def validate_tolerance(value: Any, name: str = "tolerance") -> float:
    """Validate that value is a finite real number >= 0."""
    if isinstance(value, bool) or not isinstance(value, Real):
        raise InvalidInput(
            f"{name} must be a number, got {type(value).__name__}"
        )
    if not np.isfinite(value) or value < 0:
        raise InvalidInput(f"{name} must be >= 0, got {value}")
    return float(value)


def validate_ids(ids: Optional[ArrayLike], count: int) -> NDArray:
    """
    Validate external ids for a dataset of ``count`` vectors.

    Returns the identity mapping ``0..count-1`` when ids is None.
    """
    if ids is None:
        return np.arange(count, dtype=np.int64)

    array = np.asarray(ids)
    if array.ndim != 1:
        raise InvalidInput(f"ids must be 1-D, got {array.ndim}-D")
    if len(array) != count:
        raise InvalidInput(
            f"ids length ({len(array)}) must match vectors length ({count})"
        )
    if len(array) and not np.issubdtype(array.dtype, np.integer):
        raise InvalidInput(f"ids must be integers, got dtype {array.dtype}")

    return array.astype(np.int64, copy=True)
