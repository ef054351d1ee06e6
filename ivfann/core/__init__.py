"""
Core components for ivfann.
"""

from .exceptions import (
    IVFError,
    InvalidInput,
    DimensionMismatchError,
    IndexNotBuiltError,
    InvalidModelState,
)

__all__ = [
    "IVFError",
    "InvalidInput",
    "DimensionMismatchError",
    "IndexNotBuiltError",
    "InvalidModelState",
]
