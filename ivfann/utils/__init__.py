"""
Utility functions for ivfann.
"""

from .validation import (
    validate_dataset,
    validate_vector,
    validate_positive_int,
    validate_tolerance,
    validate_ids,
)
from .logging import setup_logger, get_logger, LogContext

__all__ = [
    "validate_dataset",
    "validate_vector",
    "validate_positive_int",
    "validate_tolerance",
    "validate_ids",
    "setup_logger",
    "get_logger",
    "LogContext",
]
