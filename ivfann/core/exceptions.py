"""
Custom exceptions for ivfann.
"""


class IVFError(Exception):
    """Base exception for ivfann."""
    pass


class InvalidInput(IVFError, ValueError):
    """
    Caller supplied an invalid dataset, query or parameter.

    Raised before any state is touched, so the object that raised it
    is left exactly as it was.
    """
    pass


class DimensionMismatchError(InvalidInput):
    """Vector dimension doesn't match the expected dimension."""
    pass


class IndexNotBuiltError(InvalidInput):
    """Index must be built before it can be searched."""
    pass


class InvalidModelState(IVFError, RuntimeError):
    """
    A clustering strategy produced an inconsistent result.

    Signals a broken clustering implementation. Never retried.
    """
    pass
