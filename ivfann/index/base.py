"""
Abstract base class for index implementations.

This module defines the result and statistics types shared by indices
and the interface they implement.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from ..utils.validation import ArrayLike


class IndexType(str, Enum):
    """Available index types."""
    IVF = "ivf"


@dataclass
class IndexStats:
    """Statistics about an index."""

    index_type: str
    dimension: int
    metric: str
    engine: str
    vector_count: int
    cluster_count: int
    memory_bytes: int
    is_built: bool
    build_time_seconds: float = 0.0

    # Optional type-specific stats
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "index_type": self.index_type,
            "dimension": self.dimension,
            "metric": self.metric,
            "engine": self.engine,
            "vector_count": self.vector_count,
            "cluster_count": self.cluster_count,
            "memory_bytes": self.memory_bytes,
            "memory_mb": round(self.memory_bytes / (1024 * 1024), 2),
            "is_built": self.is_built,
            "build_time_seconds": self.build_time_seconds,
            **self.extra,
        }


@dataclass(frozen=True)
class SearchResult:
    """
    One neighbour returned by a search.

    Attributes:
        id: External id of the vector
        distance: Distance from the query under the index metric
            (lower is closer for every kind, including raw dot product)
        cluster_id: Cluster whose inverted list held the vector
    """

    id: int
    distance: float
    cluster_id: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "distance": self.distance,
            "cluster_id": self.cluster_id,
        }

    def __repr__(self) -> str:
        return (
            f"SearchResult(id={self.id}, distance={self.distance:.4f}, "
            f"cluster_id={self.cluster_id})"
        )


class BaseIndex(ABC):
    """
    Abstract base class for vector indices.

    Thread Safety:
        An index is immutable once built, so concurrent searches are
        safe. ``build()`` must not run concurrently with searches.
    """

    @property
    @abstractmethod
    def index_type(self) -> IndexType:
        """Return the index type."""

    @property
    @abstractmethod
    def size(self) -> int:
        """Number of vectors in the index."""

    @property
    @abstractmethod
    def is_built(self) -> bool:
        """Whether ``build()`` has completed successfully."""

    @abstractmethod
    def build(self, vectors: ArrayLike, ids: Optional[ArrayLike] = None) -> None:
        """
        Build the index from a dataset, replacing any previous state.

        Args:
            vectors: Array of vectors (n, dimension)
            ids: Optional external integer ids, defaults to 0..n-1
        """

    @abstractmethod
    def search(
        self,
        query: ArrayLike,
        top_k: int = 10,
        n_probe: int = 1,
    ) -> List[SearchResult]:
        """
        Search for the nearest neighbours of a query.

        Returns:
            List of SearchResult, sorted by ascending distance
        """

    def search_batch(
        self,
        queries: ArrayLike,
        top_k: int = 10,
        n_probe: int = 1,
    ) -> List[List[SearchResult]]:
        """
        Search with multiple queries.

        Returns:
            One result list per query, in query order
        """
        return [self.search(q, top_k=top_k, n_probe=n_probe) for q in queries]

    @abstractmethod
    def stats(self) -> IndexStats:
        """Get index statistics."""

    def __len__(self) -> int:
        return self.size

    def __repr__(self) -> str:
        return f"{type(self).__name__}(size={self.size}, built={self.is_built})"
