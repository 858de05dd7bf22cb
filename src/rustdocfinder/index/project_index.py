"""In-memory vector index for one processed project generation."""

from __future__ import annotations

from typing import Dict, List, Sequence, Tuple

import numpy as np

from rustdocfinder.errors import LengthMismatch
from rustdocfinder.models import DocItem


def _unit_rows(matrix: np.ndarray) -> np.ndarray:
    norms = np.linalg.norm(matrix, axis=1, keepdims=True)
    safe = np.where(norms == 0.0, 1.0, norms)
    return (matrix / safe).astype("float32", copy=False)


class ProjectIndex:
    """Immutable (DocItem, embedding) pairs.

    Embeddings are stored unit-normalized so a scan is a single matrix-vector
    product. Instances are never mutated after ``build``; a reprocess creates
    a new instance and swaps it into the registry.
    """

    __slots__ = ("items", "_matrix", "_by_path", "_path_rank")

    def __init__(self, items: Tuple[DocItem, ...], matrix: np.ndarray) -> None:
        self.items = items
        self._matrix = matrix
        self._by_path: Dict[str, DocItem] = {item.full_path: item for item in items}
        # Rank of each position when ordered by full path, used as the tie-breaker.
        order = sorted(range(len(items)), key=lambda position: items[position].full_path)
        rank = np.empty(len(items), dtype=np.int64)
        rank[order] = np.arange(len(items), dtype=np.int64)
        self._path_rank = rank

    @classmethod
    def build(
        cls,
        items: Sequence[DocItem],
        embeddings: np.ndarray | Sequence[Sequence[float]],
    ) -> "ProjectIndex":
        matrix = np.asarray(embeddings, dtype="float32")
        if len(items) == 0 and matrix.size == 0:
            width = matrix.shape[1] if matrix.ndim == 2 else 0
            return cls((), np.zeros((0, width), dtype="float32"))
        if matrix.ndim != 2 or matrix.shape[0] != len(items):
            raise LengthMismatch(
                f"{len(items)} items but embeddings have shape {matrix.shape}"
            )
        matrix = _unit_rows(matrix)
        matrix.setflags(write=False)
        return cls(tuple(items), matrix)

    def __len__(self) -> int:
        return len(self.items)

    @property
    def dimension(self) -> int:
        return int(self._matrix.shape[1]) if self._matrix.ndim == 2 else 0

    def get(self, full_path: str) -> DocItem | None:
        return self._by_path.get(full_path)

    def scores(self, query_vector: np.ndarray) -> np.ndarray:
        """Cosine similarity of the query against every stored embedding."""
        query = np.asarray(query_vector, dtype="float32").reshape(-1)
        if len(self.items) == 0:
            return np.zeros(0, dtype="float32")
        if query.shape[0] != self.dimension:
            raise ValueError(
                f"Query vector has dimension {query.shape[0]}, index has {self.dimension}"
            )
        norm = float(np.linalg.norm(query))
        if norm == 0.0:
            return np.zeros(len(self.items), dtype="float32")
        return self._matrix @ (query / norm)

    def scan(self, query_vector: np.ndarray, limit: int) -> List[Tuple[DocItem, float]]:
        """Top ``limit`` items by cosine similarity, ties broken by ascending full path."""
        if limit < 1 or len(self.items) == 0:
            return []
        scores = self.scores(query_vector)
        # lexsort uses the last key as the primary one.
        order = np.lexsort((self._path_rank, -scores))[:limit]
        return [(self.items[position], float(scores[position])) for position in order]
