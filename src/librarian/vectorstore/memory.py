"""In-memory vector index with cosine similarity queries."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np

from librarian.ingest.models import DocumentUnit

LOGGER = logging.getLogger(__name__)

DEFAULT_FETCH_K = 20
DEFAULT_LAMBDA_MULT = 0.5


@dataclass(frozen=True, slots=True)
class ScoredUnit:
    """A document unit returned from a query with its cosine similarity."""

    unit: DocumentUnit
    score: float
    position: int


class VectorIndex:
    """Ordered ``(DocumentUnit, embedding)`` pairs of a single vector space.

    The first insert fixes the dimensionality and, when given, the provider
    and model that produced the vectors. Units are only ever appended; the
    ``revision`` counter grows with every insert so that derived structures
    can tell when they are stale.
    """

    def __init__(
        self,
        *,
        provider_name: Optional[str] = None,
        model: Optional[str] = None,
        dimension: Optional[int] = None,
    ) -> None:
        self.provider_name = provider_name
        self.model = model
        self._dimension = dimension
        self._units: List[DocumentUnit] = []
        self._matrix = np.zeros((0, dimension or 0), dtype=np.float64)
        self._norms = np.zeros(0, dtype=np.float64)
        self.revision = 0

    def __len__(self) -> int:
        return len(self._units)

    @property
    def dimension(self) -> Optional[int]:
        return self._dimension

    @property
    def units(self) -> List[DocumentUnit]:
        return list(self._units)

    @property
    def embeddings(self) -> np.ndarray:
        return self._matrix.copy()

    def unit_at(self, position: int) -> DocumentUnit:
        return self._units[position]

    def insert(
        self,
        units: Sequence[DocumentUnit],
        embeddings: Sequence[Sequence[float]],
        *,
        provider_name: Optional[str] = None,
        model: Optional[str] = None,
    ) -> None:
        """Append a batch of units with their embeddings."""

        if len(units) != len(embeddings):
            raise ValueError(f"Got {len(units)} units but {len(embeddings)} embeddings")
        if not units:
            return

        matrix = np.asarray(embeddings, dtype=np.float64)
        if matrix.ndim != 2:
            raise ValueError("Embeddings must all have the same length")
        width = matrix.shape[1]
        if self._dimension is not None and width != self._dimension:
            raise ValueError(f"Embedding width {width} does not match index dimension {self._dimension}")
        self._check_identity(provider_name, model)
        if self._dimension is None:
            self._dimension = width

        if not self._units:
            self._matrix = np.zeros((0, width), dtype=np.float64)
        self._matrix = np.vstack([self._matrix, matrix])
        self._norms = np.concatenate([self._norms, np.linalg.norm(matrix, axis=1)])
        self._units.extend(units)
        self.revision += 1
        LOGGER.debug("Inserted %s units (total %s, revision %s)", len(units), len(self._units), self.revision)

    def _check_identity(self, provider_name: Optional[str], model: Optional[str]) -> None:
        if provider_name is not None:
            if self.provider_name is None:
                self.provider_name = provider_name
            elif self.provider_name != provider_name:
                raise ValueError(
                    f"Index holds '{self.provider_name}' vectors, refusing '{provider_name}' vectors"
                )
        if model is not None:
            if self.model is None:
                self.model = model
            elif self.model != model:
                raise ValueError(f"Index holds vectors from model '{self.model}', refusing '{model}'")

    def cosine_scores(self, vector: Sequence[float]) -> np.ndarray:
        """Cosine similarity of ``vector`` against every stored embedding."""

        if not self._units:
            return np.zeros(0, dtype=np.float64)
        query = np.asarray(vector, dtype=np.float64)
        if query.shape != (self._dimension,):
            raise ValueError(f"Query vector has shape {query.shape}, expected ({self._dimension},)")
        query_norm = np.linalg.norm(query)
        denominators = self._norms * query_norm
        dots = self._matrix @ query
        with np.errstate(divide="ignore", invalid="ignore"):
            scores = np.where(denominators > 0, dots / denominators, 0.0)
        return scores

    def similarity_search_with_score(self, vector: Sequence[float], k: int) -> List[ScoredUnit]:
        if k <= 0 or not self._units:
            return []
        scores = self.cosine_scores(vector)
        ranked = sorted(range(len(scores)), key=lambda position: (-scores[position], position))[:k]
        return [ScoredUnit(unit=self._units[i], score=float(scores[i]), position=i) for i in ranked]

    def similarity_search(self, vector: Sequence[float], k: int) -> List[DocumentUnit]:
        return [scored.unit for scored in self.similarity_search_with_score(vector, k)]

    def max_marginal_relevance_search(
        self,
        vector: Sequence[float],
        k: int,
        fetch_k: int = DEFAULT_FETCH_K,
        lambda_mult: float = DEFAULT_LAMBDA_MULT,
    ) -> List[ScoredUnit]:
        """Select ``k`` units balancing query relevance against redundancy."""

        candidates = self.similarity_search_with_score(vector, max(fetch_k, k))
        if not candidates:
            return []

        unit_vectors = self._matrix[[candidate.position for candidate in candidates]]
        norms = np.linalg.norm(unit_vectors, axis=1, keepdims=True)
        normalised = np.divide(unit_vectors, norms, out=np.zeros_like(unit_vectors), where=norms > 0)
        pairwise = normalised @ normalised.T

        selected: List[int] = []
        remaining = list(range(len(candidates)))
        while remaining and len(selected) < k:
            best_index = remaining[0]
            best_value = -np.inf
            for index in remaining:
                redundancy = max((pairwise[index, chosen] for chosen in selected), default=0.0)
                value = lambda_mult * candidates[index].score - (1.0 - lambda_mult) * redundancy
                if value > best_value:
                    best_index, best_value = index, value
            selected.append(best_index)
            remaining.remove(best_index)
        return [candidates[index] for index in selected]
