"""Hybrid vector + lexical retrieval with a fallback chain."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from librarian.embeddings import Embedder
from librarian.errors import ProviderError
from librarian.ingest.models import DocumentUnit
from librarian.telemetry import InteractionLogger, emit_retriever_event, notify
from librarian.vectorstore.memory import ScoredUnit, VectorIndex

from .lexical import LexicalHit, LexicalIndex

LOGGER = logging.getLogger(__name__)

NO_RELEVANT_INFORMATION = "NO_RELEVANT_INFORMATION"


class SearchType(str, Enum):
    SIMILARITY = "similarity"
    MMR = "mmr"


class RetrievalStrategy(str, Enum):
    """Which tier of the retrieval chain produced the results."""

    ENSEMBLE = "ensemble"
    LEXICAL_FALLBACK = "lexical_fallback"
    SIMILARITY_FALLBACK = "similarity_fallback"
    NONE = "none"


@dataclass(slots=True)
class HybridRetrieverConfig:
    k_vec: int = 3
    k_lex: int = 3
    min_score: float = 0.1
    search_type: SearchType = SearchType.SIMILARITY
    vector_weight: float = 0.6
    lexical_weight: float = 0.4
    rank_constant: int = 60
    fallback_k: int = 10
    fetch_k: int = 20
    lambda_mult: float = 0.5


@dataclass(slots=True)
class RetrievedUnit:
    unit: DocumentUnit
    score: float
    position: int
    similarity: Optional[float] = None
    lexical_score: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "position": self.position,
            "score": round(self.score, 6),
            "similarity": None if self.similarity is None else round(self.similarity, 6),
            "lexicalScore": None if self.lexical_score is None else round(self.lexical_score, 6),
            "citation": self.unit.citation(),
        }


@dataclass(slots=True)
class RetrievalResult:
    """Ranked units of one query, or the no-information sentinel when empty."""

    query: str
    strategy: RetrievalStrategy
    units: List[RetrievedUnit] = field(default_factory=list)
    citations: List[str] = field(default_factory=list)

    @property
    def found(self) -> bool:
        return bool(self.units)

    @property
    def documents(self) -> List[DocumentUnit]:
        return [retrieved.unit for retrieved in self.units]

    def context_text(self) -> str:
        if not self.units:
            return NO_RELEVANT_INFORMATION
        return "\n\n".join(retrieved.unit.content for retrieved in self.units)


def build_citations(units: Sequence[DocumentUnit]) -> List[str]:
    """De-duplicated ``source`` / ``source - p.N`` strings in rank order."""

    return list(dict.fromkeys(unit.citation() for unit in units))


class HybridRetriever:
    """Weighted reciprocal-rank fusion of a vector and a BM25 leg.

    Tiers run in order and stop at the first non-empty one: the fused
    ensemble, lexical search with relaxed prefix matching, then plain
    similarity search over a larger ``k`` with the score floor applied.
    """

    def __init__(
        self,
        index: VectorIndex,
        embedder: Embedder,
        config: Optional[HybridRetrieverConfig] = None,
        *,
        interaction_logger: Optional[InteractionLogger] = None,
    ) -> None:
        self.index = index
        self.embedder = embedder
        self.config = config or HybridRetrieverConfig()
        self.interaction_logger = interaction_logger
        self._lexical: Optional[LexicalIndex] = None
        self._lexical_key: Optional[tuple[int, int]] = None

    def lexical_index(self) -> LexicalIndex:
        """Return the lexical index, rebuilding it when the vector index changed."""

        key = (id(self.index), self.index.revision)
        if self._lexical is None or self._lexical_key != key:
            self._lexical = LexicalIndex(self.index.units)
            self._lexical_key = key
        return self._lexical

    def retrieve(
        self,
        query: str,
        k_vec: Optional[int] = None,
        k_lex: Optional[int] = None,
        min_score: Optional[float] = None,
        search_type: Optional[SearchType | str] = None,
    ) -> RetrievalResult:
        k_vec = self.config.k_vec if k_vec is None else k_vec
        k_lex = self.config.k_lex if k_lex is None else k_lex
        min_score = self.config.min_score if min_score is None else min_score
        search_type = SearchType(search_type or self.config.search_type)

        started = time.perf_counter()
        result = self._retrieve(query, k_vec, k_lex, min_score, search_type)
        duration_ms = (time.perf_counter() - started) * 1000.0

        summaries = [retrieved.to_dict() for retrieved in result.units]
        emit_retriever_event(
            query=query,
            strategy=result.strategy.value,
            k_vec=k_vec,
            k_lex=k_lex,
            results=summaries,
            duration_ms=duration_ms,
        )
        notify(
            self.interaction_logger,
            "log_retrieval",
            query,
            summaries,
            {"strategy": result.strategy.value, "durationMs": round(duration_ms, 3), "citations": result.citations},
        )
        return result

    def _retrieve(
        self, query: str, k_vec: int, k_lex: int, min_score: float, search_type: SearchType
    ) -> RetrievalResult:
        if not query.strip() or len(self.index) == 0:
            return RetrievalResult(query=query, strategy=RetrievalStrategy.NONE)

        query_vector = self._embed_query(query)
        similarities = self.index.cosine_scores(query_vector) if query_vector is not None else None
        lexical = self.lexical_index()

        vector_hits: List[ScoredUnit] = []
        if query_vector is not None:
            vector_hits = [hit for hit in self._vector_leg(query_vector, k_vec, search_type) if hit.score >= min_score]
        lexical_hits = lexical.search(query, k_lex)

        fused = self._fuse(vector_hits, lexical_hits, similarities)
        if fused:
            return self._result(query, RetrievalStrategy.ENSEMBLE, fused)

        LOGGER.info("Ensemble empty for query, trying relaxed lexical search")
        relaxed = [
            self._retrieved(hit.position, hit.score, similarities, lexical_score=hit.score)
            for hit in lexical.search_relaxed(query, k_lex)
        ]
        if relaxed:
            return self._result(query, RetrievalStrategy.LEXICAL_FALLBACK, relaxed)

        if query_vector is not None:
            LOGGER.info("Lexical fallback empty, trying similarity search with score floor %s", min_score)
            fallback_k = max(k_vec, self.config.fallback_k)
            scored = [
                self._retrieved(hit.position, hit.score, similarities)
                for hit in self.index.similarity_search_with_score(query_vector, fallback_k)
                if hit.score >= min_score
            ]
            if scored:
                return self._result(query, RetrievalStrategy.SIMILARITY_FALLBACK, scored)

        LOGGER.info("No retrieval tier produced results")
        return RetrievalResult(query=query, strategy=RetrievalStrategy.NONE)

    def _embed_query(self, query: str) -> Optional[List[float]]:
        try:
            return self.embedder.embed_query(query)
        except ProviderError as error:
            LOGGER.warning("Query embedding failed, continuing with lexical search only: %s", error)
            return None

    def _vector_leg(self, query_vector: List[float], k_vec: int, search_type: SearchType) -> List[ScoredUnit]:
        if search_type is SearchType.MMR:
            return self.index.max_marginal_relevance_search(
                query_vector, k_vec, fetch_k=self.config.fetch_k, lambda_mult=self.config.lambda_mult
            )
        return self.index.similarity_search_with_score(query_vector, k_vec)

    def _fuse(
        self,
        vector_hits: Sequence[ScoredUnit],
        lexical_hits: Sequence[LexicalHit],
        similarities: Optional[np.ndarray],
    ) -> List[RetrievedUnit]:
        constant = self.config.rank_constant
        fused: Dict[int, float] = {}
        lexical_scores: Dict[int, float] = {}
        for rank, hit in enumerate(vector_hits, start=1):
            fused[hit.position] = fused.get(hit.position, 0.0) + self.config.vector_weight / (constant + rank)
        for rank, hit in enumerate(lexical_hits, start=1):
            fused[hit.position] = fused.get(hit.position, 0.0) + self.config.lexical_weight / (constant + rank)
            lexical_scores[hit.position] = hit.score

        def similarity_of(position: int) -> float:
            return float(similarities[position]) if similarities is not None else 0.0

        ordered = sorted(fused, key=lambda position: (-fused[position], -similarity_of(position), position))
        return [
            self._retrieved(position, fused[position], similarities, lexical_score=lexical_scores.get(position))
            for position in ordered
        ]

    def _retrieved(
        self,
        position: int,
        score: float,
        similarities: Optional[np.ndarray],
        *,
        lexical_score: Optional[float] = None,
    ) -> RetrievedUnit:
        return RetrievedUnit(
            unit=self.index.unit_at(position),
            score=float(score),
            position=position,
            similarity=float(similarities[position]) if similarities is not None else None,
            lexical_score=lexical_score,
        )

    @staticmethod
    def _result(query: str, strategy: RetrievalStrategy, units: List[RetrievedUnit]) -> RetrievalResult:
        return RetrievalResult(
            query=query,
            strategy=strategy,
            units=units,
            citations=build_citations([retrieved.unit for retrieved in units]),
        )
