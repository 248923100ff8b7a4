"""Hybrid retrieval over a :class:`~librarian.vectorstore.VectorIndex`."""

from __future__ import annotations

from .hybrid import (
    NO_RELEVANT_INFORMATION,
    HybridRetriever,
    HybridRetrieverConfig,
    RetrievalResult,
    RetrievalStrategy,
    RetrievedUnit,
    SearchType,
    build_citations,
)
from .lexical import LexicalHit, LexicalIndex

__all__ = [
    "NO_RELEVANT_INFORMATION",
    "HybridRetriever",
    "HybridRetrieverConfig",
    "LexicalHit",
    "LexicalIndex",
    "RetrievalResult",
    "RetrievalStrategy",
    "RetrievedUnit",
    "SearchType",
    "build_citations",
]
