"""BM25 lexical index over the full document corpus."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Set

from rank_bm25 import BM25Plus

from librarian.ingest.models import DocumentUnit
from librarian.tokenization import tokenize

LOGGER = logging.getLogger(__name__)

MIN_PREFIX_LENGTH = 4


@dataclass(frozen=True, slots=True)
class LexicalHit:
    position: int
    score: float


class LexicalIndex:
    """BM25Plus scores restricted to units that share a term with the query.

    BM25Plus keeps every matching term's contribution positive, which makes
    the ranking usable on the small corpora a single library deployment has.
    """

    def __init__(self, units: Sequence[DocumentUnit]) -> None:
        self._token_lists: List[List[str]] = [tokenize(unit.content) for unit in units]
        self._token_sets: List[Set[str]] = [set(tokens) for tokens in self._token_lists]
        self.vocabulary: Set[str] = set().union(*self._token_sets) if self._token_sets else set()
        self._bm25: Optional[BM25Plus] = BM25Plus(self._token_lists) if units else None
        LOGGER.debug("Lexical index built over %s units (%s terms)", len(units), len(self.vocabulary))

    def __len__(self) -> int:
        return len(self._token_lists)

    def search(self, query: str, k: int) -> List[LexicalHit]:
        """Top ``k`` units containing at least one exact query term."""

        return self._rank(set(tokenize(query)), k)

    def search_relaxed(self, query: str, k: int, min_prefix: int = MIN_PREFIX_LENGTH) -> List[LexicalHit]:
        """Like :meth:`search` but a query term also matches corpus terms it
        prefixes or is prefixed by, so inflected forms such as ``kitaplar``
        and ``kitap`` meet. Both terms must be at least ``min_prefix`` long.
        """

        expanded: Set[str] = set()
        for term in set(tokenize(query)):
            if term in self.vocabulary:
                expanded.add(term)
            if len(term) < min_prefix:
                continue
            expanded.update(
                candidate
                for candidate in self.vocabulary
                if len(candidate) >= min_prefix and (candidate.startswith(term) or term.startswith(candidate))
            )
        return self._rank(expanded, k)

    def _rank(self, terms: Set[str], k: int) -> List[LexicalHit]:
        if k <= 0 or not terms or self._bm25 is None:
            return []
        candidates = [position for position, tokens in enumerate(self._token_sets) if tokens & terms]
        if not candidates:
            return []
        scores = self._bm25.get_scores(sorted(terms))
        ranked = sorted(candidates, key=lambda position: (-scores[position], position))[:k]
        return [LexicalHit(position=position, score=float(scores[position])) for position in ranked]
