"""Tests for the lexical index and the hybrid retriever's fallback chain."""
from __future__ import annotations

from typing import Dict, List, Sequence

import pytest

from librarian.embeddings import Embedder
from librarian.providers import EmbeddingProvider
from librarian.retrieval import (
    HybridRetriever,
    HybridRetrieverConfig,
    LexicalIndex,
    RetrievalStrategy,
    build_citations,
)
from librarian.vectorstore import VectorIndex


class TableProvider(EmbeddingProvider):
    """Looks query vectors up in a table; unknown texts embed to zero."""

    name = "table"
    model = "table-2"

    def __init__(self, table: Dict[str, List[float]]) -> None:
        self.table = table
        self.calls: List[str] = []

    def embed(self, texts: Sequence[str]) -> List[List[float]]:
        self.calls.extend(texts)
        return [self.table.get(text, [0.0, 0.0]) for text in texts]


class BrokenProvider(TableProvider):
    def embed(self, texts: Sequence[str]) -> List[List[float]]:
        raise RuntimeError("quota exceeded")


def _retriever(unit_factory, rows, queries=None, provider=None, **config) -> HybridRetriever:
    index = VectorIndex(provider_name="table", model="table-2")
    index.insert([unit_factory(content, source=source) for content, source, _ in rows], [vector for _, _, vector in rows])
    provider = provider or TableProvider(queries or {})
    return HybridRetriever(index, Embedder(provider, batch_pause_seconds=0.0), HybridRetrieverConfig(**config))


@pytest.fixture
def call_log(monkeypatch) -> Dict[str, int]:
    counts = {"similarity": 0, "relaxed": 0}
    similarity = VectorIndex.similarity_search_with_score
    relaxed = LexicalIndex.search_relaxed

    def spy_similarity(self, vector, k):
        counts["similarity"] += 1
        return similarity(self, vector, k)

    def spy_relaxed(self, query, k, min_prefix=4):
        counts["relaxed"] += 1
        return relaxed(self, query, k, min_prefix)

    monkeypatch.setattr(VectorIndex, "similarity_search_with_score", spy_similarity)
    monkeypatch.setattr(LexicalIndex, "search_relaxed", spy_relaxed)
    return counts


def test_lexical_search_only_returns_overlapping_units(unit_factory) -> None:
    lexical = LexicalIndex(
        [unit_factory("kitap iade süresi"), unit_factory("otopark ücretsiz"), unit_factory("kitap bağışı kabul edilir")]
    )

    hits = lexical.search("kitap iade", 5)

    assert [hit.position for hit in hits] == [0, 2]
    assert hits[0].score > hits[1].score > 0
    assert lexical.search("sinema", 5) == []
    assert lexical.search("kitap", 0) == []


def test_relaxed_lexical_search_matches_inflections(unit_factory) -> None:
    lexical = LexicalIndex([unit_factory("kitap listesi"), unit_factory("dergi arşivi"), unit_factory("kit")])

    assert lexical.search("kitaplar", 3) == []
    assert [hit.position for hit in lexical.search_relaxed("kitaplar", 3)] == [0]
    assert lexical.search_relaxed("kitx", 3) == []


def test_ensemble_fuses_both_legs(unit_factory, call_log) -> None:
    retriever = _retriever(
        unit_factory,
        [
            ("kitap iade süresi", "rules.txt", [1.0, 0.0]),
            ("otopark ücretsiz", "parking.txt", [0.0, 1.0]),
            ("kitap bağışı kabul edilir", "donations.txt", [0.8, 0.6]),
        ],
        {"kitap iade": [1.0, 0.0]},
        k_vec=2,
        k_lex=2,
    )

    result = retriever.retrieve("kitap iade")

    assert result.strategy is RetrievalStrategy.ENSEMBLE
    assert [item.position for item in result.units] == [0, 2]
    assert result.citations == ["rules.txt", "donations.txt"]
    assert result.units[0].similarity == pytest.approx(1.0)
    assert result.units[0].lexical_score is not None
    assert call_log == {"similarity": 1, "relaxed": 0}


def test_vector_hits_below_min_score_are_dropped(unit_factory) -> None:
    retriever = _retriever(
        unit_factory,
        [("açılış saatleri", "hours.txt", [1.0, 0.0]), ("otopark", "parking.txt", [0.05, 1.0])],
        {"açılış": [1.0, 0.0]},
        k_vec=2,
        k_lex=2,
        min_score=0.1,
    )

    result = retriever.retrieve("açılış")

    assert [item.position for item in result.units] == [0]


def test_equal_fused_scores_prefer_higher_similarity(unit_factory) -> None:
    retriever = _retriever(
        unit_factory,
        [("kitap", "a.txt", [0.0, 1.0]), ("dergi", "b.txt", [1.0, 0.0])],
        {"kitap": [1.0, 0.0]},
        k_vec=1,
        k_lex=1,
        vector_weight=0.5,
        lexical_weight=0.5,
    )

    result = retriever.retrieve("kitap")

    assert [item.position for item in result.units] == [1, 0]
    assert result.units[0].score == pytest.approx(result.units[1].score)


def test_relaxed_lexical_fallback_runs_after_empty_ensemble(unit_factory, call_log) -> None:
    retriever = _retriever(
        unit_factory,
        [("kitap listesi", "list.txt", [1.0, 0.0]), ("dergi arşivi", "archive.txt", [0.0, 1.0])],
    )

    result = retriever.retrieve("kitaplar")

    assert result.strategy is RetrievalStrategy.LEXICAL_FALLBACK
    assert [item.position for item in result.units] == [0]
    assert call_log == {"similarity": 1, "relaxed": 1}


def test_similarity_fallback_uses_larger_k_and_score_floor(unit_factory, call_log) -> None:
    retriever = _retriever(
        unit_factory,
        [
            ("birinci", "one.txt", [1.0, 0.0]),
            ("ikinci", "two.txt", [0.9, 0.1]),
            ("üçüncü", "three.txt", [0.0, 1.0]),
        ],
        {"soru": [1.0, 0.0]},
        fallback_k=10,
        min_score=0.5,
    )

    result = retriever.retrieve("soru", k_vec=0)

    assert result.strategy is RetrievalStrategy.SIMILARITY_FALLBACK
    assert [item.position for item in result.units] == [0, 1]
    assert all(item.score >= 0.5 for item in result.units)
    assert call_log == {"similarity": 2, "relaxed": 1}


def test_all_tiers_empty_returns_sentinel(unit_factory, call_log) -> None:
    retriever = _retriever(unit_factory, [("kitap", "a.txt", [1.0, 0.0])], {"qwertyzzz": [0.0, 1.0]})

    result = retriever.retrieve("qwertyzzz")

    assert result.strategy is RetrievalStrategy.NONE
    assert result.found is False
    assert result.citations == []
    assert call_log == {"similarity": 2, "relaxed": 1}


def test_blank_query_and_empty_index_short_circuit(unit_factory) -> None:
    provider = TableProvider({})
    retriever = _retriever(unit_factory, [("kitap", "a.txt", [1.0, 0.0])], provider=provider)

    assert retriever.retrieve("   ").found is False
    assert provider.calls == []

    empty = HybridRetriever(VectorIndex(), Embedder(provider))
    assert empty.retrieve("kitap").strategy is RetrievalStrategy.NONE


def test_query_embedding_failure_degrades_to_lexical(unit_factory) -> None:
    retriever = _retriever(
        unit_factory,
        [("kitap iade", "rules.txt", [1.0, 0.0]), ("otopark", "parking.txt", [0.0, 1.0])],
        provider=BrokenProvider({}),
    )

    result = retriever.retrieve("kitap")

    assert result.strategy is RetrievalStrategy.ENSEMBLE
    assert [item.position for item in result.units] == [0]
    assert result.units[0].similarity is None


def test_lexical_index_follows_new_inserts(unit_factory) -> None:
    retriever = _retriever(unit_factory, [("kitap", "a.txt", [1.0, 0.0])])
    first = retriever.lexical_index()

    retriever.index.insert([unit_factory("dergi", source="b.txt")], [[0.0, 1.0]])

    assert retriever.lexical_index() is not first
    assert [item.position for item in retriever.retrieve("dergi").units] == [1]


def test_mmr_search_type(unit_factory) -> None:
    retriever = _retriever(
        unit_factory,
        [("a", "a.txt", [1.0, 0.0]), ("a copy", "b.txt", [0.99, 0.01]), ("b", "c.txt", [0.6, 0.8])],
        {"soru": [1.0, 0.0]},
        k_vec=2,
        lambda_mult=0.3,
    )

    result = retriever.retrieve("soru", search_type="mmr")

    assert [item.position for item in result.units] == [0, 2]


def test_interaction_logger_failures_are_ignored(unit_factory) -> None:
    class Exploding:
        def log_retrieval(self, query, results, meta) -> None:
            raise RuntimeError("observer down")

    retriever = _retriever(unit_factory, [("kitap", "a.txt", [1.0, 0.0])])
    retriever.interaction_logger = Exploding()

    assert retriever.retrieve("kitap").found is True


def test_build_citations_deduplicates_in_rank_order(unit_factory) -> None:
    units = [
        unit_factory("x", source="guide.pdf", page=2),
        unit_factory("y", source="books.xlsx"),
        unit_factory("z", source="guide.pdf", page=2),
        unit_factory("w", source="guide.pdf", page=5),
    ]

    assert build_citations(units) == ["guide.pdf - p.2", "books.xlsx", "guide.pdf - p.5"]
