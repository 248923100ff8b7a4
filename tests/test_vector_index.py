"""Tests for the in-memory vector index."""
from __future__ import annotations

import pytest

from librarian.vectorstore import VectorIndex


@pytest.fixture
def index(unit_factory) -> VectorIndex:
    index = VectorIndex(provider_name="test", model="test-3")
    index.insert(
        [unit_factory("north"), unit_factory("north east"), unit_factory("east"), unit_factory("south")],
        [[1.0, 0.0, 0.0], [0.7, 0.7, 0.0], [0.0, 1.0, 0.0], [-1.0, 0.0, 0.0]],
    )
    return index


def test_empty_index_returns_nothing() -> None:
    index = VectorIndex()

    assert len(index) == 0
    assert index.similarity_search([1.0, 0.0], 3) == []
    assert index.max_marginal_relevance_search([1.0, 0.0], 3) == []


def test_similarity_search_ranks_by_cosine(index: VectorIndex) -> None:
    hits = index.similarity_search_with_score([1.0, 0.1, 0.0], 3)

    assert [hit.unit.content for hit in hits] == ["north", "north east", "east"]
    assert hits[0].score > hits[1].score > hits[2].score
    assert [hit.position for hit in hits] == [0, 1, 2]


def test_k_larger_than_index_and_non_positive_k(index: VectorIndex) -> None:
    assert len(index.similarity_search([1.0, 0.0, 0.0], 10)) == 4
    assert index.similarity_search([1.0, 0.0, 0.0], 0) == []
    assert index.similarity_search([1.0, 0.0, 0.0], -2) == []


def test_ties_keep_insertion_order(unit_factory) -> None:
    index = VectorIndex()
    index.insert([unit_factory("first"), unit_factory("second")], [[0.0, 1.0], [0.0, 2.0]])

    hits = index.similarity_search_with_score([0.0, 1.0], 2)

    assert [hit.unit.content for hit in hits] == ["first", "second"]
    assert hits[0].score == pytest.approx(hits[1].score)


def test_zero_vectors_score_zero(unit_factory) -> None:
    index = VectorIndex()
    index.insert([unit_factory("blank")], [[0.0, 0.0]])

    assert index.similarity_search_with_score([1.0, 0.0], 1)[0].score == 0.0


def test_insert_validates_shapes_and_identity(index: VectorIndex, unit_factory) -> None:
    with pytest.raises(ValueError):
        index.insert([unit_factory("a")], [[1.0, 0.0]])
    with pytest.raises(ValueError):
        index.insert([unit_factory("a"), unit_factory("b")], [[1.0, 0.0, 0.0]])
    with pytest.raises(ValueError):
        index.insert([unit_factory("a")], [[1.0, 0.0, 0.0]], provider_name="other")
    with pytest.raises(ValueError):
        index.insert([unit_factory("a")], [[1.0, 0.0, 0.0]], model="other-3")
    with pytest.raises(ValueError):
        index.similarity_search([1.0, 0.0], 1)

    assert len(index) == 4


def test_insert_bumps_revision_and_appends(index: VectorIndex, unit_factory) -> None:
    revision = index.revision

    index.insert([unit_factory("up")], [[0.0, 0.0, 1.0]], provider_name="test", model="test-3")

    assert index.revision == revision + 1
    assert index.unit_at(4).content == "up"
    assert index.dimension == 3
    assert index.embeddings.shape == (5, 3)


def test_mmr_prefers_diverse_results(unit_factory) -> None:
    index = VectorIndex()
    index.insert(
        [unit_factory("a"), unit_factory("a copy"), unit_factory("b")],
        [[1.0, 0.0], [0.99, 0.01], [0.6, 0.8]],
    )

    plain = [hit.unit.content for hit in index.similarity_search_with_score([1.0, 0.0], 2)]
    diverse = [hit.unit.content for hit in index.max_marginal_relevance_search([1.0, 0.0], 2, lambda_mult=0.3)]

    assert plain == ["a", "a copy"]
    assert diverse == ["a", "b"]
