"""Tests for the retrieval tool configuration."""
from __future__ import annotations

import os
from pathlib import Path

import pytest
from pydantic import ValidationError

from librarian.config import RetrievalToolConfig


def test_defaults() -> None:
    config = RetrievalToolConfig()

    assert (config.k_vec, config.k_lex, config.min_score) == (3, 3, 0.1)
    assert config.search_type == "similarity"
    assert config.use_cache is True
    assert config.cache_dir == Path("vector_cache")
    assert (config.chunk_size, config.chunk_overlap) == (1000, 300)
    assert (config.batch_size, config.batch_pause_seconds) == (25, 1.0)


def test_camel_case_keys_are_accepted() -> None:
    config = RetrievalToolConfig.model_validate({"kVec": 5, "kLex": 2, "minScore": 0.25, "searchType": "mmr"})

    assert (config.k_vec, config.k_lex, config.min_score, config.search_type) == (5, 2, 0.25, "mmr")


@pytest.mark.parametrize(
    "values",
    [
        {"search_type": "keyword"},
        {"k_vec": -1},
        {"chunk_size": 100, "chunk_overlap": 100},
        {"unknown_option": True},
    ],
)
def test_invalid_values_are_rejected(values) -> None:
    with pytest.raises(ValidationError):
        RetrievalToolConfig(**values)


def test_from_env_reads_prefixed_variables() -> None:
    environ = {
        "LIBRARIAN_K_VEC": "7",
        "LIBRARIAN_USE_CACHE": "false",
        "LIBRARIAN_EMBEDDING_PROVIDER": "openai",
        "LIBRARIAN_SOURCE_FILES": f"a.txt{os.pathsep}b.pdf,c.xlsx",
        "LIBRARIAN_MIN_SCORE": "",
    }

    config = RetrievalToolConfig.from_env(environ)

    assert config.k_vec == 7
    assert config.use_cache is False
    assert config.embedding_provider == "openai"
    assert config.source_files == [Path("a.txt"), Path("b.pdf"), Path("c.xlsx")]
    assert config.min_score == 0.1


def test_overrides_win_and_none_is_ignored() -> None:
    config = RetrievalToolConfig.from_env({"LIBRARIAN_K_VEC": "7"}, k_vec=2, k_lex=None)

    assert config.k_vec == 2
    assert config.k_lex == 3
    assert config.provider_options() == {"request_timeout": 60.0}
