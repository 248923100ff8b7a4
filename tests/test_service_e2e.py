"""End-to-end tests: spreadsheet ingestion, cached restore and answering."""
from __future__ import annotations

import json
from typing import Any, Dict, List

import pytest

from librarian.errors import LibrarianError, PersistenceError
from librarian.prompt_builder import REFUSALS
from librarian.retrieval import NO_RELEVANT_INFORMATION, RetrievalStrategy


class RecordingInteractionLogger:
    def __init__(self) -> None:
        self.retrievals: List[Dict[str, Any]] = []
        self.chats: List[Dict[str, Any]] = []

    def log_retrieval(self, query, results, meta) -> None:
        self.retrievals.append({"query": query, "results": results, "meta": meta})

    def log_chat(self, answer, context) -> None:
        self.chats.append({"answer": answer, "context": context})


def test_spreadsheet_row_is_retrieved_with_its_provenance(books_xlsx, service_factory) -> None:
    service = service_factory([books_xlsx])

    startup = service.load_or_build()

    assert startup.from_cache is False
    assert startup.units == 2
    assert startup.saved is True

    result = service.search("Simyacı")
    assert result.found
    top = result.units[0].unit
    assert top.metadata.sheet_name == "Books"
    assert top.metadata.row_index == 2
    assert top.metadata.source == "books.xlsx"
    assert "Paulo Coelho" in top.content
    assert result.citations[0] == "books.xlsx"


def test_unknown_term_yields_the_sentinel(books_xlsx, service_factory) -> None:
    service = service_factory([books_xlsx])
    service.load_or_build()

    result = service.search("qwertyzzz")

    assert result.found is False
    assert result.strategy is RetrievalStrategy.NONE
    assert result.context_text() == NO_RELEVANT_INFORMATION


def test_second_start_restores_the_cache(books_xlsx, service_factory) -> None:
    first = service_factory([books_xlsx])
    first.load_or_build()
    expected = [item.unit for item in first.search("Simyacı").units]

    second = service_factory([books_xlsx])
    startup = second.load_or_build()

    assert startup.from_cache is True
    assert startup.units == 2
    assert [item.unit for item in second.search("Simyacı").units] == expected


def test_changed_source_file_forces_a_rebuild(books_xlsx, service_factory, workbook_writer) -> None:
    service_factory([books_xlsx]).load_or_build()

    workbook_writer(
        books_xlsx,
        {"Books": [["Title", "Author", "Year"], ["Simyacı", "Paulo Coelho", 1988], ["Kürk Mantolu Madonna", "Sabahattin Ali", 1943]]},
    )
    startup = service_factory([books_xlsx]).load_or_build()

    assert startup.from_cache is False
    assert startup.units == 3


def test_manifest_records_the_source_file(books_xlsx, service_factory, tmp_path) -> None:
    service_factory([books_xlsx]).load_or_build()

    manifest = json.loads((tmp_path / "vector_cache" / "metadata.json").read_text(encoding="utf-8"))

    assert manifest["embeddingProvider"] == "hash"
    assert manifest["embeddingModel"] == "hash-4096"
    assert manifest["totalVectors"] == manifest["totalDocuments"] == 2
    assert [record["path"] for record in manifest["sourceFiles"]] == [str(books_xlsx.resolve())]


def test_answer_cites_sources_and_refuses_without_context(books_xlsx, service_factory) -> None:
    service = service_factory([books_xlsx])
    service.load_or_build()

    answer = service.answer("Simyacı kitabının yazarı kim?")
    assert answer.refused is False
    assert answer.text.startswith("MOCK_ANSWER: ")
    assert "<li>books.xlsx</li>" in answer.text

    refusal = service.answer("qwertyzzz ığş")
    assert refusal.refused is True
    assert refusal.text == REFUSALS["tr"]
    assert len(service.chat_provider.calls) == 1


def test_interaction_logger_sees_retrievals_and_answers(books_xlsx, service_factory) -> None:
    service = service_factory([books_xlsx])
    observer = RecordingInteractionLogger()
    service.interaction_logger = observer
    service.load_or_build()

    service.answer("Simyacı")

    assert observer.retrievals[0]["query"] == "Simyacı"
    assert observer.retrievals[0]["meta"]["strategy"] == "ensemble"
    assert observer.chats[0]["context"]["citations"] == ["books.xlsx"]


def test_rebuild_and_clear_cache(books_xlsx, service_factory, tmp_path) -> None:
    service = service_factory([books_xlsx])
    service.load_or_build()

    report = service.rebuild()
    assert report.total_units == 2
    assert service.cache_info()["valid"] is True

    assert service.clear_cache() == 3
    info = service.cache_info()
    assert info["valid"] is False
    assert info["exists"] is False
    assert info["indexedUnits"] == 2


def test_cache_can_be_disabled(books_xlsx, service_factory, tmp_path) -> None:
    service = service_factory([books_xlsx], use_cache=False)

    startup = service.load_or_build()

    assert startup.saved is False
    assert not (tmp_path / "vector_cache" / "metadata.json").exists()


def test_ingest_files_appends_to_the_index(books_xlsx, service_factory, tmp_path) -> None:
    notes = tmp_path / "hours.txt"
    notes.write_text("The library opens at nine on weekdays.", encoding="utf-8")
    service = service_factory([books_xlsx])
    service.load_or_build()

    report = service.ingest_files([notes])

    assert report.indexed_files == [str(notes)]
    assert len(service.index) == 3
    assert service.search("weekdays").units[0].unit.metadata.source == "hours.txt"


def test_search_before_loading_raises(service_factory, books_xlsx) -> None:
    service = service_factory([books_xlsx])

    assert service.is_ready is False
    with pytest.raises(LibrarianError):
        service.search("Simyacı")
    with pytest.raises(PersistenceError):
        service.save()
