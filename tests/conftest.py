"""Shared fixtures for the librarian test suite."""
from __future__ import annotations

from pathlib import Path
from typing import Callable, Dict, Iterable, List, Sequence

import pytest
from openpyxl import Workbook

from librarian.config import RetrievalToolConfig
from librarian.ingest.models import DocumentMetadata, DocumentType, DocumentUnit
from librarian.providers import HashEmbeddingProvider, MockChatProvider
from librarian.service import DocumentIndexService

HASH_DIMENSION = 4096


def make_unit(content: str, source: str = "notes.txt", **metadata) -> DocumentUnit:
    document_type = metadata.pop("document_type", DocumentType.TEXT)
    return DocumentUnit(
        content=content,
        metadata=DocumentMetadata(source=source, document_type=document_type, **metadata),
    )


def write_workbook(path: Path, sheets: Dict[str, Iterable[Sequence[object]]]) -> Path:
    workbook = Workbook()
    workbook.remove(workbook.active)
    for title, rows in sheets.items():
        worksheet = workbook.create_sheet(title)
        for row in rows:
            worksheet.append(list(row))
    workbook.save(path)
    return path


@pytest.fixture
def hash_provider() -> HashEmbeddingProvider:
    return HashEmbeddingProvider(dimension=HASH_DIMENSION)


@pytest.fixture
def books_xlsx(tmp_path: Path) -> Path:
    return write_workbook(
        tmp_path / "books.xlsx",
        {"Books": [["Title", "Author", "Year"], ["Simyacı", "Paulo Coelho", 1988]]},
    )


@pytest.fixture
def service_factory(tmp_path: Path) -> Callable[..., DocumentIndexService]:
    """Build services wired to the hash embedder and the mock chat model."""

    def factory(source_files: List[Path], **overrides) -> DocumentIndexService:
        values = {
            "embedding_provider": "hash",
            "embedding_model": f"hash-{HASH_DIMENSION}",
            "chat_provider": "mock",
            "cache_dir": tmp_path / "vector_cache",
            "source_files": source_files,
            "batch_pause_seconds": 0.0,
        }
        values.update(overrides)
        return DocumentIndexService(
            RetrievalToolConfig(**values),
            chat_provider=MockChatProvider(),
            sleep=lambda _seconds: None,
        )

    return factory


@pytest.fixture
def unit_factory() -> Callable[..., DocumentUnit]:
    return make_unit


@pytest.fixture
def workbook_writer() -> Callable[[Path, Dict[str, Iterable[Sequence[object]]]], Path]:
    return write_workbook
