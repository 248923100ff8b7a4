"""Data models used by the ingestion pipeline."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class DocumentType(str, Enum):
    """Kind of source a document unit was produced from."""

    TEXT = "text"
    PDF = "pdf"
    DOCX = "docx"
    EXCEL_ROW = "excel_row"
    JSON = "json"
    XML = "xml"
    SITEMAP = "sitemap"


@dataclass(slots=True)
class PageContent:
    """Represents text extracted from a page in the source document."""

    page_number: Optional[int]
    text: str


@dataclass(slots=True)
class SpreadsheetRow:
    """One non-empty spreadsheet row, kept apart from its neighbours."""

    sheet_name: str
    row_index: int
    content: str
    full_text: str


@dataclass(slots=True)
class ExtractedDocument:
    """Result of extracting a single source file.

    Text-like sources fill ``pages``; spreadsheets fill ``rows`` instead so
    that every row can become its own document unit.
    """

    source: str
    document_type: DocumentType
    pages: List[PageContent] = field(default_factory=list)
    rows: List[SpreadsheetRow] = field(default_factory=list)
    language: Optional[str] = None

    @property
    def is_structured(self) -> bool:
        return self.document_type is DocumentType.EXCEL_ROW

    @property
    def text(self) -> str:
        if self.is_structured:
            return "\n".join(row.full_text for row in self.rows)
        return "\n\n".join(page.text for page in self.pages if page.text)


@dataclass(frozen=True, slots=True)
class DocumentMetadata:
    """Provenance attached to an indexed document unit."""

    source: str
    document_type: DocumentType
    sheet_name: Optional[str] = None
    row_index: Optional[int] = None
    page: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "source": self.source,
            "documentType": self.document_type.value,
        }
        if self.sheet_name is not None:
            payload["sheetName"] = self.sheet_name
        if self.row_index is not None:
            payload["rowIndex"] = self.row_index
        if self.page is not None:
            payload["page"] = self.page
        return payload

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "DocumentMetadata":
        return cls(
            source=str(payload["source"]),
            document_type=DocumentType(payload.get("documentType", DocumentType.TEXT.value)),
            sheet_name=payload.get("sheetName"),
            row_index=payload.get("rowIndex"),
            page=payload.get("page"),
        )


@dataclass(frozen=True, slots=True)
class DocumentUnit:
    """Container that pairs indexed text with its provenance metadata."""

    content: str
    metadata: DocumentMetadata

    def citation(self) -> str:
        if self.metadata.page is not None:
            return f"{self.metadata.source} - p.{self.metadata.page}"
        return self.metadata.source
