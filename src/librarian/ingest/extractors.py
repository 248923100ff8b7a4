"""Extractors for supported document types."""
from __future__ import annotations

import io
import json
import logging
import re
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence
from urllib.parse import urlparse

import docx
import xlrd
from openpyxl import load_workbook
from PyPDF2 import PdfReader

from librarian.errors import CorruptSource, EmptyExtraction, ExtractionError

from .format_detection import DocumentFormat, DocumentFormatDetector
from .models import DocumentType, ExtractedDocument, PageContent, SpreadsheetRow
from .normalization import normalize_text

LOGGER = logging.getLogger(__name__)

_KEYWORD_RE = re.compile(r"\w+", re.UNICODE)


class PDFExtractor:
    """Extract text from PDF documents page by page."""

    def extract(self, data: bytes, source: str) -> List[PageContent]:
        if not data:
            raise CorruptSource(f"PDF file {source} is empty", path=source)
        try:
            reader = PdfReader(io.BytesIO(data))
            page_list = list(reader.pages)
        except Exception as error:
            raise CorruptSource(f"Unable to parse PDF {source}: {error}", path=source, cause=error) from error

        pages: List[PageContent] = []
        for index, page in enumerate(page_list, start=1):
            try:
                text = page.extract_text() or ""
            except Exception as error:  # pragma: no cover - depends on PDF internals
                LOGGER.warning("Failed to extract text from PDF %s page %s: %s", source, index, error)
                text = ""
            pages.append(PageContent(page_number=index, text=text))
        return pages


class DocxExtractor:
    """Extract raw paragraph and table text from Microsoft Word documents."""

    def extract(self, data: bytes, source: str) -> List[PageContent]:
        try:
            document = docx.Document(io.BytesIO(data))
        except Exception as error:
            raise CorruptSource(f"Unable to parse DOCX {source}: {error}", path=source, cause=error) from error

        text_parts = [paragraph.text for paragraph in document.paragraphs if paragraph.text]
        for table in document.tables:
            for row in table.rows:
                cells = [cell.text.strip() for cell in row.cells if cell.text.strip()]
                if cells:
                    text_parts.append(" | ".join(cells))
        return [PageContent(page_number=None, text="\n\n".join(text_parts))]


class TextExtractor:
    """Extract text from plaintext documents."""

    def extract(self, data: bytes, source: str) -> List[PageContent]:
        return [PageContent(page_number=None, text=self.decode(data, source))]

    @staticmethod
    def decode(data: bytes, source: str = "<text>") -> str:
        if data.startswith((b"\xff\xfe", b"\xfe\xff")):
            try:
                return data.decode("utf-16")
            except UnicodeDecodeError as error:
                raise CorruptSource(f"Invalid UTF-16 text in {source}: {error}", path=source, cause=error) from error
        try:
            return data.decode("utf-8-sig")
        except UnicodeDecodeError:
            LOGGER.debug("UTF-8 decoding failed, falling back to latin-1")
            return data.decode("latin-1")


def _sheet_rows(source: str, sheet_name: str, rows: Iterable[Sequence[Any]]) -> List[SpreadsheetRow]:
    """Build one record per non-empty row; ``row_index`` counts from 1."""

    records: List[SpreadsheetRow] = []
    for row_index, values in enumerate(rows, start=1):
        cells = [normalize_text(str(value)) for value in values if value is not None]
        content = " ".join(cell for cell in cells if cell)
        if not content:
            continue
        records.append(
            SpreadsheetRow(
                sheet_name=sheet_name,
                row_index=row_index,
                content=content,
                full_text=f"File: {source} | Sheet: {sheet_name} | Row {row_index}: {content}",
            )
        )
    LOGGER.debug("Sheet %s of %s yielded %s rows", sheet_name, source, len(records))
    return records


class SpreadsheetExtractor:
    """Turn every non-empty ``.xlsx`` row into its own record."""

    def extract(self, data: bytes, source: str) -> List[SpreadsheetRow]:
        try:
            workbook = load_workbook(io.BytesIO(data), data_only=True)
        except Exception as error:
            raise CorruptSource(f"Unable to parse spreadsheet {source}: {error}", path=source, cause=error) from error

        rows: List[SpreadsheetRow] = []
        try:
            for worksheet in workbook.worksheets:
                rows.extend(_sheet_rows(source, worksheet.title, worksheet.iter_rows(values_only=True)))
        finally:
            workbook.close()
        return rows


class LegacySpreadsheetExtractor:
    """Same row records as :class:`SpreadsheetExtractor`, for BIFF ``.xls`` workbooks."""

    def extract(self, data: bytes, source: str) -> List[SpreadsheetRow]:
        try:
            book = xlrd.open_workbook(file_contents=data)
        except Exception as error:
            raise CorruptSource(f"Unable to parse spreadsheet {source}: {error}", path=source, cause=error) from error

        rows: List[SpreadsheetRow] = []
        try:
            for sheet in book.sheets():
                values = (
                    [self._cell_value(cell, book.datemode) for cell in sheet.row(row_number)]
                    for row_number in range(sheet.nrows)
                )
                rows.extend(_sheet_rows(source, sheet.name, values))
        finally:
            book.release_resources()
        return rows

    @staticmethod
    def _cell_value(cell: Any, datemode: int) -> Any:
        # xlrd stores every number as float; match openpyxl's ints and datetimes.
        if cell.ctype in (xlrd.XL_CELL_EMPTY, xlrd.XL_CELL_BLANK):
            return None
        if cell.ctype == xlrd.XL_CELL_DATE:
            return xlrd.xldate_as_datetime(cell.value, datemode)
        if cell.ctype == xlrd.XL_CELL_BOOLEAN:
            return bool(cell.value)
        if cell.ctype == xlrd.XL_CELL_NUMBER and float(cell.value).is_integer():
            return int(cell.value)
        return cell.value


class JSONExtractor:
    """Project a JSON document into pretty-printed text."""

    def extract(self, data: bytes, source: str) -> List[PageContent]:
        try:
            parsed = json.loads(data.decode("utf-8-sig"))
        except (UnicodeDecodeError, json.JSONDecodeError) as error:
            raise CorruptSource(f"Unable to parse JSON {source}: {error}", path=source, cause=error) from error
        return [PageContent(page_number=None, text=json.dumps(parsed, indent=2, ensure_ascii=False))]


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1] if isinstance(tag, str) else ""


class XMLExtractor:
    """Extract text from XML, with a dedicated layout for sitemaps."""

    def extract(self, data: bytes, source: str) -> tuple[DocumentType, List[PageContent]]:
        try:
            root = ET.fromstring(data)
        except ET.ParseError as error:
            raise CorruptSource(f"Unable to parse XML {source}: {error}", path=source, cause=error) from error

        if self.is_sitemap(root):
            return DocumentType.SITEMAP, [PageContent(page_number=None, text=self._sitemap_text(root, source))]

        text = "\n".join(fragment.strip() for fragment in root.itertext() if fragment.strip())
        return DocumentType.XML, [PageContent(page_number=None, text=text)]

    @staticmethod
    def is_sitemap(root: ET.Element) -> bool:
        if _local_name(root.tag) != "urlset":
            return False
        return any(_local_name(element.tag) == "loc" for element in root.iter())

    def _sitemap_text(self, root: ET.Element, source: str) -> str:
        blocks: List[str] = []
        for element in root:
            if _local_name(element.tag) != "url":
                continue
            fields = self._entry_fields(element)
            if fields.get("loc"):
                blocks.append(self._format_entry(fields))

        if not blocks:
            LOGGER.warning("Sitemap %s contains no URL entries", source)
            return ""

        LOGGER.info("Extracted %s URL entries from sitemap %s", len(blocks), source)
        header = (
            "LIBRARY WEBSITE MAP\n"
            f"File: {source}\n"
            f"Total pages: {len(blocks)}\n\n"
            "=== PAGES ==="
        )
        return header + "\n\n" + "\n\n".join(blocks)

    @staticmethod
    def _entry_fields(element: ET.Element) -> Dict[str, str]:
        fields: Dict[str, str] = {}
        for child in element:
            name = _local_name(child.tag)
            if child.text and child.text.strip():
                fields[name] = child.text.strip()
        return fields

    @staticmethod
    def _format_entry(fields: Dict[str, str]) -> str:
        url = fields["loc"]
        path_parts = [part for part in urlparse(url).path.split("/") if part]
        page_name = path_parts[-1] if path_parts else "home"
        description = fields.get("description", "")

        lines = [f"Page: {page_name.replace('-', ' ')}", f"URL: {url}"]
        if fields.get("lastmod"):
            lines.append(f"Last modified: {fields['lastmod']}")
        if fields.get("priority"):
            lines.append(f"Priority: {fields['priority']}")
        if description:
            lines.append(f"Description: {description}")
        if len(path_parts) > 1:
            lines.append("Category: " + " > ".join(part.replace("-", " ") for part in path_parts[:-1]))

        keywords: List[str] = []
        for part in path_parts:
            keywords.extend(word for word in part.split("-") if len(word) > 2)
        keywords.extend(word for word in _KEYWORD_RE.findall(description.lower()) if len(word) > 2)
        unique_keywords = list(dict.fromkeys(keywords))
        if unique_keywords:
            lines.append("Keywords: " + ", ".join(unique_keywords))
        return "\n".join(lines)


class DocumentExtractor:
    """Dispatch a source file to the extractor for its format."""

    def __init__(self) -> None:
        self.pdf_extractor = PDFExtractor()
        self.docx_extractor = DocxExtractor()
        self.text_extractor = TextExtractor()
        self.spreadsheet_extractor = SpreadsheetExtractor()
        self.legacy_spreadsheet_extractor = LegacySpreadsheetExtractor()
        self.json_extractor = JSONExtractor()
        self.xml_extractor = XMLExtractor()

    def extract(
        self,
        file_path: str | Path,
        declared_type: Optional[str] = None,
        *,
        base_dir: Optional[str | Path] = None,
    ) -> ExtractedDocument:
        """Extract normalised text pages or spreadsheet rows from *file_path*.

        The recorded source is the path relative to ``base_dir`` when the file
        lives under it, otherwise the bare file name.

        Raises :class:`UnsupportedFormat`, :class:`CorruptSource` or
        :class:`EmptyExtraction`; any other read failure surfaces as a plain
        :class:`ExtractionError`.
        """

        path = Path(file_path)
        source = source_name(path, base_dir)
        document_format = DocumentFormatDetector.detect(path, declared_type)
        try:
            data = path.read_bytes()
        except OSError as error:
            raise ExtractionError(f"Unable to read {path}: {error}", path=str(path), cause=error) from error

        LOGGER.debug("Extracting %s as %s (%s bytes)", source, document_format.value, len(data))

        if document_format in (DocumentFormat.XLSX, DocumentFormat.XLS):
            reader = (
                self.spreadsheet_extractor
                if document_format is DocumentFormat.XLSX
                else self.legacy_spreadsheet_extractor
            )
            rows = reader.extract(data, source)
            if not rows:
                raise EmptyExtraction(f"Spreadsheet {source} has no non-empty rows", path=str(path))
            return ExtractedDocument(source=source, document_type=DocumentType.EXCEL_ROW, rows=rows)

        document_type, pages = self._extract_pages(data, source, document_format)
        normalized = [
            PageContent(page_number=page.page_number, text=normalize_text(page.text)) for page in pages
        ]
        normalized = [page for page in normalized if page.text]
        if not normalized:
            raise EmptyExtraction(f"No text could be extracted from {source}", path=str(path))
        return ExtractedDocument(source=source, document_type=document_type, pages=normalized)

    def _extract_pages(
        self, data: bytes, source: str, document_format: DocumentFormat
    ) -> tuple[DocumentType, List[PageContent]]:
        if document_format is DocumentFormat.PDF:
            return DocumentType.PDF, self.pdf_extractor.extract(data, source)
        if document_format is DocumentFormat.DOCX:
            return DocumentType.DOCX, self.docx_extractor.extract(data, source)
        if document_format is DocumentFormat.TXT:
            return DocumentType.TEXT, self.text_extractor.extract(data, source)
        if document_format is DocumentFormat.JSON:
            return DocumentType.JSON, self.json_extractor.extract(data, source)
        if document_format is DocumentFormat.XML:
            return self.xml_extractor.extract(data, source)
        raise ValueError(f"Unsupported document format: {document_format}")


def source_name(path: Path, base_dir: Optional[str | Path] = None) -> str:
    if base_dir is not None:
        try:
            return path.resolve().relative_to(Path(base_dir).resolve()).as_posix()
        except ValueError:
            pass
    return path.name


def extract(
    file_path: str | Path, declared_type: Optional[str] = None, *, base_dir: Optional[str | Path] = None
) -> ExtractedDocument:
    """Convenience wrapper around :class:`DocumentExtractor`."""

    return DocumentExtractor().extract(file_path, declared_type, base_dir=base_dir)
