"""Utilities for detecting the format of source documents."""
from __future__ import annotations

import mimetypes
from enum import Enum
from pathlib import Path
from typing import Optional

from librarian.errors import UnsupportedFormat


class DocumentFormat(str, Enum):
    """Supported source file formats."""

    PDF = "pdf"
    DOCX = "docx"
    TXT = "txt"
    XLSX = "xlsx"
    XLS = "xls"
    JSON = "json"
    XML = "xml"


SUPPORTED_EXTENSIONS = {
    ".pdf": DocumentFormat.PDF,
    ".docx": DocumentFormat.DOCX,
    ".txt": DocumentFormat.TXT,
    ".md": DocumentFormat.TXT,
    ".xlsx": DocumentFormat.XLSX,
    ".xlsm": DocumentFormat.XLSX,
    ".xls": DocumentFormat.XLS,
    ".json": DocumentFormat.JSON,
    ".xml": DocumentFormat.XML,
}


class DocumentFormatDetector:
    """Detects the document format based on file name and optional declared type."""

    _MIME_MAP = {
        "application/pdf": DocumentFormat.PDF,
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document": DocumentFormat.DOCX,
        "text/plain": DocumentFormat.TXT,
        "text/markdown": DocumentFormat.TXT,
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": DocumentFormat.XLSX,
        "application/vnd.ms-excel": DocumentFormat.XLS,
        "application/json": DocumentFormat.JSON,
        "application/xml": DocumentFormat.XML,
        "text/xml": DocumentFormat.XML,
    }

    @classmethod
    def detect(cls, file_name: str | Path, declared_type: Optional[str] = None) -> DocumentFormat:
        """Return the detected document format.

        A declared type may be a MIME type (``application/pdf``) or a format
        name (``pdf``). Without one, the file suffix decides, with
        :func:`mimetypes.guess_type` as a last resort.
        """

        if declared_type:
            declared = declared_type.strip().lower()
            if declared in cls._MIME_MAP:
                return cls._MIME_MAP[declared]
            try:
                return DocumentFormat(declared.lstrip("."))
            except ValueError as exc:
                raise UnsupportedFormat(
                    f"Unsupported declared type '{declared_type}' for {file_name}", path=str(file_name)
                ) from exc

        suffix = Path(file_name).suffix.lower()
        if suffix in SUPPORTED_EXTENSIONS:
            return SUPPORTED_EXTENSIONS[suffix]

        guessed_type, _ = mimetypes.guess_type(str(file_name))
        if guessed_type and guessed_type in cls._MIME_MAP:
            return cls._MIME_MAP[guessed_type]

        raise UnsupportedFormat(f"Unsupported file extension: {file_name}", path=str(file_name))


def is_supported(file_name: str | Path) -> bool:
    return Path(file_name).suffix.lower() in SUPPORTED_EXTENSIONS
