"""Common exceptions raised by the ingestion, embedding and cache layers."""
from __future__ import annotations


class LibrarianError(RuntimeError):
    """Base class for all errors raised by the document index."""

    def __init__(self, message: str, *, cause: Exception | None = None) -> None:
        super().__init__(message)
        self.__cause__ = cause


class ExtractionError(LibrarianError):
    """Raised when a source file cannot be turned into text."""

    def __init__(self, message: str, *, path: str | None = None, cause: Exception | None = None) -> None:
        super().__init__(message, cause=cause)
        self.path = path


class UnsupportedFormat(ExtractionError):
    """The file extension or declared type is not handled by any extractor."""


class CorruptSource(ExtractionError):
    """The underlying file format could not be parsed."""


class EmptyExtraction(ExtractionError):
    """Parsing succeeded but produced no usable text."""


class ProviderError(LibrarianError):
    """Raised when an embedding or chat provider call fails."""

    def __init__(self, message: str, *, provider: str | None = None, cause: Exception | None = None) -> None:
        super().__init__(message, cause=cause)
        self.provider = provider


class PersistenceError(LibrarianError):
    """Raised when the vector cache cannot be written."""


__all__ = [
    "CorruptSource",
    "EmptyExtraction",
    "ExtractionError",
    "LibrarianError",
    "PersistenceError",
    "ProviderError",
    "UnsupportedFormat",
]
