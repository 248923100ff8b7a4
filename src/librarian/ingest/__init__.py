"""Document ingestion: extraction, normalisation, chunking and indexing."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List

from .chunking import ChunkingConfig, SemanticTextChunker, chunk
from .extractors import DocumentExtractor, extract
from .format_detection import SUPPORTED_EXTENSIONS, DocumentFormat, DocumentFormatDetector, is_supported
from .models import DocumentMetadata, DocumentType, DocumentUnit, ExtractedDocument, PageContent, SpreadsheetRow
from .pipeline import FileIngestReport, IngestPipeline, IngestPipelineConfig, IngestReport

LOGGER = logging.getLogger(__name__)


def discover_source_files(data_dir: str | Path) -> List[Path]:
    """Supported files directly inside ``data_dir``, sorted by name."""

    directory = Path(data_dir)
    if not directory.is_dir():
        LOGGER.warning("Data directory %s not found", directory)
        return []
    files = sorted(path.resolve() for path in directory.iterdir() if path.is_file() and is_supported(path))
    LOGGER.info("Found %s supported files in %s", len(files), directory)
    return files


__all__ = [
    "SUPPORTED_EXTENSIONS",
    "ChunkingConfig",
    "DocumentExtractor",
    "DocumentFormat",
    "DocumentFormatDetector",
    "DocumentMetadata",
    "DocumentType",
    "DocumentUnit",
    "ExtractedDocument",
    "FileIngestReport",
    "IngestPipeline",
    "IngestPipelineConfig",
    "IngestReport",
    "PageContent",
    "SemanticTextChunker",
    "SpreadsheetRow",
    "chunk",
    "discover_source_files",
    "extract",
]
