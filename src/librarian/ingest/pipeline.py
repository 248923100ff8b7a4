"""High level ingestion pipeline entry point."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional

from librarian.errors import ExtractionError
from librarian.telemetry import emit_ingest_event

from .chunking import DEFAULT_CHUNK_OVERLAP, DEFAULT_CHUNK_SIZE, ChunkingConfig, SemanticTextChunker
from .extractors import DocumentExtractor
from .language import LanguageDetector
from .models import DocumentMetadata, DocumentUnit, ExtractedDocument

if TYPE_CHECKING:  # pragma: no cover - import for type checking only
    from librarian.embeddings import Embedder
    from librarian.vectorstore.memory import VectorIndex

LOGGER = logging.getLogger(__name__)
AUDIT_LOGGER = logging.getLogger("librarian.ingest.audit")


@dataclass(slots=True)
class IngestPipelineConfig:
    chunk_chars: int = DEFAULT_CHUNK_SIZE
    overlap_chars: int = DEFAULT_CHUNK_OVERLAP
    source_root: Optional[Path] = None


@dataclass(slots=True)
class FileIngestReport:
    """What happened to one source file during an ingestion run."""

    path: str
    status: str
    document_type: Optional[str] = None
    language: Optional[str] = None
    units: int = 0
    failed_batches: int = 0
    duration_ms: float = 0.0
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "status": self.status,
            "documentType": self.document_type,
            "language": self.language,
            "units": self.units,
            "failedBatches": self.failed_batches,
            "durationMs": round(self.duration_ms, 3),
            "error": self.error,
        }


@dataclass(slots=True)
class IngestReport:
    files: List[FileIngestReport] = field(default_factory=list)
    duration_ms: float = 0.0

    @property
    def total_units(self) -> int:
        return sum(report.units for report in self.files)

    @property
    def indexed_files(self) -> List[str]:
        return [report.path for report in self.files if report.status == "indexed"]

    @property
    def skipped_files(self) -> List[str]:
        return [report.path for report in self.files if report.status == "skipped"]

    def summary(self) -> Dict[str, Any]:
        return {
            "files": len(self.files),
            "indexed": len(self.indexed_files),
            "skipped": len(self.skipped_files),
            "units": self.total_units,
            "failedBatches": sum(report.failed_batches for report in self.files),
            "durationMs": round(self.duration_ms, 3),
        }


class IngestPipeline:
    """Pipeline orchestrating extraction, chunking, embedding and indexing.

    Files are processed one at a time. A file that cannot be extracted is
    skipped. A batch the provider fails on, or whose vectors the index
    rejects, is dropped. In both cases the run carries on with the next batch
    or file.
    """

    def __init__(
        self,
        embedder: "Embedder",
        config: Optional[IngestPipelineConfig] = None,
        *,
        extractor: Optional[DocumentExtractor] = None,
    ) -> None:
        self.config = config or IngestPipelineConfig()
        self.embedder = embedder
        self.extractor = extractor or DocumentExtractor()
        self.chunker = SemanticTextChunker(
            ChunkingConfig(chunk_chars=self.config.chunk_chars, overlap_chars=self.config.overlap_chars)
        )
        self.language_detector = LanguageDetector()

    def build_units(self, document: ExtractedDocument) -> List[DocumentUnit]:
        """Spreadsheet rows become one unit each; other text is chunked."""

        if document.is_structured:
            return [
                DocumentUnit(
                    content=row.full_text,
                    metadata=DocumentMetadata(
                        source=document.source,
                        document_type=document.document_type,
                        sheet_name=row.sheet_name,
                        row_index=row.row_index,
                    ),
                )
                for row in document.rows
            ]
        return [
            DocumentUnit(
                content=chunk_text,
                metadata=DocumentMetadata(source=document.source, document_type=document.document_type, page=page),
            )
            for page, chunk_text in self.chunker.chunk_pages(document.pages)
        ]

    def ingest_file(self, path: str | Path, index: "VectorIndex") -> FileIngestReport:
        started = time.perf_counter()
        path = Path(path)
        LOGGER.info("Processing file %s", path.name)

        try:
            document = self.extractor.extract(path, base_dir=self.config.source_root)
        except ExtractionError as error:
            LOGGER.warning("Skipping %s: %s", path.name, error)
            report = FileIngestReport(
                path=str(path),
                status="skipped",
                duration_ms=(time.perf_counter() - started) * 1000.0,
                error=f"{type(error).__name__}: {error}",
            )
            self._audit(report, error)
            return report

        document.language = self.language_detector.detect(document.text)
        units = self.build_units(document)

        inserted = 0
        failed_batches = 0
        for batch in self.embedder.embed_batches([unit.content for unit in units]):
            if not batch.ok:
                failed_batches += 1
                continue
            batch_units = units[batch.start : batch.start + len(batch.texts)]
            try:
                index.insert(
                    batch_units,
                    batch.vectors,
                    provider_name=self.embedder.provider_name,
                    model=self.embedder.model,
                )
            except ValueError as error:
                LOGGER.warning(
                    "Index rejected embedding batch %s-%s of %s: %s",
                    batch.start,
                    batch.start + len(batch_units) - 1,
                    path.name,
                    error,
                )
                failed_batches += 1
                continue
            inserted += len(batch_units)

        report = FileIngestReport(
            path=str(path),
            status="indexed" if inserted else "failed",
            document_type=document.document_type.value,
            language=document.language,
            units=inserted,
            failed_batches=failed_batches,
            duration_ms=(time.perf_counter() - started) * 1000.0,
            error=f"{failed_batches} embedding batch(es) failed" if failed_batches else None,
        )
        LOGGER.info(
            "Indexed %s of %s units from %s (%s failed batches)", inserted, len(units), path.name, failed_batches
        )
        self._audit(report)
        return report

    def ingest(self, paths: Iterable[str | Path], index: "VectorIndex") -> IngestReport:
        """Ingest every file in ``paths`` into ``index``."""

        started = time.perf_counter()
        report = IngestReport()
        for path in paths:
            report.files.append(self.ingest_file(path, index))
        report.duration_ms = (time.perf_counter() - started) * 1000.0
        LOGGER.info("Ingestion finished: %s", report.summary())
        return report

    @staticmethod
    def _audit(report: FileIngestReport, error: Optional[BaseException] = None) -> None:
        emit_ingest_event(
            "ingest.file",
            file_name=Path(report.path).name,
            size_bytes=_file_size(report.path),
            duration_ms=report.duration_ms,
            document_type=report.document_type,
            language=report.language,
            units=report.units,
            failed_batches=report.failed_batches,
            error=error,
        )
        AUDIT_LOGGER.info({"event": "ingest", **report.to_dict()})


def _file_size(path: str) -> Optional[int]:
    try:
        return Path(path).stat().st_size
    except OSError:
        return None
