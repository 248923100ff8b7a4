"""Service object owning one document index and everything built on it."""
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional

from librarian.config import RetrievalToolConfig
from librarian.embeddings import Embedder
from librarian.errors import LibrarianError, PersistenceError
from librarian.ingest import IngestPipeline, IngestPipelineConfig, IngestReport, discover_source_files
from librarian.prompt_builder import AnswerComposer, ComposedAnswer
from librarian.providers import create_chat_provider, create_embedding_provider
from librarian.providers.base import ChatProvider, EmbeddingProvider
from librarian.retrieval import HybridRetriever, HybridRetrieverConfig, RetrievalResult
from librarian.telemetry import InteractionLogger, traced_duration
from librarian.vectorstore import CacheManifest, PersistenceManager, VectorIndex

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class StartupResult:
    from_cache: bool
    units: int
    report: Optional[IngestReport] = None
    saved: bool = False


class DocumentIndexService:
    """Owns the vector index, its cache, the retriever and the answer composer.

    Several services can live in one process. Writes (build, rebuild, save,
    load, clear) are serialised by one re-entrant lock; queries only read
    the current index.
    """

    def __init__(
        self,
        config: Optional[RetrievalToolConfig] = None,
        *,
        embedding_provider: Optional[EmbeddingProvider] = None,
        chat_provider: Optional[ChatProvider] = None,
        interaction_logger: Optional[InteractionLogger] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = config or RetrievalToolConfig()
        self.persistence = PersistenceManager(self.config.cache_dir, provider_options=self.config.provider_options())
        self.interaction_logger = interaction_logger
        self._embedding_provider = embedding_provider
        self._chat_provider = chat_provider
        self._sleep = sleep
        self._lock = threading.RLock()
        self._composer: Optional[AnswerComposer] = None
        self.index: Optional[VectorIndex] = None
        self.retriever: Optional[HybridRetriever] = None
        self.manifest: Optional[CacheManifest] = None
        self.last_report: Optional[IngestReport] = None

    # ----------------------------------------------------------------- providers
    @property
    def embedding_provider(self) -> EmbeddingProvider:
        if self._embedding_provider is None:
            self._embedding_provider = create_embedding_provider(
                self.config.embedding_provider, self.config.embedding_model, **self.config.provider_options()
            )
        return self._embedding_provider

    @property
    def chat_provider(self) -> ChatProvider:
        if self._chat_provider is None:
            self._chat_provider = create_chat_provider(
                self.config.chat_provider, self.config.chat_model, **self.config.provider_options()
            )
        return self._chat_provider

    @property
    def is_ready(self) -> bool:
        return self.retriever is not None

    def source_files(self) -> List[Path]:
        """Configured source files, or every supported file in the data directory."""

        if self.config.source_files is not None:
            return [Path(path).resolve() for path in self.config.source_files]
        return discover_source_files(self.config.data_dir)

    # ------------------------------------------------------------------- writers
    def load_or_build(self) -> StartupResult:
        """Restore the cached index when it is still valid, otherwise ingest and save."""

        with self._lock:
            files = self.source_files()
            if self.config.use_cache and self.persistence.is_valid(files):
                restored = self.persistence.load(self.embedding_provider)
                if restored is not None:
                    self._embedding_provider = restored.embedding_provider
                    self.manifest = restored.manifest
                    self._install(restored.index)
                    LOGGER.info("Loaded %s units from cache", len(restored.index))
                    return StartupResult(from_cache=True, units=len(restored.index))
                LOGGER.info("Cache valid but not loadable, rebuilding")

            report = self._build(files)
            saved = self._save_quietly(files) if self.config.use_cache else False
            return StartupResult(from_cache=False, units=report.total_units, report=report, saved=saved)

    def rebuild(self) -> IngestReport:
        """Drop the cache and re-ingest every source file."""

        with self._lock:
            self.persistence.clear()
            files = self.source_files()
            report = self._build(files)
            if self.config.use_cache:
                self._save_quietly(files)
            return report

    def ingest_files(self, paths: Iterable[str | Path]) -> IngestReport:
        """Append the given files to the current index without saving."""

        with self._lock:
            if self.index is None:
                self._install(self._new_index())
            report = self._pipeline().ingest([Path(path) for path in paths], self.index)
            self.last_report = report
            return report

    def save(self, source_files: Optional[Iterable[str | Path]] = None) -> CacheManifest:
        """Persist the current index; raises :class:`PersistenceError` on failure."""

        with self._lock:
            if self.index is None:
                raise PersistenceError("No index to save")
            files = list(source_files) if source_files is not None else self.source_files()
            self.manifest = self.persistence.save(self.index, files)
            return self.manifest

    def clear_cache(self) -> int:
        with self._lock:
            self.manifest = None
            return self.persistence.clear()

    def cache_info(self) -> Dict[str, Any]:
        with self._lock:
            info = self.persistence.cache_info()
            info["valid"] = self.persistence.is_valid(self.source_files())
            info["indexedUnits"] = len(self.index) if self.index is not None else 0
            return info

    def _build(self, files: List[Path]) -> IngestReport:
        with traced_duration("index.build", logger=LOGGER, files=len(files)):
            index = self._new_index()
            report = self._pipeline().ingest(files, index)
        self._install(index)
        self.manifest = None
        self.last_report = report
        return report

    def _save_quietly(self, files: List[Path]) -> bool:
        try:
            self.save(files)
        except PersistenceError as error:
            LOGGER.error("Saving the vector cache failed, keeping the in-memory index: %s", error)
            return False
        return True

    def _new_index(self) -> VectorIndex:
        provider = self.embedding_provider
        return VectorIndex(provider_name=provider.name, model=provider.model)

    def _pipeline(self) -> IngestPipeline:
        embedder = Embedder(
            self.embedding_provider,
            batch_size=self.config.batch_size,
            batch_pause_seconds=self.config.batch_pause_seconds,
            sleep=self._sleep,
        )
        return IngestPipeline(
            embedder,
            IngestPipelineConfig(
                chunk_chars=self.config.chunk_size,
                overlap_chars=self.config.chunk_overlap,
                source_root=self.config.data_dir,
            ),
        )

    def _install(self, index: VectorIndex) -> None:
        self.index = index
        self.retriever = HybridRetriever(
            index,
            Embedder(self.embedding_provider, batch_size=self.config.batch_size, batch_pause_seconds=0.0),
            HybridRetrieverConfig(
                k_vec=self.config.k_vec,
                k_lex=self.config.k_lex,
                min_score=self.config.min_score,
                search_type=self.config.search_type,
                vector_weight=self.config.vector_weight,
                lexical_weight=self.config.lexical_weight,
                fallback_k=self.config.fallback_k,
            ),
            interaction_logger=self.interaction_logger,
        )

    # ------------------------------------------------------------------- readers
    def search(self, query: str, **overrides: Any) -> RetrievalResult:
        retriever = self.retriever
        if retriever is None:
            raise LibrarianError("Document index is not loaded")
        return retriever.retrieve(query, **overrides)

    def answer(self, query: str, **overrides: Any) -> ComposedAnswer:
        result = self.search(query, **overrides)
        if self._composer is None:
            self._composer = AnswerComposer(self.chat_provider, interaction_logger=self.interaction_logger)
        return self._composer.compose(query, result)
