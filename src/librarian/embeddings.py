"""Batched embedding helpers on top of an :class:`EmbeddingProvider`."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Iterator, List, Optional, Sequence

from librarian.errors import ProviderError
from librarian.providers.base import EmbeddingProvider
from librarian.telemetry import emit_embeddings_event

LOGGER = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 25
DEFAULT_BATCH_PAUSE_SECONDS = 1.0


@dataclass(slots=True)
class EmbeddingBatch:
    """Outcome of embedding one batch: either ``vectors`` or ``error`` is set."""

    start: int
    texts: List[str]
    vectors: Optional[List[List[float]]] = None
    error: Optional[ProviderError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class Embedder:
    """Embed texts through a provider, validating the shape of the output."""

    def __init__(
        self,
        provider: EmbeddingProvider,
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
        batch_pause_seconds: float = DEFAULT_BATCH_PAUSE_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        if batch_pause_seconds < 0:
            raise ValueError("batch_pause_seconds must not be negative")
        self.provider = provider
        self.batch_size = batch_size
        self.batch_pause_seconds = batch_pause_seconds
        self._sleep = sleep

    @property
    def provider_name(self) -> str:
        return self.provider.name

    @property
    def model(self) -> str:
        return self.provider.model

    def embed(self, texts: Sequence[str]) -> List[List[float]]:
        """Embed one batch; any provider failure surfaces as :class:`ProviderError`."""

        if not texts:
            return []
        started = time.perf_counter()
        try:
            vectors = self.provider.embed(list(texts))
            self._validate(texts, vectors)
        except Exception as error:
            emit_embeddings_event(
                provider=self.provider_name,
                model=self.model,
                count=len(texts),
                duration_ms=(time.perf_counter() - started) * 1000.0,
                errors=[str(error)],
            )
            if isinstance(error, ProviderError):
                raise
            raise ProviderError(
                f"Embedding provider '{self.provider_name}' failed: {error}", provider=self.provider_name, cause=error
            ) from error

        emit_embeddings_event(
            provider=self.provider_name,
            model=self.model,
            count=len(texts),
            duration_ms=(time.perf_counter() - started) * 1000.0,
        )
        return [[float(value) for value in vector] for vector in vectors]

    def embed_query(self, text: str) -> List[float]:
        return self.embed([text])[0]

    def embed_batches(self, texts: Sequence[str]) -> Iterator[EmbeddingBatch]:
        """Yield one :class:`EmbeddingBatch` per ``batch_size`` slice of ``texts``.

        A failed batch is reported instead of raised so that the caller can
        keep the batches that succeeded. The configured pause is applied
        between consecutive batches, never after the last one.
        """

        for start in range(0, len(texts), self.batch_size):
            if start > 0 and self.batch_pause_seconds:
                self._sleep(self.batch_pause_seconds)
            batch = list(texts[start : start + self.batch_size])
            try:
                vectors = self.embed(batch)
            except ProviderError as error:
                LOGGER.warning(
                    "Embedding batch %s-%s failed: %s", start, start + len(batch) - 1, error
                )
                yield EmbeddingBatch(start=start, texts=batch, error=error)
                continue
            yield EmbeddingBatch(start=start, texts=batch, vectors=vectors)

    @staticmethod
    def _validate(texts: Sequence[str], vectors: Sequence[Sequence[float]]) -> None:
        if len(vectors) != len(texts):
            raise ProviderError(f"Provider returned {len(vectors)} vectors for {len(texts)} texts")
        widths = {len(vector) for vector in vectors}
        if len(widths) > 1:
            raise ProviderError(f"Provider returned vectors of inconsistent width: {sorted(widths)}")
        if 0 in widths:
            raise ProviderError("Provider returned empty vectors")
