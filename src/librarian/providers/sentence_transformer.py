"""Embedding provider backed by a local Sentence Transformers model."""
from __future__ import annotations

import logging
import os
from typing import List, Optional, Sequence

from librarian.errors import ProviderError

from .base import EmbeddingProvider

LOGGER = logging.getLogger(__name__)
DEFAULT_MODEL_NAME = "sentence-transformers/all-MiniLM-L6-v2"


class SentenceTransformerEmbeddingProvider(EmbeddingProvider):
    """Wrapper around a SentenceTransformer embedding model."""

    name = "sentence-transformers"

    def __init__(self, model: Optional[str] = None, *, device: Optional[str] = None, **_: object) -> None:
        self.model = model or os.getenv("EMBEDDING_MODEL_PATH", DEFAULT_MODEL_NAME)
        embedding_device = device or os.getenv("EMBEDDING_DEVICE")
        try:
            from sentence_transformers import SentenceTransformer
        except ImportError as error:
            raise ProviderError(
                "sentence-transformers is not installed; install the 'local' extra",
                provider=self.name,
                cause=error,
            ) from error

        try:
            self._model = SentenceTransformer(self.model, device=embedding_device)
        except Exception as error:  # pragma: no cover - depends on model availability
            raise ProviderError(
                f"Failed to initialize sentence-transformers model '{self.model}': {error}",
                provider=self.name,
                cause=error,
            ) from error
        self.dimension = int(self._model.get_sentence_embedding_dimension())
        LOGGER.info("Loaded embedding model %s (dimension %s)", self.model, self.dimension)

    def embed(self, texts: Sequence[str]) -> List[List[float]]:
        if not texts:
            return []
        embeddings = self._model.encode(
            list(texts),
            convert_to_numpy=True,
            show_progress_bar=False,
            normalize_embeddings=False,
        )
        return embeddings.tolist()
