"""Deterministic hashing embedding provider for tests and offline development."""
from __future__ import annotations

import hashlib
import re
from typing import List, Optional, Sequence

import numpy as np

from librarian.tokenization import tokenize

from .base import EmbeddingProvider

_MODEL_RE = re.compile(r"^hash-(\d+)$")
DEFAULT_DIMENSION = 384


class HashEmbeddingProvider(EmbeddingProvider):
    """Return signed feature-hashing vectors built from the text's tokens.

    Texts sharing words get a positive cosine similarity, texts without any
    common word score (almost always) zero. The model name encodes the
    dimension so that a restored cache recreates the same vector space.
    """

    name = "hash"

    def __init__(self, model: Optional[str] = None, dimension: Optional[int] = None, **_: object) -> None:
        if model is not None and dimension is None:
            match = _MODEL_RE.match(model)
            if match is None:
                raise ValueError(f"Unrecognised hash embedding model '{model}'")
            dimension = int(match.group(1))
        dimension = DEFAULT_DIMENSION if dimension is None else dimension
        if dimension <= 0:
            raise ValueError("dimension must be a positive integer")
        self.dimension = dimension
        self.model = f"hash-{dimension}"

    def embed(self, texts: Sequence[str]) -> List[List[float]]:
        """Generate deterministic embeddings derived from each text."""

        return [self._embed_one(str(text)).tolist() for text in texts]

    def _embed_one(self, text: str) -> np.ndarray:
        vector = np.zeros(self.dimension, dtype=np.float64)
        for token in tokenize(text):
            digest = hashlib.sha256(token.encode("utf-8")).digest()
            bucket = int.from_bytes(digest[:8], "big") % self.dimension
            sign = 1.0 if digest[8] & 1 else -1.0
            vector[bucket] += sign
        norm = np.linalg.norm(vector)
        if norm > 0:
            vector /= norm
        return vector
