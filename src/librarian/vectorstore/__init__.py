"""In-memory vector index and its disk cache."""

from __future__ import annotations

from .memory import ScoredUnit, VectorIndex
from .persistence import (
    CacheManifest,
    PersistenceManager,
    RestoredCache,
    SourceFileRecord,
    file_hash,
)

__all__ = [
    "CacheManifest",
    "PersistenceManager",
    "RestoredCache",
    "ScoredUnit",
    "SourceFileRecord",
    "VectorIndex",
    "file_hash",
]
