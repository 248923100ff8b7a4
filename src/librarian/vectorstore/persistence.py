"""Disk cache for a :class:`VectorIndex` with exact source-file invalidation."""
from __future__ import annotations

import hashlib
import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from librarian.errors import PersistenceError, ProviderError
from librarian.ingest.models import DocumentMetadata, DocumentUnit
from librarian.providers import create_embedding_provider
from librarian.providers.base import EmbeddingProvider
from librarian.telemetry import emit_cache_event

from .memory import VectorIndex

LOGGER = logging.getLogger(__name__)

MANIFEST_VERSION = "1.0"
HASH_ALGORITHM = "sha256"
METADATA_FILE = "metadata.json"
VECTORS_FILE = "vectors.json"
DOCUMENTS_FILE = "documents.json"
_READ_CHUNK = 1024 * 1024


def file_hash(path: str | Path) -> str:
    """Return the sha256 hex digest of the file contents."""

    digest = hashlib.sha256()
    with open(path, "rb") as handle:
        for block in iter(lambda: handle.read(_READ_CHUNK), b""):
            digest.update(block)
    return digest.hexdigest()


@dataclass(slots=True)
class SourceFileRecord:
    path: str
    content_hash: str
    byte_size: int
    last_modified_time: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "contentHash": self.content_hash,
            "byteSize": self.byte_size,
            "lastModifiedTime": self.last_modified_time,
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "SourceFileRecord":
        return cls(
            path=str(payload["path"]),
            content_hash=str(payload["contentHash"]),
            byte_size=int(payload.get("byteSize", 0)),
            last_modified_time=payload.get("lastModifiedTime"),
        )

    @classmethod
    def from_path(cls, path: str | Path) -> "SourceFileRecord":
        stat = os.stat(path)
        modified = datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc).isoformat().replace("+00:00", "Z")
        return cls(path=str(path), content_hash=file_hash(path), byte_size=stat.st_size, last_modified_time=modified)


@dataclass(slots=True)
class CacheManifest:
    """Describes a saved index; the only source of truth for cache validity."""

    embedding_provider: str
    embedding_model: str
    embedding_dimension: Optional[int]
    total_vectors: int
    total_documents: int
    source_files: List[SourceFileRecord] = field(default_factory=list)
    version: str = MANIFEST_VERSION
    created_at: str = ""
    hash_algorithm: str = HASH_ALGORITHM

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "createdAt": self.created_at,
            "embeddingProvider": self.embedding_provider,
            "embeddingModel": self.embedding_model,
            "embeddingDimension": self.embedding_dimension,
            "hashAlgorithm": self.hash_algorithm,
            "totalVectors": self.total_vectors,
            "totalDocuments": self.total_documents,
            "sourceFiles": [record.to_dict() for record in self.source_files],
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "CacheManifest":
        return cls(
            version=str(payload["version"]),
            created_at=str(payload.get("createdAt", "")),
            embedding_provider=str(payload["embeddingProvider"]),
            embedding_model=str(payload["embeddingModel"]),
            embedding_dimension=payload.get("embeddingDimension"),
            hash_algorithm=str(payload.get("hashAlgorithm", HASH_ALGORITHM)),
            total_vectors=int(payload["totalVectors"]),
            total_documents=int(payload["totalDocuments"]),
            source_files=[SourceFileRecord.from_dict(item) for item in payload.get("sourceFiles", [])],
        )


@dataclass(slots=True)
class RestoredCache:
    index: VectorIndex
    manifest: CacheManifest
    embedding_provider: EmbeddingProvider


class PersistenceManager:
    """Save, validate, restore and clear the on-disk vector cache."""

    def __init__(self, cache_dir: str | Path, *, provider_options: Optional[Dict[str, Any]] = None) -> None:
        self.cache_dir = Path(cache_dir)
        self.provider_options = dict(provider_options or {})
        self.metadata_path = self.cache_dir / METADATA_FILE
        self.vectors_path = self.cache_dir / VECTORS_FILE
        self.documents_path = self.cache_dir / DOCUMENTS_FILE

    @property
    def artifact_paths(self) -> Dict[str, Path]:
        return {"metadata": self.metadata_path, "vectors": self.vectors_path, "documents": self.documents_path}

    # ------------------------------------------------------------------ manifest
    def load_manifest(self) -> Optional[CacheManifest]:
        try:
            payload = json.loads(self.metadata_path.read_text(encoding="utf-8"))
            return CacheManifest.from_dict(payload)
        except FileNotFoundError:
            return None
        except (OSError, ValueError, KeyError, TypeError) as error:
            LOGGER.warning("Cache manifest %s is unreadable: %s", self.metadata_path, error)
            return None

    def is_valid(self, current_source_files: Iterable[str | Path]) -> bool:
        """Whether the cache was built from exactly these files with these contents.

        Any change to the file set or to one file's bytes invalidates the whole
        cache; reusing the vectors of unchanged files is not implemented.
        """

        manifest = self.load_manifest()
        if manifest is None:
            LOGGER.info("No cache manifest, cache invalid")
            return False
        if manifest.hash_algorithm != HASH_ALGORITHM:
            LOGGER.info("Cache manifest uses %s hashes, cache invalid", manifest.hash_algorithm)
            return False

        current = [str(path) for path in current_source_files]
        recorded = {record.path: record for record in manifest.source_files}
        if len(current) != len(set(current)) or set(current) != set(recorded):
            added = sorted(set(current) - set(recorded))
            removed = sorted(set(recorded) - set(current))
            LOGGER.info("Source file set changed (added %s, removed %s), cache invalid", added, removed)
            return False

        for path in current:
            try:
                current_hash = file_hash(path)
            except OSError as error:
                LOGGER.info("Cannot hash %s (%s), cache invalid", path, error)
                return False
            if current_hash != recorded[path].content_hash:
                LOGGER.info("Source file %s changed, cache invalid", path)
                return False

        LOGGER.info("Cache is up to date (%s source files)", len(current))
        return True

    # ---------------------------------------------------------------------- save
    def save(self, index: VectorIndex, source_files: Iterable[str | Path]) -> CacheManifest:
        """Write the index to disk, manifest last.

        Raises :class:`PersistenceError` on any I/O or hashing failure; the
        previous manifest is removed before the artifacts are replaced so
        that an interrupted save leaves no valid-looking cache behind.
        """

        try:
            records = [SourceFileRecord.from_path(path) for path in source_files]
        except OSError as error:
            emit_cache_event("cache.save", cache_dir=str(self.cache_dir), reason="hash", error=error)
            raise PersistenceError(f"Unable to hash source files: {error}", cause=error) from error

        units = index.units
        embeddings = index.embeddings.tolist()
        manifest = CacheManifest(
            created_at=datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            embedding_provider=index.provider_name or "unknown",
            embedding_model=index.model or "unknown",
            embedding_dimension=index.dimension,
            total_vectors=len(embeddings),
            total_documents=len(units),
            source_files=records,
        )
        vectors_payload = [
            {"content": unit.content, "embedding": embedding, "metadata": unit.metadata.to_dict()}
            for unit, embedding in zip(units, embeddings)
        ]
        documents_payload = [{"pageContent": unit.content, "metadata": unit.metadata.to_dict()} for unit in units]

        temp_paths: List[Path] = []
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            documents_tmp = self._write_temp(documents_payload, temp_paths)
            vectors_tmp = self._write_temp(vectors_payload, temp_paths)
            manifest_tmp = self._write_temp(manifest.to_dict(), temp_paths)

            self.metadata_path.unlink(missing_ok=True)
            os.replace(documents_tmp, self.documents_path)
            os.replace(vectors_tmp, self.vectors_path)
            os.replace(manifest_tmp, self.metadata_path)
        except (OSError, TypeError, ValueError) as error:
            for temp_path in temp_paths:
                temp_path.unlink(missing_ok=True)
            emit_cache_event("cache.save", cache_dir=str(self.cache_dir), reason="write", error=error)
            raise PersistenceError(f"Unable to write vector cache to {self.cache_dir}: {error}", cause=error) from error

        emit_cache_event(
            "cache.save",
            cache_dir=str(self.cache_dir),
            vectors=manifest.total_vectors,
            documents=manifest.total_documents,
        )
        LOGGER.info("Vector cache saved: %s vectors, %s documents", manifest.total_vectors, manifest.total_documents)
        return manifest

    def _write_temp(self, payload: Any, temp_paths: List[Path]) -> Path:
        handle = tempfile.NamedTemporaryFile(
            "w", encoding="utf-8", dir=self.cache_dir, prefix=".cache-", suffix=".tmp", delete=False
        )
        temp_path = Path(handle.name)
        temp_paths.append(temp_path)
        with handle:
            json.dump(payload, handle, ensure_ascii=False, indent=2)
            handle.flush()
            os.fsync(handle.fileno())
        return temp_path

    # ---------------------------------------------------------------------- load
    def load(self, embedding_provider: Optional[EmbeddingProvider] = None) -> Optional[RestoredCache]:
        """Restore the saved index, or return ``None`` on any cache problem.

        ``embedding_provider`` is used as-is when it matches the recorded
        provider and model; otherwise a fresh provider of the recorded kind
        is constructed.
        """

        manifest = self.load_manifest()
        if manifest is None:
            return self._miss("manifest missing or unreadable")

        try:
            vectors_payload = json.loads(self.vectors_path.read_text(encoding="utf-8"))
            documents_payload = json.loads(self.documents_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as error:
            return self._miss(f"artifacts unreadable: {error}")

        if not isinstance(vectors_payload, list) or not isinstance(documents_payload, list):
            return self._miss("artifacts are not lists")
        if len(vectors_payload) != manifest.total_vectors or len(documents_payload) != manifest.total_documents:
            return self._miss("artifact counts do not match the manifest")
        if len(vectors_payload) != len(documents_payload):
            return self._miss("vector and document counts differ")

        try:
            units = [
                DocumentUnit(content=str(item["content"]), metadata=DocumentMetadata.from_dict(item["metadata"]))
                for item in vectors_payload
            ]
            embeddings = [[float(value) for value in item["embedding"]] for item in vectors_payload]
        except (KeyError, TypeError, ValueError) as error:
            return self._miss(f"vector entries malformed: {error}")

        if embedding_provider is not None:
            if (embedding_provider.name, embedding_provider.model) != (
                manifest.embedding_provider,
                manifest.embedding_model,
            ):
                return self._miss(
                    f"cache built with {manifest.embedding_provider}/{manifest.embedding_model}, "
                    f"requested {embedding_provider.name}/{embedding_provider.model}"
                )
            provider = embedding_provider
        else:
            try:
                provider = create_embedding_provider(
                    manifest.embedding_provider, manifest.embedding_model, **self.provider_options
                )
            except ProviderError as error:
                return self._miss(f"cannot construct embedding provider: {error}")

        index = VectorIndex(
            provider_name=manifest.embedding_provider,
            model=manifest.embedding_model,
            dimension=manifest.embedding_dimension,
        )
        try:
            index.insert(units, embeddings)
        except ValueError as error:
            return self._miss(f"vectors inconsistent: {error}")

        emit_cache_event("cache.load", cache_dir=str(self.cache_dir), vectors=len(index), documents=len(units))
        LOGGER.info("Vector cache restored: %s vectors (%s)", len(index), manifest.embedding_provider)
        return RestoredCache(index=index, manifest=manifest, embedding_provider=provider)

    def load_documents(self) -> Optional[List[DocumentUnit]]:
        """Return the cached document units without their embeddings."""

        try:
            payload = json.loads(self.documents_path.read_text(encoding="utf-8"))
            return [
                DocumentUnit(content=str(item["pageContent"]), metadata=DocumentMetadata.from_dict(item["metadata"]))
                for item in payload
            ]
        except (OSError, ValueError, KeyError, TypeError) as error:
            LOGGER.info("Cached documents unavailable: %s", error)
            return None

    def _miss(self, reason: str) -> None:
        emit_cache_event("cache.load", cache_dir=str(self.cache_dir), reason=reason)
        LOGGER.info("Vector cache miss: %s", reason)
        return None

    # --------------------------------------------------------------- housekeeping
    def clear(self) -> int:
        """Delete the cache artifacts; returns how many files were removed."""

        removed = 0
        for path in (self.metadata_path, self.vectors_path, self.documents_path):
            try:
                path.unlink()
                removed += 1
            except FileNotFoundError:
                continue
            except OSError as error:
                raise PersistenceError(f"Unable to delete {path}: {error}", cause=error) from error
        LOGGER.info("Vector cache cleared: %s files removed", removed)
        return removed

    def cache_info(self) -> Dict[str, Any]:
        files = {name: path.exists() for name, path in self.artifact_paths.items()}
        sizes = {name: path.stat().st_size if files[name] else 0 for name, path in self.artifact_paths.items()}
        manifest = self.load_manifest()
        return {
            "cacheDir": str(self.cache_dir),
            "exists": manifest is not None,
            "complete": all(files.values()) and manifest is not None,
            "files": files,
            "sizes": sizes,
            "metadata": manifest.to_dict() if manifest is not None else None,
        }
