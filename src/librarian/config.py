"""Configuration for the document index and its retrieval tool."""
from __future__ import annotations

import os
from pathlib import Path
from typing import Any, List, Literal, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

ENV_PREFIX = "LIBRARIAN_"


class RetrievalToolConfig(BaseModel):
    """Validated settings; accepts both ``k_vec`` and ``kVec`` style keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    k_vec: int = Field(default=3, ge=0)
    k_lex: int = Field(default=3, ge=0)
    min_score: float = 0.1
    search_type: Literal["similarity", "mmr"] = "similarity"

    embedding_provider: str = "sentence-transformers"
    embedding_model: Optional[str] = None
    chat_provider: str = "mock"
    chat_model: Optional[str] = None
    request_timeout: float = Field(default=60.0, gt=0)

    use_cache: bool = True
    cache_dir: Path = Path("vector_cache")
    data_dir: Path = Path("data")
    source_files: Optional[List[Path]] = None

    chunk_size: int = Field(default=1000, ge=1)
    chunk_overlap: int = Field(default=300, ge=0)
    batch_size: int = Field(default=25, ge=1)
    batch_pause_seconds: float = Field(default=1.0, ge=0.0)

    vector_weight: float = Field(default=0.6, ge=0.0)
    lexical_weight: float = Field(default=0.4, ge=0.0)
    fallback_k: int = Field(default=10, ge=1)

    @model_validator(mode="after")
    def _check_chunking(self) -> "RetrievalToolConfig":
        if self.chunk_overlap >= self.chunk_size:
            raise ValueError("chunk_overlap must be smaller than chunk_size")
        return self

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides: Any) -> "RetrievalToolConfig":
        """Build a config from ``LIBRARIAN_*`` variables, e.g. ``LIBRARIAN_K_VEC=5``.

        ``LIBRARIAN_SOURCE_FILES`` is a list separated by ``os.pathsep`` or
        commas. Keyword ``overrides`` win over the environment.
        """

        environ = os.environ if environ is None else environ
        values: dict[str, Any] = {}
        for name in cls.model_fields:
            raw = environ.get(f"{ENV_PREFIX}{name.upper()}")
            if raw is None or raw == "":
                continue
            if name == "source_files":
                values[name] = [item.strip() for item in raw.replace(os.pathsep, ",").split(",") if item.strip()]
            else:
                values[name] = raw
        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls.model_validate(values)

    def provider_options(self) -> dict[str, Any]:
        return {"request_timeout": self.request_timeout}
