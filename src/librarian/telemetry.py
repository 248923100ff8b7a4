"""Centralised observability helpers for structured lifecycle logging."""

from __future__ import annotations

import logging
import time
import traceback
from contextlib import contextmanager
from typing import Any, Iterable, Iterator, Optional, Protocol

LOGGER = logging.getLogger("librarian.telemetry")


def _format_exception(error: BaseException) -> str:
    return "".join(traceback.format_exception(error.__class__, error, error.__traceback__))


def log_event(
    logger: Optional[logging.Logger],
    step: str,
    *,
    level: str = "info",
    duration_ms: float | None = None,
    exc: BaseException | str | None = None,
    details: dict[str, Any] | None = None,
    **payload: Any,
) -> None:
    """Emit a structured log event with the agreed-upon schema."""

    logger = logger or LOGGER
    event: dict[str, Any] = {"step": step, "module": logger.name}
    if duration_ms is not None:
        event["duration_ms"] = round(duration_ms, 3)
    if details is not None:
        event["details"] = details
    event.update(payload)

    exc_info = None
    if exc is not None:
        if isinstance(exc, BaseException):
            event["exc"] = _format_exception(exc)
            exc_info = (exc.__class__, exc, exc.__traceback__)
        else:
            event["exc"] = str(exc)

    log_method = getattr(logger, level.lower(), logger.info)
    log_method(event, exc_info=exc_info)


def emit_embeddings_event(
    *, provider: str, model: str, count: int, duration_ms: float, errors: list[str] | None = None
) -> None:
    details = {
        "provider": provider,
        "model": model,
        "count": count,
        "duration_ms": round(duration_ms, 3),
        "errors": errors or [],
        "per_item_ms": round(duration_ms / count, 3) if count else None,
    }
    level = "warning" if errors else "info"
    log_event(LOGGER, "embeddings.compute", level=level, details=details)


def emit_cache_event(
    step: str,
    *,
    cache_dir: str,
    vectors: int | None = None,
    documents: int | None = None,
    reason: str | None = None,
    error: BaseException | None = None,
) -> None:
    details = {
        "cache_dir": cache_dir,
        "vectors": vectors,
        "documents": documents,
        "reason": reason,
    }
    level = "error" if error else "info"
    log_event(LOGGER, step, level=level, details=details, exc=error)


def emit_retriever_event(
    *,
    query: str,
    strategy: str,
    k_vec: int,
    k_lex: int,
    results: list[dict[str, Any]],
    duration_ms: float,
) -> None:
    details = {
        "query_preview": query[:120],
        "strategy": strategy,
        "k_vec": k_vec,
        "k_lex": k_lex,
        "results": results,
    }
    log_event(LOGGER, "retriever.search", duration_ms=duration_ms, details=details)


def emit_prompt_event(*, language: str, sources: Iterable[str], context_chars: int) -> None:
    details = {
        "language": language,
        "sources": list(sources),
        "context_chars": context_chars,
    }
    log_event(LOGGER, "prompt.compose", details=details)


def emit_ingest_event(
    step: str,
    *,
    file_name: str,
    size_bytes: int | None = None,
    duration_ms: float | None = None,
    document_type: str | None = None,
    language: str | None = None,
    units: int | None = None,
    failed_batches: int | None = None,
    error: BaseException | None = None,
) -> None:
    details = {
        "file": file_name,
        "size_bytes": size_bytes,
        "document_type": document_type,
        "language": language,
        "units": units,
        "failed_batches": failed_batches,
    }
    level = "warning" if error else "info"
    log_event(
        LOGGER,
        step,
        level=level,
        duration_ms=duration_ms,
        details=details,
        exc=str(error) if error is not None else None,
    )


@contextmanager
def traced_duration(step: str, *, logger: Optional[logging.Logger] = None, **fields: Any) -> Iterator[None]:
    start = time.perf_counter()
    log_event(logger or LOGGER, f"{step}.start", details=fields)
    try:
        yield
    except Exception as error:
        log_event(logger or LOGGER, f"{step}.error", level="error", details=fields, exc=error)
        raise
    finally:
        end = time.perf_counter()
        log_event(
            logger or LOGGER,
            f"{step}.complete",
            duration_ms=(end - start) * 1000.0,
            details=fields,
        )


class InteractionLogger(Protocol):
    """Caller-supplied observer of retrievals and answers."""

    def log_retrieval(self, query: str, results: list[dict[str, Any]], meta: dict[str, Any]) -> None: ...

    def log_chat(self, answer: str, context: dict[str, Any]) -> None: ...


def notify(observer: Optional[InteractionLogger], hook: str, *args: Any) -> None:
    """Call ``observer.<hook>(*args)``; observer failures are logged and ignored."""

    if observer is None:
        return
    callback = getattr(observer, hook, None)
    if callback is None:
        return
    try:
        callback(*args)
    except Exception:
        LOGGER.exception("Interaction logger hook %s failed", hook)


__all__ = [
    "InteractionLogger",
    "emit_cache_event",
    "emit_embeddings_event",
    "emit_ingest_event",
    "emit_prompt_event",
    "emit_retriever_event",
    "log_event",
    "notify",
    "traced_duration",
]
