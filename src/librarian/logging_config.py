"""JSON logging for the librarian CLI and services.

Every record becomes one JSON object on stderr. Ingestion additionally keeps
an audit trail: the ``librarian.ingest.audit`` logger writes one line per
processed source file to ``<log_dir>/ingest_audit.log`` and does not
propagate, so the audit lines never reach stderr.
"""

from __future__ import annotations

import json
import logging
import logging.config
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

AUDIT_LOGGER_NAME = "librarian.ingest.audit"
AUDIT_LOG_FILE = "ingest_audit.log"
LEVEL_ENV = "LIBRARIAN_LOG_LEVEL"
LOG_DIR_ENV = "LIBRARIAN_LOG_DIR"

# Attributes every LogRecord carries; anything else on a record came from ``extra=``.
_STANDARD_ATTRIBUTES = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


class MinimalJSONFormatter(logging.Formatter):
    """Render a record as ``{"ts", "level", "module", ...}``.

    A dict message (as produced by :func:`librarian.telemetry.log_event`) is
    merged into the top level; any other message lands under ``message``.
    """

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401 - inherited
        payload: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "module": record.name,
        }

        if isinstance(record.msg, dict):
            payload.update(record.msg)
        else:
            message = record.getMessage()
            if message:
                payload["message"] = message

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        payload.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _STANDARD_ATTRIBUTES and not key.startswith("_")
        )
        return json.dumps(payload, ensure_ascii=False, default=str)


def build_logging_config(level: str, log_dir: Path) -> Dict[str, Any]:
    """``dictConfig`` schema with a stderr handler and the audit file handler."""

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"json": {"()": MinimalJSONFormatter}},
        "handlers": {
            "stderr": {"class": "logging.StreamHandler", "formatter": "json"},
            "ingest_audit": {
                "class": "logging.FileHandler",
                "filename": str(log_dir / AUDIT_LOG_FILE),
                "mode": "a",
                "encoding": "utf-8",
                "formatter": "json",
            },
        },
        "root": {"level": level.upper(), "handlers": ["stderr"]},
        "loggers": {
            AUDIT_LOGGER_NAME: {"level": "INFO", "handlers": ["ingest_audit"], "propagate": False},
        },
    }


def configure_logging(level: Optional[str] = None, log_dir: Optional[str | Path] = None) -> None:
    """Install JSON logging; unset arguments come from ``LIBRARIAN_LOG_*``."""

    resolved_level = level or os.getenv(LEVEL_ENV, "INFO")
    log_path = Path(log_dir or os.getenv(LOG_DIR_ENV, "logs"))
    log_path.mkdir(parents=True, exist_ok=True)
    logging.config.dictConfig(build_logging_config(resolved_level, log_path))
