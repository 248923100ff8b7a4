"""Tests for JSON logging and the ingest audit log."""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Iterator

import pytest

from librarian.logging_config import AUDIT_LOGGER_NAME, MinimalJSONFormatter, build_logging_config, configure_logging
from librarian.telemetry import log_event


@pytest.fixture
def restore_logging() -> Iterator[None]:
    root = logging.getLogger()
    audit = logging.getLogger(AUDIT_LOGGER_NAME)
    saved = (list(root.handlers), root.level, list(audit.handlers), audit.level, audit.propagate)
    try:
        yield
    finally:
        for logger in (root, audit):
            for handler in list(logger.handlers):
                logger.removeHandler(handler)
                handler.close()
        root.handlers[:] = saved[0]
        root.setLevel(saved[1])
        audit.handlers[:] = saved[2]
        audit.setLevel(saved[3])
        audit.propagate = saved[4]


def _record(msg, **extra) -> logging.LogRecord:
    record = logging.LogRecord("librarian.test", logging.INFO, __file__, 1, msg, None, None)
    record.__dict__.update(extra)
    return record


def test_formatter_merges_dict_messages_and_extras() -> None:
    payload = json.loads(MinimalJSONFormatter().format(_record({"step": "cache.save", "vectors": 3}, request_id="r1")))

    assert payload["level"] == "INFO"
    assert payload["module"] == "librarian.test"
    assert payload["step"] == "cache.save"
    assert payload["vectors"] == 3
    assert payload["request_id"] == "r1"
    assert payload["ts"].endswith("Z")


def test_formatter_keeps_plain_messages() -> None:
    payload = json.loads(MinimalJSONFormatter().format(_record("Kütüphane açık")))

    assert payload["message"] == "Kütüphane açık"


def test_configure_logging_routes_audit_records_to_file(tmp_path: Path, restore_logging) -> None:
    configure_logging(level="DEBUG", log_dir=tmp_path / "logs")

    logging.getLogger(AUDIT_LOGGER_NAME).info({"event": "ingest", "path": "hours.txt", "status": "indexed"})
    for handler in logging.getLogger(AUDIT_LOGGER_NAME).handlers:
        handler.flush()

    lines = (tmp_path / "logs" / "ingest_audit.log").read_text(encoding="utf-8").splitlines()
    entry = json.loads(lines[-1])
    assert entry["event"] == "ingest"
    assert entry["status"] == "indexed"
    assert logging.getLogger(AUDIT_LOGGER_NAME).propagate is False


def test_log_event_emits_structured_payload(caplog) -> None:
    logger = logging.getLogger("librarian.test.events")

    with caplog.at_level(logging.INFO, logger="librarian.test.events"):
        log_event(logger, "retriever.search", duration_ms=1.23456, details={"k_vec": 3})

    event = caplog.records[-1].msg
    assert event == {"step": "retriever.search", "module": "librarian.test.events", "duration_ms": 1.235, "details": {"k_vec": 3}}


def test_configure_logging_reads_environment_defaults(tmp_path: Path, monkeypatch, restore_logging) -> None:
    monkeypatch.setenv("LIBRARIAN_LOG_LEVEL", "debug")
    monkeypatch.setenv("LIBRARIAN_LOG_DIR", str(tmp_path / "env-logs"))

    configure_logging()

    assert logging.getLogger().level == logging.DEBUG
    assert (tmp_path / "env-logs" / "ingest_audit.log").exists()


def test_build_logging_config_keeps_audit_lines_off_stderr(tmp_path: Path) -> None:
    config = build_logging_config("warning", tmp_path)

    assert config["root"] == {"level": "WARNING", "handlers": ["stderr"]}
    assert config["loggers"][AUDIT_LOGGER_NAME]["propagate"] is False
    assert config["handlers"]["ingest_audit"]["filename"] == str(tmp_path / "ingest_audit.log")
