"""
devrel-gate — unit tests for structured logging

File: tests/unit/observability/test_logging.py

Purpose
- Validate JSON-lines logging with secret redaction, correlation metadata,
  and structlog routing.

What this test file should cover
- Detected secrets never reach a log line, in the message or in fields.
- Sensitive keys are masked while counters and type lists survive.
- Correlation fields are stamped on every record in scope.
- structlog decision logs land in the same JSON-lines sink.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING
from uuid import uuid4

import pytest
import structlog

from devrel_gate.observability.logging import (
    LoggingConfig,
    correlation_scope,
    default_log_redactor,
    get_correlation_context,
    setup_logging,
    setup_structured_logging,
    shutdown_logging,
)

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path

GITHUB_PAT = "ghp_" + "aB3dE5gH7j" * 3 + "kL9mN1"


@pytest.fixture(autouse=True)
def _cleanup_logging() -> Iterator[None]:
    yield
    shutdown_logging()


def _logger_name() -> str:
    return f"devrel_gate.tests.logging.{uuid4().hex}"


def _read_json_lines(path: Path) -> list[dict[str, object]]:
    lines = path.read_text(encoding="utf-8").splitlines()
    return [json.loads(line) for line in lines]


def test_json_logging_redacts_secrets_and_keeps_correlation(tmp_path: Path) -> None:
    logger_name = _logger_name()
    handle = setup_structured_logging(
        LoggingConfig(run_id="run-redaction", base_log_dir=tmp_path, logger_name=logger_name)
    )
    logger = logging.getLogger(logger_name)

    with correlation_scope(document_id="notes-1", request_id="req-9"):
        logger.info(
            f"publishing with {GITHUB_PAT}",
            extra={
                "nested": {"password": "hunter2", "safe": "ok"},
                "secret_count": 2,
                "secret_types": ["GITHUB_PAT"],
            },
        )

    shutdown_logging(handle)

    assert handle.log_path == tmp_path / "run-redaction" / "devrel-gate.jsonl"
    (record,) = _read_json_lines(handle.log_path)
    assert record["run_id"] == "run-redaction"
    assert record["document_id"] == "notes-1"
    assert record["request_id"] == "req-9"
    assert record["message"] == "publishing with [REDACTED: GITHUB_PAT]"
    assert record["fields"] == {
        "nested": {"password": "***REDACTED***", "safe": "ok"},
        "secret_count": 2,
        "secret_types": ["GITHUB_PAT"],
    }

    line = handle.log_path.read_text(encoding="utf-8")
    assert GITHUB_PAT not in line
    assert "hunter2" not in line


def test_correlation_scope_is_reset_on_exit() -> None:
    with correlation_scope(run_id="outer"):
        with correlation_scope(document_id="inner"):
            assert get_correlation_context() == {"run_id": "outer", "document_id": "inner"}
        assert get_correlation_context() == {"run_id": "outer"}
    assert get_correlation_context() == {}


def test_structlog_events_are_routed_into_json_sink(tmp_path: Path) -> None:
    logger_name = _logger_name()
    handle = setup_structured_logging(
        LoggingConfig(run_id="run-structlog", base_log_dir=tmp_path, logger_name=logger_name)
    )

    structlog.get_logger(logger_name).warning(
        "secret_scan_completed", secret_count=1, matched_text=GITHUB_PAT
    )
    shutdown_logging(handle)

    (record,) = _read_json_lines(handle.log_path)
    assert record["level"] == "WARNING"
    assert record["message"] == "secret_scan_completed"
    assert record["fields"] == {"secret_count": 1, "matched_text": "***REDACTED***"}


def test_setup_logging_wrapper_uses_observability_mapping(tmp_path: Path) -> None:
    logger_name = _logger_name()
    logger = setup_logging(
        {"log_level": "INFO", "log_dir": str(tmp_path), "redact_secrets": True},
        run_id="run-wrapper",
        logger_name=logger_name,
    )

    logger.info("hello", extra={"token": "t-123"})
    logger.debug("below threshold")
    shutdown_logging()

    files = list((tmp_path / "run-wrapper").glob("*.jsonl"))
    assert files
    parsed = _read_json_lines(files[0])
    assert [item["message"] for item in parsed] == ["hello"]
    assert "t-123" not in files[0].read_text(encoding="utf-8")


def test_default_redactor_scans_nested_strings() -> None:
    redacted = default_log_redactor(
        {
            "notes": [f"token {GITHUB_PAT}", "plain"],
            "authorization": "Bearer abc",
            "critical_count": 1,
        }
    )

    assert redacted == {
        "notes": ["token [REDACTED: GITHUB_PAT]", "plain"],
        "authorization": "***REDACTED***",
        "critical_count": 1,
    }


def test_invalid_logging_config_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(ValueError, match="run_id"):
        setup_structured_logging(LoggingConfig(run_id=" ", base_log_dir=tmp_path))
    with pytest.raises(ValueError, match="log_filename"):
        setup_structured_logging(
            LoggingConfig(run_id="run-x", base_log_dir=tmp_path, log_filename="a/b.jsonl")
        )
    with pytest.raises(ValueError, match="unsupported logging level"):
        setup_structured_logging(
            LoggingConfig(run_id="run-y", base_log_dir=tmp_path, level="LOUD")
        )
