"""
competency-engine - unit tests for structured logging

File: tests/unit/observability/test_structured_logging.py

Purpose
- Validate JSON-lines logging with redaction, correlation metadata, and queue-backed delivery.

What this test file should cover
- Assessor emails and magic-link tokens never reach the log file in clear.
- Context variables bound through structlog land on every event.
- Multi-threaded logging stays line-valid; shutdown drains the queue.

Non-functional requirements
- Deterministic and offline.
"""

from __future__ import annotations

import json
import logging
import logging.handlers
import threading
from typing import TYPE_CHECKING
from uuid import uuid4

import pytest
import structlog

from competency_engine.observability.logging import (
    active_session,
    mask_email,
    redact,
    setup_logging,
    shutdown_logging,
)

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path

pytestmark = pytest.mark.unit


@pytest.fixture(autouse=True)
def _cleanup_logging() -> Iterator[None]:
    yield
    shutdown_logging()


def _logger_name() -> str:
    return f"competency_engine.tests.logging.{uuid4().hex}"


def _read_json_lines(path: Path) -> list[dict[str, object]]:
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]


def _session(tmp_path: Path, session_id: str, **settings: object):
    return setup_logging(
        {"log_dir": str(tmp_path), **settings},
        session_id=session_id,
        logger_name=_logger_name(),
    )


def test_json_lines_redact_contacts_and_carry_context(tmp_path: Path) -> None:
    session = _session(tmp_path, "session-redaction")
    log = structlog.get_logger(session.logger.name)

    with structlog.contextvars.bound_contextvars(form_id="frm-123", actor="Trainee"):
        log.info(
            "magic link sent to approver@example.org: https://portfolio.example?token=abc123",
            signature="gmc:7654321",
            delivery={"magic_link": "https://portfolio.example?token=abc123", "attempt": 1},
        )

    shutdown_logging(session)

    (record,) = _read_json_lines(session.log_path)
    assert record["session_id"] == "session-redaction"
    assert record["level"] == "INFO"
    assert record["logger"] == session.logger.name
    assert record["fields"]["form_id"] == "frm-123"
    assert record["fields"]["actor"] == "Trainee"
    assert record["fields"]["signature"] == "***REDACTED***"
    assert record["fields"]["delivery"] == {"magic_link": "***REDACTED***", "attempt": 1}
    assert record["event"] == (
        "magic link sent to a***@example.org: https://portfolio.example?token=***REDACTED***"
    )

    line = session.log_path.read_text(encoding="utf-8")
    assert "approver@" not in line
    assert "abc123" not in line


def test_log_file_is_scoped_to_the_session(tmp_path: Path) -> None:
    session = _session(tmp_path, "s-1")

    assert session.log_path == tmp_path / "s-1" / "competency.jsonl"
    assert active_session() is session
    shutdown_logging()
    assert session.is_shutdown
    assert active_session() is None


def test_a_new_session_replaces_the_active_one(tmp_path: Path) -> None:
    first = _session(tmp_path, "s-1")
    second = _session(tmp_path, "s-2")

    assert first.is_shutdown
    assert active_session() is second


def test_level_threshold_and_masked_extras(tmp_path: Path) -> None:
    session = _session(tmp_path, "session-wrapper", log_level="WARNING", redact_secrets=True)

    session.logger.info("below threshold")
    session.logger.warning("kept", extra={"token": "t-123"})
    shutdown_logging(session)

    content = session.log_path.read_text(encoding="utf-8")
    assert "below threshold" not in content
    assert "kept" in content
    assert "t-123" not in content


def test_redaction_can_be_disabled(tmp_path: Path) -> None:
    session = _session(tmp_path, "session-plain", redact_secrets=False)

    session.logger.info("sent", extra={"token": "t-123"})
    shutdown_logging(session)

    (record,) = _read_json_lines(session.log_path)
    assert record["fields"] == {"token": "t-123"}


def test_text_format_on_stderr(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    session = setup_logging(
        {"log_dir": str(tmp_path), "log_format": "text"},
        session_id="session-text",
        log_to_stderr=True,
        logger_name=_logger_name(),
    )

    session.logger.info("form saved", extra={"form_id": "frm-1"})
    shutdown_logging(session)

    err = capsys.readouterr().err
    assert "INFO" in err
    assert 'form saved form_id="frm-1"' in err


@pytest.mark.parametrize(
    ("kwargs", "message"),
    [
        ({"session_id": "  "}, "session_id must not be empty"),
        ({"session_id": "s", "queue_size": 0}, "queue_size"),
        ({"session_id": "s", "observability": {"log_level": "LOUD"}}, "unsupported logging level"),
    ],
)
def test_invalid_logging_settings(kwargs: dict[str, object], message: str) -> None:
    with pytest.raises(ValueError, match=message):
        setup_logging(**kwargs)  # type: ignore[arg-type]


def test_redactor_helpers() -> None:
    assert mask_email("contact ada.lovelace@nhs.net now") == "contact a***@nhs.net now"
    assert redact({"password": "", "nested": [{"secret": "x"}]}) == {
        "password": "",
        "nested": [{"secret": "***REDACTED***"}],
    }


def test_multithreaded_logging_produces_valid_json_lines(tmp_path: Path) -> None:
    session = _session(tmp_path, "session-threaded")
    logger = session.logger

    total_threads = 8
    per_thread = 40

    def worker(thread_idx: int) -> None:
        for i in range(per_thread):
            logger.info(
                f"thread={thread_idx} index={i} https://x?token=tok-{thread_idx}-{i}",
                extra={"magic_link": f"tok-{thread_idx}-{i}"},
            )

    threads = [threading.Thread(target=worker, args=(idx,)) for idx in range(total_threads)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    shutdown_logging(session)

    lines = session.log_path.read_text(encoding="utf-8").splitlines()
    assert len(lines) == total_threads * per_thread
    for line in lines:
        assert isinstance(json.loads(line), dict)
        assert "tok-" not in line


def test_queue_handler_is_non_blocking_and_shutdown_flushes(tmp_path: Path) -> None:
    session = setup_logging(
        {"log_dir": str(tmp_path)},
        session_id="session-flush",
        logger_name=_logger_name(),
        queue_size=10_000,
    )
    logger = logging.getLogger(session.logger.name)

    queue_handlers = [h for h in logger.handlers if isinstance(h, logging.handlers.QueueHandler)]
    assert queue_handlers, "expected queue-backed non-blocking logging"

    expected = 300
    for i in range(expected):
        logger.info("message %s", i)

    shutdown_logging(session)

    lines = session.log_path.read_text(encoding="utf-8").splitlines()
    assert session.dropped_records == 0
    assert len(lines) == expected
