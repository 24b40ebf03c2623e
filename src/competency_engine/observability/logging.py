"""
competency-engine - structured logging

File: src/competency_engine/observability/logging.py

Purpose
- Route structlog events through stdlib logging into one JSON-lines file per
  CLI session, with an optional text or JSON copy on stderr.

What should be included in this file
- ``configure_structlog``: structlog -> stdlib with context variables merged.
- ``setup_logging``: read the ``[observability]`` section and start a session.
- ``shutdown_logging``: drain the queue and close the sinks.
- ``mask_email`` and ``redact``: the masking applied to every record.

Functional requirements
- Email addresses keep their first character and domain; ``token=`` query
  values and values under credential-like keys are replaced.
- ``redact_secrets = false`` writes records unmasked.

Non-functional requirements
- Callers never block on file I/O: records go through a bounded queue and are
  counted, not waited for, when it is full.
"""

from __future__ import annotations

import json
import logging
import logging.handlers
import queue
import re
import threading
from collections.abc import Mapping
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Final

import structlog

LOG_FILENAME: Final[str] = "competency.jsonl"
DEFAULT_LOGGER_NAME: Final[str] = "competency_engine"
DEFAULT_LOG_DIR: Final[str] = ".competency/logs"
REDACTED: Final[str] = "***REDACTED***"

_CREDENTIAL_KEYS: Final[tuple[str, ...]] = (
    "secret",
    "token",
    "password",
    "magic_link",
    "signature",
    "authorization",
)
_EMAIL_RE: Final[re.Pattern[str]] = re.compile(
    r"\b([A-Za-z0-9._%+-])[A-Za-z0-9._%+-]*@([A-Za-z0-9.-]+\.[A-Za-z]{2,})\b"
)
_TOKEN_RE: Final[re.Pattern[str]] = re.compile(r"(?i)([?&]token=)[^\s&]+")
# Attributes every LogRecord carries; anything else arrived through ``extra``.
_RECORD_ATTRS: Final[frozenset[str]] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", None, None)).keys() | {"message", "asctime"}
)

_active: LoggingSession | None = None
_active_lock = threading.Lock()


def configure_structlog() -> None:
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.processors.format_exc_info,
            structlog.stdlib.render_to_log_kwargs,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


def mask_email(text: str) -> str:
    return _EMAIL_RE.sub(lambda match: f"{match.group(1)}***@{match.group(2)}", text)


def redact(value: Any, key: str | None = None) -> Any:
    """Mask contacts and tokens in strings, recursively; blank credential-like keys."""
    if key is not None and value not in (None, "") and any(
        term in key.lower() for term in _CREDENTIAL_KEYS
    ):
        return REDACTED
    if isinstance(value, str):
        return _TOKEN_RE.sub(rf"\g<1>{REDACTED}", mask_email(value))
    if isinstance(value, Mapping):
        return {str(name): redact(item, str(name)) for name, item in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [redact(item) for item in value]
    return value


class _SessionFormatter(logging.Formatter):
    """One JSON object per record, or ``time LEVEL logger event key=value`` text."""

    def __init__(self, session_id: str, *, masked: bool, text: bool = False) -> None:
        super().__init__()
        self._session_id = session_id
        self._masked = masked
        self._text = text

    def format(self, record: logging.LogRecord) -> str:
        message = record.getMessage()
        fields = {
            name: value
            for name, value in vars(record).items()
            if name not in _RECORD_ATTRS and not name.startswith("_")
        }
        if record.exc_info is not None:
            message = f"{message}\n{self.formatException(record.exc_info)}"
        if self._masked:
            message = redact(message)
            fields = redact(fields)
        timestamp = (
            datetime.fromtimestamp(record.created, tz=UTC)
            .isoformat(timespec="milliseconds")
            .replace("+00:00", "Z")
        )
        if self._text:
            pairs = "".join(
                f" {name}={json.dumps(value, ensure_ascii=False, default=str)}"
                for name, value in sorted(fields.items())
            )
            return f"{timestamp} {record.levelname:<7} {record.name} {message}{pairs}"
        line: dict[str, Any] = {
            "timestamp": timestamp,
            "level": record.levelname,
            "logger": record.name,
            "session_id": self._session_id,
            "event": message,
        }
        if fields:
            line["fields"] = fields
        return json.dumps(line, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


class _DroppingQueueHandler(logging.handlers.QueueHandler):
    def __init__(self, records: queue.Queue[logging.LogRecord], session: LoggingSession) -> None:
        super().__init__(records)
        self._session = session

    def prepare(self, record: logging.LogRecord) -> logging.LogRecord:
        # Keep ``extra`` attributes for the formatter; only freeze the message.
        record.msg = record.getMessage()
        record.args = None
        return record

    def enqueue(self, record: logging.LogRecord) -> None:
        try:
            self.queue.put_nowait(record)
        except queue.Full:
            self._session.dropped_records += 1


class LoggingSession:
    """Sinks and queue listener for one session; ``shutdown`` is idempotent."""

    def __init__(
        self, logger: logging.Logger, session_id: str, log_path: Path, queue_size: int
    ) -> None:
        self.logger = logger
        self.session_id = session_id
        self.log_path = log_path
        self.dropped_records = 0
        self.is_shutdown = False
        self._records: queue.Queue[logging.LogRecord] = queue.Queue(maxsize=queue_size)
        self._handler = _DroppingQueueHandler(self._records, self)
        self._sinks: list[logging.Handler] = []
        self._listener: logging.handlers.QueueListener | None = None

    def start(self, sinks: list[logging.Handler]) -> None:
        self._sinks = sinks
        self._listener = logging.handlers.QueueListener(
            self._records, *sinks, respect_handler_level=True
        )
        self._listener.start()
        self.logger.addHandler(self._handler)

    def shutdown(self) -> None:
        if self.is_shutdown:
            return
        self.is_shutdown = True
        self.logger.removeHandler(self._handler)
        if self._listener is not None:
            # stop() enqueues a sentinel and joins after everything ahead of it is handled.
            self._listener.stop()
        for sink in self._sinks:
            sink.close()


def setup_logging(
    observability: Mapping[str, object] | None = None,
    *,
    session_id: str,
    log_to_stderr: bool = False,
    logger_name: str = DEFAULT_LOGGER_NAME,
    queue_size: int = 4096,
) -> LoggingSession:
    """Start a session from ``[observability]`` (``log_level``, ``log_format``, ``log_dir``, ``redact_secrets``)."""
    settings = dict(observability or {})
    if not isinstance(session_id, str) or not session_id.strip():
        raise ValueError("session_id must not be empty")
    if isinstance(queue_size, bool) or not isinstance(queue_size, int) or queue_size <= 0:
        raise ValueError("queue_size must be > 0")
    level = logging.getLevelName(str(settings.get("log_level", "INFO")).strip().upper())
    if not isinstance(level, int):
        raise ValueError(f"unsupported logging level {settings.get('log_level')!r}")
    masked = bool(settings.get("redact_secrets", True))
    text = settings.get("log_format", "json") == "text"

    shutdown_logging()
    session_id = session_id.strip()
    log_path = Path(str(settings.get("log_dir") or DEFAULT_LOG_DIR)) / session_id / LOG_FILENAME
    log_path.parent.mkdir(parents=True, exist_ok=True)

    file_sink = logging.FileHandler(log_path, encoding="utf-8")
    file_sink.setFormatter(_SessionFormatter(session_id, masked=masked))
    sinks: list[logging.Handler] = [file_sink]
    if log_to_stderr:
        stderr_sink = logging.StreamHandler()
        stderr_sink.setFormatter(_SessionFormatter(session_id, masked=masked, text=text))
        sinks.append(stderr_sink)

    logger = logging.getLogger(logger_name)
    logger.setLevel(level)
    logger.propagate = False
    for stale in list(logger.handlers):
        logger.removeHandler(stale)
        stale.close()

    session = LoggingSession(logger, session_id, log_path, queue_size)
    session.start(sinks)
    configure_structlog()

    global _active
    with _active_lock:
        _active = session
    return session


def shutdown_logging(session: LoggingSession | None = None) -> None:
    """Stop ``session``, or the active one when omitted."""
    global _active
    with _active_lock:
        target = session if session is not None else _active
        if target is _active:
            _active = None
    if target is not None:
        target.shutdown()


def active_session() -> LoggingSession | None:
    with _active_lock:
        return _active


__all__ = [
    "DEFAULT_LOGGER_NAME",
    "LOG_FILENAME",
    "REDACTED",
    "LoggingSession",
    "active_session",
    "configure_structlog",
    "mask_email",
    "redact",
    "setup_logging",
    "shutdown_logging",
]
