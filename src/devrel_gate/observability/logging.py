"""Structured logging with JSON-lines output and secret-aware redaction.

Both plain ``logging`` records and ``structlog`` decision logs are rendered by
one :class:`structlog.stdlib.ProcessorFormatter` chain. The chain runs on the
emitting thread (inside the queue handler), so correlation fields bound with
:func:`correlation_scope` are still visible, and the already-rendered line is
handed to a background listener that writes it to disk.

Every message, field and exception text passes through the redactor, which
runs the secret scanner over strings and masks values stored under sensitive
keys. A log line therefore never carries a detected secret.
"""

from __future__ import annotations

import atexit
import json
import logging
import logging.handlers
import math
import queue
import sys
import threading
import time
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Final

import structlog

from devrel_gate.domain.models import JSONValue
from devrel_gate.security.secret_scanner import SecretScanner, SecretScannerConfig

LogRedactor = Callable[[JSONValue], JSONValue]

MASK: Final[str] = "***REDACTED***"
DEFAULT_LOG_FILENAME: Final[str] = "devrel-gate.jsonl"
DEFAULT_LOGGER_NAME: Final[str] = "devrel_gate"

# Keys lifted to the top level of a line instead of nesting under "fields".
_CORRELATION_KEYS: Final[frozenset[str]] = frozenset(
    {"run_id", "correlation_id", "request_id", "document_id", "event_id", "command"}
)
_SENSITIVE_FRAGMENTS: Final[tuple[str, ...]] = (
    "secret",
    "token",
    "password",
    "passphrase",
    "api_key",
    "apikey",
    "authorization",
    "credential",
    "cookie",
    "private_key",
    "matched_text",
)
_AGGREGATE_SUFFIXES: Final[tuple[str, ...]] = ("_count", "_types")
_INTERNAL_KEYS: Final[frozenset[str]] = frozenset(
    {"_record", "_from_structlog", "exc_info", "stack_info"}
)

# The scanner used for redaction must not log through the pipeline it protects.
_scanner: Final[SecretScanner] = SecretScanner(
    SecretScannerConfig(context_chars=0), logger=structlog.ReturnLogger()
)

_active_lock = threading.Lock()
_active: StructuredLoggingHandle | None = None
_atexit_hooked = False


# --------------------------------------------------------------------------
# Redaction
# --------------------------------------------------------------------------


def _is_sensitive_key(key: str) -> bool:
    lowered = key.lower()
    if lowered.endswith(_AGGREGATE_SUFFIXES):
        return False
    return any(fragment in lowered for fragment in _SENSITIVE_FRAGMENTS)


def default_log_redactor(value: JSONValue) -> JSONValue:
    """Replace detected secrets with scanner markers and mask sensitive keys, recursively."""
    if isinstance(value, str):
        return _scanner.scan(value).redacted_text
    if isinstance(value, list):
        return [default_log_redactor(item) for item in value]
    if isinstance(value, dict):
        return {
            key: MASK if _is_sensitive_key(key) else default_log_redactor(item)
            for key, item in value.items()
        }
    return value


def _no_redaction(value: JSONValue) -> JSONValue:
    return value


def _jsonable(value: object) -> JSONValue:
    """Coerce arbitrary log payloads into JSON-compatible values."""
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else MASK
    if isinstance(value, datetime):
        aware = value if value.tzinfo is not None else value.replace(tzinfo=UTC)
        return aware.astimezone(UTC).isoformat().replace("+00:00", "Z")
    if isinstance(value, Path):
        return value.as_posix()
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if isinstance(value, Mapping):
        return {str(key): _jsonable(item) for key, item in value.items()}
    if isinstance(value, (set, frozenset)):
        return sorted((_jsonable(item) for item in value), key=json.dumps)
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    return repr(value)


def _chain(redactor: LogRedactor | None) -> LogRedactor:
    """User redactors run first; the built-in one always runs after them."""
    if redactor is None:
        return default_log_redactor
    if redactor is _no_redaction:
        return redactor

    def combined(value: JSONValue) -> JSONValue:
        return default_log_redactor(_jsonable(redactor(value)))

    return combined


# --------------------------------------------------------------------------
# Correlation
# --------------------------------------------------------------------------


def get_correlation_context() -> dict[str, str]:
    return {key: str(value) for key, value in structlog.contextvars.get_contextvars().items()}


@contextmanager
def correlation_scope(**fields: str | None) -> Iterator[None]:
    """Bind correlation fields for every log line emitted inside the block.

    ``None`` values are skipped; blank strings are rejected.
    """
    bound: dict[str, str] = {}
    for key, value in fields.items():
        if value is None:
            continue
        if not isinstance(value, str) or not value.strip():
            raise ValueError(f"correlation value for {key!r} must be a non-empty string")
        bound[key] = value.strip()
    with structlog.contextvars.bound_contextvars(**bound):
        yield


# --------------------------------------------------------------------------
# Line rendering
# --------------------------------------------------------------------------


class _LineShaper:
    """Final structlog processor: builds the canonical line layout.

    ``{timestamp, level, logger, message, <correlation keys>, fields, exception}``
    """

    def __init__(self, *, run_id: str, redactor: LogRedactor) -> None:
        self._run_id = run_id
        self._redact = redactor

    def _text(self, value: object) -> str:
        redacted = self._redact(_jsonable(value))
        if isinstance(redacted, str):
            return redacted
        return json.dumps(redacted, sort_keys=True, ensure_ascii=False)

    def __call__(
        self, logger: object, method_name: str, event_dict: dict[str, Any]
    ) -> dict[str, Any]:
        record: logging.LogRecord = event_dict["_record"]
        created = datetime.fromtimestamp(record.created, tz=UTC)
        line: dict[str, Any] = {
            "timestamp": created.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": self._text(event_dict.get("event", "")),
            "run_id": self._run_id,
        }
        line.update(get_correlation_context())

        extras: dict[str, object] = {}
        for key, value in event_dict.items():
            if key in _INTERNAL_KEYS or key == "event":
                continue
            if key == "exception":
                line["exception"] = self._text(value)
            elif key in _CORRELATION_KEYS and isinstance(value, str) and value.strip():
                line[key] = value.strip()
            elif not key.startswith("_"):
                extras[key] = value
        if extras:
            line["fields"] = self._redact(_jsonable(extras))
        return line


def _file_formatter(
    *, run_id: str, redactor: LogRedactor
) -> structlog.stdlib.ProcessorFormatter:
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=[structlog.stdlib.ExtraAdder()],
        processors=[
            structlog.processors.format_exc_info,
            _LineShaper(run_id=run_id, redactor=redactor),
            structlog.processors.JSONRenderer(
                sort_keys=True, separators=(",", ":"), ensure_ascii=False
            ),
        ],
    )


def _redact_event(
    logger: object, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    redacted = default_log_redactor(_jsonable(event_dict))
    return redacted if isinstance(redacted, dict) else event_dict


# --------------------------------------------------------------------------
# Queue-backed sink
# --------------------------------------------------------------------------


class _DroppingQueueHandler(logging.handlers.QueueHandler):
    """Renders on the caller's thread and never blocks when the queue is full."""

    def __init__(self, log_queue: queue.Queue[Any]) -> None:
        super().__init__(log_queue)
        self._drop_lock = threading.Lock()
        self.dropped = 0

    def enqueue(self, record: logging.LogRecord) -> None:
        try:
            self.queue.put_nowait(record)
        except queue.Full:
            with self._drop_lock:
                self.dropped += 1


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    run_id: str
    base_log_dir: Path | str = Path("logs")
    logger_name: str = DEFAULT_LOGGER_NAME
    level: int | str = "INFO"
    queue_size: int = 4096
    log_filename: str = DEFAULT_LOG_FILENAME
    log_to_stdout: bool = False
    rotating_file: bool = False
    max_bytes: int = 10_000_000
    backup_count: int = 5
    route_structlog: bool = True
    redactor: LogRedactor | None = None


@dataclass(slots=True)
class StructuredLoggingHandle:
    """A running JSON-lines sink for one CLI run."""

    logger: logging.Logger
    run_id: str
    log_path: Path
    _queue: queue.Queue[Any]
    _handler: _DroppingQueueHandler
    _listener: logging.handlers.QueueListener
    _sinks: tuple[logging.Handler, ...]
    _routes_structlog: bool
    _closed: bool = field(default=False)
    _close_lock: threading.Lock = field(default_factory=threading.Lock)

    @property
    def dropped_records(self) -> int:
        return self._handler.dropped

    @property
    def is_shutdown(self) -> bool:
        return self._closed

    def flush(self, *, timeout_seconds: float = 2.0) -> None:
        deadline = time.monotonic() + max(0.0, timeout_seconds)
        while self._queue.unfinished_tasks and time.monotonic() < deadline:
            time.sleep(0.01)
        for sink in self._sinks:
            sink.flush()

    def shutdown(self, *, timeout_seconds: float = 2.0) -> None:
        with self._close_lock:
            if self._closed:
                return
            self.flush(timeout_seconds=timeout_seconds)
            self._listener.stop()
            self.logger.removeHandler(self._handler)
            self._handler.close()
            for sink in self._sinks:
                sink.close()
            if self._routes_structlog:
                structlog.reset_defaults()
            self._closed = True


def _required_text(value: object, name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{name} must be a non-empty string")
    return value.strip()


def _level_number(level: int | str) -> int:
    if isinstance(level, bool) or not isinstance(level, (int, str)):
        raise ValueError(f"unsupported logging level {level!r}")
    if isinstance(level, int):
        return level
    number = logging.getLevelNamesMapping().get(level.strip().upper())
    if number is None:
        raise ValueError(f"unsupported logging level {level!r}")
    return number


def _open_sinks(
    config: LoggingConfig, log_path: Path, level: int
) -> tuple[logging.Handler, ...]:
    sinks: list[logging.Handler] = []
    if config.rotating_file:
        sinks.append(
            logging.handlers.RotatingFileHandler(
                log_path,
                maxBytes=max(1, config.max_bytes),
                backupCount=max(1, config.backup_count),
                encoding="utf-8",
            )
        )
    else:
        sinks.append(logging.FileHandler(log_path, encoding="utf-8"))
    if config.log_to_stdout:
        sinks.append(logging.StreamHandler(sys.stdout))
    # Lines arrive pre-rendered; sinks only write the message text.
    for sink in sinks:
        sink.setLevel(level)
        sink.setFormatter(logging.Formatter("%(message)s"))
    return tuple(sinks)


def setup_structured_logging(config: LoggingConfig) -> StructuredLoggingHandle:
    """Start a JSON-lines sink at ``<base_log_dir>/<run_id>/<log_filename>``.

    Any previously active sink is shut down first.
    """
    shutdown_logging()

    run_id = _required_text(config.run_id, "run_id")
    logger_name = _required_text(config.logger_name, "logger_name")
    filename = _required_text(config.log_filename, "log_filename")
    if Path(filename).name != filename:
        raise ValueError("log_filename must be a bare file name")
    if not isinstance(config.queue_size, int) or config.queue_size <= 0:
        raise ValueError("queue_size must be a positive integer")
    level = _level_number(config.level)

    run_dir = Path(config.base_log_dir) / run_id
    run_dir.mkdir(parents=True, exist_ok=True)
    log_path = run_dir / filename
    sinks = _open_sinks(config, log_path, level)

    log_queue: queue.Queue[Any] = queue.Queue(maxsize=config.queue_size)
    handler = _DroppingQueueHandler(log_queue)
    handler.setLevel(level)
    handler.setFormatter(_file_formatter(run_id=run_id, redactor=_chain(config.redactor)))

    logger = logging.getLogger(logger_name)
    for stale in list(logger.handlers):
        logger.removeHandler(stale)
        stale.close()
    logger.setLevel(level)
    logger.propagate = False
    logger.addHandler(handler)

    listener = logging.handlers.QueueListener(log_queue, *sinks, respect_handler_level=True)
    listener.start()

    if config.route_structlog:
        structlog.configure(
            processors=[
                structlog.stdlib.filter_by_level,
                structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
            ],
            logger_factory=structlog.stdlib.LoggerFactory(),
            wrapper_class=structlog.stdlib.BoundLogger,
            cache_logger_on_first_use=False,
        )

    handle = StructuredLoggingHandle(
        logger=logger,
        run_id=run_id,
        log_path=log_path,
        _queue=log_queue,
        _handler=handler,
        _listener=listener,
        _sinks=sinks,
        _routes_structlog=config.route_structlog,
    )
    global _active, _atexit_hooked
    with _active_lock:
        _active = handle
        if not _atexit_hooked:
            atexit.register(shutdown_logging)
            _atexit_hooked = True
    return handle


def setup_logging(
    observability_config: Mapping[str, object] | None = None,
    *,
    run_id: str,
    log_dir: Path | str | None = None,
    logger_name: str = DEFAULT_LOGGER_NAME,
) -> logging.Logger:
    """Start a JSON-lines sink from an ``[observability]`` config table.

    Reads ``log_level``, ``log_dir``, ``log_to_stdout`` and ``redact_secrets``;
    ``log_dir`` here overrides the table.
    """
    table = dict(observability_config or {})
    level = table.get("log_level", "INFO")
    base_dir = log_dir if log_dir is not None else table.get("log_dir", "logs")
    handle = setup_structured_logging(
        LoggingConfig(
            run_id=run_id,
            base_log_dir=base_dir if isinstance(base_dir, (str, Path)) else "logs",
            logger_name=logger_name,
            level=level if isinstance(level, (int, str)) else "INFO",
            log_to_stdout=bool(table.get("log_to_stdout", False)),
            redactor=None if table.get("redact_secrets", True) else _no_redaction,
        )
    )
    return handle.logger


def shutdown_logging(handle: StructuredLoggingHandle | None = None) -> None:
    """Drain and close ``handle``, or the active sink when none is given."""
    global _active
    with _active_lock:
        target = handle if handle is not None else _active
        if target is _active:
            _active = None
    if target is not None:
        target.shutdown()


def configure_console_logging(level: int | str = "WARNING") -> None:
    """Redacted JSON logs on stderr; used when no ``--log-dir`` sink is requested."""
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            _redact_event,
            structlog.processors.JSONRenderer(sort_keys=True),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(_level_number(level)),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )


__all__ = [
    "DEFAULT_LOG_FILENAME",
    "LogRedactor",
    "LoggingConfig",
    "MASK",
    "StructuredLoggingHandle",
    "configure_console_logging",
    "correlation_scope",
    "default_log_redactor",
    "get_correlation_context",
    "setup_logging",
    "setup_structured_logging",
    "shutdown_logging",
]
