"""
tracelog.observability.logging

Structured, leveled log sink for the service.

Responsibilities:
- Configure a `structlog` pipeline rendering JSON or logfmt text records.
- Route rendered records to stdout or a compressing rotating file, plus any
  number of additional writers (fan-out).
- Serialize concurrent writes behind a single lock.
- Offer fire-and-forget async logging with an explicit drain hook.
"""

from __future__ import annotations

import contextvars
import logging
import sys
import threading
import traceback
from collections.abc import Mapping
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import IO, Any

import structlog

from tracelog.observability.rotation import CompressingRotatingFileHandler

DEFAULT_LEVEL = logging.INFO

# Accepted level names; "warn" is the common short spelling.
LEVELS: dict[str, int] = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
    "fatal": logging.CRITICAL,
}

_METHOD_NAMES: dict[int, str] = {
    logging.DEBUG: "debug",
    logging.INFO: "info",
    logging.WARNING: "warning",
    logging.ERROR: "error",
    logging.CRITICAL: "critical",
}

STACK_TRACE_KEY = "stack_trace"

# Keys owned by the processor chain (or by structlog's `event` argument).
# Caller attributes with these names are kept as `fields.<key>`.
RESERVED_KEYS = frozenset({"event", "message", "level", "timestamp", "service"})
FIELD_PREFIX = "fields."


class TracelogError(Exception):
    """Base class for errors raised by this package."""


class InvalidSinkError(TracelogError, ValueError):
    """Raised when an additional log destination is absent or not writable."""


@dataclass(frozen=True, slots=True)
class LogConfig:
    format: str = "text"
    level: str = "info"
    # Empty destination means stdout.
    destination: str = ""
    max_size: int = 100
    max_backups: int = 0
    max_age: int = 0
    compress: bool = True


def parse_level(value: str | int) -> int:
    """
    Resolve a level name (case-insensitive) or numeric level.

    Raises ValueError for unknown names; configuration code uses
    `resolve_level` instead, which falls back to info.
    """
    if isinstance(value, int):
        if value not in _METHOD_NAMES:
            raise ValueError(f"unknown log level: {value!r}")
        return value
    try:
        return LEVELS[value.strip().lower()]
    except KeyError:
        raise ValueError(f"unknown log level: {value!r}") from None


def resolve_level(value: str | None) -> tuple[int, bool]:
    # Returns (level, recognized). Unknown or empty values degrade to info.
    try:
        return parse_level(value or ""), True
    except ValueError:
        return DEFAULT_LEVEL, False


def _add_service_name(service_name: str):
    # Adds a stable "service" field for log routing/aggregation across environments.
    def processor(_: Any, __: str, event_dict: dict[str, Any]) -> dict[str, Any]:
        event_dict.setdefault("service", service_name)
        return event_dict

    return processor


def _build_processors(fmt: str, service_name: str | None) -> list[Any]:
    # structlog processors run on each log event; keep this list focused and stable.
    processors: list[Any] = [
        structlog.stdlib.filter_by_level,
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]
    if service_name:
        processors.append(_add_service_name(service_name))
    processors += [
        structlog.processors.format_exc_info,
        structlog.processors.EventRenamer("message"),
    ]
    if fmt.strip().lower() == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(
            structlog.processors.LogfmtRenderer(
                key_order=["timestamp", "level", "message"], drop_missing=True
            )
        )
    return processors


class _SinkHandler(logging.StreamHandler):
    """
    Stream handler for writers registered through `LogSink.add_sink`.

    Write failures are handed to `on_error` instead of the default stderr dump,
    so one broken writer never stops the remaining destinations.
    """

    def __init__(self, stream: IO[str], on_error) -> None:
        super().__init__(stream)
        self._on_error = on_error

    def handleError(self, record: logging.LogRecord) -> None:  # noqa: N802
        self._on_error(self, sys.exc_info()[1])

    def close(self) -> None:
        # The writer belongs to the caller; detach without closing it.
        self.acquire()
        try:
            self.stream = None  # type: ignore[assignment]
        finally:
            self.release()
        super().close()


class LogSink:
    """
    Process-wide structured logger handle.

    Create one at startup and pass it to whatever needs to log (middleware,
    app factory, services). Record methods accept an attribute mapping and/or
    keyword attributes:

        sink.info("Incoming request", {"trace_id": tid}, path="/healthz")

    Attribute names used by the record itself (message, level, timestamp,
    service, event) are written as `fields.<name>`.
    """

    def __init__(
        self,
        config: LogConfig | None = None,
        *,
        stream: IO[str] | None = None,
        service_name: str | None = None,
    ) -> None:
        self._lock = threading.Lock()
        self._service_name = service_name
        self._executor: ThreadPoolExecutor | None = None
        self._executor_lock = threading.Lock()
        self._handlers: list[logging.Handler] = []
        self.closed = False
        self.configure(config or LogConfig(), stream=stream)

    # -- configuration -----------------------------------------------------

    def configure(self, config: LogConfig, *, stream: IO[str] | None = None) -> None:
        """Replace the current configuration (destinations, format, level)."""
        level, recognized = resolve_level(config.level)

        if config.destination:
            primary: logging.Handler = CompressingRotatingFileHandler(
                config.destination,
                max_size=config.max_size,
                max_backups=config.max_backups,
                max_age=config.max_age,
                compress=config.compress,
            )
        else:
            primary = logging.StreamHandler(stream if stream is not None else sys.stdout)
        primary.setFormatter(logging.Formatter("%(message)s"))

        # Fresh stdlib loggers per configuration: they are never registered with
        # logging.getLogger, so nothing else in the process can attach to them.
        out = logging.Logger("tracelog.sink", level)
        out.propagate = False
        out.addHandler(primary)
        fallback = logging.Logger("tracelog.sink.primary", logging.WARNING)
        fallback.propagate = False
        fallback.addHandler(primary)

        processors = _build_processors(config.format, self._service_name)

        with self._lock:
            previous = self._handlers
            self.closed = False
            self.config = config
            self.level = level
            self._handlers = [primary]
            self._stdlib = out
            self._log = structlog.wrap_logger(
                out,
                processors=processors,
                wrapper_class=structlog.stdlib.BoundLogger,
                context_class=dict,
            )
            self._fallback = structlog.wrap_logger(
                fallback,
                processors=processors,
                wrapper_class=structlog.stdlib.BoundLogger,
                context_class=dict,
            )

        for handler in previous:
            handler.close()

        if not recognized:
            self.warn(
                "Unrecognized log level, falling back to info",
                requested_level=config.level,
            )

    def add_sink(self, writer: IO[str] | None) -> None:
        """
        Fan out all subsequent records to `writer` as well.

        Raises InvalidSinkError when `writer` is None or has no `write` method;
        the existing configuration is left untouched in that case.
        """
        if writer is None or not callable(getattr(writer, "write", None)):
            raise InvalidSinkError("invalid log writer")
        handler = _SinkHandler(writer, self._report_sink_failure)
        handler.setFormatter(logging.Formatter("%(message)s"))
        with self._lock:
            self._stdlib.addHandler(handler)
            self._handlers.append(handler)

    @property
    def sink_count(self) -> int:
        return len(self._handlers)

    # -- record methods ----------------------------------------------------

    def debug(self, message: str, fields: Mapping[str, Any] | None = None, /, **attrs: Any) -> None:
        self._write(logging.DEBUG, message, _merge(fields, attrs))

    def info(self, message: str, fields: Mapping[str, Any] | None = None, /, **attrs: Any) -> None:
        self._write(logging.INFO, message, _merge(fields, attrs))

    def warn(self, message: str, fields: Mapping[str, Any] | None = None, /, **attrs: Any) -> None:
        self._write(logging.WARNING, message, _merge(fields, attrs))

    warning = warn

    def error(self, message: str, fields: Mapping[str, Any] | None = None, /, **attrs: Any) -> None:
        event = _merge(fields, attrs)
        event[STACK_TRACE_KEY] = _capture_stack()
        self._write(logging.ERROR, message, event)

    def log(
        self,
        level: str | int,
        message: str,
        fields: Mapping[str, Any] | None = None,
        /,
        **attrs: Any,
    ) -> None:
        lvl = parse_level(level)
        event = _merge(fields, attrs)
        if lvl >= logging.ERROR:
            event[STACK_TRACE_KEY] = _capture_stack()
        self._write(lvl, message, event)

    def log_async(
        self,
        level: str | int,
        message: str,
        fields: Mapping[str, Any] | None = None,
        /,
        **attrs: Any,
    ) -> None:
        """
        Fire-and-forget variant of `log`.

        The record is written on a background thread; there is no completion
        signal and no ordering guarantee relative to synchronous calls. Use
        `flush()` or `shutdown()` to wait for pending records.
        """
        if self.closed:
            return
        lvl = parse_level(level)
        event = _merge(fields, attrs)
        if lvl >= logging.ERROR:
            # Stack of the caller, not of the worker thread.
            event[STACK_TRACE_KEY] = _capture_stack()
        ctx = contextvars.copy_context()
        self._get_executor().submit(ctx.run, self._write, lvl, message, event)

    # -- lifecycle ---------------------------------------------------------

    def flush(self) -> None:
        """Wait for async records submitted so far, then flush every destination."""
        executor = self._executor
        if executor is not None:
            # Single worker: a no-op completes only after earlier submissions.
            executor.submit(lambda: None).result()
        with self._lock:
            handlers = list(self._handlers)
        for handler in handlers:
            handler.flush()

    def shutdown(self) -> None:
        """
        Drain async records, stop the worker and close all destinations.

        Records written afterwards are dropped until `configure` is called again.
        """
        with self._executor_lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=True)
        with self._lock:
            self.closed = True
            handlers, self._handlers = self._handlers, []
            self._stdlib.handlers.clear()
        for handler in handlers:
            handler.flush()
            handler.close()

    # -- internals ---------------------------------------------------------

    def _write(self, level: int, message: str, event: dict[str, Any]) -> None:
        if level < self.level or self.closed:
            return
        method = _METHOD_NAMES[level]
        event = _namespace_reserved(event)
        with self._lock:
            if self.closed:
                return
            getattr(self._log, method)(message, **event)

    def _get_executor(self) -> ThreadPoolExecutor:
        with self._executor_lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=1, thread_name_prefix="tracelog-async"
                )
            return self._executor

    def _report_sink_failure(self, handler: logging.Handler, exc: BaseException | None) -> None:
        # Runs inside a handler's emit while the write lock is held; goes to the
        # primary destination only and must not re-enter `_write`.
        self._fallback.warning(
            "Log sink write failed",
            sink=type(getattr(handler, "stream", None)).__name__,
            error=repr(exc),
        )


def _merge(fields: Mapping[str, Any] | None, attrs: Mapping[str, Any]) -> dict[str, Any]:
    # Always copy: caller-owned mappings are never mutated.
    event = dict(fields) if fields else {}
    event.update(attrs)
    return event


def _namespace_reserved(event: dict[str, Any]) -> dict[str, Any]:
    if RESERVED_KEYS.isdisjoint(event):
        return event
    return {(FIELD_PREFIX + k if k in RESERVED_KEYS else k): v for k, v in event.items()}


def _capture_stack() -> str:
    # Drop the frames belonging to this module so the trace ends at the caller.
    frames = [f for f in traceback.extract_stack() if f.filename != __file__]
    return "".join(traceback.format_list(frames))


# --- Module Notes -----------------------------------------------------------
# Request-scoped metadata (trace_id) is bound via contextvars in
# `observability.middleware` and merged into every record written here.
