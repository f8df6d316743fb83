"""
tracelog.observability.middleware

ASGI middleware for request tracing and request-lifecycle logging.

Responsibilities:
- Adopt the inbound `X-Trace-ID` or generate a new trace id.
- Attach the trace context to the request scope and bind it for structured logs.
- Observe the response status and log request start/completion.

The completion record carries `duration` in milliseconds (float, monotonic clock)
and `status`, the last status the app sent (200 if it never sent one).
"""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Any

from starlette.datastructures import Headers, MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send
from structlog.contextvars import bound_contextvars

from tracelog.observability.context import (
    TraceContext,
    attach_trace_context,
    generate_trace_id,
    reset_current,
    set_current,
)
from tracelog.observability.logging import LogSink

TRACE_HEADER = "X-Trace-ID"
DEFAULT_STATUS = 200


class ResponseObserver:
    """
    Pass-through wrapper around the ASGI `send` channel.

    Every message is forwarded unchanged. `http.response.start` messages also
    update `status_code`; if more than one passes through, the last one is kept
    (only the first ever reaches the wire).
    """

    def __init__(self, send: Send, *, default_status: int = DEFAULT_STATUS) -> None:
        self._send = send
        self.status_code = default_status
        self.started = False

    async def __call__(self, message: Message) -> None:
        if message["type"] == "http.response.start":
            self.status_code = message["status"]
            self.started = True
        await self._send(message)


class RequestTraceMiddleware:
    """
    - Ensures every HTTP request has a trace id
    - Logs "Incoming request" and "Request completed" through the injected sink
    - Completion is logged on every exit path, including handler exceptions
    """

    def __init__(
        self,
        app: ASGIApp,
        *,
        sink: LogSink,
        header_name: str = TRACE_HEADER,
        echo_header: bool = True,
        async_logging: bool = False,
        id_factory: Callable[[], str] = generate_trace_id,
    ) -> None:
        self.app = app
        self.sink = sink
        self.header_name = header_name
        self.echo_header = echo_header
        self.async_logging = async_logging
        self.id_factory = id_factory

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        # Prefer a caller-provided trace id for continuity; otherwise generate one.
        trace_id = Headers(scope=scope).get(self.header_name) or self.id_factory()
        ctx = TraceContext(trace_id=trace_id)
        attach_trace_context(scope, ctx)
        token = set_current(ctx)

        client = scope.get("client")
        start = time.perf_counter()
        observer = ResponseObserver(self._echo(send, trace_id) if self.echo_header else send)
        failed = False
        try:
            with bound_contextvars(trace_id=trace_id):
                self._emit(
                    "info",
                    "Incoming request",
                    {
                        "trace_id": trace_id,
                        "method": scope["method"],
                        "path": scope["path"],
                        "remote_ip": client[0] if client else "",
                    },
                )
                try:
                    await self.app(scope, receive, observer)
                except Exception as exc:
                    failed = True
                    self.sink.error("Request failed", trace_id=trace_id, error=repr(exc))
                    raise
                finally:
                    status = observer.status_code
                    if failed and not observer.started:
                        status = 500
                    self._emit(
                        "info",
                        "Request completed",
                        {
                            "trace_id": trace_id,
                            "duration": round((time.perf_counter() - start) * 1000, 3),
                            "status": status,
                        },
                    )
        finally:
            # Avoid leaking context across requests under async concurrency.
            reset_current(token)

    def _emit(self, level: str, message: str, fields: dict[str, Any]) -> None:
        if self.async_logging:
            self.sink.log_async(level, message, fields)
        else:
            self.sink.log(level, message, fields)

    def _echo(self, send: Send, trace_id: str) -> Send:
        async def send_with_trace(message: Message) -> None:
            if message["type"] == "http.response.start":
                message.setdefault("headers", [])
                headers = MutableHeaders(scope=message)
                if self.header_name not in headers:
                    headers.append(self.header_name, trace_id)
            await send(message)

        return send_with_trace


# --- Module Notes -----------------------------------------------------------
# Pure ASGI (not BaseHTTPMiddleware) so the status is observed on the real `send`
# channel and streaming responses are not buffered.
