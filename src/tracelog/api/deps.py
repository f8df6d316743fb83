"""
tracelog.api.deps

FastAPI dependency wiring for the API layer.

Responsibilities:
- Provide dependency functions for the log sink and the trace id.
- Encapsulate app.state / request scope access patterns.
"""

from __future__ import annotations

from fastapi import Request

from tracelog.observability.context import get_trace_context
from tracelog.observability.logging import LogSink


def log_sink(request: Request) -> LogSink:
    # The sink is created in `tracelog.api.app.create_app`.
    return request.app.state.log_sink  # type: ignore[no-any-return]


def trace_id(request: Request) -> str | None:
    # Set by RequestTraceMiddleware; None only if the middleware is not installed.
    ctx = get_trace_context(request.scope)
    return ctx.trace_id if ctx is not None else None


# --- Module Notes -----------------------------------------------------------
# Handler code outside FastAPI dependencies can use
# `tracelog.observability.context.current_trace_id()` instead.
