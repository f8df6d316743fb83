"""
tracelog.observability

Observability package.

Responsibilities:
- Structured log sink (format, level, destinations, rotation).
- Request trace context propagation and request-lifecycle logging.
"""

from tracelog.observability.context import (
    TraceContext,
    current_trace_id,
    generate_trace_id,
    get_trace_context,
)
from tracelog.observability.logging import InvalidSinkError, LogConfig, LogSink, TracelogError
from tracelog.observability.middleware import RequestTraceMiddleware, ResponseObserver

__all__ = [
    "InvalidSinkError",
    "LogConfig",
    "LogSink",
    "RequestTraceMiddleware",
    "ResponseObserver",
    "TraceContext",
    "TracelogError",
    "current_trace_id",
    "generate_trace_id",
    "get_trace_context",
]


# --- Module Notes -----------------------------------------------------------
# Metrics exporters can be added here without touching the request path.
