"""
tracelog.observability.context

Request-scoped trace context.

Responsibilities:
- Generate trace identifiers.
- Attach/read the trace context on an ASGI scope under a namespaced key in its state.
- Expose the running request's trace id to handler code via contextvars.
"""

from __future__ import annotations

import uuid
from collections.abc import MutableMapping
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True, slots=True)
class TraceContext:
    trace_id: str


# Namespaced key inside scope["state"] (what Starlette exposes as request.state).
_STATE_KEY = "tracelog.trace_context"

_current: ContextVar[TraceContext | None] = ContextVar("tracelog_trace_context", default=None)


def generate_trace_id() -> str:
    return str(uuid.uuid4())


def attach_trace_context(scope: MutableMapping[str, Any], ctx: TraceContext) -> None:
    scope.setdefault("state", {})[_STATE_KEY] = ctx


def get_trace_context(scope: MutableMapping[str, Any]) -> TraceContext | None:
    state = scope.get("state")
    if not state:
        return None
    return state.get(_STATE_KEY)


def current_trace_context() -> TraceContext | None:
    return _current.get()


def current_trace_id() -> str | None:
    ctx = _current.get()
    return ctx.trace_id if ctx is not None else None


def set_current(ctx: TraceContext | None):
    # Returns the token for `reset_current`.
    return _current.set(ctx)


def reset_current(token) -> None:
    _current.reset(token)


# --- Module Notes -----------------------------------------------------------
# contextvars follow asyncio tasks created inside the request; threads started by
# handler code do not inherit them unless run via `contextvars.copy_context()`.
