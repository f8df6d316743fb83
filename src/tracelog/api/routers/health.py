"""
tracelog.api.routers.health

Health and readiness endpoints.

Responsibilities:
- Provide liveness check (`/healthz`).
- Provide readiness check (`/readyz`) echoing the request's trace id.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from tracelog.api.deps import log_sink, trace_id
from tracelog.observability.logging import LogSink

router = APIRouter()


@router.get("/healthz")
async def healthz() -> dict[str, str]:
    # Liveness: process is up and serving HTTP.
    return {"status": "ok"}


@router.get("/readyz")
async def readyz(
    tid: str | None = Depends(trace_id),
    sink: LogSink = Depends(log_sink),
) -> dict[str, str | None]:
    # Readiness: the sink accepts records.
    sink.debug("readiness check")
    return {"status": "ready", "trace_id": tid}


# --- Module Notes -----------------------------------------------------------
# Kubernetes typically uses /healthz for liveness and /readyz for readiness gating.
