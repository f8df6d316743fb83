"""
tracelog.api.app

FastAPI app factory for a traced service.

Responsibilities:
- Build the FastAPI application and register routers/middleware.
- Create (or accept) the process log sink; dispose of the one it created on shutdown.
- Provide a single composition root where cross-cutting concerns live.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from tracelog import __version__
from tracelog.api.routers.health import router as health_router
from tracelog.observability.logging import LogSink
from tracelog.observability.middleware import RequestTraceMiddleware
from tracelog.settings import Settings


def create_app(*, settings: Settings, sink: LogSink | None = None) -> FastAPI:
    # One sink per process, created before the app serves requests.
    owns_sink = sink is None
    if sink is None:
        sink = LogSink(settings.log_config(), service_name=settings.service_name)

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        sink.info("startup", env=settings.env, log_format=settings.log_format)
        try:
            yield
        finally:
            sink.info("shutdown")
            if owns_sink:
                # Drain pending async records and close file handles.
                sink.shutdown()
            else:
                # Injected sinks belong to the caller; only wait for pending records.
                sink.flush()

    app = FastAPI(
        title="tracelog",
        version=__version__,
        docs_url="/docs",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.log_sink = sink
    app.state.settings = settings

    app.add_middleware(
        RequestTraceMiddleware,
        sink=sink,
        header_name=settings.trace_header,
        async_logging=settings.log_async,
    )
    app.include_router(health_router, tags=["health"])

    return app


# --- Module Notes -----------------------------------------------------------
# Route handlers reach the sink and the trace id through `tracelog.api.deps`.
