"""FastAPI application factory (create_app)."""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable

import structlog
from fastapi import FastAPI, Request
from starlette.responses import Response

from aggregarr.infrastructure.config import AppConfig
from aggregarr.interfaces.app_state import AppState
from aggregarr.interfaces.composition import lifespan

log = structlog.get_logger(__name__)


def create_app(config: AppConfig) -> FastAPI:
    """Create the FastAPI app without opening any resources.

    Resources (cache, HTTP client, coordinator) are created in lifespan().
    """
    app = FastAPI(
        title="Aggregarr",
        description="Caching Stremio stream aggregator",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.state = AppState()
    app.state.config = config

    from aggregarr.interfaces.api.stats.router import router as stats_router
    from aggregarr.interfaces.api.stremio.router import router as stremio_router

    # Stremio clients expect the add-on at the root path.
    app.include_router(stremio_router)
    app.include_router(stats_router)

    @app.get("/healthz")
    async def healthz() -> dict[str, str | int]:
        """Liveness probe: 200 while the process is running."""
        return {"status": "ok", "sources": len(config.stremio.sources)}

    @app.middleware("http")
    async def log_requests(
        request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ):
        start = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            duration_ms = (time.perf_counter() - start) * 1000.0
            log.info(
                "http_request",
                method=request.method,
                path=request.url.path,
                status_code=status_code,
                duration_ms=round(duration_ms, 2),
                client_host=(request.client.host if request.client else None),
            )

    return app
