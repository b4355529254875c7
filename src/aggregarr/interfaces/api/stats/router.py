"""Runtime metrics endpoint."""

from __future__ import annotations

from typing import Any, cast

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from aggregarr.interfaces.app_state import AppState

router = APIRouter(prefix="/stats", tags=["stats"])


@router.get("/metrics")
async def metrics(request: Request) -> JSONResponse:
    """Return in-memory runtime metrics.

    Includes per-provider fetch stats and cache hit/miss/eviction counters.
    """
    state = cast(AppState, request.app.state)

    data: dict[str, Any] = {}
    m = getattr(state, "metrics", None)
    if m is not None:
        data.update(m.snapshot())

    return JSONResponse(content=data)
