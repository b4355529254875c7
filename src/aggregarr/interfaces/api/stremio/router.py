"""Stremio add-on API endpoints (manifest, stream)."""

from __future__ import annotations

from typing import Any, cast

import structlog
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from aggregarr.domain.entities.stremio import StoreError
from aggregarr.infrastructure.config.schema import StremioConfig
from aggregarr.interfaces.app_state import AppState

log = structlog.get_logger(__name__)

router = APIRouter(tags=["stremio"])

_CONTENT_TYPES = ("movie", "series")

_CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "*",
}


def build_manifest(stremio: StremioConfig) -> dict[str, Any]:
    """Build the Stremio add-on manifest (stream resource only, no catalogs)."""
    return {
        "id": stremio.addon_id,
        "version": stremio.addon_version,
        "name": stremio.addon_name,
        "description": stremio.addon_description,
        "resources": ["stream"],
        "types": list(_CONTENT_TYPES),
        "catalogs": [],
    }


@router.get("/manifest.json")
async def stremio_manifest(request: Request) -> JSONResponse:
    """Serve the Stremio add-on manifest."""
    state = cast(AppState, request.app.state)
    return JSONResponse(
        content=build_manifest(state.config.stremio), headers=_CORS_HEADERS
    )


@router.get("/stream/{content_type}/{stream_id}.json")
async def stremio_stream(
    request: Request,
    content_type: str,
    stream_id: str,
) -> JSONResponse:
    """Resolve streams for a movie or episode.

    Unknown content types get an empty list. A failing cache read is a
    server error, never an empty result.
    """
    state = cast(AppState, request.app.state)

    if content_type not in _CONTENT_TYPES or not stream_id:
        log.debug("stremio_stream_unsupported", content_type=content_type)
        return JSONResponse(content={"streams": []}, headers=_CORS_HEADERS)

    log.info("stremio_stream_request", content_type=content_type, content_id=stream_id)

    try:
        streams = await state.coordinator.resolve(content_type, stream_id)
    except StoreError:
        log.exception("stremio_stream_store_error", content_id=stream_id)
        return JSONResponse(
            status_code=500,
            content={"error": "store_unavailable"},
            headers=_CORS_HEADERS,
        )

    log.info(
        "stremio_stream_response",
        content_id=stream_id,
        stream_count=len(streams),
    )
    return JSONResponse(
        content={"streams": [s.to_dict() for s in streams]},
        headers=_CORS_HEADERS,
    )
