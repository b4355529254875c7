"""Tests for HttpxAffinityResolver."""

from __future__ import annotations

import json

import httpx
import respx

from aggregarr.infrastructure.stremio.affinity_resolver import HttpxAffinityResolver

_ENDPOINT = "https://debrid.example/api/check"
_MAGNET = "magnet:?xt=urn:btih:abc123"


def _resolver(client: httpx.AsyncClient) -> HttpxAffinityResolver:
    return HttpxAffinityResolver(
        http_client=client, endpoint=_ENDPOINT, api_token="secret", timeout=1.0
    )


class TestHttpxAffinityResolver:
    @respx.mock
    async def test_cached_returns_direct_url(self) -> None:
        route = respx.post(_ENDPOINT).respond(
            200, json={"cached": True, "direct_url": "https://direct/file.mkv"}
        )
        async with httpx.AsyncClient() as client:
            result = await _resolver(client).resolve(_MAGNET)

        assert result == "https://direct/file.mkv"
        request = route.calls.last.request
        assert request.headers["Authorization"] == "Bearer secret"
        assert json.loads(request.content) == {"torrent": _MAGNET}

    @respx.mock
    async def test_not_cached_returns_none(self) -> None:
        respx.post(_ENDPOINT).respond(
            200, json={"cached": False, "direct_url": "https://ignored"}
        )
        async with httpx.AsyncClient() as client:
            assert await _resolver(client).resolve(_MAGNET) is None

    @respx.mock
    async def test_missing_direct_url_returns_none(self) -> None:
        respx.post(_ENDPOINT).respond(200, json={"cached": True})
        async with httpx.AsyncClient() as client:
            assert await _resolver(client).resolve(_MAGNET) is None

    @respx.mock
    async def test_http_error_returns_none(self) -> None:
        respx.post(_ENDPOINT).respond(401)
        async with httpx.AsyncClient() as client:
            assert await _resolver(client).resolve(_MAGNET) is None

    @respx.mock
    async def test_network_error_returns_none(self) -> None:
        respx.post(_ENDPOINT).mock(side_effect=httpx.ConnectError("down"))
        async with httpx.AsyncClient() as client:
            assert await _resolver(client).resolve(_MAGNET) is None

    @respx.mock
    async def test_malformed_body_returns_none(self) -> None:
        respx.post(_ENDPOINT).respond(200, text="not json")
        async with httpx.AsyncClient() as client:
            assert await _resolver(client).resolve(_MAGNET) is None
