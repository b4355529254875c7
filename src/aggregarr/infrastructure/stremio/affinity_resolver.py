"""Debrid-style availability lookup for magnet locators."""

from __future__ import annotations

import httpx
import structlog

log = structlog.get_logger(__name__)


class HttpxAffinityResolver:
    """POSTs ``{"torrent": <magnet>}`` to the resolver endpoint.

    Implements ``AffinityResolverPort``. Expects ``{"cached": bool,
    "direct_url": str}`` back; anything else (errors included) means
    "not cached".
    """

    def __init__(
        self,
        *,
        http_client: httpx.AsyncClient,
        endpoint: str,
        api_token: str,
        timeout: float = 10.0,
    ) -> None:
        self._http = http_client
        self._endpoint = endpoint
        self._headers = {"Authorization": f"Bearer {api_token}"}
        self._timeout = timeout

    async def resolve(self, magnet_url: str) -> str | None:
        try:
            resp = await self._http.post(
                self._endpoint,
                json={"torrent": magnet_url},
                headers=self._headers,
                timeout=self._timeout,
            )
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPError:
            log.warning("affinity_lookup_failed", url=magnet_url[:80], exc_info=True)
            return None
        except ValueError:
            log.warning("affinity_malformed_body", url=magnet_url[:80])
            return None

        if not isinstance(data, dict) or not data.get("cached"):
            return None
        direct_url = data.get("direct_url")
        if not isinstance(direct_url, str) or not direct_url:
            return None
        return direct_url
