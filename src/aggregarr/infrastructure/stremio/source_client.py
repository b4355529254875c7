"""Upstream Stremio add-on client (async httpx implementation)."""

from __future__ import annotations

import time
from typing import Any, Protocol

import httpx
import structlog

from aggregarr.domain.entities.stremio import Stream

log = structlog.get_logger(__name__)


class _MetricsRecorder(Protocol):
    def record_source_fetch(
        self,
        source: str,
        duration_ns: int,
        result_count: int,
        *,
        outcome: str,
    ) -> None: ...


def normalize_base_url(base_url: str) -> str:
    """Strip a trailing slash and ``/manifest.json`` from a provider URL."""
    url = base_url.strip().rstrip("/")
    if url.endswith("/manifest.json"):
        url = url[: -len("/manifest.json")]
    return url


def build_stream_url(base_url: str, content_type: str, content_id: str) -> str:
    return f"{normalize_base_url(base_url)}/stream/{content_type}/{content_id}.json"


def _parse_streams(payload: Any) -> list[Stream]:
    """Extract the ``streams`` list; entries that are not objects are skipped."""
    if not isinstance(payload, dict):
        raise ValueError(f"expected JSON object, got {type(payload).__name__}")
    raw = payload.get("streams") or []
    if not isinstance(raw, list):
        raise ValueError(f"'streams' must be a list, got {type(raw).__name__}")
    return [Stream.from_dict(item) for item in raw if isinstance(item, dict)]


class HttpxSourceClient:
    """Fetches ``{base}/stream/{type}/{id}.json`` from one provider.

    Implements ``SourceClientPort``. Never raises: timeouts, network errors,
    non-2xx responses and malformed bodies all degrade to an empty list and
    a warning. No retries.
    """

    def __init__(
        self,
        *,
        http_client: httpx.AsyncClient,
        metrics: _MetricsRecorder | None = None,
    ) -> None:
        self._http = http_client
        self._metrics = metrics

    async def fetch(
        self,
        base_url: str,
        content_type: str,
        content_id: str,
        timeout: float,
    ) -> list[Stream]:
        url = build_stream_url(base_url, content_type, content_id)
        source = normalize_base_url(base_url)
        t0 = time.perf_counter_ns()
        outcome = "error"
        streams: list[Stream] = []
        try:
            resp = await self._http.get(url, timeout=timeout)
            resp.raise_for_status()
            streams = _parse_streams(resp.json())
            outcome = "success"
        except httpx.TimeoutException:
            outcome = "timeout"
            log.warning(
                "source_fetch_timeout",
                source=source,
                content_id=content_id,
                timeout=timeout,
            )
        except httpx.HTTPStatusError as e:
            log.warning(
                "source_fetch_http_error",
                source=source,
                content_id=content_id,
                status=e.response.status_code,
            )
        except httpx.HTTPError as e:
            log.warning(
                "source_fetch_network_error",
                source=source,
                content_id=content_id,
                error=str(e) or type(e).__name__,
            )
        except ValueError as e:
            log.warning(
                "source_fetch_malformed_body",
                source=source,
                content_id=content_id,
                error=str(e),
            )
        except Exception:  # noqa: BLE001
            log.warning(
                "source_fetch_failed",
                source=source,
                content_id=content_id,
                exc_info=True,
            )
        finally:
            if self._metrics is not None:
                self._metrics.record_source_fetch(
                    source,
                    time.perf_counter_ns() - t0,
                    len(streams),
                    outcome=outcome,
                )

        log.debug(
            "source_fetch_done",
            source=source,
            content_id=content_id,
            stream_count=len(streams),
        )
        return streams
