"""Stremio stream resolution use case.

request -> frequency log -> eviction gate -> cache read
-> (hit: re-resolve affinity) / (miss: fan-out + cache write x N)
-> ordered stream list.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Protocol

import structlog

from aggregarr.domain.entities.stremio import ContentId, StoreError, Stream
from aggregarr.domain.ports.request_log import RequestFrequencyTrackerPort
from aggregarr.domain.ports.stream_cache import StreamCachePort

# ---------------------------------------------------------------------------
# Protocols: what this use case needs from its dependencies.
# Infrastructure components satisfy these via structural subtyping.
# ---------------------------------------------------------------------------


class _Aggregator(Protocol):
    async def fetch_all(
        self, sources: list[str], content_type: str, content_id: str
    ) -> list[Stream]: ...

    async def resolve_affinity(self, streams: list[Stream]) -> list[Stream]: ...


class _StreamSorter(Protocol):
    """Applies the deployment's output ordering policy."""

    def sort(self, streams: list[Stream]) -> list[Stream]: ...


class _MetricsRecorder(Protocol):
    def record_cache_lookup(self, *, hit: bool) -> None: ...

    def record_eviction(self, deleted_rows: int) -> None: ...

    def record_cache_write_failure(self) -> None: ...


log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CoordinatorSettings:
    """Process-lifetime settings consumed by CacheCoordinator."""

    sources: tuple[str, ...]
    coalesce_misses: bool = False


class CacheCoordinator:
    """Sole entry point: ``resolve(type, id) -> ordered streams``.

    Each call records the request, runs the eviction gate, then serves the
    cached row or aggregates from all providers and populates the cache
    under the requested id and its adjacent episode ids.
    """

    def __init__(
        self,
        *,
        aggregator: _Aggregator,
        stream_cache: StreamCachePort,
        tracker: RequestFrequencyTrackerPort,
        sorter: _StreamSorter,
        settings: CoordinatorSettings,
        metrics: _MetricsRecorder | None = None,
    ) -> None:
        self._aggregator = aggregator
        self._cache = stream_cache
        self._tracker = tracker
        self._sorter = sorter
        self._sources = list(settings.sources)
        self._coalesce = settings.coalesce_misses
        self._metrics = metrics
        self._inflight: dict[tuple[str, str], asyncio.Task[list[Stream]]] = {}

    async def resolve(self, content_type: str, content_id: str) -> list[Stream]:
        """Return the ordered stream list for one request.

        Raises:
            StoreError: The cache row could not be read.
        """
        title_id = ContentId.parse(content_id).title_id

        try:
            await self._tracker.record(title_id)
        except StoreError:
            log.warning("request_log_write_failed", title_id=title_id, exc_info=True)

        await self._maybe_evict(content_type, content_id, title_id)

        entry = await self._cache.get(content_type, content_id)
        if self._metrics is not None:
            self._metrics.record_cache_lookup(hit=entry is not None)

        if entry is not None:
            log.info(
                "stream_cache_hit",
                content_id=content_id,
                stream_count=len(entry.streams),
            )
            streams = await self._aggregator.resolve_affinity(entry.streams)
            return self._sorter.sort(streams)

        log.info("stream_cache_miss", content_id=content_id)
        if self._coalesce:
            streams = await self._coalesced_fetch(content_type, content_id)
        else:
            streams = await self._fetch_and_store(content_type, content_id)
        return self._sorter.sort(streams)

    # ------------------------------------------------------------------
    # Eviction gate
    # ------------------------------------------------------------------

    async def _maybe_evict(
        self, content_type: str, content_id: str, title_id: str
    ) -> None:
        """Evict the row and purge the log when the title is requested too often.

        Without a cached row nothing happens and the log keeps growing, so the
        gate fires again on the next request.
        """
        try:
            triggered = await self._tracker.should_evict(title_id)
        except StoreError:
            log.warning("request_log_read_failed", title_id=title_id, exc_info=True)
            return
        if not triggered:
            return

        if await self._cache.get(content_type, content_id) is None:
            log.debug("eviction_skipped_no_row", content_id=content_id)
            return

        try:
            deleted = await self._cache.evict(content_type, content_id)
        except StoreError:
            # Log stays intact so the next request retries the eviction.
            log.warning("eviction_failed", content_id=content_id, exc_info=True)
            return

        log.info(
            "eviction_triggered",
            content_id=content_id,
            title_id=title_id,
            deleted=deleted,
        )
        if self._metrics is not None:
            self._metrics.record_eviction(deleted)

        try:
            await self._tracker.purge(title_id)
        except StoreError:
            log.warning("request_log_purge_failed", title_id=title_id, exc_info=True)

    # ------------------------------------------------------------------
    # Miss path
    # ------------------------------------------------------------------

    async def _coalesced_fetch(
        self, content_type: str, content_id: str
    ) -> list[Stream]:
        """Share one in-flight aggregation between concurrent misses."""
        key = (content_type, content_id)
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.create_task(self._fetch_and_store(content_type, content_id))
            self._inflight[key] = task
            task.add_done_callback(lambda _t: self._inflight.pop(key, None))
        else:
            log.debug("miss_coalesced", content_id=content_id)
        return await asyncio.shield(task)

    async def _fetch_and_store(
        self, content_type: str, content_id: str
    ) -> list[Stream]:
        streams = await self._aggregator.fetch_all(
            self._sources, content_type, content_id
        )

        targets = [content_id, *(str(a) for a in ContentId.parse(content_id).adjacent())]
        results = await asyncio.gather(
            *(self._cache.put(content_type, t, streams) for t in targets),
            return_exceptions=True,
        )
        for target, result in zip(targets, results):
            if isinstance(result, Exception):
                log.error(
                    "stream_cache_put_failed",
                    content_id=target,
                    error=str(result),
                    error_type=type(result).__name__,
                )
                if self._metrics is not None:
                    self._metrics.record_cache_write_failure()
            elif isinstance(result, BaseException):
                raise result

        log.info(
            "stream_cache_populated",
            content_id=content_id,
            ids=targets,
            stream_count=len(streams),
        )
        return streams
