"""Provider fan-out, deduplication and cache-affinity resolution."""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from dataclasses import replace

import structlog

from aggregarr.domain.entities.stremio import ContentId, Stream
from aggregarr.domain.ports.source_client import (
    AffinityResolverPort,
    SourceClientPort,
)

log = structlog.get_logger(__name__)


def deduplicate_streams(streams: Iterable[Stream]) -> list[Stream]:
    """Drop later streams whose ``(url, title)`` pair was already seen.

    Stable: the first occurrence wins and relative order is kept.
    """
    seen: set[tuple[str, str]] = set()
    unique: list[Stream] = []
    for stream in streams:
        key = stream.dedup_key
        if key in seen:
            continue
        seen.add(key)
        unique.append(stream)
    return unique


class StreamAggregator:
    """Queries every provider for a content id and its adjacent episodes.

    All provider calls run concurrently and the aggregation only returns
    once every call has completed (each one is bounded by the per-provider
    timeout inside the source client).
    """

    def __init__(
        self,
        *,
        source_client: SourceClientPort,
        affinity_resolver: AffinityResolverPort | None,
        timeout_seconds: float,
    ) -> None:
        self._client = source_client
        self._resolver = affinity_resolver
        self._timeout = timeout_seconds

    async def fetch_all(
        self,
        sources: Iterable[str],
        content_type: str,
        content_id: str,
    ) -> list[Stream]:
        """Merged, deduplicated and affinity-resolved streams from all providers.

        Ordering before dedup is provider-major: provider 1's results for
        the requested id, then its adjacent ids, then provider 2, and so on.
        """
        cid = ContentId.parse(content_id)
        ids = [content_id, *(str(a) for a in cid.adjacent())]
        sources = list(sources)

        if not sources:
            log.debug("fetch_skipped_no_sources", content_id=content_id)
            return []

        tasks = [
            self._client.fetch(base, content_type, target, self._timeout)
            for base in sources
            for target in ids
        ]
        results = await asyncio.gather(*tasks)

        merged = [stream for batch in results for stream in batch]
        unique = deduplicate_streams(merged)
        log.info(
            "streams_aggregated",
            content_id=content_id,
            sources=len(sources),
            queries=len(tasks),
            raw=len(merged),
            unique=len(unique),
        )
        return await self.resolve_affinity(unique)

    async def resolve_affinity(self, streams: list[Stream]) -> list[Stream]:
        """Mark each stream's ``cached`` flag, rewriting magnets that resolve.

        Without a resolver every stream comes back with ``cached=False``.
        """
        if self._resolver is None:
            return [replace(s, cached=False) for s in streams]

        return list(await asyncio.gather(*(self._resolve_one(s) for s in streams)))

    async def _resolve_one(self, stream: Stream) -> Stream:
        if not stream.is_magnet:
            return replace(stream, cached=False)
        try:
            direct_url = await self._resolver.resolve(stream.url)
        except Exception:  # noqa: BLE001
            log.debug("affinity_resolve_error", url=stream.url[:80], exc_info=True)
            direct_url = None
        if direct_url:
            return replace(stream, url=direct_url, cached=True)
        return replace(stream, cached=False)
