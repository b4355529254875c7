"""Port for the persistent stream cache."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from aggregarr.domain.entities.stremio import CacheEntry, Stream


@runtime_checkable
class StreamCachePort(Protocol):
    """Merged stream lists keyed by content id (one row per id)."""

    async def get(self, content_type: str, content_id: str) -> CacheEntry | None: ...

    async def put(
        self, content_type: str, content_id: str, streams: list[Stream]
    ) -> CacheEntry: ...

    async def evict(self, content_type: str, content_id: str) -> int: ...
