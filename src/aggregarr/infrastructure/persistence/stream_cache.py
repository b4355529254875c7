"""Stream cache repository backed by CachePort (diskcache/redis)."""

from __future__ import annotations

import asyncio
import json
import time
from collections.abc import Callable

import structlog

from aggregarr.domain.entities.stremio import CacheEntry, ContentId, StoreError, Stream
from aggregarr.domain.ports.cache import CachePort

log = structlog.get_logger(__name__)

KEY_PREFIX = "streams:"


def _cache_key(content_id: str) -> str:
    return f"{KEY_PREFIX}{content_id}"


def _serialize_entry(entry: CacheEntry) -> str:
    """Serialize CacheEntry to JSON string."""
    return json.dumps(
        {
            "content_id": entry.content_id,
            "content_type": entry.content_type,
            "streams": [s.to_dict() for s in entry.streams],
            "written_at": entry.written_at,
        }
    )


def _deserialize_entry(data: str) -> CacheEntry:
    """Deserialize CacheEntry from JSON string."""
    d = json.loads(data)
    return CacheEntry(
        content_id=d["content_id"],
        content_type=d["content_type"],
        streams=[Stream.from_dict(s) for s in d["streams"]],
        written_at=int(d["written_at"]),
    )


class StreamCache:
    """One merged stream list per content id.

    The content id alone is the storage key: a write for the same id with
    another content type overwrites the row, and ``get`` only returns the
    row when the stored type matches the requested one.
    """

    def __init__(
        self,
        cache: CachePort,
        ttl_seconds: int | None = None,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.cache = cache
        self.ttl = ttl_seconds
        self._clock = clock

    async def get(self, content_type: str, content_id: str) -> CacheEntry | None:
        """Load the cached entry. Backend or decode failures raise StoreError."""
        data = await self.cache.get(_cache_key(content_id))
        if data is None:
            log.debug("stream_cache_row_absent", content_id=content_id)
            return None

        try:
            entry = _deserialize_entry(data)
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            log.error(
                "stream_cache_deserialize_error",
                content_id=content_id,
                error=str(e),
            )
            raise StoreError(f"corrupt stream cache row for {content_id!r}") from e

        if entry.content_type != content_type:
            log.debug(
                "stream_cache_type_mismatch",
                content_id=content_id,
                requested=content_type,
                stored=entry.content_type,
            )
            return None
        return entry

    async def put(
        self, content_type: str, content_id: str, streams: list[Stream]
    ) -> CacheEntry:
        """Upsert the row for *content_id* and stamp it with the current time."""
        entry = CacheEntry(
            content_id=content_id,
            content_type=content_type,
            streams=list(streams),
            written_at=int(self._clock() * 1000),
        )
        await self.cache.set(
            _cache_key(content_id), _serialize_entry(entry), ttl=self.ttl
        )
        log.debug(
            "stream_cache_put",
            content_id=content_id,
            content_type=content_type,
            stream_count=len(entry.streams),
        )
        return entry

    async def evict(self, content_type: str, content_id: str) -> int:
        """Delete cached rows for a content id. Returns the number deleted.

        Series delete exactly one episode row. Movies delete every row whose
        id contains the title id, so stray variants of the same title go too.
        """
        if content_type == "series":
            deleted = await self.cache.delete(_cache_key(content_id))
            log.info("stream_cache_evicted", content_id=content_id, deleted=int(deleted))
            return int(deleted)

        title_id = ContentId.parse(content_id).title_id
        keys = await self.cache.keys(KEY_PREFIX)
        doomed = [k for k in keys if title_id in k[len(KEY_PREFIX) :]]
        results = await asyncio.gather(*(self.cache.delete(k) for k in doomed))
        deleted = sum(1 for r in results if r)
        log.info(
            "stream_cache_evicted",
            content_id=content_id,
            title_id=title_id,
            deleted=deleted,
        )
        return deleted
