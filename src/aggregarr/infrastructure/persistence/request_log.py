"""Request log and sliding-window frequency gate backed by CachePort."""

from __future__ import annotations

import time
from collections.abc import Callable

import structlog

from aggregarr.domain.entities.stremio import RequestLogEntry
from aggregarr.domain.ports.cache import CachePort

log = structlog.get_logger(__name__)

KEY_PREFIX = "requestlog:"
DEFAULT_WINDOW_SECONDS = 3600
DEFAULT_THRESHOLD = 5


def _log_key(title_id: str) -> str:
    return f"{KEY_PREFIX}{title_id}"


class RequestFrequencyTracker:
    """Counts requests per title inside a sliding time window.

    Every request appends one timestamp (epoch ms) to the title's list.
    Entries are only removed by ``purge``; reads look at the window alone.
    ``should_evict`` is a pure threshold check with no memory of earlier
    evictions, so it keeps firing while the title stays above threshold.
    """

    def __init__(
        self,
        cache: CachePort,
        *,
        threshold: int = DEFAULT_THRESHOLD,
        window_seconds: float = DEFAULT_WINDOW_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if threshold < 1:
            raise ValueError("threshold must be >= 1")
        self.cache = cache
        self.threshold = threshold
        self.window_seconds = window_seconds
        self._clock = clock

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    async def record(self, title_id: str) -> RequestLogEntry:
        entry = RequestLogEntry(title_id=title_id, timestamp=self._now_ms())
        await self.cache.append(_log_key(title_id), entry.timestamp)
        log.debug("request_logged", title_id=title_id, timestamp=entry.timestamp)
        return entry

    async def count_recent(
        self, title_id: str, window_seconds: float | None = None
    ) -> int:
        """Number of requests for *title_id* within ``[now - window, now]``."""
        window = self.window_seconds if window_seconds is None else window_seconds
        now = self._now_ms()
        oldest = now - int(window * 1000)
        timestamps = await self.cache.get_list(_log_key(title_id))
        return sum(1 for ts in timestamps if oldest <= ts <= now)

    async def purge(self, title_id: str) -> None:
        await self.cache.delete(_log_key(title_id))
        log.debug("request_log_purged", title_id=title_id)

    async def should_evict(self, title_id: str) -> bool:
        count = await self.count_recent(title_id)
        if count >= self.threshold:
            log.info(
                "request_frequency_threshold_reached",
                title_id=title_id,
                count=count,
                threshold=self.threshold,
                window_seconds=self.window_seconds,
            )
            return True
        return False
