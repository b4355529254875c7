"""Port for the request-frequency tracker."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from aggregarr.domain.entities.stremio import RequestLogEntry


@runtime_checkable
class RequestFrequencyTrackerPort(Protocol):
    """Append-only request log per title with a sliding-window gate."""

    async def record(self, title_id: str) -> RequestLogEntry: ...

    async def count_recent(
        self, title_id: str, window_seconds: float | None = None
    ) -> int: ...

    async def purge(self, title_id: str) -> None: ...

    async def should_evict(self, title_id: str) -> bool: ...
