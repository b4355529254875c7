"""Ports for upstream providers and the cache-affinity resolver."""

from __future__ import annotations

from typing import Protocol

from aggregarr.domain.entities.stremio import Stream


class SourceClientPort(Protocol):
    """Fetches one provider's stream listing.

    Implementations never raise: every failure is logged and reported as
    an empty list.
    """

    async def fetch(
        self,
        base_url: str,
        content_type: str,
        content_id: str,
        timeout: float,
    ) -> list[Stream]: ...


class AffinityResolverPort(Protocol):
    """Looks up whether a magnet locator has a direct, playable URL."""

    async def resolve(self, magnet_url: str) -> str | None:
        """Return the direct URL, or None when not cached / lookup failed."""
        ...
