"""Domain entities for the Stremio stream aggregator.

Pure value objects without framework dependencies or I/O.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal

StremioContentType = Literal["movie", "series"]

# Fields modelled explicitly on Stream; everything else rides along in `extra`.
_STREAM_FIELDS = ("url", "title", "cached")


def _is_number(part: str) -> bool:
    return part.isascii() and part.isdecimal()


class OrderingPolicy(str, Enum):
    """How the final stream list is ordered before it is returned."""

    SHUFFLE = "shuffle"
    CACHED_FIRST = "cached_first"


class StoreError(Exception):
    """Persistent store (cache rows or request log) could not be read or written."""


@dataclass(frozen=True)
class ContentId:
    """Parsed Stremio content identifier.

    ``tt1234567`` (movie) or ``tt1234567:1:5`` (series, season 1, episode 5).
    Parsing is purely syntactic: the first ``:``-separated part is the
    title id, season and episode are only set when both are non-negative
    integers.
    """

    raw: str
    title_id: str
    season: int | None = None
    episode: int | None = None

    @classmethod
    def parse(cls, raw: str) -> ContentId:
        parts = raw.split(":")
        if len(parts) == 3 and _is_number(parts[1]) and _is_number(parts[2]):
            return cls(
                raw=raw,
                title_id=parts[0],
                season=int(parts[1]),
                episode=int(parts[2]),
            )
        return cls(raw=raw, title_id=parts[0])

    @property
    def is_episodic(self) -> bool:
        return self.season is not None and self.episode is not None

    def next_episode(self) -> ContentId | None:
        if not self.is_episodic:
            return None
        return ContentId.parse(f"{self.title_id}:{self.season}:{self.episode + 1}")

    def next_season(self) -> ContentId | None:
        if not self.is_episodic:
            return None
        return ContentId.parse(f"{self.title_id}:{self.season + 1}:1")

    def adjacent(self) -> list[ContentId]:
        """Next episode and first episode of the next season (empty for movies)."""
        if not self.is_episodic:
            return []
        return [self.next_episode(), self.next_season()]

    def __str__(self) -> str:
        return self.raw


@dataclass(frozen=True)
class Stream:
    """A single playable result as returned by a provider.

    Only ``url``, ``title`` and ``cached`` are interpreted; the remaining
    Stremio fields (``name``, ``infoHash``, ``behaviorHints``, ...) are kept
    verbatim in ``extra`` so they survive caching.
    """

    url: str = ""
    title: str = ""
    cached: bool = False
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def dedup_key(self) -> tuple[str, str]:
        return (self.url, self.title)

    @property
    def is_magnet(self) -> bool:
        return "magnet:" in self.url

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Stream:
        return cls(
            url=str(data.get("url") or ""),
            title=str(data.get("title") or ""),
            cached=bool(data.get("cached", False)),
            extra={k: v for k, v in data.items() if k not in _STREAM_FIELDS},
        )

    def to_dict(self) -> dict[str, Any]:
        """Stremio JSON shape (missing url/title stay missing)."""
        data = dict(self.extra)
        if self.url:
            data["url"] = self.url
        if self.title:
            data["title"] = self.title
        data["cached"] = self.cached
        return data


@dataclass(frozen=True)
class CacheEntry:
    """Merged stream list stored for one content id."""

    content_id: str
    content_type: StremioContentType
    streams: list[Stream]
    written_at: int  # epoch milliseconds


@dataclass(frozen=True)
class RequestLogEntry:
    """One incoming request for a title."""

    title_id: str
    timestamp: int  # epoch milliseconds
