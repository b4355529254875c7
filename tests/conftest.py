"""Shared test fixtures for Aggregarr test suite."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from aggregarr.domain.entities.stremio import CacheEntry, Stream

# ---------------------------------------------------------------------------
# Domain entity fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def http_stream() -> Stream:
    """Plain HTTP stream (never affinity-resolved)."""
    return Stream(
        url="https://cdn.example.com/movie.mkv",
        title="Movie 1080p",
        extra={"name": "ProviderA"},
    )


@pytest.fixture()
def magnet_stream() -> Stream:
    """Magnet-style stream eligible for affinity resolution."""
    return Stream(
        url="magnet:?xt=urn:btih:abc123",
        title="Movie 2160p",
        extra={"name": "ProviderB"},
    )


@pytest.fixture()
def cache_entry(http_stream: Stream) -> CacheEntry:
    return CacheEntry(
        content_id="tt0111161",
        content_type="movie",
        streams=[http_stream],
        written_at=1_700_000_000_000,
    )


# ---------------------------------------------------------------------------
# Mock port fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def mock_cache() -> AsyncMock:
    """Mock CachePort."""
    cache = AsyncMock()
    cache.get = AsyncMock(return_value=None)
    cache.set = AsyncMock()
    cache.delete = AsyncMock(return_value=True)
    cache.keys = AsyncMock(return_value=[])
    cache.append = AsyncMock()
    cache.get_list = AsyncMock(return_value=[])
    cache.aclose = AsyncMock()
    return cache


@pytest.fixture()
def mock_stream_cache() -> AsyncMock:
    """Mock StreamCachePort (empty cache)."""
    repo = AsyncMock()
    repo.get = AsyncMock(return_value=None)
    repo.put = AsyncMock()
    repo.evict = AsyncMock(return_value=1)
    return repo


@pytest.fixture()
def mock_tracker() -> AsyncMock:
    """Mock RequestFrequencyTrackerPort (below threshold)."""
    tracker = AsyncMock()
    tracker.record = AsyncMock()
    tracker.should_evict = AsyncMock(return_value=False)
    tracker.purge = AsyncMock()
    tracker.count_recent = AsyncMock(return_value=0)
    return tracker


@pytest.fixture()
def mock_aggregator() -> AsyncMock:
    """Mock StreamAggregator; affinity resolution passes streams through."""
    aggregator = AsyncMock()
    aggregator.fetch_all = AsyncMock(return_value=[])
    aggregator.resolve_affinity = AsyncMock(side_effect=lambda streams: list(streams))
    return aggregator


@pytest.fixture()
def identity_sorter() -> MagicMock:
    sorter = MagicMock()
    sorter.sort.side_effect = lambda streams: list(streams)
    return sorter
