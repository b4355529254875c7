"""Tests for CacheCoordinator (stream resolution use case)."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from aggregarr.application.use_cases.stremio_stream import (
    CacheCoordinator,
    CoordinatorSettings,
)
from aggregarr.domain.entities.stremio import (
    CacheEntry,
    OrderingPolicy,
    StoreError,
    Stream,
)
from aggregarr.infrastructure.stremio.stream_sorter import StreamSorter

_SOURCES = ("https://a.example", "https://b.example")


def _make_coordinator(
    *,
    aggregator: AsyncMock,
    stream_cache: AsyncMock,
    tracker: AsyncMock,
    sorter: MagicMock | StreamSorter,
    coalesce: bool = False,
    metrics: MagicMock | None = None,
) -> CacheCoordinator:
    return CacheCoordinator(
        aggregator=aggregator,
        stream_cache=stream_cache,
        tracker=tracker,
        sorter=sorter,
        settings=CoordinatorSettings(sources=_SOURCES, coalesce_misses=coalesce),
        metrics=metrics,
    )


def _entry(content_id: str, streams: list[Stream], content_type: str = "movie") -> CacheEntry:
    return CacheEntry(
        content_id=content_id,
        content_type=content_type,
        streams=streams,
        written_at=0,
    )


class TestMissPath:
    async def test_movie_miss_fetches_and_stores_once(
        self,
        mock_aggregator: AsyncMock,
        mock_stream_cache: AsyncMock,
        mock_tracker: AsyncMock,
        identity_sorter: MagicMock,
        http_stream: Stream,
    ) -> None:
        mock_aggregator.fetch_all = AsyncMock(return_value=[http_stream])
        uc = _make_coordinator(
            aggregator=mock_aggregator,
            stream_cache=mock_stream_cache,
            tracker=mock_tracker,
            sorter=identity_sorter,
        )

        result = await uc.resolve("movie", "tt1")

        assert result == [http_stream]
        mock_aggregator.fetch_all.assert_awaited_once_with(list(_SOURCES), "movie", "tt1")
        mock_stream_cache.put.assert_awaited_once_with("movie", "tt1", [http_stream])
        mock_tracker.record.assert_awaited_once_with("tt1")

    async def test_episode_miss_stores_adjacent_ids(
        self,
        mock_aggregator: AsyncMock,
        mock_stream_cache: AsyncMock,
        mock_tracker: AsyncMock,
        identity_sorter: MagicMock,
        http_stream: Stream,
    ) -> None:
        mock_aggregator.fetch_all = AsyncMock(return_value=[http_stream])
        uc = _make_coordinator(
            aggregator=mock_aggregator,
            stream_cache=mock_stream_cache,
            tracker=mock_tracker,
            sorter=identity_sorter,
        )

        await uc.resolve("series", "tt3:1:1")

        stored = {c.args[1]: c.args for c in mock_stream_cache.put.await_args_list}
        assert set(stored) == {"tt3:1:1", "tt3:1:2", "tt3:2:1"}
        for args in stored.values():
            assert args[0] == "series"
            assert args[2] == [http_stream]
        mock_tracker.record.assert_awaited_once_with("tt3")

    async def test_non_ascii_digit_episode_is_served_as_single_id(
        self,
        mock_aggregator: AsyncMock,
        mock_stream_cache: AsyncMock,
        mock_tracker: AsyncMock,
        identity_sorter: MagicMock,
        http_stream: Stream,
    ) -> None:
        mock_aggregator.fetch_all = AsyncMock(return_value=[http_stream])
        uc = _make_coordinator(
            aggregator=mock_aggregator,
            stream_cache=mock_stream_cache,
            tracker=mock_tracker,
            sorter=identity_sorter,
        )

        result = await uc.resolve("series", "tt1:²:1")

        assert result == [http_stream]
        mock_tracker.record.assert_awaited_once_with("tt1")
        mock_stream_cache.put.assert_awaited_once_with(
            "series", "tt1:²:1", [http_stream]
        )

    async def test_put_failure_is_not_fatal(
        self,
        mock_aggregator: AsyncMock,
        mock_stream_cache: AsyncMock,
        mock_tracker: AsyncMock,
        identity_sorter: MagicMock,
        http_stream: Stream,
    ) -> None:
        mock_aggregator.fetch_all = AsyncMock(return_value=[http_stream])
        mock_stream_cache.put = AsyncMock(side_effect=StoreError("disk full"))
        metrics = MagicMock()
        uc = _make_coordinator(
            aggregator=mock_aggregator,
            stream_cache=mock_stream_cache,
            tracker=mock_tracker,
            sorter=identity_sorter,
            metrics=metrics,
        )

        result = await uc.resolve("series", "tt3:1:1")

        assert result == [http_stream]
        assert mock_stream_cache.put.await_count == 3
        assert metrics.record_cache_write_failure.call_count == 3

    async def test_miss_applies_ordering(
        self,
        mock_aggregator: AsyncMock,
        mock_stream_cache: AsyncMock,
        mock_tracker: AsyncMock,
    ) -> None:
        a = Stream(url="a", title="A", cached=False)
        b = Stream(url="b", title="B", cached=True)
        c = Stream(url="c", title="C", cached=False)
        mock_aggregator.fetch_all = AsyncMock(return_value=[a, b, c])
        uc = _make_coordinator(
            aggregator=mock_aggregator,
            stream_cache=mock_stream_cache,
            tracker=mock_tracker,
            sorter=StreamSorter(OrderingPolicy.CACHED_FIRST),
        )

        assert await uc.resolve("movie", "tt1") == [b, a, c]
        # Cache keeps discovery order; only the response is sorted.
        mock_stream_cache.put.assert_awaited_once_with("movie", "tt1", [a, b, c])


class TestHitPath:
    async def test_hit_skips_providers(
        self,
        mock_aggregator: AsyncMock,
        mock_stream_cache: AsyncMock,
        mock_tracker: AsyncMock,
        identity_sorter: MagicMock,
        http_stream: Stream,
    ) -> None:
        mock_stream_cache.get = AsyncMock(return_value=_entry("tt1", [http_stream]))
        metrics = MagicMock()
        uc = _make_coordinator(
            aggregator=mock_aggregator,
            stream_cache=mock_stream_cache,
            tracker=mock_tracker,
            sorter=identity_sorter,
            metrics=metrics,
        )

        result = await uc.resolve("movie", "tt1")

        assert result == [http_stream]
        mock_aggregator.fetch_all.assert_not_awaited()
        mock_stream_cache.put.assert_not_awaited()
        mock_aggregator.resolve_affinity.assert_awaited_once_with([http_stream])
        metrics.record_cache_lookup.assert_called_once_with(hit=True)

    async def test_hit_reresolves_affinity(
        self,
        mock_aggregator: AsyncMock,
        mock_stream_cache: AsyncMock,
        mock_tracker: AsyncMock,
        identity_sorter: MagicMock,
        magnet_stream: Stream,
    ) -> None:
        resolved = Stream(url="https://direct", title=magnet_stream.title, cached=True)
        mock_stream_cache.get = AsyncMock(return_value=_entry("tt1", [magnet_stream]))
        mock_aggregator.resolve_affinity = AsyncMock(return_value=[resolved])
        uc = _make_coordinator(
            aggregator=mock_aggregator,
            stream_cache=mock_stream_cache,
            tracker=mock_tracker,
            sorter=identity_sorter,
        )

        assert await uc.resolve("movie", "tt1") == [resolved]

    async def test_store_read_error_propagates(
        self,
        mock_aggregator: AsyncMock,
        mock_stream_cache: AsyncMock,
        mock_tracker: AsyncMock,
        identity_sorter: MagicMock,
    ) -> None:
        mock_stream_cache.get = AsyncMock(side_effect=StoreError("locked"))
        uc = _make_coordinator(
            aggregator=mock_aggregator,
            stream_cache=mock_stream_cache,
            tracker=mock_tracker,
            sorter=identity_sorter,
        )

        with pytest.raises(StoreError):
            await uc.resolve("movie", "tt1")
        mock_aggregator.fetch_all.assert_not_awaited()


class TestRequestLogFailures:
    async def test_record_failure_is_not_fatal(
        self,
        mock_aggregator: AsyncMock,
        mock_stream_cache: AsyncMock,
        mock_tracker: AsyncMock,
        identity_sorter: MagicMock,
    ) -> None:
        mock_tracker.record = AsyncMock(side_effect=StoreError("readonly"))
        uc = _make_coordinator(
            aggregator=mock_aggregator,
            stream_cache=mock_stream_cache,
            tracker=mock_tracker,
            sorter=identity_sorter,
        )
        assert await uc.resolve("movie", "tt1") == []

    async def test_frequency_read_failure_skips_eviction(
        self,
        mock_aggregator: AsyncMock,
        mock_stream_cache: AsyncMock,
        mock_tracker: AsyncMock,
        identity_sorter: MagicMock,
    ) -> None:
        mock_tracker.should_evict = AsyncMock(side_effect=StoreError("readonly"))
        uc = _make_coordinator(
            aggregator=mock_aggregator,
            stream_cache=mock_stream_cache,
            tracker=mock_tracker,
            sorter=identity_sorter,
        )
        await uc.resolve("movie", "tt1")
        mock_stream_cache.evict.assert_not_awaited()


class TestEvictionGate:
    async def test_evicts_and_purges_when_row_exists(
        self,
        mock_aggregator: AsyncMock,
        mock_stream_cache: AsyncMock,
        mock_tracker: AsyncMock,
        identity_sorter: MagicMock,
        http_stream: Stream,
    ) -> None:
        fresh = Stream(url="https://fresh", title="F")
        # 1st get: gate check (row exists); 2nd get: after eviction (gone).
        mock_stream_cache.get = AsyncMock(
            side_effect=[_entry("tt1:1:1", [http_stream], "series"), None]
        )
        mock_tracker.should_evict = AsyncMock(return_value=True)
        mock_aggregator.fetch_all = AsyncMock(return_value=[fresh])
        metrics = MagicMock()
        uc = _make_coordinator(
            aggregator=mock_aggregator,
            stream_cache=mock_stream_cache,
            tracker=mock_tracker,
            sorter=identity_sorter,
            metrics=metrics,
        )

        result = await uc.resolve("series", "tt1:1:1")

        mock_stream_cache.evict.assert_awaited_once_with("series", "tt1:1:1")
        mock_tracker.purge.assert_awaited_once_with("tt1")
        metrics.record_eviction.assert_called_once_with(1)
        assert result == [fresh]

    async def test_no_row_skips_eviction_and_purge(
        self,
        mock_aggregator: AsyncMock,
        mock_stream_cache: AsyncMock,
        mock_tracker: AsyncMock,
        identity_sorter: MagicMock,
    ) -> None:
        mock_tracker.should_evict = AsyncMock(return_value=True)
        uc = _make_coordinator(
            aggregator=mock_aggregator,
            stream_cache=mock_stream_cache,
            tracker=mock_tracker,
            sorter=identity_sorter,
        )

        await uc.resolve("movie", "tt1")

        mock_stream_cache.evict.assert_not_awaited()
        mock_tracker.purge.assert_not_awaited()

    async def test_below_threshold_does_not_evict(
        self,
        mock_aggregator: AsyncMock,
        mock_stream_cache: AsyncMock,
        mock_tracker: AsyncMock,
        identity_sorter: MagicMock,
        http_stream: Stream,
    ) -> None:
        mock_stream_cache.get = AsyncMock(return_value=_entry("tt1", [http_stream]))
        uc = _make_coordinator(
            aggregator=mock_aggregator,
            stream_cache=mock_stream_cache,
            tracker=mock_tracker,
            sorter=identity_sorter,
        )

        await uc.resolve("movie", "tt1")

        mock_stream_cache.evict.assert_not_awaited()
        # Only the serving read; the gate never looks at the row.
        assert mock_stream_cache.get.await_count == 1

    async def test_evict_failure_keeps_request_log(
        self,
        mock_aggregator: AsyncMock,
        mock_stream_cache: AsyncMock,
        mock_tracker: AsyncMock,
        identity_sorter: MagicMock,
        http_stream: Stream,
    ) -> None:
        mock_stream_cache.get = AsyncMock(return_value=_entry("tt1", [http_stream]))
        mock_stream_cache.evict = AsyncMock(side_effect=StoreError("locked"))
        mock_tracker.should_evict = AsyncMock(return_value=True)
        uc = _make_coordinator(
            aggregator=mock_aggregator,
            stream_cache=mock_stream_cache,
            tracker=mock_tracker,
            sorter=identity_sorter,
        )

        result = await uc.resolve("movie", "tt1")

        assert result == [http_stream]
        mock_tracker.purge.assert_not_awaited()

    async def test_purge_failure_is_not_fatal(
        self,
        mock_aggregator: AsyncMock,
        mock_stream_cache: AsyncMock,
        mock_tracker: AsyncMock,
        identity_sorter: MagicMock,
        http_stream: Stream,
    ) -> None:
        mock_stream_cache.get = AsyncMock(
            side_effect=[_entry("tt1", [http_stream]), None]
        )
        mock_tracker.should_evict = AsyncMock(return_value=True)
        mock_tracker.purge = AsyncMock(side_effect=StoreError("locked"))
        uc = _make_coordinator(
            aggregator=mock_aggregator,
            stream_cache=mock_stream_cache,
            tracker=mock_tracker,
            sorter=identity_sorter,
        )

        await uc.resolve("movie", "tt1")
        mock_aggregator.fetch_all.assert_awaited_once()


class TestCoalescing:
    async def test_concurrent_misses_share_one_fetch(
        self,
        mock_aggregator: AsyncMock,
        mock_stream_cache: AsyncMock,
        mock_tracker: AsyncMock,
        identity_sorter: MagicMock,
        http_stream: Stream,
    ) -> None:
        gate = asyncio.Event()

        async def _slow_fetch(*args: object) -> list[Stream]:
            await gate.wait()
            return [http_stream]

        mock_aggregator.fetch_all = AsyncMock(side_effect=_slow_fetch)
        uc = _make_coordinator(
            aggregator=mock_aggregator,
            stream_cache=mock_stream_cache,
            tracker=mock_tracker,
            sorter=identity_sorter,
            coalesce=True,
        )

        first = asyncio.create_task(uc.resolve("movie", "tt1"))
        second = asyncio.create_task(uc.resolve("movie", "tt1"))
        for _ in range(10):
            await asyncio.sleep(0)
        gate.set()

        assert await first == [http_stream]
        assert await second == [http_stream]
        mock_aggregator.fetch_all.assert_awaited_once()

    async def test_without_coalescing_both_fetch(
        self,
        mock_aggregator: AsyncMock,
        mock_stream_cache: AsyncMock,
        mock_tracker: AsyncMock,
        identity_sorter: MagicMock,
    ) -> None:
        uc = _make_coordinator(
            aggregator=mock_aggregator,
            stream_cache=mock_stream_cache,
            tracker=mock_tracker,
            sorter=identity_sorter,
        )
        await asyncio.gather(uc.resolve("movie", "tt1"), uc.resolve("movie", "tt1"))
        assert mock_aggregator.fetch_all.await_count == 2
