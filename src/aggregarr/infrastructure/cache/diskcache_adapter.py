"""Diskcache adapter - SQLite-based store without daemon process."""

from __future__ import annotations

import asyncio
import sqlite3
from collections.abc import Callable
from pathlib import Path
from typing import Any, Optional, TypeVar

import structlog
from diskcache import Cache as DiskCache
from diskcache import Timeout as DiskcacheTimeout

from aggregarr.domain.entities.stremio import StoreError

log = structlog.get_logger(__name__)

T = TypeVar("T")


class DiskcacheAdapter:
    """Async wrapper for diskcache.Cache (sync-only library).

    - Uses `asyncio.to_thread` for I/O (no blocking of the event loop).
    - Semaphore prevents too many parallel disk writes (SQLite lock contention).
    - SQLite / lock-timeout failures are re-raised as ``StoreError``.
    - Implements context manager (`async with`).

    Args:
        directory: SQLite DB path (default: `./cache`).
        ttl_seconds: Default TTL for `set()` without explicit value
            (None or 0 = keep until deleted).
        max_concurrent: Max parallel disk ops (default: 10, tunable).
    """

    def __init__(
        self,
        directory: str | Path = "./cache",
        ttl_seconds: int | None = None,
        max_concurrent: int = 10,
    ) -> None:
        self.directory = Path(directory)
        self.default_ttl = ttl_seconds
        self._cache: DiskCache | None = None
        self._semaphore = asyncio.Semaphore(max_concurrent)

        log.info(
            "diskcache_adapter_init",
            directory=str(self.directory),
            default_ttl=ttl_seconds,
            max_concurrent=max_concurrent,
        )

    # --- Context Manager ---
    async def __aenter__(self) -> DiskcacheAdapter:
        """Open SQLite cache (lazy, on first access)."""
        if self._cache is None:
            self._cache = await asyncio.to_thread(DiskCache, str(self.directory))
            log.info("diskcache_opened", path=str(self.directory))
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._cache is not None:
            await asyncio.to_thread(self._cache.close)
            self._cache = None
            log.info("diskcache_closed", directory=str(self.directory))

    # --- Helpers ---
    def _require_open(self) -> DiskCache:
        if self._cache is None:
            raise RuntimeError(
                "Cache not initialized. Use 'async with cache:' or await cache.__aenter__()"
            )
        return self._cache

    async def _run(self, op: str, key: str, fn: Callable[..., T], *args: Any) -> T:
        """Run a blocking diskcache call in a worker thread under the semaphore."""
        async with self._semaphore:
            try:
                return await asyncio.to_thread(fn, *args)
            except (sqlite3.Error, DiskcacheTimeout, OSError) as e:
                log.error("diskcache_error", op=op, key=key, error=str(e))
                raise StoreError(f"diskcache {op} failed for {key!r}") from e

    def _expire(self, ttl: int | None) -> int | None:
        expire = ttl if ttl is not None else self.default_ttl
        return expire or None

    # --- CachePort implementation ---
    async def get(self, key: str) -> Optional[Any]:
        cache = self._require_open()
        value = await self._run("get", key, lambda: cache.get(key, default=None))
        log.debug("cache_get", key=key, hit=value is not None)
        return value

    async def set(self, key: str, value: Any, *, ttl: int | None = None) -> None:
        cache = self._require_open()
        expire = self._expire(ttl)
        await self._run("set", key, lambda: cache.set(key, value, expire=expire))
        log.debug("cache_set", key=key, ttl=expire)

    async def delete(self, key: str) -> bool:
        if self._cache is None:
            return False
        cache = self._cache
        deleted = await self._run("delete", key, lambda: bool(cache.delete(key)))
        log.debug("cache_delete", key=key, deleted=deleted)
        return deleted

    async def keys(self, prefix: str = "") -> list[str]:
        cache = self._require_open()

        def _scan() -> list[str]:
            return [
                k
                for k in cache.iterkeys()
                if isinstance(k, str) and k.startswith(prefix)
            ]

        return await self._run("keys", prefix, _scan)

    async def append(self, key: str, value: Any) -> None:
        cache = self._require_open()

        def _append() -> None:
            # transact() holds the SQLite write lock across read-modify-write.
            with cache.transact():
                items = cache.get(key, default=None) or []
                items.append(value)
                cache.set(key, items)

        await self._run("append", key, _append)
        log.debug("cache_append", key=key)

    async def get_list(self, key: str) -> list[Any]:
        cache = self._require_open()
        items = await self._run("get_list", key, lambda: cache.get(key, default=None))
        return list(items) if items else []
