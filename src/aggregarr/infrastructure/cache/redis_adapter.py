"""Redis adapter - async Redis via redis.asyncio."""

from __future__ import annotations

import asyncio
import pickle
from typing import Any

import structlog
from redis.asyncio import Redis
from redis.exceptions import RedisError

from aggregarr.domain.entities.stremio import StoreError

log = structlog.get_logger(__name__)


class RedisAdapter:
    """Async Redis store with a semaphore bounding parallel operations.

    - Uses `redis.asyncio.Redis` (async-native, no to_thread needed).
    - Plain values are pickled strings; `append` uses native Redis lists
      (RPUSH), so appends from concurrent requests never lose entries.
    - Redis failures are re-raised as ``StoreError``.

    Args:
        url: Redis URL (e.g. `redis://localhost:6379/0`).
        ttl_seconds: Default TTL (None or 0 = keep until deleted).
        max_concurrent: Max parallel Redis ops (default: 50, tunable).
    """

    def __init__(
        self,
        url: str = "redis://localhost:6379/0",
        ttl_seconds: int | None = None,
        max_concurrent: int = 50,
    ) -> None:
        self.url = url
        self.default_ttl = ttl_seconds
        self._client: Redis | None = None
        self._semaphore = asyncio.Semaphore(max_concurrent)

        log.info(
            "redis_adapter_init",
            url=url,
            default_ttl=ttl_seconds,
            max_concurrent=max_concurrent,
        )

    # --- Context Manager ---
    async def __aenter__(self) -> RedisAdapter:
        """Initialize Redis client (connection pool) and PING it."""
        if self._client is None:
            self._client = Redis.from_url(self.url, decode_responses=False)
            try:
                await self._client.ping()
                log.info("redis_connected", url=self.url)
            except RedisError as e:
                log.error("redis_connection_failed", url=self.url, error=str(e))
                raise StoreError(f"cannot connect to {self.url}") from e
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Cleanup: close Redis connection pool."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            log.info("redis_closed")

    def _require_client(self) -> Redis:
        if self._client is None:
            raise RuntimeError("Redis not initialized. Use 'async with cache:'")
        return self._client

    # --- CachePort implementation ---
    async def get(self, key: str) -> Any | None:
        client = self._require_client()
        async with self._semaphore:
            try:
                raw = await client.get(key)
            except RedisError as e:
                log.error("redis_get_error", key=key, error=str(e))
                raise StoreError(f"redis get failed for {key!r}") from e
        if raw is None:
            log.debug("cache_miss", key=key)
            return None
        try:
            value = pickle.loads(raw)
        except (pickle.PickleError, EOFError) as e:
            log.error("redis_unpickle_error", key=key, error=str(e))
            raise StoreError(f"undecodable value at {key!r}") from e
        log.debug("cache_hit", key=key)
        return value

    async def set(self, key: str, value: Any, *, ttl: int | None = None) -> None:
        client = self._require_client()
        expire = ttl if ttl is not None else self.default_ttl
        packed = pickle.dumps(value)

        async with self._semaphore:
            try:
                if expire:
                    await client.setex(key, expire, packed)
                else:
                    await client.set(key, packed)
            except RedisError as e:
                log.error("redis_set_error", key=key, error=str(e))
                raise StoreError(f"redis set failed for {key!r}") from e
        log.debug("cache_set", key=key, ttl=expire, size_bytes=len(packed))

    async def delete(self, key: str) -> bool:
        if self._client is None:
            return False

        async with self._semaphore:
            try:
                deleted = await self._client.delete(key)
            except RedisError as e:
                log.error("redis_delete_error", key=key, error=str(e))
                raise StoreError(f"redis delete failed for {key!r}") from e
        log.debug("cache_delete", key=key, deleted=deleted > 0)
        return deleted > 0

    async def keys(self, prefix: str = "") -> list[str]:
        client = self._require_client()
        async with self._semaphore:
            try:
                return [
                    k.decode() if isinstance(k, bytes) else k
                    async for k in client.scan_iter(match=f"{prefix}*")
                ]
            except RedisError as e:
                log.error("redis_scan_error", prefix=prefix, error=str(e))
                raise StoreError(f"redis scan failed for {prefix!r}") from e

    async def append(self, key: str, value: Any) -> None:
        client = self._require_client()
        async with self._semaphore:
            try:
                await client.rpush(key, pickle.dumps(value))
            except RedisError as e:
                log.error("redis_append_error", key=key, error=str(e))
                raise StoreError(f"redis rpush failed for {key!r}") from e
        log.debug("cache_append", key=key)

    async def get_list(self, key: str) -> list[Any]:
        client = self._require_client()
        async with self._semaphore:
            try:
                raw_items = await client.lrange(key, 0, -1)
            except RedisError as e:
                log.error("redis_lrange_error", key=key, error=str(e))
                raise StoreError(f"redis lrange failed for {key!r}") from e
        try:
            return [pickle.loads(item) for item in raw_items]
        except (pickle.PickleError, EOFError) as e:
            log.error("redis_unpickle_error", key=key, error=str(e))
            raise StoreError(f"undecodable list item at {key!r}") from e
