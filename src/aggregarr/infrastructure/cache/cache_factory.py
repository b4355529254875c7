"""Cache factory - builds the store adapter selected in config."""

from __future__ import annotations

from typing import Literal

import structlog

from aggregarr.domain.ports.cache import CachePort
from aggregarr.infrastructure.cache.diskcache_adapter import DiskcacheAdapter
from aggregarr.infrastructure.cache.redis_adapter import RedisAdapter

log = structlog.get_logger(__name__)

CacheBackend = Literal["diskcache", "redis"]


def create_cache(
    backend: CacheBackend = "diskcache",
    *,
    directory: str = "./cache",
    redis_url: str = "redis://localhost:6379/0",
    ttl_seconds: int | None = None,
    max_concurrent: int = 10,
) -> CachePort:
    """Create the store adapter for *backend*.

    Args:
        backend: "diskcache" (SQLite) or "redis".
        directory: Diskcache path.
        redis_url: Redis connection string.
        ttl_seconds: Default TTL for both backends (None = no expiry).
        max_concurrent: Semaphore limit for diskcache; Redis always uses 50.

    Raises:
        ValueError: If `backend` is unknown.
    """
    if backend == "diskcache":
        log.info(
            "cache_factory_create",
            backend=backend,
            directory=directory,
            ttl=ttl_seconds,
            max_concurrent=max_concurrent,
        )
        return DiskcacheAdapter(
            directory=directory,
            ttl_seconds=ttl_seconds,
            max_concurrent=max_concurrent,
        )
    if backend == "redis":
        log.info("cache_factory_create", backend=backend, url=redis_url, ttl=ttl_seconds)
        return RedisAdapter(url=redis_url, ttl_seconds=ttl_seconds, max_concurrent=50)
    raise ValueError(
        f"Unknown cache backend: {backend!r}. Must be 'diskcache' or 'redis'."
    )
