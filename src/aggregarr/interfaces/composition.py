"""Composition root: dependency injection via FastAPI lifespan."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, cast

import httpx
import structlog
from fastapi import FastAPI

from aggregarr.application.use_cases import (
    CacheCoordinator,
    CoordinatorSettings,
    StreamAggregator,
)
from aggregarr.domain.entities.stremio import OrderingPolicy
from aggregarr.domain.ports.cache import CachePort
from aggregarr.infrastructure.cache.cache_factory import create_cache
from aggregarr.infrastructure.config.schema import AppConfig
from aggregarr.infrastructure.metrics import MetricsCollector
from aggregarr.infrastructure.persistence import (
    RequestFrequencyTracker,
    StreamCache,
)
from aggregarr.infrastructure.stremio import (
    HttpxAffinityResolver,
    HttpxSourceClient,
    StreamSorter,
)
from aggregarr.interfaces.app_state import AppState

log = structlog.get_logger(__name__)


def build_coordinator(
    config: AppConfig,
    *,
    cache: CachePort,
    http_client: httpx.AsyncClient,
    metrics: MetricsCollector | None = None,
) -> CacheCoordinator:
    """Wire repositories, clients and the use case on top of an open cache."""
    stremio = config.stremio

    affinity_resolver = None
    if config.affinity.enabled:
        affinity_resolver = HttpxAffinityResolver(
            http_client=http_client,
            endpoint=config.affinity.endpoint,
            api_token=config.affinity.api_token,
            timeout=config.affinity.timeout_seconds,
        )
    log.info("affinity_resolver", enabled=affinity_resolver is not None)

    aggregator = StreamAggregator(
        source_client=HttpxSourceClient(http_client=http_client, metrics=metrics),
        affinity_resolver=affinity_resolver,
        timeout_seconds=stremio.source_timeout_seconds,
    )
    policy = OrderingPolicy.CACHED_FIRST
    if stremio.randomize_streams:
        policy = OrderingPolicy.SHUFFLE

    return CacheCoordinator(
        aggregator=aggregator,
        stream_cache=StreamCache(cache, ttl_seconds=config.cache.ttl_seconds),
        tracker=RequestFrequencyTracker(
            cache,
            threshold=stremio.deletion_threshold,
            window_seconds=stremio.eviction_window_seconds,
        ),
        sorter=StreamSorter(policy),
        settings=CoordinatorSettings(
            sources=tuple(stremio.sources),
            coalesce_misses=stremio.coalesce_misses,
        ),
        metrics=metrics,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Lifespan Hook: Initialize and cleanup all resources (DI Composition Root).

    Order matters:
        1. Cache (stream rows and request log live here)
        2. HTTP Client (providers and affinity resolver)
        3. Coordinator (repositories + aggregator + sorter)
    """
    state = cast(AppState, app.state)
    config = state.config

    # 0) Metrics collector (must exist before components that record)
    state.metrics = MetricsCollector()

    # 1) Cache
    cache = create_cache(
        backend=config.cache.backend,
        directory=str(config.cache.directory),
        redis_url=config.cache.redis_url,
        ttl_seconds=config.cache.ttl_seconds,
        max_concurrent=config.cache.max_concurrent,
    )
    await cache.__aenter__()
    state.cache = cache
    log.info("cache_initialized", backend=config.cache.backend)

    # 2) HTTP client (per-call timeouts are passed explicitly)
    state.http_client = httpx.AsyncClient(
        timeout=httpx.Timeout(config.http_timeout_seconds),
        headers={"User-Agent": config.http_user_agent},
        follow_redirects=True,
    )
    log.info("http_client_initialized")

    # 3) Use case
    if not config.stremio.sources:
        log.warning("no_sources_configured")
    state.coordinator = build_coordinator(
        config,
        cache=cache,
        http_client=state.http_client,
        metrics=state.metrics,
    )
    log.info(
        "app_startup_complete",
        sources=len(config.stremio.sources),
        randomize_streams=config.stremio.randomize_streams,
        deletion_threshold=config.stremio.deletion_threshold,
    )

    try:
        yield
    finally:
        await state.http_client.aclose()
        log.info("http_client_closed")

        await state.cache.aclose()
        log.info("cache_closed")

        log.info("app_shutdown_complete")
