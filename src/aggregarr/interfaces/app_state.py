"""Application state container for FastAPI dependency injection."""

from __future__ import annotations

from typing import TYPE_CHECKING

import httpx
from starlette.datastructures import State

from aggregarr.infrastructure.config import AppConfig

if TYPE_CHECKING:
    from aggregarr.application.use_cases import CacheCoordinator
    from aggregarr.domain.ports import CachePort
    from aggregarr.infrastructure.metrics import MetricsCollector


class AppState(State):
    """FastAPI application state with all DI resources.

    Lifecycle managed by composition.py::lifespan().
    """

    # Configuration
    config: AppConfig

    # Infrastructure
    cache: CachePort
    http_client: httpx.AsyncClient

    # Metrics (zero-impact in-memory counters)
    metrics: MetricsCollector

    # Stream resolution entry point
    coordinator: CacheCoordinator
