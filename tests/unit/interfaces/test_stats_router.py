"""Tests for the stats router."""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.testclient import TestClient

from aggregarr.infrastructure.metrics import MetricsCollector
from aggregarr.interfaces.api.stats.router import router


class TestMetricsEndpoint:
    def test_returns_snapshot(self) -> None:
        app = FastAPI()
        app.include_router(router)
        metrics = MetricsCollector()
        metrics.record_cache_lookup(hit=False)
        app.state.metrics = metrics

        resp = TestClient(app).get("/stats/metrics")

        assert resp.status_code == 200
        body = resp.json()
        assert body["cache"]["misses"] == 1
        assert "uptime_seconds" in body

    def test_without_metrics_returns_empty(self) -> None:
        app = FastAPI()
        app.include_router(router)

        resp = TestClient(app).get("/stats/metrics")

        assert resp.status_code == 200
        assert resp.json() == {}
