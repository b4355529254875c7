"""Hardcoded default configuration values."""

from __future__ import annotations

from typing import Any

DEFAULT_CONFIG: dict[str, Any] = {
    "app_name": "aggregarr",
    "environment": "dev",
    "http": {
        "timeout_seconds": 10.0,
        "user_agent": "Aggregarr/0.1.0",
    },
    "logging": {
        "level": "INFO",
        "format": None,  # Derived from environment in schema.py
    },
    "cache": {
        "dir": "./.cache/aggregarr",
        "backend": "diskcache",
        "ttl_seconds": None,  # Rows live until evicted
    },
    "stremio": {
        "sources": [],
        "source_timeout_ms": 2000,
        "randomize_streams": False,
        "deletion_threshold": 5,
        "eviction_window_seconds": 3600,
    },
    "affinity": {
        "endpoint": None,
        "api_token": None,
    },
}
