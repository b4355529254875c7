"""Zero-impact in-memory runtime metrics.

All counters are plain Python integers manipulated inside the single-threaded
async event loop, so no locking is needed.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field


@dataclass
class SourceStats:
    """Accumulated fetch statistics for a single provider."""

    fetches: int = 0
    successes: int = 0
    failures: int = 0
    timeouts: int = 0
    total_results: int = 0
    total_duration_ns: int = 0

    def snapshot(self) -> dict[str, object]:
        avg_ms = (
            round(self.total_duration_ns / self.fetches / 1_000_000, 1)
            if self.fetches
            else 0.0
        )
        return {
            "fetches": self.fetches,
            "successes": self.successes,
            "failures": self.failures,
            "timeouts": self.timeouts,
            "total_results": self.total_results,
            "avg_duration_ms": avg_ms,
        }


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    evictions: int = 0
    evicted_rows: int = 0
    write_failures: int = 0

    def snapshot(self) -> dict[str, object]:
        lookups = self.hits + self.misses
        return {
            "hits": self.hits,
            "misses": self.misses,
            "hit_ratio": round(self.hits / lookups, 3) if lookups else 0.0,
            "evictions": self.evictions,
            "evicted_rows": self.evicted_rows,
            "write_failures": self.write_failures,
        }


@dataclass
class MetricsCollector:
    """Central in-memory metrics collector."""

    _sources: dict[str, SourceStats] = field(default_factory=dict)
    _cache: CacheStats = field(default_factory=CacheStats)
    _start_ns: int = field(default_factory=time.perf_counter_ns)

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def record_source_fetch(
        self,
        source: str,
        duration_ns: int,
        result_count: int,
        *,
        outcome: str,
    ) -> None:
        """Record one provider fetch; *outcome* is success/timeout/error."""
        stats = self._sources.setdefault(source, SourceStats())
        stats.fetches += 1
        stats.total_duration_ns += duration_ns

        if outcome == "success":
            stats.successes += 1
            stats.total_results += result_count
        elif outcome == "timeout":
            stats.timeouts += 1
        else:
            stats.failures += 1

    def record_cache_lookup(self, *, hit: bool) -> None:
        if hit:
            self._cache.hits += 1
        else:
            self._cache.misses += 1

    def record_eviction(self, deleted_rows: int) -> None:
        self._cache.evictions += 1
        self._cache.evicted_rows += deleted_rows

    def record_cache_write_failure(self) -> None:
        self._cache.write_failures += 1

    # ------------------------------------------------------------------
    # Snapshot
    # ------------------------------------------------------------------

    def snapshot(self) -> dict[str, object]:
        """Return a JSON-serializable snapshot of all metrics."""
        uptime_ns = time.perf_counter_ns() - self._start_ns
        return {
            "uptime_seconds": round(uptime_ns / 1_000_000_000, 1),
            "sources": {
                name: stats.snapshot() for name, stats in sorted(self._sources.items())
            },
            "cache": self._cache.snapshot(),
        }
