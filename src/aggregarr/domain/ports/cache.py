"""Cache Port - Interface for backend-agnostic persistent key-value storage."""

from __future__ import annotations

from typing import Any, Protocol


class CachePort(Protocol):
    """Port for the async key-value store behind the stream cache and request log.

    Implementations:
      - DiskcacheAdapter (SQLite-based, no daemon)
      - RedisAdapter (Redis async client)

    Backend failures surface as ``StoreError``; a missing key is never an
    error.

    Each adapter MUST support async context-manager semantics:
        async with cache:
            await cache.set("key", value)
    """

    async def get(self, key: str) -> Any:
        """Retrieve value. None = not found / expired."""
        ...

    async def set(self, key: str, value: Any, *, ttl: int | None = None) -> None:
        """Set value. ``ttl=None`` uses the adapter default (None = no expiry)."""
        ...

    async def delete(self, key: str) -> bool:
        """Delete key. True = deleted, False = did not exist."""
        ...

    async def keys(self, prefix: str = "") -> list[str]:
        """List stored keys starting with *prefix*."""
        ...

    async def append(self, key: str, value: Any) -> None:
        """Atomically append *value* to the list stored at *key*."""
        ...

    async def get_list(self, key: str) -> list[Any]:
        """Return the list stored at *key* (empty when missing)."""
        ...

    async def aclose(self) -> None:
        """Cleanup hook (e.g. close Redis connection)."""
        ...

    # Context-Manager Support (optional, implemented by adapters)
    async def __aenter__(self) -> CachePort: ...

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None: ...
