from .stremio import (
    CacheEntry,
    ContentId,
    OrderingPolicy,
    RequestLogEntry,
    StoreError,
    Stream,
    StremioContentType,
)

__all__ = [
    "CacheEntry",
    "ContentId",
    "OrderingPolicy",
    "RequestLogEntry",
    "StoreError",
    "Stream",
    "StremioContentType",
]
