from .cache import CachePort
from .request_log import RequestFrequencyTrackerPort
from .source_client import AffinityResolverPort, SourceClientPort
from .stream_cache import StreamCachePort

__all__ = [
    "AffinityResolverPort",
    "CachePort",
    "RequestFrequencyTrackerPort",
    "SourceClientPort",
    "StreamCachePort",
]
