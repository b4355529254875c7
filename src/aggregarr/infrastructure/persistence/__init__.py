from .request_log import RequestFrequencyTracker
from .stream_cache import StreamCache

__all__ = ["RequestFrequencyTracker", "StreamCache"]
