from .stream_aggregation import StreamAggregator
from .stremio_stream import CacheCoordinator, CoordinatorSettings

__all__ = ["CacheCoordinator", "CoordinatorSettings", "StreamAggregator"]
