from .affinity_resolver import HttpxAffinityResolver
from .source_client import HttpxSourceClient
from .stream_sorter import StreamSorter

__all__ = ["HttpxAffinityResolver", "HttpxSourceClient", "StreamSorter"]
