"""Storage backends for SummaryCache.

The default is in-memory storage. Alternative backends (Redis, a database
table, a shared file) only need to implement the SummaryCacheBackend
protocol:

    from toolsum.cache import SummaryCache
    from toolsum.cache.backends import InMemoryBackend, SummaryCacheBackend

    # Use default in-memory backend
    cache = SummaryCache()

    # Use custom backend
    class MyBackend:
        # Implement SummaryCacheBackend protocol
        ...
    cache = SummaryCache(backend=MyBackend())
"""

from .base import SummaryCacheBackend
from .memory import InMemoryBackend

__all__ = [
    "InMemoryBackend",
    "SummaryCacheBackend",
]
