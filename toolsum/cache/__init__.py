"""Summary cache for toolsum."""

from .backends import InMemoryBackend, SummaryCacheBackend
from .store import CacheEntry, SummaryCache

__all__ = [
    "CacheEntry",
    "InMemoryBackend",
    "SummaryCache",
    "SummaryCacheBackend",
]
