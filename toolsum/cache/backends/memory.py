"""In-memory storage backend for SummaryCache.

This is the default backend. Data is lost when the process exits unless
the cache is exported (SummaryCache.save / export_entries).
"""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..store import CacheEntry


class InMemoryBackend:
    """Thread-safe in-memory storage backend.

    Characteristics:
    - Fast: O(1) get/set/delete operations
    - Volatile: Data lost on process exit
    - Thread-safe: All operations are protected by a lock
    - Insertion ordered: items() returns oldest entries first
    """

    def __init__(self) -> None:
        self._store: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, fingerprint: str) -> CacheEntry | None:
        with self._lock:
            return self._store.get(fingerprint)

    def set(self, fingerprint: str, entry: CacheEntry) -> None:
        with self._lock:
            # Re-insert so that overwrites move to the newest position
            self._store.pop(fingerprint, None)
            self._store[fingerprint] = entry

    def delete(self, fingerprint: str) -> bool:
        with self._lock:
            if fingerprint in self._store:
                del self._store[fingerprint]
                return True
            return False

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def count(self) -> int:
        with self._lock:
            return len(self._store)

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._store.keys())

    def items(self) -> list[tuple[str, CacheEntry]]:
        with self._lock:
            return list(self._store.items())
