"""Base protocol for SummaryCache backends.

The interface only handles CRUD on entries. Expiry, statistics and
import/export are handled by SummaryCache.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from ..store import CacheEntry


@runtime_checkable
class SummaryCacheBackend(Protocol):
    """Protocol for SummaryCache storage backends.

    Design Principles:
    - Simple CRUD operations only
    - Thread-safety is the implementation's responsibility
    - TTL is checked by SummaryCache, backends just store entries
    - Writes are keyed by fingerprint and idempotent, so no cross-key
      locking is needed
    """

    def get(self, fingerprint: str) -> CacheEntry | None:
        """Retrieve an entry, or None if absent. Does NOT check TTL."""
        ...

    def set(self, fingerprint: str, entry: CacheEntry) -> None:
        """Store an entry, overwriting any existing one."""
        ...

    def delete(self, fingerprint: str) -> bool:
        """Delete an entry. Returns True if it existed."""
        ...

    def clear(self) -> None:
        """Remove all entries."""
        ...

    def count(self) -> int:
        """Number of stored entries (expired ones included)."""
        ...

    def keys(self) -> list[str]:
        """All stored fingerprints."""
        ...

    def items(self) -> list[tuple[str, CacheEntry]]:
        """All entries as (fingerprint, entry) pairs."""
        ...
