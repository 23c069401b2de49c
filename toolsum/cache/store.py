"""Content-addressed store for tool-call summaries.

Maps a tool-call fingerprint (see toolsum.utils.compute_fingerprint) to the
summary generated for it. Because the key is a pure function of the call's
name, input and output, a summary produced in one conversation is reused by
any other conversation that contains the same call.

Usage:
    cache = SummaryCache()

    cache.set(fingerprint, "Searched docs, found 10 results.")
    cache.get(fingerprint)  # -> "Searched docs, found 10 results."

    # Persist between processes
    cache.save("summaries.json")
    other = SummaryCache()
    other.load("summaries.json")

The store is created by the caller and passed by reference to every
MessageOptimizer that should share it; there is no module-level instance.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from ..exceptions import CacheError
from .backends import InMemoryBackend, SummaryCacheBackend

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    """A cached summary. Entries are replaced, never mutated."""

    summary: str
    created_at: float
    ttl: float | None = None  # Seconds; None = no expiry
    is_fallback: bool = False

    def is_expired(self, now: float | None = None) -> bool:
        if self.ttl is None:
            return False
        current = time.time() if now is None else now
        return current - self.created_at > self.ttl


class SummaryCache:
    """Fingerprint -> summary store with statistics and import/export.

    Design principles:
    - Backend is pluggable (SummaryCacheBackend protocol)
    - TTL is per entry, so fallback summaries can expire sooner than real ones
    - Optional max_entries bound evicts the oldest entry first
    - Hit/miss counters cover the lifetime of this instance (reset by clear())
    """

    def __init__(
        self,
        backend: SummaryCacheBackend | None = None,
        default_ttl: float | None = None,
        max_entries: int | None = None,
    ):
        """Initialize the summary cache.

        Args:
            backend: Storage backend. Defaults to InMemoryBackend.
            default_ttl: TTL in seconds for entries stored without one.
            max_entries: Upper bound on stored entries, None for unbounded.
        """
        self._backend: SummaryCacheBackend = backend or InMemoryBackend()
        self._default_ttl = default_ttl
        self._max_entries = max_entries
        self._stats_lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    @property
    def backend(self) -> SummaryCacheBackend:
        return self._backend

    def get(self, fingerprint: str) -> str | None:
        """Look up a summary. Expired entries count as misses and are dropped."""
        entry = self._backend.get(fingerprint)
        if entry is not None and entry.is_expired():
            self._backend.delete(fingerprint)
            logger.debug("Expired summary cache entry %s", fingerprint[:8])
            entry = None

        with self._stats_lock:
            if entry is None:
                self._misses += 1
            else:
                self._hits += 1

        return entry.summary if entry is not None else None

    def get_entry(self, fingerprint: str) -> CacheEntry | None:
        """Look up the full entry without touching hit/miss statistics."""
        entry = self._backend.get(fingerprint)
        if entry is None or entry.is_expired():
            return None
        return entry

    def set(
        self,
        fingerprint: str,
        summary: str,
        *,
        ttl: float | None = None,
        is_fallback: bool = False,
    ) -> None:
        """Store a summary. Re-writing the same value is harmless."""
        entry = CacheEntry(
            summary=summary,
            created_at=time.time(),
            ttl=ttl if ttl is not None else self._default_ttl,
            is_fallback=is_fallback,
        )
        if self._max_entries is not None and self._backend.get(fingerprint) is None:
            self._evict_if_needed()
        self._backend.set(fingerprint, entry)

    def export_entries(self) -> dict[str, str]:
        """Export live entries as a plain fingerprint -> summary mapping.

        Fallback placeholders are left out so that an exported cache never
        pins a transient failure in another process.
        """
        return {
            fingerprint: entry.summary
            for fingerprint, entry in self._backend.items()
            if not entry.is_expired() and not entry.is_fallback
        }

    def import_entries(self, data: dict[str, str]) -> None:
        """Replace the cache contents with an exported mapping."""
        if not isinstance(data, dict):
            raise CacheError("Cache import expects a mapping", details={"type": type(data).__name__})
        self._backend.clear()
        skipped = 0
        for fingerprint, summary in data.items():
            if not isinstance(fingerprint, str) or not isinstance(summary, str):
                skipped += 1
                continue
            self.set(fingerprint, summary)
        logger.info(
            "Summary cache imported: %d entries (%d skipped)",
            self._backend.count(),
            skipped,
        )

    def clear(self) -> None:
        """Remove every entry and reset statistics."""
        self._backend.clear()
        with self._stats_lock:
            self._hits = 0
            self._misses = 0
        logger.info("Summary cache cleared")

    @property
    def hit_rate(self) -> float:
        with self._stats_lock:
            total = self._hits + self._misses
            return self._hits / total if total > 0 else 0.0

    def stats(self) -> dict[str, Any]:
        """Report cache statistics.

        Keys are truncated to their first 8 characters; the full fingerprints
        are available through export_entries().
        """
        items = self._backend.items()
        with self._stats_lock:
            hits, misses = self._hits, self._misses
        total = hits + misses
        return {
            "size": len(items),
            "keys": [fingerprint[:8] for fingerprint, _ in items],
            "hits": hits,
            "misses": misses,
            "hit_rate": hits / total if total > 0 else 0.0,
            "fallback_entries": sum(1 for _, entry in items if entry.is_fallback),
            "backend": type(self._backend).__name__,
        }

    def save(self, path: str | Path) -> int:
        """Write export_entries() to a JSON file. Returns entries written."""
        data = self.export_entries()
        target = Path(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(json.dumps(data, indent=2, sort_keys=True), encoding="utf-8")
        except OSError as e:
            raise CacheError("Cannot write cache file", details={"path": str(target), "error": str(e)}) from e
        return len(data)

    def load(self, path: str | Path) -> int:
        """Replace contents with a JSON file written by save(). Returns entries loaded.

        A missing file loads nothing and leaves the cache as it is.
        """
        source = Path(path)
        if not source.exists():
            return 0
        try:
            data = json.loads(source.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise CacheError("Cannot load cache file", details={"path": str(source), "error": str(e)}) from e
        self.import_entries(data)
        return self._backend.count()

    def __len__(self) -> int:
        return self._backend.count()

    def __contains__(self, fingerprint: object) -> bool:
        return isinstance(fingerprint, str) and self.get_entry(fingerprint) is not None

    def _evict_if_needed(self) -> None:
        """Drop expired entries, then the oldest ones, until there is room."""
        assert self._max_entries is not None
        if self._backend.count() < self._max_entries:
            return
        items = self._backend.items()
        now = time.time()
        for fingerprint, entry in items:
            if entry.is_expired(now):
                self._backend.delete(fingerprint)
        remaining = self._backend.items()
        overflow = len(remaining) - self._max_entries + 1
        if overflow <= 0:
            return
        oldest = sorted(remaining, key=lambda item: item[1].created_at)[:overflow]
        for fingerprint, _ in oldest:
            self._backend.delete(fingerprint)
        logger.debug("Evicted %d summary cache entries", len(oldest))
