"""In-process metrics for tool summarization and the optimizing middleware.

Counters and histograms are kept in memory and exposed through snapshot(),
so a host application can forward them to whatever observability backend it
uses. User identifiers never appear as attribute values; use hash_user_id().

Instrument names:

    tool_message_optimization_total          counter   optimization passes
    tool_summary_cache_hits_total            counter   summaries served from cache
    tool_summary_cache_misses_total          counter   summaries not in cache
    tool_call_summaries_total                counter   summaries substituted
    tool_summary_generation_duration_ms      histogram one model call
    tool_optimization_duration_ms            histogram one optimization pass
    tool_character_reduction_ratio           histogram 0-1 per applied pass
    tool_optimization_middleware_total       counter   middleware invocations
    tool_scanning_total                      counter   tool scans performed
    new_tools_found_count                    histogram newly registered tools
    tool_optimization_middleware_duration_ms histogram one middleware pass
    message_optimization_applied_total       counter   passes that changed messages
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any

from .utils import compute_short_hash

AttributeKey = tuple[tuple[str, str], ...]


def hash_user_id(user_id: str | None) -> str:
    """Pseudonymize a user id for metric attributes."""
    if not user_id:
        return "anonymous"
    return compute_short_hash(user_id)


@dataclass
class HistogramSummary:
    """Running summary of observed values."""

    count: int = 0
    total: float = 0.0
    min: float | None = None
    max: float | None = None

    def add(self, value: float) -> None:
        self.count += 1
        self.total += value
        self.min = value if self.min is None else min(self.min, value)
        self.max = value if self.max is None else max(self.max, value)

    @property
    def mean(self) -> float:
        return self.total / self.count if self.count else 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "count": self.count,
            "total": self.total,
            "min": self.min,
            "max": self.max,
            "mean": self.mean,
        }


class MetricsRecorder:
    """Thread-safe counter and histogram store keyed by name and attributes."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counters: dict[str, dict[AttributeKey, float]] = {}
        self._histograms: dict[str, dict[AttributeKey, HistogramSummary]] = {}

    def increment(self, name: str, value: float = 1, **attributes: Any) -> None:
        key = self._key(attributes)
        with self._lock:
            series = self._counters.setdefault(name, {})
            series[key] = series.get(key, 0) + value

    def observe(self, name: str, value: float, **attributes: Any) -> None:
        key = self._key(attributes)
        with self._lock:
            series = self._histograms.setdefault(name, {})
            series.setdefault(key, HistogramSummary()).add(value)

    def counter(self, name: str, **attributes: Any) -> float:
        """Sum of a counter over every series matching the given attributes."""
        wanted = set(self._key(attributes))
        with self._lock:
            return sum(
                value
                for key, value in self._counters.get(name, {}).items()
                if wanted.issubset(key)
            )

    def histogram(self, name: str, **attributes: Any) -> HistogramSummary:
        """Merged histogram over every series matching the given attributes."""
        wanted = set(self._key(attributes))
        merged = HistogramSummary()
        with self._lock:
            for key, summary in self._histograms.get(name, {}).items():
                if not wanted.issubset(key) or summary.count == 0:
                    continue
                merged.count += summary.count
                merged.total += summary.total
                assert summary.min is not None and summary.max is not None
                merged.min = summary.min if merged.min is None else min(merged.min, summary.min)
                merged.max = summary.max if merged.max is None else max(merged.max, summary.max)
        return merged

    def snapshot(self) -> dict[str, Any]:
        """Export every series as plain data."""
        with self._lock:
            return {
                "counters": {
                    name: [{"attributes": dict(key), "value": value} for key, value in series.items()]
                    for name, series in self._counters.items()
                },
                "histograms": {
                    name: [{"attributes": dict(key), **summary.to_dict()} for key, summary in series.items()]
                    for name, series in self._histograms.items()
                },
            }

    def reset(self) -> None:
        with self._lock:
            self._counters.clear()
            self._histograms.clear()

    @staticmethod
    def _key(attributes: dict[str, Any]) -> AttributeKey:
        return tuple(sorted((k, str(v)) for k, v in attributes.items()))
