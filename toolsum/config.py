"""Configuration models for toolsum."""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Literal

from .exceptions import ConfigurationError

# Predicate signature: (message, index, messages) -> preserve?
PreservePredicate = Callable[[Any, int, list[Any]], bool]

SummarySource = Literal["cache", "model", "fallback"]

DEFAULT_SUMMARY_TEMPLATE = "[Tool call summary: {tool_name}] {summary}"


@dataclass
class PreservationConfig:
    """Configuration for deciding which messages stay verbatim.

    GOTCHAS:
    - custom_predicate REPLACES the default heuristics. Recency, keywords and
      patterns are not consulted when it is set.
    - An interaction begins at a user message. Assistant turns before the
      first user message belong to no interaction and are only preserved when
      fewer than recent_interaction_count user messages exist.
    - Keywords and patterns only look at text parts, never at tool payloads.
    """

    recent_interaction_count: int = 2  # Last N user turns are never touched
    preserve_keywords: list[str] = field(default_factory=list)  # Case-insensitive
    preserve_patterns: list[str | re.Pattern[str]] = field(default_factory=list)
    custom_predicate: PreservePredicate | None = None

    def __post_init__(self) -> None:
        """Validate configuration and compile patterns once."""
        if self.recent_interaction_count < 0:
            raise ConfigurationError(
                "recent_interaction_count must be >= 0",
                details={"recent_interaction_count": self.recent_interaction_count},
            )
        compiled: list[re.Pattern[str]] = []
        for pattern in self.preserve_patterns:
            if isinstance(pattern, re.Pattern):
                compiled.append(pattern)
                continue
            try:
                compiled.append(re.compile(pattern))
            except re.error as e:
                raise ConfigurationError(
                    "Invalid preserve pattern",
                    details={"pattern": pattern, "error": str(e)},
                ) from e
        self.preserve_patterns = list(compiled)
        self.preserve_keywords = [k.lower() for k in self.preserve_keywords if k]


@dataclass
class SummarizerConfig:
    """Configuration for tool-call summarization.

    Fallback policy: fallback summaries ARE cached, but with their own short
    TTL (fallback_ttl_seconds). A broken summary model is then asked at most
    once per fingerprint per TTL window, and recovers automatically once the
    TTL elapses. Set cache_fallbacks=False to retry on every pass.
    """

    model_id: str = "lofi"  # Logical id handed to the SummaryModel
    timeout_seconds: float | None = 30.0  # Per model call; None disables
    max_concurrency: int | None = None  # None = every group at once
    max_input_chars: int = 2000  # Rendered tool input budget in the prompt
    max_output_chars: int = 4000  # Rendered tool output budget in the prompt
    max_context_chars: int = 200  # Triggering user request budget
    max_summary_chars: int = 300  # Requested summary length
    cache_fallbacks: bool = True
    fallback_ttl_seconds: float | None = 300.0
    summary_ttl_seconds: float | None = None  # None = keep until cleared

    def __post_init__(self) -> None:
        """Validate configuration."""
        if self.timeout_seconds is not None and self.timeout_seconds <= 0:
            raise ConfigurationError(
                "timeout_seconds must be > 0",
                details={"timeout_seconds": self.timeout_seconds},
            )
        if self.max_concurrency is not None and self.max_concurrency < 1:
            raise ConfigurationError(
                "max_concurrency must be >= 1",
                details={"max_concurrency": self.max_concurrency},
            )
        for name in ("max_input_chars", "max_output_chars", "max_context_chars"):
            if getattr(self, name) < 0:
                raise ConfigurationError(f"{name} must be >= 0", details={name: getattr(self, name)})


@dataclass
class OptimizerConfig:
    """Configuration for the full optimization pipeline."""

    preservation: PreservationConfig = field(default_factory=PreservationConfig)
    summarizer: SummarizerConfig = field(default_factory=SummarizerConfig)
    summary_template: str = DEFAULT_SUMMARY_TEMPLATE

    def __post_init__(self) -> None:
        """Validate the summary template placeholders."""
        try:
            self.summary_template.format(tool_name="t", summary="s")
        except (KeyError, IndexError, ValueError) as e:
            raise ConfigurationError(
                "summary_template may only use {tool_name} and {summary}",
                details={"summary_template": self.summary_template, "error": str(e)},
            ) from e


@dataclass
class MiddlewareConfig:
    """Configuration for ToolOptimizingMiddleware."""

    user_id: str | None = None  # Hashed before it reaches metrics
    chat_history_id: str | None = None
    enable_message_optimization: bool = True
    optimization_threshold: int = 10  # Minimum messages before optimizing
    enable_tool_scanning: bool = True
    optimize_stream_calls: bool = False  # Only "generate" calls by default
    strip_synthetic_leading_message: bool = False

    def __post_init__(self) -> None:
        """Validate configuration."""
        if self.optimization_threshold < 0:
            raise ConfigurationError(
                "optimization_threshold must be >= 0",
                details={"optimization_threshold": self.optimization_threshold},
            )


@dataclass(frozen=True)
class PreservationDecision:
    """Why a single message was preserved or made a candidate.

    Computed once per pass, never persisted.
    """

    index: int
    message_id: str | None
    preserve: bool
    reason: str  # malformed | recent | keyword | pattern | custom | candidate


@dataclass
class Partition:
    """Disjoint, ordered split of message indices."""

    preserve: list[int] = field(default_factory=list)
    candidate: list[int] = field(default_factory=list)
    decisions: list[PreservationDecision] = field(default_factory=list)

    @property
    def is_noop(self) -> bool:
        """True when nothing is eligible for summarization."""
        return not self.candidate


@dataclass(frozen=True)
class SummaryOutcome:
    """Summary produced for one fingerprint."""

    fingerprint: str
    tool_name: str
    summary: str
    source: SummarySource
    tool_call_ids: tuple[str, ...] = ()


@dataclass
class OptimizationResult:
    """Result of one optimization pass."""

    messages: list[Any]
    applied: bool
    partition: Partition | None = None
    outcomes: list[SummaryOutcome] = field(default_factory=list)
    characters_before: int = 0
    characters_after: int = 0
    duration_ms: float = 0.0
    warnings: list[str] = field(default_factory=list)

    @property
    def cache_hits(self) -> int:
        return sum(1 for o in self.outcomes if o.source == "cache")

    @property
    def model_calls(self) -> int:
        return sum(1 for o in self.outcomes if o.source != "cache")

    @property
    def fallbacks(self) -> int:
        return sum(1 for o in self.outcomes if o.source == "fallback")

    @property
    def character_reduction(self) -> float:
        """Fraction of characters removed, 0.0 when nothing changed."""
        if self.characters_before <= 0:
            return 0.0
        return (self.characters_before - self.characters_after) / self.characters_before
