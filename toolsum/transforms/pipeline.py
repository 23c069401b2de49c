"""Optimization pipeline orchestration for toolsum."""

from __future__ import annotations

import logging
import time
from typing import Any

from ..audit import ToolCallAuditLog
from ..cache import SummaryCache
from ..config import OptimizationResult, OptimizerConfig
from ..metrics import MetricsRecorder, hash_user_id
from ..models import SummaryModel
from ..parser import count_message_characters
from .partitioner import Partitioner
from .reassembler import reassemble_messages
from .summarizer import ToolCallSummarizer, select_summarizable_groups

logger = logging.getLogger(__name__)


class MessageOptimizer:
    """
    Compress old tool calls in a conversation into short summaries.

    Stage order:
    1. Partitioner - preserve recent / flagged messages (pure)
    2. Summarizer - cache lookup or model call per tool call (async)
    3. Reassembler - substitute summaries, keep message count (pure)

    When nothing is eligible the input list itself is returned, so callers
    can use `result is messages` to detect a no-op.
    """

    def __init__(
        self,
        cache: SummaryCache,
        model: SummaryModel,
        config: OptimizerConfig | None = None,
        metrics: MetricsRecorder | None = None,
        audit_log: ToolCallAuditLog | None = None,
    ):
        """
        Initialize the optimizer.

        Args:
            cache: Summary store, shared across optimizers that should reuse summaries.
            model: Summary model used on cache misses.
            config: Pipeline configuration.
            metrics: Optional recorder for counters and histograms.
            audit_log: Optional sink for every substituted summary.
        """
        self.config = config or OptimizerConfig()
        self.cache = cache
        self.metrics = metrics
        self.partitioner = Partitioner(self.config.preservation)
        self.summarizer = ToolCallSummarizer(
            cache,
            model,
            self.config.summarizer,
            metrics=metrics,
            audit_log=audit_log,
        )

    async def optimize(
        self,
        messages: list[Any],
        *,
        user_id: str | None = None,
        chat_history_id: str | None = None,
    ) -> list[Any]:
        """Optimize messages and return the resulting list."""
        result = await self.optimize_with_report(
            messages,
            user_id=user_id,
            chat_history_id=chat_history_id,
        )
        return result.messages

    async def optimize_with_report(
        self,
        messages: list[Any],
        *,
        user_id: str | None = None,
        chat_history_id: str | None = None,
    ) -> OptimizationResult:
        """
        Optimize messages and describe what happened.

        Args:
            messages: Conversation as a list of message dicts.
            user_id: Only used (hashed) for metric attributes and audit records.
            chat_history_id: Only used for audit records and logging.

        Returns:
            OptimizationResult. result.messages is `messages` itself when no
            tool call was summarized.
        """
        start = time.perf_counter()
        attributes = {"user_id": hash_user_id(user_id)}

        partition = self.partitioner.partition(messages)
        groups = select_summarizable_groups(messages, partition)

        if not groups:
            reason = "all_preserved" if partition.is_noop else "no_completed_tool_calls"
            logger.debug("No tool message optimization needed (%s)", reason)
            duration_ms = (time.perf_counter() - start) * 1000
            self._record("no_optimization_needed", duration_ms, attributes)
            return OptimizationResult(
                messages=messages,
                applied=False,
                partition=partition,
                duration_ms=duration_ms,
            )

        outcomes = await self.summarizer.summarize_groups(
            messages,
            groups,
            user_id=user_id,
            chat_history_id=chat_history_id,
        )
        if not outcomes:
            duration_ms = (time.perf_counter() - start) * 1000
            self._record("no_optimization_needed", duration_ms, attributes)
            return OptimizationResult(
                messages=messages,
                applied=False,
                partition=partition,
                duration_ms=duration_ms,
            )

        optimized = reassemble_messages(messages, groups, outcomes, self.config.summary_template)

        distinct = list({o.fingerprint: o for o in outcomes.values()}.values())
        characters_before = count_message_characters(messages)
        characters_after = count_message_characters(optimized)
        duration_ms = (time.perf_counter() - start) * 1000

        result = OptimizationResult(
            messages=optimized,
            applied=True,
            partition=partition,
            outcomes=distinct,
            characters_before=characters_before,
            characters_after=characters_after,
            duration_ms=duration_ms,
        )
        if result.fallbacks:
            result.warnings.append(f"{result.fallbacks} tool summaries fell back to placeholders")

        self._record("tool_summarization", duration_ms, attributes)
        if self.metrics is not None:
            self.metrics.increment("tool_call_summaries_total", len(outcomes), **attributes)
            self.metrics.observe("tool_character_reduction_ratio", result.character_reduction, **attributes)

        logger.info(
            "Tool optimization completed: %d messages, %d tool calls summarized "
            "(%d cached, %d fallback), %d -> %d chars (%.0f%%) in %.1fms [chat=%s]",
            len(messages),
            len(outcomes),
            result.cache_hits,
            result.fallbacks,
            characters_before,
            characters_after,
            result.character_reduction * 100,
            duration_ms,
            chat_history_id or "unknown",
        )
        return result

    def _record(self, optimization_type: str, duration_ms: float, attributes: dict[str, str]) -> None:
        if self.metrics is None:
            return
        self.metrics.increment(
            "tool_message_optimization_total", optimization_type=optimization_type, **attributes
        )
        self.metrics.observe(
            "tool_optimization_duration_ms",
            duration_ms,
            optimization_type=optimization_type,
            **attributes,
        )
