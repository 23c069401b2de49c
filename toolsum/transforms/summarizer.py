"""Tool-call summarization for toolsum.

For every completed tool call in the candidate region the summarizer finds
or produces a short natural-language summary:

1. Fingerprint the (tool name, input, output) triple.
2. Serve the summary from the SummaryCache when present.
3. Otherwise prompt the summary model, with bounded renderings of the
   input and output, and cache the answer.
4. On any model failure substitute a fallback summary instead of raising.

Independent fingerprints are summarized concurrently. Calls that share a
fingerprint within one pass are summarized once.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import replace
from typing import Any

from ..audit import AuditRecord, ToolCallAuditLog
from ..cache import SummaryCache
from ..config import Partition, SummarizerConfig, SummaryOutcome
from ..exceptions import SummarizationError
from ..metrics import MetricsRecorder
from ..models import SummaryModel
from ..parser import ToolCallGroup, extract_text, find_tool_call_groups
from ..utils import (
    attach_fallback_reference,
    compute_fingerprint,
    create_fallback_summary,
    is_fallback_summary,
    new_fallback_ref,
    safe_json_dumps,
    truncate_text,
)

logger = logging.getLogger(__name__)

# How far back to look for the user request behind a tool call
_CONTEXT_LOOKBACK = 5

SUMMARY_PROMPT = """You are an expert at summarizing tool execution results for AI conversation context.

CONVERSATIONAL CONTEXT:
{context}

TOOL: {tool_name}
STATUS: {status}

TOOL INPUT:
{tool_input}

TOOL RESULT:
{tool_output}

Create a concise summary that:
1. States what the tool was asked to do and why (based on the conversational context)
2. Extracts the key findings that might be relevant for future conversation
3. Notes any errors or important patterns

Keep the summary under {max_summary_chars} characters while preserving essential meaning.
Respond with a JSON object: {{"summary": "<summary text>"}}"""


def group_fingerprint(group: ToolCallGroup) -> str:
    """Fingerprint of a completed group."""
    return compute_fingerprint(group.tool_name, group.input, group.output)


def select_summarizable_groups(messages: list[Any], partition: Partition) -> list[ToolCallGroup]:
    """Completed tool-call groups that live entirely in the candidate region.

    A group with any fragment in a preserved message is pinned and left
    alone, and so is any group that never reached a terminal state.
    """
    candidate = set(partition.candidate)
    if not candidate:
        return []
    groups = find_tool_call_groups(messages)
    return [g for g in groups.values() if g.is_complete and g.message_indices <= candidate]


def extract_conversational_context(
    messages: list[Any],
    group: ToolCallGroup,
    max_chars: int = 200,
) -> str:
    """Describe why a tool was called: the user request and assistant reasoning."""
    if not group.locations:
        return "No conversational context available."

    first_index = group.locations[0][0]
    context_parts: list[str] = []

    for i in range(first_index - 1, max(-1, first_index - 1 - _CONTEXT_LOOKBACK), -1):
        message = messages[i]
        if isinstance(message, dict) and message.get("role") == "user":
            request = extract_text(message).strip()
            if request:
                context_parts.append(f"User request: {truncate_text(request, max_chars)}")
                break

    for index in sorted(group.message_indices):
        reasoning = extract_text(messages[index]).strip()
        if reasoning:
            context_parts.append(f"Assistant reasoning: {truncate_text(reasoning, max_chars)}")

    return "\n".join(context_parts) if context_parts else "No specific conversational context found."


def build_summary_prompt(
    messages: list[Any],
    group: ToolCallGroup,
    config: SummarizerConfig,
) -> str:
    """Render the summarization prompt for one group with bounded payloads."""
    assert group.terminal is not None
    status = "error" if group.terminal.get("state") == "output-error" else "success"
    return SUMMARY_PROMPT.format(
        context=extract_conversational_context(messages, group, config.max_context_chars),
        tool_name=group.tool_name,
        status=status,
        tool_input=truncate_text(safe_json_dumps(group.input), config.max_input_chars),
        tool_output=truncate_text(safe_json_dumps(group.output), config.max_output_chars),
        max_summary_chars=config.max_summary_chars,
    )


def coerce_summary(result: Any) -> str:
    """Accept {"summary": str} or a plain str; reject anything else."""
    if isinstance(result, dict):
        summary = result.get("summary")
        if isinstance(summary, str) and summary.strip():
            return summary.strip()
        raise SummarizationError(
            "Structured summary lacks a non-empty 'summary' field",
            details={"keys": sorted(str(k) for k in result)},
        )
    if isinstance(result, str) and result.strip():
        return result.strip()
    raise SummarizationError(
        "Malformed summary response",
        details={"response_type": type(result).__name__},
    )


class ToolCallSummarizer:
    """
    Produce summaries for completed tool-call groups.

    Failure handling:
    - Cache read errors are treated as misses.
    - Model errors, timeouts and malformed answers become fallback summaries.
      The cached fallback holds only the marker and tool name; each call it
      stands in for gets its own call id and ref.
    - Fingerprinting errors leave the call verbatim.
    - Cache write errors are logged; the summary is still used for this pass.
    - Audit log writes run in the default executor; errors are logged and
      ignored.
    """

    name = "summarizer"

    def __init__(
        self,
        cache: SummaryCache,
        model: SummaryModel,
        config: SummarizerConfig | None = None,
        metrics: MetricsRecorder | None = None,
        audit_log: ToolCallAuditLog | None = None,
    ):
        self.cache = cache
        self.model = model
        self.config = config or SummarizerConfig()
        self.metrics = metrics
        self.audit_log = audit_log

    async def summarize_groups(
        self,
        messages: list[Any],
        groups: list[ToolCallGroup],
        *,
        user_id: str | None = None,
        chat_history_id: str | None = None,
    ) -> dict[str, SummaryOutcome]:
        """Summarize groups concurrently.

        Returns:
            Mapping of toolCallId to its SummaryOutcome. Never raises for
            model or cache failures.
        """
        if not groups:
            return {}

        by_fingerprint: dict[str, list[ToolCallGroup]] = {}
        for group in groups:
            try:
                fingerprint = group_fingerprint(group)
            except Exception as e:
                logger.warning(
                    "Cannot fingerprint tool call %s (%s), leaving it verbatim: %s",
                    group.tool_call_id,
                    group.tool_name,
                    e,
                )
                continue
            by_fingerprint.setdefault(fingerprint, []).append(group)

        logger.debug(
            "Summarizing %d tool calls (%d distinct fingerprints)",
            len(groups),
            len(by_fingerprint),
        )

        semaphore = asyncio.Semaphore(self.config.max_concurrency) if self.config.max_concurrency else None
        outcomes = await asyncio.gather(
            *(
                self._summarize_fingerprint(fingerprint, members, messages, semaphore)
                for fingerprint, members in by_fingerprint.items()
            )
        )

        result: dict[str, SummaryOutcome] = {}
        for outcome in outcomes:
            for call_id in outcome.tool_call_ids:
                result[call_id] = self._outcome_for_call(outcome, call_id)
        await self._audit(result, user_id, chat_history_id)
        return result

    async def _summarize_fingerprint(
        self,
        fingerprint: str,
        members: list[ToolCallGroup],
        messages: list[Any],
        semaphore: asyncio.Semaphore | None,
    ) -> SummaryOutcome:
        representative = members[0]
        call_ids = tuple(g.tool_call_id for g in members)

        cached = self._cache_get(fingerprint)
        if cached is not None:
            self._count("tool_summary_cache_hits_total")
            logger.debug("Using cached tool summary %s", fingerprint[:8])
            return SummaryOutcome(fingerprint, representative.tool_name, cached, "cache", call_ids)
        self._count("tool_summary_cache_misses_total")

        prompt = build_summary_prompt(messages, representative, self.config)
        start = time.perf_counter()
        try:
            if semaphore is not None:
                async with semaphore:
                    raw = await self._invoke(prompt)
            else:
                raw = await self._invoke(prompt)
            summary = coerce_summary(raw)
            source = "model"
        except Exception as e:
            summary = create_fallback_summary(representative.tool_name)
            source = "fallback"
            logger.warning(
                "Tool summarization failed for %s (%s): %s; using fallback summary",
                representative.tool_name,
                fingerprint[:8],
                e if str(e) else type(e).__name__,
            )
        duration_ms = (time.perf_counter() - start) * 1000

        if self.metrics is not None:
            self.metrics.observe(
                "tool_summary_generation_duration_ms",
                duration_ms,
                model=self.config.model_id,
                status="success" if source == "model" else "error",
            )

        if source == "model":
            self._cache_set(fingerprint, summary, ttl=self.config.summary_ttl_seconds, is_fallback=False)
        elif self.config.cache_fallbacks:
            self._cache_set(fingerprint, summary, ttl=self.config.fallback_ttl_seconds, is_fallback=True)

        logger.debug(
            "Generated tool summary %s via %s in %.1fms (%d chars)",
            fingerprint[:8],
            source,
            duration_ms,
            len(summary),
        )
        return SummaryOutcome(fingerprint, representative.tool_name, summary, source, call_ids)

    async def _invoke(self, prompt: str) -> Any:
        call = self.model.summarize(prompt, self.config.model_id)
        if self.config.timeout_seconds is None:
            return await call
        return await asyncio.wait_for(call, timeout=self.config.timeout_seconds)

    def _cache_get(self, fingerprint: str) -> str | None:
        try:
            return self.cache.get(fingerprint)
        except Exception as e:
            logger.warning("Summary cache read failed for %s, treating as miss: %s", fingerprint[:8], e)
            return None

    def _cache_set(self, fingerprint: str, summary: str, *, ttl: float | None, is_fallback: bool) -> None:
        try:
            self.cache.set(fingerprint, summary, ttl=ttl, is_fallback=is_fallback)
        except Exception as e:
            logger.warning("Summary cache write failed for %s: %s", fingerprint[:8], e)

    @staticmethod
    def _outcome_for_call(outcome: SummaryOutcome, call_id: str) -> SummaryOutcome:
        """Shared outcome for real summaries; fallbacks get their own call id and ref."""
        if not is_fallback_summary(outcome.summary):
            return outcome
        ref = new_fallback_ref()
        logger.warning(
            "Substituting fallback summary for tool call %s (%s) ref=%s",
            call_id,
            outcome.tool_name,
            ref,
        )
        return replace(
            outcome,
            summary=attach_fallback_reference(outcome.summary, call_id, ref),
            tool_call_ids=(call_id,),
        )

    async def _audit(
        self,
        outcomes: dict[str, SummaryOutcome],
        user_id: str | None,
        chat_history_id: str | None,
    ) -> None:
        if self.audit_log is None or not outcomes:
            return
        records = [
            AuditRecord(
                fingerprint=outcome.fingerprint,
                tool_call_id=call_id,
                tool_name=outcome.tool_name,
                source=outcome.source,
                summary=outcome.summary,
                user_id=user_id,
                chat_history_id=chat_history_id,
            )
            for call_id, outcome in outcomes.items()
        ]
        # Sinks may do file I/O; keep it off the event loop
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._write_audit, records)

    def _write_audit(self, records: list[AuditRecord]) -> None:
        assert self.audit_log is not None
        for record in records:
            try:
                self.audit_log.record(record)
            except Exception as e:
                logger.warning("Tool-call audit log write failed for %s: %s", record.tool_call_id, e)

    def _count(self, name: str) -> None:
        if self.metrics is not None:
            self.metrics.increment(name, cache_type="tool_summary")

