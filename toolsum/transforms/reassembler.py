"""Rebuild a message list with summarized tool calls substituted in."""

from __future__ import annotations

import logging
from typing import Any

from ..config import DEFAULT_SUMMARY_TEMPLATE, SummaryOutcome
from ..parser import ToolCallGroup, read_parts, write_parts

logger = logging.getLogger(__name__)


def render_summary_part(
    outcome: SummaryOutcome,
    template: str = DEFAULT_SUMMARY_TEMPLATE,
) -> dict[str, Any]:
    """Text part that stands in for a summarized tool call."""
    return {"type": "text", "text": template.format(tool_name=outcome.tool_name, summary=outcome.summary)}


def reassemble_messages(
    messages: list[Any],
    groups: list[ToolCallGroup],
    outcomes: dict[str, SummaryOutcome],
    template: str = DEFAULT_SUMMARY_TEMPLATE,
) -> list[Any]:
    """
    Substitute summaries for tool-call parts.

    For every group with an outcome, the terminal part is replaced by one
    text part holding the summary and every other fragment of the group
    (input-streaming / input-available parts) is dropped.

    Guarantees:
    - The result has exactly len(messages) entries.
    - Untouched messages are the very same objects as in the input.
    - Touched messages are shallow copies with identical id and role and a
      new parts list, written back to whichever of parts or content held
      them; the relative order of surviving parts is unchanged.
    - The input list and its messages are never mutated.

    Args:
        messages: Original message list.
        groups: Groups that were summarized (see select_summarizable_groups).
        outcomes: toolCallId -> SummaryOutcome from the summarizer.
        template: Format string with {tool_name} and {summary}.

    Returns:
        New message list.
    """
    # (message index, part index) -> replacement part, or None to drop it
    edits: dict[int, dict[int, dict[str, Any] | None]] = {}

    for group in groups:
        outcome = outcomes.get(group.tool_call_id)
        if outcome is None or group.terminal_location is None:
            continue
        for msg_idx, part_idx in group.locations:
            edits.setdefault(msg_idx, {})[part_idx] = None
        term_msg, term_part = group.terminal_location
        edits[term_msg][term_part] = render_summary_part(outcome, template)

    if not edits:
        return list(messages)

    result: list[Any] = []
    for msg_idx, message in enumerate(messages):
        message_edits = edits.get(msg_idx)
        if not message_edits:
            result.append(message)
            continue

        new_parts: list[Any] = []
        for part_idx, part in enumerate(read_parts(message)):
            if part_idx not in message_edits:
                new_parts.append(part)
                continue
            replacement = message_edits[part_idx]
            if replacement is not None:
                new_parts.append(replacement)

        result.append(write_parts(message, new_parts))

    logger.debug("Reassembled %d messages, %d modified", len(result), len(edits))
    return result
