"""Split a conversation into a preserved tail and a summarization candidate region."""

from __future__ import annotations

import logging
from typing import Any

from ..config import Partition, PreservationConfig, PreservationDecision
from ..parser import extract_text, is_malformed_message, read_parts

logger = logging.getLogger(__name__)


def find_recent_cutoff(messages: list[Any], recent_interaction_count: int) -> int:
    """Index of the first message inside the last N interactions.

    An interaction starts at a user message and runs until the next one.
    Everything at or after the returned index is recent. When fewer than N
    user messages exist the whole list is recent and 0 is returned; when N is
    0 nothing is recent and len(messages) is returned.
    """
    if recent_interaction_count <= 0:
        return len(messages)

    user_count = 0
    for i in range(len(messages) - 1, -1, -1):
        message = messages[i]
        if isinstance(message, dict) and message.get("role") == "user":
            user_count += 1
            if user_count >= recent_interaction_count:
                return i
    return 0


class Partitioner:
    """
    Decide, per message, whether it stays verbatim.

    Preservation rules, in order:
    1. Malformed messages are always preserved.
    2. If custom_predicate is configured it is the only other rule.
    3. Messages inside the last recent_interaction_count interactions.
    4. Messages whose text contains a preserve keyword (case-insensitive).
    5. Messages whose text matches a preserve pattern.

    Everything else is a candidate. Tool-call groups that straddle the two
    regions are pinned later, by the summarizer, not split here.
    """

    name = "partitioner"

    def __init__(self, config: PreservationConfig | None = None):
        self.config = config or PreservationConfig()

    def partition(self, messages: list[Any]) -> Partition:
        """Partition messages into ordered, disjoint preserve/candidate indices."""
        if self.config.custom_predicate is not None:
            decisions = self._decide_custom(messages)
        else:
            decisions = self._decide_default(messages)

        result = Partition(decisions=decisions)
        for decision in decisions:
            if decision.preserve:
                result.preserve.append(decision.index)
            else:
                result.candidate.append(decision.index)

        logger.debug(
            "Partitioned %d messages: %d preserved, %d candidates",
            len(messages),
            len(result.preserve),
            len(result.candidate),
        )
        return result

    def _decide_default(self, messages: list[Any]) -> list[PreservationDecision]:
        cutoff = find_recent_cutoff(messages, self.config.recent_interaction_count)
        decisions: list[PreservationDecision] = []

        for i, message in enumerate(messages):
            if is_malformed_message(message):
                decisions.append(self._decision(i, message, True, "malformed"))
            elif i >= cutoff:
                decisions.append(self._decision(i, message, True, "recent"))
            else:
                reason = self._match_content(message)
                decisions.append(self._decision(i, message, reason is not None, reason or "candidate"))

        return decisions

    def _decide_custom(self, messages: list[Any]) -> list[PreservationDecision]:
        predicate = self.config.custom_predicate
        assert predicate is not None
        decisions: list[PreservationDecision] = []

        for i, message in enumerate(messages):
            if is_malformed_message(message):
                decisions.append(self._decision(i, message, True, "malformed"))
                continue
            try:
                preserve = bool(predicate(message, i, messages))
            except Exception as e:
                logger.warning("Preserve predicate failed on message %d, preserving it: %s", i, e)
                preserve = True
            decisions.append(self._decision(i, message, preserve, "custom" if preserve else "candidate"))

        return decisions

    def _match_content(self, message: dict[str, Any]) -> str | None:
        """Return "keyword" or "pattern" if the message text asks to be kept."""
        if not self.config.preserve_keywords and not self.config.preserve_patterns:
            return None

        text_parts = [
            part["text"]
            for part in read_parts(message)
            if isinstance(part, dict) and part.get("type") == "text" and isinstance(part.get("text"), str)
        ]
        if not text_parts:
            return None

        if self.config.preserve_keywords:
            lowered = [t.lower() for t in text_parts]
            if any(k in t for t in lowered for k in self.config.preserve_keywords):
                return "keyword"

        for pattern in self.config.preserve_patterns:
            if any(pattern.search(t) for t in text_parts):  # type: ignore[union-attr]
                return "pattern"

        return None

    @staticmethod
    def _decision(index: int, message: Any, preserve: bool, reason: str) -> PreservationDecision:
        message_id = message.get("id") if isinstance(message, dict) else None
        return PreservationDecision(
            index=index,
            message_id=message_id if isinstance(message_id, str) else None,
            preserve=preserve,
            reason=reason,
        )


def partition_messages(
    messages: list[Any],
    config: PreservationConfig | None = None,
) -> Partition:
    """Convenience function to partition without keeping a Partitioner around."""
    return Partitioner(config).partition(messages)


def describe_partition(messages: list[Any], partition: Partition) -> list[dict[str, Any]]:
    """Debug view of a partition: one row per message."""
    return [
        {
            "index": d.index,
            "id": d.message_id,
            "role": messages[d.index].get("role") if isinstance(messages[d.index], dict) else None,
            "preserve": d.preserve,
            "reason": d.reason,
            "preview": extract_text(messages[d.index])[:60],
        }
        for d in partition.decisions
    ]
