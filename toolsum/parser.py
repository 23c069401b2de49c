"""Message classification for toolsum.

Messages are UI-style dicts:

    {"id": "msg-1", "role": "assistant", "parts": [
        {"type": "text", "text": "Let me search."},
        {"type": "tool-call", "toolCallId": "c1", "toolName": "search",
         "state": "output-available", "input": {...}, "output": ...},
    ]}

Model prompt messages that carry the same parts under "content" are read
the same way (see read_parts).

Tool parts are recognised as "tool-call" or "dynamic-tool" with an explicit
toolName, or as typed "tool-<name>" parts. Every other part type is opaque.
Nothing in this module mutates its input.
"""

from __future__ import annotations

import json
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

TERMINAL_STATES = frozenset({"output-available", "output-error"})
STREAMING_STATES = frozenset({"input-streaming", "input-available"})

# Roles whose tool parts may be summarized
ELIGIBLE_ROLES = frozenset({"assistant"})


class PartKind(str, Enum):
    """Lifecycle stage of a single message part."""

    TEXT = "text"
    TOOL_STREAMING = "tool_streaming"  # No terminal state on this fragment
    TOOL_TERMINAL = "tool_terminal"  # output-available / output-error
    OTHER = "other"  # Attachments, reasoning, data parts...


@dataclass
class ToolCallGroup:
    """All fragments that share one toolCallId."""

    tool_call_id: str
    tool_name: str
    locations: list[tuple[int, int]] = field(default_factory=list)  # (message, part)
    terminal: dict[str, Any] | None = None
    terminal_location: tuple[int, int] | None = None
    input: Any = None

    @property
    def is_complete(self) -> bool:
        return self.terminal is not None

    @property
    def message_indices(self) -> set[int]:
        return {m for m, _ in self.locations}

    @property
    def output(self) -> Any:
        """Result of the call; errors are folded into {"error": text}."""
        if self.terminal is None:
            return None
        if self.terminal.get("state") == "output-error":
            return {"error": self.terminal.get("errorText")}
        return self.terminal.get("output")


def parts_field(message: Any) -> str | None:
    """Name of the field that carries a message's parts.

    UI messages keep them in ``parts``; model prompt messages keep them in
    ``content``, either as a list or, for plain turns, as a string.
    """
    if not isinstance(message, dict):
        return None
    if isinstance(message.get("parts"), list):
        return "parts"
    if isinstance(message.get("content"), (list, str)):
        return "content"
    return None


def read_parts(message: Any) -> list[Any]:
    """Parts of a message from ``parts`` or ``content``.

    String content reads as a single text part. Returns [] when the message
    carries neither field.
    """
    field_name = parts_field(message)
    if field_name is None:
        return []
    value = message[field_name]
    if isinstance(value, str):
        return [{"type": "text", "text": value}] if value else []
    return value


def write_parts(message: dict[str, Any], parts: list[Any]) -> dict[str, Any]:
    """Copy of message with parts written back to the field they came from."""
    field_name = "parts" if isinstance(message.get("parts"), list) else "content"
    return {**message, field_name: parts}


def is_malformed_message(message: Any) -> bool:
    """Check whether a message lacks the shape the optimizer relies on."""
    if not isinstance(message, dict):
        return True
    if not isinstance(message.get("role"), str):
        return True
    return parts_field(message) is None


def is_tool_part(part: Any) -> bool:
    """Check if a part is a tool invocation fragment."""
    if not isinstance(part, dict):
        return False
    part_type = part.get("type")
    if not isinstance(part_type, str):
        return False
    if part_type in ("tool-call", "dynamic-tool"):
        return True
    return part_type.startswith("tool-") and part_type != "tool-result"


def get_tool_name(part: dict[str, Any]) -> str:
    """Get the tool name from an explicit toolName or a typed part."""
    name = part.get("toolName")
    if isinstance(name, str) and name:
        return name
    part_type = part.get("type", "")
    if isinstance(part_type, str) and part_type.startswith("tool-") and part_type != "tool-call":
        return part_type[len("tool-") :]
    return "unknown"


def classify_part(part: Any) -> PartKind:
    """Determine the lifecycle stage of one part."""
    if isinstance(part, dict) and part.get("type") == "text":
        return PartKind.TEXT
    if is_tool_part(part):
        if part.get("state") in TERMINAL_STATES:
            return PartKind.TOOL_TERMINAL
        return PartKind.TOOL_STREAMING
    return PartKind.OTHER


def find_tool_call_groups(
    messages: list[Any],
    indices: Iterable[int] | None = None,
) -> dict[str, ToolCallGroup]:
    """Group tool fragments of assistant messages by toolCallId.

    Args:
        messages: Full message list.
        indices: Restrict the scan to these message indices. Defaults to all.

    Returns:
        Ordered mapping of toolCallId to ToolCallGroup, in order of first
        appearance. Fragments without a string toolCallId are skipped, since
        they cannot be paired and must pass through untouched.
    """
    groups: dict[str, ToolCallGroup] = {}
    scan = range(len(messages)) if indices is None else sorted(indices)

    for msg_idx in scan:
        message = messages[msg_idx]
        if is_malformed_message(message) or message["role"] not in ELIGIBLE_ROLES:
            continue

        for part_idx, part in enumerate(read_parts(message)):
            if not is_tool_part(part):
                continue
            call_id = part.get("toolCallId")
            if not isinstance(call_id, str) or not call_id:
                continue

            group = groups.get(call_id)
            if group is None:
                group = ToolCallGroup(tool_call_id=call_id, tool_name=get_tool_name(part))
                groups[call_id] = group
            group.locations.append((msg_idx, part_idx))

            if "input" in part:
                group.input = part["input"]
            if part.get("state") in TERMINAL_STATES and group.terminal is None:
                group.terminal = part
                group.terminal_location = (msg_idx, part_idx)
                group.tool_name = get_tool_name(part)

    return groups


def extract_tool_call_ids(message: Any) -> list[str]:
    """Extract the toolCallIds referenced by an assistant message."""
    if is_malformed_message(message) or message["role"] not in ELIGIBLE_ROLES:
        return []
    ids: list[str] = []
    for part in read_parts(message):
        if is_tool_part(part):
            call_id = part.get("toolCallId")
            if isinstance(call_id, str) and call_id and call_id not in ids:
                ids.append(call_id)
    return ids


def has_tool_calls(message: Any) -> bool:
    """Check if a message is an assistant message carrying tool parts."""
    if is_malformed_message(message) or message["role"] not in ELIGIBLE_ROLES:
        return False
    return any(is_tool_part(part) for part in read_parts(message))


def extract_text(message: Any) -> str:
    """Join the text parts of a message with spaces."""
    if is_malformed_message(message):
        return ""
    texts = [
        part.get("text", "")
        for part in read_parts(message)
        if isinstance(part, dict) and part.get("type") == "text" and isinstance(part.get("text"), str)
    ]
    return " ".join(t for t in texts if t)


def count_message_characters(messages: list[Any]) -> int:
    """Estimate context size: text length for text parts, JSON size otherwise."""
    total = 0
    for message in messages:
        if is_malformed_message(message):
            total += len(json.dumps(message, default=str))
            continue
        for part in read_parts(message):
            if isinstance(part, dict) and part.get("type") == "text" and isinstance(part.get("text"), str):
                total += len(part["text"])
            else:
                total += len(json.dumps(part, default=str))
    return total
