"""Utility functions for toolsum."""

from __future__ import annotations

import hashlib
import json
import uuid
from typing import Any

FALLBACK_MARKER = "[TOOL SUMMARY UNAVAILABLE]"


def _normalize_keys(value: Any) -> Any:
    # JSON object keys are strings; non-str keys are stringified up front so
    # sort_keys never compares mixed types. Colliding keys resolve by type name.
    if isinstance(value, dict):
        items = sorted(
            ((str(k), type(k).__name__, v) for k, v in value.items()),
            key=lambda item: (item[0], item[1]),
        )
        return {k: _normalize_keys(v) for k, _, v in items}
    if isinstance(value, (list, tuple)):
        return [_normalize_keys(v) for v in value]
    return value


def canonical_json(value: Any) -> str:
    """Serialize a value deterministically.

    Keys are sorted and separators are compact, so two structurally identical
    values always produce the same string regardless of dict insertion order.
    Non-string keys are stringified and values JSON cannot represent are
    rendered with str(). Never raises for plain data; values it still cannot
    encode (e.g. circular references) fall back to repr().
    """
    try:
        return json.dumps(
            _normalize_keys(value),
            sort_keys=True,
            separators=(",", ":"),
            ensure_ascii=False,
            default=str,
        )
    except (TypeError, ValueError, RecursionError):
        return repr(value)


def compute_fingerprint(tool_name: str, tool_input: Any, tool_output: Any) -> str:
    """Compute the content-addressed key of a completed tool call.

    Only the (name, input, output) triple goes into the digest. Call ids,
    session ids, users and timestamps never do, so the same call made in two
    conversations maps to the same cache entry.
    """
    payload = canonical_json({"tool": tool_name, "input": tool_input, "output": tool_output})
    return compute_short_hash(payload, length=64)


def compute_short_hash(text: str, length: int = 16) -> str:
    """Compute a truncated SHA256 hex digest of text."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()[:length]


def safe_json_dumps(value: Any, indent: int | None = 2) -> str:
    """Render a value as JSON for humans, falling back to str()."""
    if isinstance(value, str):
        return value
    try:
        return json.dumps(value, indent=indent, sort_keys=True, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        return str(value)


def truncate_text(text: str, max_chars: int) -> str:
    """Bound text to max_chars, appending a marker with the dropped count."""
    if max_chars <= 0 or len(text) <= max_chars:
        return text
    return text[:max_chars] + f"...[truncated {len(text) - max_chars} chars]"


def create_fallback_summary(tool_name: str) -> str:
    """Build the placeholder used when model summarization fails.

    Only the marker and the tool name go in, so the text can be cached under
    the fingerprint and shared by every call with the same content. Call ids
    are attached per call with attach_fallback_reference().
    """
    return f"{FALLBACK_MARKER} tool={tool_name}"


def new_fallback_ref() -> str:
    """Fresh 12-hex correlation id for one substituted fallback."""
    return uuid.uuid4().hex[:12]


def attach_fallback_reference(summary: str, tool_call_id: str | None, ref: str) -> str:
    """Render a fallback for one call: `<base> call=<id> ref=<ref>`."""
    parts = [summary]
    if tool_call_id:
        parts.append(f"call={tool_call_id}")
    parts.append(f"ref={ref}")
    return " ".join(parts)


def is_fallback_summary(text: str) -> bool:
    """Check whether a summary string is a fallback placeholder."""
    return text.startswith(FALLBACK_MARKER)
