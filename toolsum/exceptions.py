"""Custom exceptions for toolsum.

All exceptions inherit from ToolsumError, so callers that want to observe
failures can catch a single type:

    from toolsum import ToolsumError, SummarizationError

    try:
        summary = await model.summarize(prompt, "lofi")
    except SummarizationError as e:
        print(f"Model problem: {e.details}")
    except ToolsumError as e:
        print(f"toolsum error: {e}")

Note that the optimizer itself never lets these escape: model, cache and
middleware failures are recovered locally (see MessageOptimizer and
ToolOptimizingMiddleware).
"""

from __future__ import annotations

from typing import Any


class ToolsumError(Exception):
    """Base exception for all toolsum errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({detail_str})"
        return self.message


class ConfigurationError(ToolsumError):
    """Raised when a config object is invalid.

    This includes:
    - Negative counts or thresholds
    - Preserve patterns that fail to compile
    - Missing model endpoint configuration

    Example:
        ConfigurationError(
            "Invalid preserve pattern",
            details={"pattern": "([", "error": "missing ), unterminated subpattern"}
        )
    """

    pass


class SummarizationError(ToolsumError):
    """Raised when the summary model fails or answers with an unusable shape.

    The summarizer catches this and substitutes a fallback summary.

    Example:
        SummarizationError(
            "Malformed summary response",
            details={"model": "lofi", "response_type": "list"}
        )
    """

    pass


class CacheError(ToolsumError):
    """Raised when the summary cache cannot be read or written.

    Reads that fail are treated as misses; writes that fail are logged.

    Example:
        CacheError(
            "Cannot load cache file",
            details={"path": "summaries.json", "error": "Expecting value"}
        )
    """

    pass


class MalformedMessageError(ToolsumError):
    """Raised when input does not hold messages in the expected shape.

    Only raised at the edges (e.g. a conversation file without a message
    list). Inside an optimization pass a malformed message is preserved
    verbatim instead.

    Example:
        MalformedMessageError(
            "Conversation file holds no message list",
            details={"path": "chat.json", "type": "dict"}
        )
    """

    pass
