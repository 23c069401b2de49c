"""
toolsum - Tool-call summarization for LLM conversation histories.

Long conversations accumulate tool calls whose full inputs and outputs are
re-sent to the model on every turn. toolsum replaces the old ones with short
summaries before the call goes out:

- Recent interactions and flagged messages are always kept verbatim
- Completed tool calls are summarized once by a small ("lofi") model
- Summaries are content-addressed, so identical calls share one summary
- Failures degrade to a marked placeholder, never to an error

Quick Start:

    from toolsum import MessageOptimizer, OpenAICompatibleSummaryModel, SummaryCache

    optimizer = MessageOptimizer(
        cache=SummaryCache(),
        model=OpenAICompatibleSummaryModel.from_env(),
    )
    messages = await optimizer.optimize(messages, chat_history_id="chat-1")

As a middleware in front of model calls:

    from toolsum import create_tool_optimizing_middleware

    middleware = create_tool_optimizing_middleware(optimizer, user_id="u1")
    params = await middleware.transform_params({"type": "generate", "params": params})

Verify It's Working:

    import logging
    logging.basicConfig(level=logging.INFO)
    # INFO:toolsum.transforms.pipeline:Tool optimization completed: 24 messages, 3 tool calls ...

Error Handling:

    from toolsum import ConfigurationError, ToolsumError

    try:
        config = PreservationConfig(preserve_patterns=["("])
    except ConfigurationError as e:
        print(f"Config issue: {e.details}")
"""

from .audit import AuditRecord, InMemoryAuditLog, JsonlAuditLog, ToolCallAuditLog
from .cache import CacheEntry, InMemoryBackend, SummaryCache, SummaryCacheBackend
from .config import (
    DEFAULT_SUMMARY_TEMPLATE,
    MiddlewareConfig,
    OptimizationResult,
    OptimizerConfig,
    Partition,
    PreservationConfig,
    PreservationDecision,
    SummarizerConfig,
    SummaryOutcome,
)
from .exceptions import (
    CacheError,
    ConfigurationError,
    MalformedMessageError,
    SummarizationError,
    ToolsumError,
)
from .metrics import MetricsRecorder, hash_user_id
from .middleware import (
    DirectCall,
    ToolOptimizingMiddleware,
    WrapperCall,
    create_tool_optimizing_middleware,
    parse_call,
    render_params,
    strip_synthetic_leading_message,
)
from .models import CallableSummaryModel, OpenAICompatibleSummaryModel, SummaryModel
from .parser import ToolCallGroup, find_tool_call_groups
from .registry import InMemoryToolRegistry, ToolRecord, ToolRegistry
from .transforms import MessageOptimizer, Partitioner, ToolCallSummarizer, reassemble_messages
from .utils import FALLBACK_MARKER, compute_fingerprint, is_fallback_summary

__version__ = "0.1.0"

__all__ = [
    # Pipeline
    "MessageOptimizer",
    "Partitioner",
    "ToolCallSummarizer",
    "reassemble_messages",
    # Middleware
    "ToolOptimizingMiddleware",
    "create_tool_optimizing_middleware",
    "DirectCall",
    "WrapperCall",
    "parse_call",
    "render_params",
    "strip_synthetic_leading_message",
    # Config
    "PreservationConfig",
    "SummarizerConfig",
    "OptimizerConfig",
    "MiddlewareConfig",
    "DEFAULT_SUMMARY_TEMPLATE",
    # Data models
    "Partition",
    "PreservationDecision",
    "SummaryOutcome",
    "OptimizationResult",
    "ToolCallGroup",
    "find_tool_call_groups",
    # Cache
    "SummaryCache",
    "CacheEntry",
    "SummaryCacheBackend",
    "InMemoryBackend",
    # Models
    "SummaryModel",
    "CallableSummaryModel",
    "OpenAICompatibleSummaryModel",
    # Registry, audit, metrics
    "ToolRegistry",
    "ToolRecord",
    "InMemoryToolRegistry",
    "ToolCallAuditLog",
    "AuditRecord",
    "InMemoryAuditLog",
    "JsonlAuditLog",
    "MetricsRecorder",
    "hash_user_id",
    # Fingerprints
    "FALLBACK_MARKER",
    "compute_fingerprint",
    "is_fallback_summary",
    # Exceptions
    "ToolsumError",
    "ConfigurationError",
    "SummarizationError",
    "CacheError",
    "MalformedMessageError",
]
