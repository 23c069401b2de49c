"""Transform modules for toolsum."""

from .partitioner import Partitioner, describe_partition, find_recent_cutoff, partition_messages
from .pipeline import MessageOptimizer
from .reassembler import reassemble_messages, render_summary_part
from .summarizer import (
    ToolCallSummarizer,
    build_summary_prompt,
    coerce_summary,
    extract_conversational_context,
    group_fingerprint,
    select_summarizable_groups,
)

__all__ = [
    "MessageOptimizer",
    "Partitioner",
    "ToolCallSummarizer",
    "build_summary_prompt",
    "coerce_summary",
    "describe_partition",
    "extract_conversational_context",
    "find_recent_cutoff",
    "group_fingerprint",
    "partition_messages",
    "reassemble_messages",
    "render_summary_part",
    "select_summarizable_groups",
]
