"""`toolsum optimize` - summarize old tool calls in a conversation file."""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import Any

import click

from ..cache import SummaryCache
from ..config import OptimizationResult, OptimizerConfig, PreservationConfig, SummarizerConfig
from ..exceptions import MalformedMessageError, ToolsumError
from ..models import OpenAICompatibleSummaryModel, SummaryModel
from ..transforms import MessageOptimizer
from ._utils.formatting import format_ratio, print_error, print_stats, print_table, print_warning, truncate
from .main import main


def build_model(base_url: str | None, model: str | None, timeout: float) -> SummaryModel:
    """Summary model used by the optimize command; options override TOOLSUM_* env vars."""
    return OpenAICompatibleSummaryModel.from_env(
        base_url=base_url,
        timeout=timeout,
        model_aliases={"lofi": model} if model else None,
    )


def load_messages(path: str) -> tuple[list[Any], dict[str, Any] | None]:
    """Read a conversation file.

    Accepts a bare list of messages or an object with a "messages" list
    (the object is returned so the other keys survive the rewrite).
    """
    if path == "-":
        raw = sys.stdin.read()
    else:
        raw = Path(path).read_text(encoding="utf-8")
    data = json.loads(raw)
    if isinstance(data, list):
        return data, None
    if isinstance(data, dict) and isinstance(data.get("messages"), list):
        return data["messages"], data
    raise MalformedMessageError(
        "Conversation file holds no message list",
        details={"path": path, "type": type(data).__name__},
    )


async def _run(optimizer: MessageOptimizer, messages: list[Any], chat_id: str | None) -> OptimizationResult:
    try:
        return await optimizer.optimize_with_report(messages, chat_history_id=chat_id)
    finally:
        aclose = getattr(optimizer.summarizer.model, "aclose", None)
        if aclose is not None:
            await aclose()


def print_report(result: OptimizationResult, messages: list[Any]) -> None:
    print_stats(
        {
            "messages": len(messages),
            "applied": result.applied,
            "tool calls summarized": len(result.outcomes),
            "cache hits": result.cache_hits,
            "model calls": result.model_calls,
            "fallbacks": result.fallbacks,
            "characters": f"{result.characters_before} -> {result.characters_after}",
            "reduction": format_ratio(result.character_reduction),
            "duration": f"{result.duration_ms:.1f}ms",
        },
        title="Tool Optimization",
    )
    if result.outcomes:
        print_table(
            ["Tool", "Source", "Summary"],
            [[o.tool_name, o.source, truncate(o.summary, 60)] for o in result.outcomes],
            title="Summaries",
        )


@main.command()
@click.argument("input_path", metavar="INPUT", type=click.Path(allow_dash=True))
@click.option("--output", "-o", type=click.Path(), help="Write the result here instead of stdout.")
@click.option(
    "--recent",
    type=int,
    default=2,
    show_default=True,
    help="Most recent user interactions kept verbatim.",
)
@click.option("--keyword", "keywords", multiple=True, help="Preserve messages containing this text.")
@click.option("--pattern", "patterns", multiple=True, help="Preserve messages matching this regex.")
@click.option("--cache", "cache_path", type=click.Path(), help="JSON summary cache to load and update.")
@click.option("--base-url", help="OpenAI-compatible API root (default: TOOLSUM_BASE_URL).")
@click.option("--model", help="Provider model used for summaries (default: TOOLSUM_LOFI_MODEL).")
@click.option("--timeout", type=float, default=30.0, show_default=True, help="Per-summary timeout in seconds.")
@click.option("--chat-id", help="Chat history id attached to logs.")
@click.option("--report", is_flag=True, help="Print a summary of what changed to stderr.")
def optimize(
    input_path: str,
    output: str | None,
    recent: int,
    keywords: tuple[str, ...],
    patterns: tuple[str, ...],
    cache_path: str | None,
    base_url: str | None,
    model: str | None,
    timeout: float,
    chat_id: str | None,
    report: bool,
) -> None:
    """Summarize old tool calls in a conversation JSON file.

    \b
    Examples:
        toolsum optimize chat.json -o out.json
        toolsum optimize chat.json --keyword invoice --recent 3 --report
        cat chat.json | toolsum optimize - --cache summaries.json
    """
    try:
        messages, envelope = load_messages(input_path)
        config = OptimizerConfig(
            preservation=PreservationConfig(
                recent_interaction_count=recent,
                preserve_keywords=list(keywords),
                preserve_patterns=list(patterns),
            ),
            summarizer=SummarizerConfig(timeout_seconds=timeout),
        )
        cache = SummaryCache()
        if cache_path:
            cache.load(cache_path)
        optimizer = MessageOptimizer(cache, build_model(base_url, model, timeout), config)
        result = asyncio.run(_run(optimizer, messages, chat_id))
        if cache_path:
            cache.save(cache_path)
    except (ToolsumError, OSError, json.JSONDecodeError) as e:
        print_error(str(e))
        raise SystemExit(1) from e

    payload: Any = result.messages if envelope is None else {**envelope, "messages": result.messages}
    text = json.dumps(payload, indent=2, ensure_ascii=False)
    if output:
        Path(output).write_text(text + "\n", encoding="utf-8")
    else:
        click.echo(text)

    for warning in result.warnings:
        print_warning(warning)
    if report:
        print_report(result, messages)
