"""Tool-optimizing middleware: compress tool calls before a model call.

The middleware intercepts the parameters of an outbound model call,
registers the attached tool definitions, and, once the conversation is long
enough, swaps its message list for the optimized one:

    idle -> scanning-tools -> deciding-optimization
         -> (optimizing -> reassembled | skipped) -> done

Usage:
    optimizer = MessageOptimizer(SummaryCache(), model)
    middleware = create_tool_optimizing_middleware(optimizer, user_id="u1")

    params = await middleware.transform_params({"type": "generate", "params": params})

Nothing raised inside the middleware reaches the caller: on any failure the
original params object is returned unchanged.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Literal, Union

from .config import MiddlewareConfig
from .metrics import MetricsRecorder, hash_user_id
from .registry import InMemoryToolRegistry, ToolRegistry
from .transforms.pipeline import MessageOptimizer

logger = logging.getLogger(__name__)

Operation = Literal["generate", "stream"]

_WRAPPER_TYPES = frozenset({"generateText", "streamText"})
_STREAM_TYPES = frozenset({"stream", "streamText"})


class MiddlewareState(str, Enum):
    IDLE = "idle"
    SCANNING_TOOLS = "scanning-tools"
    DECIDING_OPTIMIZATION = "deciding-optimization"
    OPTIMIZING = "optimizing"
    REASSEMBLED = "reassembled"
    SKIPPED = "skipped"
    DONE = "done"


@dataclass(frozen=True)
class DirectCall:
    """Low-level model call; messages travel in params["prompt"]."""

    op: Operation
    params: dict[str, Any]


@dataclass(frozen=True)
class WrapperCall:
    """Call made through a generate/stream helper.

    mirrored_fields names the legacy params keys (``messages``) that must
    carry the same list as ``prompt`` when the params are rendered back.
    """

    op: Operation
    params: dict[str, Any]
    mirrored_fields: tuple[str, ...] = ()


ModelCall = Union[DirectCall, WrapperCall]


def parse_call(options: dict[str, Any]) -> ModelCall:
    """Decide the shape of an intercepted call once, at the boundary."""
    call_type = options.get("type", "generate")
    params = options.get("params")
    if not isinstance(params, dict):
        raise TypeError(f"params must be a dict, got {type(params).__name__}")

    op: Operation = "stream" if call_type in _STREAM_TYPES else "generate"
    if call_type in _WRAPPER_TYPES or "messages" in params:
        mirrored = ("messages",) if "messages" in params else ()
        return WrapperCall(op=op, params=params, mirrored_fields=mirrored)
    return DirectCall(op=op, params=params)


def canonical_messages(call: ModelCall) -> list[Any] | None:
    """The message list of a call: legacy ``messages`` first, then ``prompt``.

    Returns None when neither holds a list.
    """
    if isinstance(call, WrapperCall) and "messages" in call.mirrored_fields:
        legacy = call.params.get("messages")
        if isinstance(legacy, list):
            return legacy
        return None
    prompt = call.params.get("prompt")
    return prompt if isinstance(prompt, list) else None


def render_params(call: ModelCall, messages: list[Any]) -> dict[str, Any]:
    """Serialize messages back into a copy of the call's params.

    ``prompt`` always carries the list; for wrapper calls every mirrored
    field carries the same list object.
    """
    rendered = {**call.params, "prompt": messages}
    if isinstance(call, WrapperCall):
        for name in call.mirrored_fields:
            rendered[name] = messages
    return rendered


def strip_synthetic_leading_message(messages: list[Any]) -> tuple[Any | None, list[Any]]:
    """Split off an injected leading instruction.

    Precondition: the first entry has no ``id`` while the second one does,
    which is how an instruction prepended by the calling helper looks next
    to persisted chat messages. When the precondition does not hold nothing
    is stripped.

    Returns:
        (leading message or None, remaining messages)
    """
    if len(messages) < 2:
        return None, messages
    first, second = messages[0], messages[1]
    if not isinstance(first, dict) or not isinstance(second, dict):
        return None, messages
    if first.get("id") or not second.get("id"):
        return None, messages
    return first, messages[1:]


def _model_id(model: Any) -> str:
    if isinstance(model, str):
        return model
    for attr in ("model_id", "modelId"):
        value = getattr(model, attr, None)
        if isinstance(value, str) and value:
            return value
    return "unknown"


class ToolOptimizingMiddleware:
    """
    Request-interception layer that drives the MessageOptimizer.

    The middleware keeps no state between calls besides its configuration
    and collaborators; `last_trace` only records the states visited by the
    most recent call for introspection.
    """

    def __init__(
        self,
        config: MiddlewareConfig,
        optimizer: MessageOptimizer,
        registry: ToolRegistry | None = None,
        metrics: MetricsRecorder | None = None,
    ):
        self.config = config
        self.optimizer = optimizer
        self.registry = registry if registry is not None else InMemoryToolRegistry()
        self.metrics = metrics
        self.last_trace: list[MiddlewareState] = []

    async def transform_params(self, options: dict[str, Any]) -> dict[str, Any]:
        """
        Transform the params of an outbound model call.

        Args:
            options: {"type": "generate" | "stream" | "generateText" |
                "streamText", "params": {...}, "model": str | object | None}

        Returns:
            Params in the same shape as received: the original object when
            nothing changed or anything failed, otherwise a copy whose
            ``prompt`` (and mirrored ``messages``) hold the optimized list.
        """
        params = options.get("params")
        start = time.perf_counter()
        attributes = {
            "user_id": hash_user_id(self.config.user_id),
            "chat_id": self.config.chat_history_id or "unknown",
        }
        trace = [MiddlewareState.IDLE]
        self.last_trace = trace

        try:
            self._increment("tool_optimization_middleware_total", **attributes)
            call = parse_call(options)

            trace.append(MiddlewareState.SCANNING_TOOLS)
            new_tools = await self._scan_tools(call, attributes)

            trace.append(MiddlewareState.DECIDING_OPTIMIZATION)
            result, applied = await self._optimize(call, options.get("model"), trace, attributes)

            trace.append(MiddlewareState.DONE)
            duration_ms = (time.perf_counter() - start) * 1000
            self._observe(
                "tool_optimization_middleware_duration_ms",
                duration_ms,
                optimization_applied=str(applied).lower(),
                new_tools_found=new_tools,
                **attributes,
            )
            logger.debug(
                "Tool optimizing middleware completed in %.1fms (applied=%s, new_tools=%d)",
                duration_ms,
                applied,
                new_tools,
            )
            return result

        except Exception as e:
            trace.append(MiddlewareState.DONE)
            duration_ms = (time.perf_counter() - start) * 1000
            self._observe(
                "tool_optimization_middleware_duration_ms",
                duration_ms,
                status="error",
                **attributes,
            )
            logger.warning(
                "Tool optimizing middleware failed, using original params [chat=%s]: %s",
                self.config.chat_history_id or "unknown",
                e,
                exc_info=True,
            )
            return params  # type: ignore[return-value]

    async def _scan_tools(self, call: ModelCall, attributes: dict[str, str]) -> int:
        tools = call.params.get("tools")
        if not self.config.enable_tool_scanning or not tools:
            return 0

        new_tools = await self.registry.scan_for_tools(tools)
        provided = len(tools) if isinstance(tools, (list, dict)) else 1
        self._increment("tool_scanning_total", tools_provided=provided, **attributes)
        self._observe("new_tools_found_count", new_tools, **attributes)
        logger.debug("Tool scanning completed: %d new of %d provided", new_tools, provided)
        return new_tools

    async def _optimize(
        self,
        call: ModelCall,
        model: Any,
        trace: list[MiddlewareState],
        attributes: dict[str, str],
    ) -> tuple[dict[str, Any], bool]:
        source = canonical_messages(call)
        if source is None:
            trace.append(MiddlewareState.SKIPPED)
            return call.params, False

        leading = None
        optimizer_input = source
        if self.config.strip_synthetic_leading_message:
            leading, optimizer_input = strip_synthetic_leading_message(source)

        if not self._should_optimize(call, optimizer_input):
            trace.append(MiddlewareState.SKIPPED)
            return call.params, False

        trace.append(MiddlewareState.OPTIMIZING)
        optimized = await self.optimizer.optimize(
            optimizer_input,
            user_id=self.config.user_id,
            chat_history_id=self.config.chat_history_id,
        )
        trace.append(MiddlewareState.REASSEMBLED)

        if optimized is optimizer_input:
            return call.params, False

        if leading is not None:
            optimized = [leading, *optimized]

        model_id = _model_id(model)
        self._increment("message_optimization_applied_total", model=model_id, **attributes)
        logger.info(
            "Message optimization applied: %d messages [model=%s, chat=%s]",
            len(source),
            model_id,
            self.config.chat_history_id or "unknown",
        )
        return render_params(call, optimized), True

    def _should_optimize(self, call: ModelCall, messages: list[Any]) -> bool:
        if not self.config.enable_message_optimization:
            return False
        if call.op != "generate" and not self.config.optimize_stream_calls:
            return False
        return len(messages) >= self.config.optimization_threshold

    def _increment(self, name: str, **attributes: Any) -> None:
        if self.metrics is not None:
            self.metrics.increment(name, **attributes)

    def _observe(self, name: str, value: float, **attributes: Any) -> None:
        if self.metrics is not None:
            self.metrics.observe(name, value, **attributes)


def create_tool_optimizing_middleware(
    optimizer: MessageOptimizer,
    *,
    user_id: str | None = None,
    chat_history_id: str | None = None,
    enable_message_optimization: bool = True,
    optimization_threshold: int = 10,
    enable_tool_scanning: bool = True,
    optimize_stream_calls: bool = False,
    strip_synthetic_leading_message: bool = False,
    registry: ToolRegistry | None = None,
    metrics: MetricsRecorder | None = None,
) -> ToolOptimizingMiddleware:
    """Build a ToolOptimizingMiddleware from keyword settings."""
    config = MiddlewareConfig(
        user_id=user_id,
        chat_history_id=chat_history_id,
        enable_message_optimization=enable_message_optimization,
        optimization_threshold=optimization_threshold,
        enable_tool_scanning=enable_tool_scanning,
        optimize_stream_calls=optimize_stream_calls,
        strip_synthetic_leading_message=strip_synthetic_leading_message,
    )
    return ToolOptimizingMiddleware(config, optimizer, registry=registry, metrics=metrics)
