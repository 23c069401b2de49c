"""Registry of tool definitions seen on outbound model calls.

The optimizing middleware hands the `tools` of every call to a ToolRegistry
and records how many were new. Persisting the registry (a database table,
a shared cache) is up to the implementation; InMemoryToolRegistry keeps it
for the lifetime of the process.
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolRecord:
    """Normalized description of a tool definition."""

    tool_id: str
    name: str
    input_schema: str  # JSON text
    description: str = ""
    provider_options: str | None = None  # JSON text


@runtime_checkable
class ToolRegistry(Protocol):
    """Anything that can register tool definitions."""

    async def scan_for_tools(self, tools: Any) -> int:
        """Register unseen tools and return how many were new."""
        ...


def normalize_tool(tool: Any) -> ToolRecord | None:
    """Turn a function or provider-defined tool definition into a ToolRecord.

    Returns None for definitions without a name or with an unknown type.
    """
    if not isinstance(tool, dict) or not isinstance(tool.get("name"), str) or not tool["name"]:
        return None

    tool_type = tool.get("type", "function")
    if tool_type == "function":
        schema = tool.get("inputSchema") or tool.get("parameters") or {"type": "object"}
        provider_options = tool.get("providerOptions")
        return ToolRecord(
            tool_id=str(uuid.uuid4()),
            name=tool["name"],
            input_schema=json.dumps(schema, sort_keys=True, default=str),
            description=tool.get("description") or "",
            provider_options=json.dumps(provider_options, sort_keys=True, default=str)
            if provider_options
            else None,
        )
    if tool_type == "provider-defined":
        return ToolRecord(
            tool_id=str(uuid.uuid4()),
            name=tool["name"],
            input_schema=json.dumps(tool.get("args") or {"type": "object"}, sort_keys=True, default=str),
            description=f"provider-defined tool: {tool.get('id') or ''}",
        )

    logger.warning("Unknown tool type in scan_for_tools: %s", tool_type)
    return None


class InMemoryToolRegistry:
    """Process-local ToolRegistry keyed by tool name."""

    def __init__(self) -> None:
        self._by_name: dict[str, ToolRecord] = {}
        self._lock = asyncio.Lock()

    async def scan_for_tools(self, tools: Any) -> int:
        """Register unseen tools.

        Args:
            tools: A single tool definition, a list of them, or a mapping of
                name -> definition (the name is filled in when missing).

        Returns:
            Number of tools that were not registered before.
        """
        if isinstance(tools, dict) and "name" not in tools and "type" not in tools:
            tools = [
                {"name": name, **(definition if isinstance(definition, dict) else {})}
                for name, definition in tools.items()
            ]
        elif not isinstance(tools, list):
            tools = [tools]

        added = 0
        async with self._lock:
            for tool in tools:
                name = tool.get("name") if isinstance(tool, dict) else None
                if isinstance(name, str) and name in self._by_name:
                    continue
                record = normalize_tool(tool)
                if record is None or record.name in self._by_name:
                    continue
                self._by_name[record.name] = record
                added += 1

        if added:
            logger.debug("Registered %d new tools (%d known)", added, len(self._by_name))
        return added

    def get(self, name: str) -> ToolRecord | None:
        return self._by_name.get(name)

    def contains(self, name: str) -> bool:
        return name in self._by_name

    def names(self) -> list[str]:
        return sorted(self._by_name)

    def __len__(self) -> int:
        return len(self._by_name)
