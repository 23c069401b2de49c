"""Optional write-only log of summarized tool calls.

The optimizer hands every summary it substitutes to the configured audit
log, from a worker thread. The log cannot influence the optimization
result: anything it raises is logged and dropped by the caller.
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuditRecord:
    """One summarized tool call."""

    fingerprint: str
    tool_call_id: str
    tool_name: str
    source: str  # cache | model | fallback
    summary: str
    user_id: str | None = None
    chat_history_id: str | None = None
    created_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


@runtime_checkable
class ToolCallAuditLog(Protocol):
    """Sink for AuditRecords."""

    def record(self, entry: AuditRecord) -> None: ...


class InMemoryAuditLog:
    """Keep records in a list, mostly for tests and debugging."""

    def __init__(self) -> None:
        self.records: list[AuditRecord] = []
        self._lock = threading.Lock()

    def record(self, entry: AuditRecord) -> None:
        with self._lock:
            self.records.append(entry)


class JsonlAuditLog:
    """Append records to a JSON Lines file.

    record() does blocking file I/O; the summarizer calls it from the
    default executor, never on the event loop.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._lock = threading.Lock()

    def record(self, entry: AuditRecord) -> None:
        line = json.dumps(asdict(entry), ensure_ascii=False)
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as f:
                f.write(line + "\n")
        logger.debug("Audit record written for %s", entry.tool_call_id)
