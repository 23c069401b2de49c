"""Tests for the tool-call audit logs."""

import json

from toolsum.audit import AuditRecord, InMemoryAuditLog, JsonlAuditLog, ToolCallAuditLog


def record(call_id="c1"):
    return AuditRecord(
        fingerprint="f" * 64,
        tool_call_id=call_id,
        tool_name="search",
        source="model",
        summary="Searched docs",
        chat_history_id="chat-1",
    )


class TestAuditLogs:
    """Test audit log implementations."""

    def test_protocol(self):
        assert isinstance(InMemoryAuditLog(), ToolCallAuditLog)
        assert isinstance(JsonlAuditLog("unused.jsonl"), ToolCallAuditLog)

    def test_in_memory(self):
        log = InMemoryAuditLog()
        log.record(record("c1"))
        log.record(record("c2"))
        assert [r.tool_call_id for r in log.records] == ["c1", "c2"]

    def test_jsonl_appends(self, tmp_path):
        path = tmp_path / "audit" / "calls.jsonl"
        log = JsonlAuditLog(path)
        log.record(record("c1"))
        log.record(record("c2"))

        lines = [json.loads(line) for line in path.read_text().splitlines()]
        assert [line["tool_call_id"] for line in lines] == ["c1", "c2"]
        assert lines[0]["chat_history_id"] == "chat-1"
        assert lines[0]["user_id"] is None
        assert lines[0]["created_at"]
