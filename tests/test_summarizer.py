"""Tests for the tool-call summarizer."""

import asyncio
import json
import re
import threading

import pytest
from conftest import assistant, message, text_part, tool_part, user

from toolsum.audit import InMemoryAuditLog, JsonlAuditLog
from toolsum.cache import InMemoryBackend, SummaryCache
from toolsum.config import Partition, SummarizerConfig
from toolsum.exceptions import SummarizationError
from toolsum.parser import find_tool_call_groups
from toolsum.transforms import summarizer as summarizer_module
from toolsum.transforms.summarizer import (
    ToolCallSummarizer,
    build_summary_prompt,
    coerce_summary,
    extract_conversational_context,
    group_fingerprint,
    select_summarizable_groups,
)
from toolsum.utils import FALLBACK_MARKER, compute_fingerprint, is_fallback_summary


def two_calls(second_output="3 files"):
    return [
        user("u1", "List the repository"),
        message(
            "a1",
            "assistant",
            text_part("I'll check two things."),
            tool_part("c1", tool_name="search", tool_input={"query": "docs"}, output="10 results"),
            tool_part("c2", tool_name="list_files", tool_input={"path": "/"}, output=second_output),
        ),
    ]


def groups_of(messages):
    return list(find_tool_call_groups(messages).values())


class BrokenBackend(InMemoryBackend):
    """Backend whose reads and writes always fail."""

    def get(self, fingerprint):
        raise ConnectionError("cache down")

    def set(self, fingerprint, entry):
        raise ConnectionError("cache down")


class BrokenAuditLog:
    def record(self, entry):
        raise OSError("disk full")


class TestSelectSummarizableGroups:
    """Test which groups are eligible."""

    def test_complete_groups_in_candidate_region(self):
        messages = two_calls()
        groups = select_summarizable_groups(messages, Partition(preserve=[], candidate=[0, 1]))
        assert [g.tool_call_id for g in groups] == ["c1", "c2"]

    def test_nothing_without_candidates(self):
        assert select_summarizable_groups(two_calls(), Partition(preserve=[0, 1])) == []

    def test_group_straddling_preserve_is_pinned(self, twenty_messages):
        partition = Partition(preserve=[6], candidate=[i for i in range(20) if i != 6])
        assert select_summarizable_groups(twenty_messages, partition) == []

    def test_in_progress_group_skipped(self):
        messages = [message("a1", "assistant", tool_part("c1", state="input-available", tool_input={"q": 1}))]
        assert select_summarizable_groups(messages, Partition(candidate=[0])) == []


class TestPromptBuilding:
    """Test prompt rendering."""

    def test_prompt_contains_call_details(self):
        messages = two_calls()
        group = find_tool_call_groups(messages)["c1"]
        prompt = build_summary_prompt(messages, group, SummarizerConfig())

        assert "TOOL: search" in prompt
        assert "STATUS: success" in prompt
        assert '"query": "docs"' in prompt
        assert "10 results" in prompt
        assert "User request: List the repository" in prompt
        assert '{"summary": "<summary text>"}' in prompt

    def test_large_output_truncated(self):
        messages = two_calls(second_output="x" * 10_000)
        group = find_tool_call_groups(messages)["c2"]
        prompt = build_summary_prompt(messages, group, SummarizerConfig(max_output_chars=100))
        assert "...[truncated 9900 chars]" in prompt
        assert "x" * 101 not in prompt

    def test_error_status(self):
        messages = [
            message("a1", "assistant", tool_part("c1", state="output-error", tool_input={}, error_text="timeout"))
        ]
        group = find_tool_call_groups(messages)["c1"]
        prompt = build_summary_prompt(messages, group, SummarizerConfig())
        assert "STATUS: error" in prompt
        assert "timeout" in prompt

    def test_context_without_user_request(self):
        messages = [message("a1", "assistant", tool_part("c1", output="x"))]
        group = find_tool_call_groups(messages)["c1"]
        assert extract_conversational_context(messages, group) == "No specific conversational context found."


class TestCoerceSummary:
    """Test model answer validation."""

    def test_structured(self):
        assert coerce_summary({"summary": "  done  "}) == "done"

    def test_plain_text(self):
        assert coerce_summary("done") == "done"

    @pytest.mark.parametrize("value", [{"text": "x"}, {"summary": ""}, "", None, 42, ["x"]])
    def test_rejected(self, value):
        with pytest.raises(SummarizationError):
            coerce_summary(value)


class TestToolCallSummarizer:
    """Test summarization, caching and failure handling."""

    @pytest.mark.asyncio
    async def test_summarizes_each_group(self, cache, fake_model):
        messages = two_calls()
        summarizer = ToolCallSummarizer(cache, fake_model)

        outcomes = await summarizer.summarize_groups(messages, groups_of(messages))

        assert set(outcomes) == {"c1", "c2"}
        assert fake_model.calls == 2
        assert all(o.source == "model" for o in outcomes.values())
        assert len(cache) == 2
        assert all(model_id == "lofi" for _, model_id in fake_model.prompts)

    @pytest.mark.asyncio
    async def test_cache_hit_skips_model(self, cache, fake_model):
        messages = two_calls()
        c1 = find_tool_call_groups(messages)["c1"]
        cache.set(group_fingerprint(c1), "Cached search summary")

        outcomes = await ToolCallSummarizer(cache, fake_model).summarize_groups(messages, groups_of(messages))

        assert outcomes["c1"].summary == "Cached search summary"
        assert outcomes["c1"].source == "cache"
        assert fake_model.calls == 1

    @pytest.mark.asyncio
    async def test_identical_calls_summarized_once(self, cache, fake_model):
        messages = [
            message("a1", "assistant", tool_part("c1", tool_input={"query": "docs"}, output="10 results")),
            message("a2", "assistant", tool_part("c2", tool_input={"query": "docs"}, output="10 results")),
        ]
        outcomes = await ToolCallSummarizer(cache, fake_model).summarize_groups(messages, groups_of(messages))

        assert fake_model.calls == 1
        assert outcomes["c1"] is outcomes["c2"]
        assert outcomes["c1"].tool_call_ids == ("c1", "c2")

    @pytest.mark.asyncio
    async def test_fingerprint_ignores_call_id(self, cache, fake_model):
        messages = two_calls()
        await ToolCallSummarizer(cache, fake_model).summarize_groups(messages, groups_of(messages))
        assert compute_fingerprint("search", {"query": "docs"}, "10 results") in cache

    @pytest.mark.asyncio
    async def test_model_error_falls_back(self, cache, model_factory):
        model = model_factory(error=RuntimeError("model down"))
        messages = two_calls()

        outcomes = await ToolCallSummarizer(cache, model).summarize_groups(messages, groups_of(messages))

        for call_id, outcome in outcomes.items():
            assert outcome.source == "fallback"
            assert outcome.summary.startswith(FALLBACK_MARKER)
            assert f"call={call_id}" in outcome.summary

    @pytest.mark.asyncio
    async def test_fallback_cached_with_short_ttl(self, cache, model_factory):
        model = model_factory(error=RuntimeError("model down"))
        messages = two_calls()
        summarizer = ToolCallSummarizer(cache, model, SummarizerConfig(fallback_ttl_seconds=60))

        await summarizer.summarize_groups(messages, groups_of(messages))
        await summarizer.summarize_groups(messages, groups_of(messages))

        assert model.calls == 2
        fingerprint = group_fingerprint(find_tool_call_groups(messages)["c1"])
        entry = cache.get_entry(fingerprint)
        assert entry.is_fallback
        assert entry.ttl == 60
        assert cache.export_entries() == {}

    @pytest.mark.asyncio
    async def test_fallbacks_not_cached_when_disabled(self, cache, model_factory):
        model = model_factory(error=RuntimeError("model down"))
        messages = two_calls()
        summarizer = ToolCallSummarizer(cache, model, SummarizerConfig(cache_fallbacks=False))

        await summarizer.summarize_groups(messages, groups_of(messages))
        await summarizer.summarize_groups(messages, groups_of(messages))

        assert model.calls == 4
        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_malformed_response_falls_back(self, cache, model_factory):
        model = model_factory(response={"unexpected": True})
        messages = two_calls()
        outcomes = await ToolCallSummarizer(cache, model).summarize_groups(messages, groups_of(messages))
        assert all(is_fallback_summary(o.summary) for o in outcomes.values())

    @pytest.mark.asyncio
    async def test_plain_text_response_accepted(self, cache, model_factory):
        model = model_factory(response="Listed files")
        messages = two_calls()
        outcomes = await ToolCallSummarizer(cache, model).summarize_groups(messages, groups_of(messages))
        assert outcomes["c2"].summary == "Listed files"

    @pytest.mark.asyncio
    async def test_timeout_falls_back_without_blocking_others(self, cache, model_factory):
        class SelectivelySlowModel:
            async def summarize(self, prompt, model_id):
                if "list_files" in prompt:
                    await asyncio.sleep(5)
                return {"summary": "fast"}

        messages = two_calls()
        summarizer = ToolCallSummarizer(cache, SelectivelySlowModel(), SummarizerConfig(timeout_seconds=0.05))

        outcomes = await asyncio.wait_for(summarizer.summarize_groups(messages, groups_of(messages)), timeout=2)

        assert outcomes["c1"].summary == "fast"
        assert outcomes["c2"].source == "fallback"

    @pytest.mark.asyncio
    async def test_runs_concurrently(self, cache, model_factory):
        model = model_factory(delay=0.05)
        messages = two_calls()
        await ToolCallSummarizer(cache, model).summarize_groups(messages, groups_of(messages))
        assert model.max_in_flight == 2

    @pytest.mark.asyncio
    async def test_max_concurrency(self, cache, model_factory):
        model = model_factory(delay=0.02)
        messages = two_calls()
        summarizer = ToolCallSummarizer(cache, model, SummarizerConfig(max_concurrency=1))
        await summarizer.summarize_groups(messages, groups_of(messages))
        assert model.max_in_flight == 1

    @pytest.mark.asyncio
    async def test_cache_failure_treated_as_miss(self, fake_model):
        cache = SummaryCache(backend=BrokenBackend())
        messages = two_calls()

        outcomes = await ToolCallSummarizer(cache, fake_model).summarize_groups(messages, groups_of(messages))

        assert fake_model.calls == 2
        assert all(o.source == "model" for o in outcomes.values())

    @pytest.mark.asyncio
    async def test_audit_records(self, cache, fake_model):
        audit = InMemoryAuditLog()
        messages = two_calls()
        summarizer = ToolCallSummarizer(cache, fake_model, audit_log=audit)

        await summarizer.summarize_groups(messages, groups_of(messages), user_id="u-1", chat_history_id="chat-1")

        assert {r.tool_call_id for r in audit.records} == {"c1", "c2"}
        assert all(r.chat_history_id == "chat-1" and r.user_id == "u-1" for r in audit.records)

    @pytest.mark.asyncio
    async def test_audit_failure_ignored(self, cache, fake_model):
        messages = two_calls()
        summarizer = ToolCallSummarizer(cache, fake_model, audit_log=BrokenAuditLog())
        outcomes = await summarizer.summarize_groups(messages, groups_of(messages))
        assert len(outcomes) == 2

    @pytest.mark.asyncio
    async def test_metrics(self, cache, fake_model, metrics):
        messages = two_calls()
        c1 = find_tool_call_groups(messages)["c1"]
        cache.set(group_fingerprint(c1), "cached")
        summarizer = ToolCallSummarizer(cache, fake_model, metrics=metrics)

        await summarizer.summarize_groups(messages, groups_of(messages))

        assert metrics.counter("tool_summary_cache_hits_total") == 1
        assert metrics.counter("tool_summary_cache_misses_total") == 1
        assert metrics.histogram("tool_summary_generation_duration_ms", status="success").count == 1

    @pytest.mark.asyncio
    async def test_no_groups(self, cache, fake_model):
        assert await ToolCallSummarizer(cache, fake_model).summarize_groups([assistant("a1", "x")], []) == {}

    @pytest.mark.asyncio
    async def test_cached_fallback_carries_own_call_reference(self, cache, model_factory):
        model = model_factory(error=RuntimeError("model down"))
        first = [message("a1", "assistant", tool_part("c0", tool_input={"query": "docs"}, output="10 results"))]
        second = [
            message("b1", "assistant", tool_part("OTHER-CALL", tool_input={"query": "docs"}, output="10 results"))
        ]
        summarizer = ToolCallSummarizer(cache, model)

        a = await summarizer.summarize_groups(first, groups_of(first))
        b = await summarizer.summarize_groups(second, groups_of(second))

        assert model.calls == 1
        assert b["OTHER-CALL"].source == "cache"
        assert "call=OTHER-CALL" in b["OTHER-CALL"].summary
        assert "c0" not in b["OTHER-CALL"].summary
        ref_a = re.search(r"ref=([0-9a-f]{12})$", a["c0"].summary).group(1)
        ref_b = re.search(r"ref=([0-9a-f]{12})$", b["OTHER-CALL"].summary).group(1)
        assert ref_a != ref_b
        cached = cache.get(group_fingerprint(find_tool_call_groups(first)["c0"]))
        assert cached == f"{FALLBACK_MARKER} tool=search"

    @pytest.mark.asyncio
    async def test_shared_fallback_rendered_per_call(self, cache, model_factory):
        model = model_factory(error=RuntimeError("model down"))
        messages = [
            message("a1", "assistant", tool_part("c1", tool_input={"query": "docs"}, output="10 results")),
            message("a2", "assistant", tool_part("c2", tool_input={"query": "docs"}, output="10 results")),
        ]

        outcomes = await ToolCallSummarizer(cache, model).summarize_groups(messages, groups_of(messages))

        assert model.calls == 1
        assert "call=c1" in outcomes["c1"].summary
        assert "call=c2" in outcomes["c2"].summary
        assert outcomes["c1"].tool_call_ids == ("c1",)
        assert outcomes["c1"].fingerprint == outcomes["c2"].fingerprint

    @pytest.mark.asyncio
    async def test_mixed_key_payload_summarized(self, cache, fake_model):
        messages = [
            user("u1", "Count things"),
            message("a1", "assistant", tool_part("c1", tool_input={"q": 1}, output={1: "one", "total": 2})),
        ]

        outcomes = await ToolCallSummarizer(cache, fake_model).summarize_groups(messages, groups_of(messages))

        assert outcomes["c1"].source == "model"
        assert compute_fingerprint("search", {"q": 1}, {"1": "one", "total": 2}) in cache

    @pytest.mark.asyncio
    async def test_unfingerprintable_group_left_out(self, cache, fake_model, monkeypatch):
        def failing_fingerprint(group):
            if group.tool_call_id == "c2":
                raise TypeError("cannot encode")
            return compute_fingerprint(group.tool_name, group.input, group.output)

        monkeypatch.setattr(summarizer_module, "group_fingerprint", failing_fingerprint)
        messages = two_calls()

        outcomes = await ToolCallSummarizer(cache, fake_model).summarize_groups(messages, groups_of(messages))

        assert set(outcomes) == {"c1"}
        assert fake_model.calls == 1

    @pytest.mark.asyncio
    async def test_audit_written_off_event_loop_thread(self, cache, fake_model):
        class ThreadRecordingAuditLog:
            def __init__(self):
                self.threads = []

            def record(self, entry):
                self.threads.append(threading.get_ident())

        audit = ThreadRecordingAuditLog()
        messages = two_calls()

        await ToolCallSummarizer(cache, fake_model, audit_log=audit).summarize_groups(messages, groups_of(messages))

        assert len(audit.threads) == 2
        assert threading.get_ident() not in audit.threads

    @pytest.mark.asyncio
    async def test_jsonl_audit_log(self, cache, fake_model, tmp_path):
        path = tmp_path / "audit.jsonl"
        messages = two_calls()

        await ToolCallSummarizer(cache, fake_model, audit_log=JsonlAuditLog(path)).summarize_groups(
            messages, groups_of(messages)
        )

        lines = path.read_text().splitlines()
        assert sorted(json.loads(line)["tool_call_id"] for line in lines) == ["c1", "c2"]
