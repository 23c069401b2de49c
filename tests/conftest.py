"""Shared pytest fixtures for toolsum tests."""

import asyncio
from typing import Any

import pytest

from toolsum import MetricsRecorder, SummaryCache


class FakeSummaryModel:
    """SummaryModel double that records prompts.

    Returns {"summary": ...} by default; `response` overrides the answer,
    `error` is raised instead, `delay` sleeps before answering.
    """

    def __init__(
        self,
        response: Any = None,
        error: Exception | None = None,
        delay: float = 0.0,
        fail_on: str | None = None,
    ):
        self.response = response
        self.error = error
        self.delay = delay
        self.fail_on = fail_on  # Only raise when this text is in the prompt
        self.prompts: list[tuple[str, str]] = []
        self.in_flight = 0
        self.max_in_flight = 0

    @property
    def calls(self) -> int:
        return len(self.prompts)

    async def summarize(self, prompt: str, model_id: str) -> Any:
        self.prompts.append((prompt, model_id))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.error is not None and (self.fail_on is None or self.fail_on in prompt):
                raise self.error
            if self.response is not None:
                return self.response
            return {"summary": f"Summary {self.calls}"}
        finally:
            self.in_flight -= 1


def text_part(text: str) -> dict[str, Any]:
    return {"type": "text", "text": text}


def tool_part(
    call_id: str,
    tool_name: str = "search",
    state: str = "output-available",
    tool_input: Any = None,
    output: Any = None,
    error_text: str | None = None,
) -> dict[str, Any]:
    part: dict[str, Any] = {
        "type": "tool-call",
        "toolCallId": call_id,
        "toolName": tool_name,
        "state": state,
    }
    if tool_input is not None:
        part["input"] = tool_input
    if output is not None:
        part["output"] = output
    if error_text is not None:
        part["errorText"] = error_text
    return part


def message(msg_id: str, role: str, *parts: dict[str, Any]) -> dict[str, Any]:
    return {"id": msg_id, "role": role, "parts": list(parts)}


def user(msg_id: str, text: str) -> dict[str, Any]:
    return message(msg_id, "user", text_part(text))


def assistant(msg_id: str, text: str) -> dict[str, Any]:
    return message(msg_id, "assistant", text_part(text))


def build_twenty_message_conversation() -> list[dict[str, Any]]:
    """20 messages; one completed `search` call spans indices 2-6, 14-19 are recent."""
    messages = [
        user("m0", "Find the onboarding docs"),
        assistant("m1", "Sure, let me look."),
        message(
            "m2",
            "assistant",
            text_part("Searching the docs."),
            tool_part("call-search", state="input-streaming"),
        ),
        user("m3", "Thanks"),
        message(
            "m4",
            "assistant",
            tool_part("call-search", state="input-available", tool_input={"query": "docs"}),
        ),
        assistant("m5", "Still working on it."),
        message(
            "m6",
            "assistant",
            tool_part(
                "call-search",
                state="output-available",
                tool_input={"query": "docs"},
                output="10 results",
            ),
            text_part("I found 10 results."),
        ),
    ]
    for i in range(7, 20):
        if i in (7, 10, 14, 17):
            messages.append(user(f"m{i}", f"Question {i}"))
        else:
            messages.append(assistant(f"m{i}", f"Answer {i}"))
    return messages


@pytest.fixture
def fake_model():
    """Fake summary model answering {"summary": "Summary <n>"}."""
    return FakeSummaryModel()


@pytest.fixture
def model_factory():
    """Build FakeSummaryModel variants inside a test."""
    return FakeSummaryModel


@pytest.fixture
def cache():
    """Fresh summary cache per test."""
    return SummaryCache()


@pytest.fixture
def metrics():
    """Fresh metrics recorder per test."""
    return MetricsRecorder()


@pytest.fixture
def twenty_messages():
    """20-message conversation with one old completed search call."""
    return build_twenty_message_conversation()


@pytest.fixture
def search_exchange():
    """Old completed search call followed by two recent interactions."""
    return [
        user("u1", "Search the docs"),
        message(
            "a1",
            "assistant",
            text_part("Looking it up."),
            tool_part("call-1", tool_input={"query": "docs"}, output="10 results"),
        ),
        user("u2", "Great, what else?"),
        assistant("a2", "Nothing else."),
        user("u3", "Thanks"),
        assistant("a3", "You're welcome."),
    ]
