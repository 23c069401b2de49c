"""Summary model boundary.

The optimizer needs exactly one thing from a language model: turn a prompt
into a short summary. Anything implementing SummaryModel will do:

    class MyModel:
        async def summarize(self, prompt: str, model_id: str) -> dict | str:
            return {"summary": "..."}

Two implementations ship with toolsum:

- CallableSummaryModel wraps a plain (sync or async) function, handy for
  tests and for plugging in an existing SDK call.
- OpenAICompatibleSummaryModel talks to any OpenAI-compatible
  /chat/completions endpoint over httpx and asks for a JSON object
  {"summary": "..."}.
"""

from __future__ import annotations

import inspect
import json
import logging
import os
from collections.abc import Awaitable, Callable
from typing import Any, Protocol, runtime_checkable

import httpx

from .exceptions import ConfigurationError, SummarizationError

logger = logging.getLogger(__name__)

_DEFAULT_BASE_URL = "https://api.openai.com/v1"
_DEFAULT_LOFI_MODEL = "gpt-4o-mini"

SYSTEM_PROMPT = (
    "You summarize tool executions for an AI assistant's conversation history. "
    'Always answer with a JSON object of the form {"summary": "..."}.'
)


@runtime_checkable
class SummaryModel(Protocol):
    """Anything that can turn a prompt into a summary.

    Returns either {"summary": str} (structured) or a plain str. Raising any
    exception is allowed; the summarizer turns it into a fallback summary.
    """

    async def summarize(self, prompt: str, model_id: str) -> dict[str, Any] | str: ...


class CallableSummaryModel:
    """Adapt a function into a SummaryModel.

    The function receives (prompt, model_id) and may be sync or async.
    """

    def __init__(
        self,
        fn: Callable[[str, str], dict[str, Any] | str | Awaitable[dict[str, Any] | str]],
    ) -> None:
        self._fn = fn
        self.calls = 0

    async def summarize(self, prompt: str, model_id: str) -> dict[str, Any] | str:
        self.calls += 1
        result = self._fn(prompt, model_id)
        if inspect.isawaitable(result):
            result = await result
        return result


class OpenAICompatibleSummaryModel:
    """SummaryModel backed by an OpenAI-compatible chat completions API.

    Logical model ids ("lofi") are mapped to provider model names through
    model_aliases; unknown ids are sent as-is.

    Usage:
        model = OpenAICompatibleSummaryModel.from_env()
        try:
            result = await model.summarize(prompt, "lofi")
        finally:
            await model.aclose()
    """

    def __init__(
        self,
        base_url: str = _DEFAULT_BASE_URL,
        api_key: str | None = None,
        timeout: float = 30.0,
        max_tokens: int = 150,
        temperature: float = 0.3,
        model_aliases: dict[str, str] | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """
        Args:
            base_url: API root, e.g. "https://api.openai.com/v1".
            api_key: Bearer token. None sends no Authorization header.
            timeout: HTTP timeout in seconds.
            max_tokens: Completion budget for one summary.
            temperature: Sampling temperature.
            model_aliases: Logical id -> provider model name.
            client: Pre-built httpx.AsyncClient (tests, shared pools).
        """
        if not base_url:
            raise ConfigurationError("base_url is required for OpenAICompatibleSummaryModel")
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._aliases = dict(model_aliases or {"lofi": _DEFAULT_LOFI_MODEL})
        self._client = client  # Lazy-initialized
        self._owns_client = client is None

    @classmethod
    def from_env(cls, **kwargs: Any) -> OpenAICompatibleSummaryModel:
        """Build a client from TOOLSUM_* environment variables.

        - TOOLSUM_BASE_URL: API root (default: OpenAI)
        - TOOLSUM_API_KEY: falls back to OPENAI_API_KEY
        - TOOLSUM_LOFI_MODEL: provider model used for the "lofi" id
        """
        base_url = (
            kwargs.pop("base_url", None)
            or os.environ.get("TOOLSUM_BASE_URL", "").strip()
            or _DEFAULT_BASE_URL
        )
        api_key = (
            kwargs.pop("api_key", None)
            or os.environ.get("TOOLSUM_API_KEY", "").strip()
            or os.environ.get("OPENAI_API_KEY", "").strip()
            or None
        )
        lofi = os.environ.get("TOOLSUM_LOFI_MODEL", "").strip() or _DEFAULT_LOFI_MODEL
        aliases = {"lofi": lofi, **(kwargs.pop("model_aliases", None) or {})}
        return cls(base_url=base_url, api_key=api_key, model_aliases=aliases, **kwargs)

    def resolve_model(self, model_id: str) -> str:
        return self._aliases.get(model_id, model_id)

    async def summarize(self, prompt: str, model_id: str) -> dict[str, Any]:
        """Request a structured summary. Raises SummarizationError on failure."""
        client = self._get_client()
        model = self.resolve_model(model_id)
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"

        payload = {
            "model": model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            "max_tokens": self._max_tokens,
            "temperature": self._temperature,
            "response_format": {"type": "json_object"},
        }

        logger.debug("Requesting summary from %s (model=%s)", self._base_url, model)
        resp = await client.post(
            f"{self._base_url}/chat/completions",
            headers=headers,
            content=json.dumps(payload),
        )
        if resp.status_code != 200:
            raise SummarizationError(
                "Summary model request failed",
                details={"model": model, "status": resp.status_code, "body": resp.text[:200]},
            )

        try:
            content = resp.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise SummarizationError(
                "Unexpected completion payload", details={"model": model, "error": str(e)}
            ) from e

        return self._parse_summary(content, model)

    async def aclose(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    @staticmethod
    def _parse_summary(content: Any, model: str) -> dict[str, Any]:
        if not isinstance(content, str) or not content.strip():
            raise SummarizationError("Empty completion content", details={"model": model})
        try:
            parsed = json.loads(content)
        except json.JSONDecodeError as e:
            raise SummarizationError(
                "Summary model did not return JSON",
                details={"model": model, "content_preview": content[:80]},
            ) from e
        if not isinstance(parsed, dict) or not isinstance(parsed.get("summary"), str):
            raise SummarizationError(
                "Summary object lacks a 'summary' string",
                details={"model": model, "content_preview": content[:80]},
            )
        return parsed
