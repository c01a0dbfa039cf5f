"""OpenAI-compatible LLM client.

This wraps the async `openai` SDK and exposes the two capabilities the pipeline needs:
free-form completion (narrative summaries) and JSON-mode completion (batched judgements).
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Literal, Protocol, Sequence

from openai import AsyncOpenAI

from assessor.config import Settings
from assessor.logging import get_logger
from assessor.utils.json_extract import extract_json_object

logger = get_logger(__name__)

Role = Literal["system", "user", "assistant"]


@dataclass(frozen=True)
class ChatMessage:
    """A chat message."""

    role: Role
    content: str


class LLMResponseError(RuntimeError):
    """The model returned no usable content."""


class ChatModel(Protocol):
    """The chat capability consumed by the judge and the aggregator."""

    async def complete(
        self,
        messages: Sequence[ChatMessage],
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> str:
        """Return assistant text."""

    async def complete_json(
        self,
        messages: Sequence[ChatMessage],
        *,
        temperature: float | None = None,
    ) -> dict[str, Any]:
        """Return a parsed JSON object."""


class LLMClient:
    """LLM client using the OpenAI-compatible Chat Completions API."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        if not settings.openai_api_key:
            raise ValueError(
                "Missing ASSESSOR_OPENAI_API_KEY. "
                "Set it in environment variables or a .env file."
            )

        # Timeouts are enforced by the caller; one attempt per call.
        self._client = AsyncOpenAI(
            api_key=settings.openai_api_key,
            base_url=settings.openai_base_url,
            max_retries=0,
        )

    async def complete(
        self,
        messages: Sequence[ChatMessage],
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> str:
        """Generate a completion.

        Args:
            messages: Chat messages.
            temperature: Sampling temperature; defaults to the configured one.
            max_tokens: Maximum tokens to generate.

        Returns:
            Assistant message content.
        """

        return await self._create(messages, temperature=temperature, max_tokens=max_tokens)

    async def complete_json(
        self,
        messages: Sequence[ChatMessage],
        *,
        temperature: float | None = None,
    ) -> dict[str, Any]:
        """Generate a completion in JSON mode and parse it.

        Raises:
            LLMResponseError: If the response holds no JSON object.
        """

        content = await self._create(
            messages,
            temperature=temperature,
            response_format={"type": "json_object"},
        )
        data = extract_json_object(content)
        if data is None:
            raise LLMResponseError(f"response is not a JSON object: {content[:200]!r}")
        return data

    async def _create(
        self,
        messages: Sequence[ChatMessage],
        *,
        temperature: float | None,
        max_tokens: int | None = None,
        response_format: dict[str, str] | None = None,
    ) -> str:
        payload: list[dict[str, str]] = [{"role": m.role, "content": m.content} for m in messages]
        kwargs: dict[str, Any] = {
            "model": self._settings.openai_model,
            "messages": payload,
            "temperature": self._settings.openai_temperature if temperature is None else temperature,
            "timeout": self._settings.provider_timeout_s,
        }
        if max_tokens is not None:
            kwargs["max_tokens"] = max_tokens
        if response_format is not None:
            kwargs["response_format"] = response_format

        started = time.monotonic()
        resp = await self._client.chat.completions.create(**kwargs)
        logger.debug(
            "LLM completion ok",
            extra={
                "model": self._settings.openai_model,
                "latency_ms": int((time.monotonic() - started) * 1000),
                "tokens": resp.usage.total_tokens if resp.usage else None,
            },
        )

        choice = resp.choices[0]
        if not choice.message or choice.message.content is None:
            return ""
        return choice.message.content


def get_llm_client(settings: Settings) -> LLMClient | None:
    """Return a live client, or ``None`` when no API key is configured (mock mode)."""

    if not settings.llm_configured:
        logger.warning("OpenAI API key not configured; judgements and summaries run in mock mode")
        return None
    return LLMClient(settings)
