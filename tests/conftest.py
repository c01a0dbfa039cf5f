"""Shared fakes for the search provider and the chat model."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

import pytest

from assessor.config import Settings
from assessor.llm.client import ChatMessage
from assessor.models.criterion import Criterion
from assessor.models.evidence import EvidenceDocument


class FakeSearchProvider:
    """Returns canned documents and counts calls."""

    source_name = "fake"

    def __init__(
        self,
        documents: Sequence[EvidenceDocument] = (),
        *,
        error: Exception | None = None,
        delay_s: float = 0.0,
        on_search: Callable[[str], Awaitable[None]] | None = None,
    ) -> None:
        self.documents = list(documents)
        self.error = error
        self.delay_s = delay_s
        self.on_search = on_search
        self.queries: list[str] = []

    @property
    def calls(self) -> int:
        return len(self.queries)

    async def search(self, query: str, *, max_results: int) -> list[EvidenceDocument]:
        self.queries.append(query)
        if self.on_search is not None:
            await self.on_search(query)
        if self.delay_s:
            await asyncio.sleep(self.delay_s)
        if self.error is not None:
            raise self.error
        return self.documents[:max_results]


class FakeChatModel:
    """Scripted chat model.

    ``json_response`` may be a dict, an exception to raise, or a callable receiving the
    messages and returning either.
    """

    def __init__(
        self,
        json_response: Any = None,
        *,
        text: str = "A narrative summary.",
        text_error: Exception | None = None,
        delay_s: float = 0.0,
    ) -> None:
        self.json_response = json_response if json_response is not None else {}
        self.text = text
        self.text_error = text_error
        self.delay_s = delay_s
        self.json_calls: list[Sequence[ChatMessage]] = []
        self.text_calls: list[Sequence[ChatMessage]] = []

    async def complete(
        self,
        messages: Sequence[ChatMessage],
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> str:
        self.text_calls.append(messages)
        if self.text_error is not None:
            raise self.text_error
        return self.text

    async def complete_json(
        self,
        messages: Sequence[ChatMessage],
        *,
        temperature: float | None = None,
    ) -> dict[str, Any]:
        self.json_calls.append(messages)
        if self.delay_s:
            await asyncio.sleep(self.delay_s)
        response = self.json_response
        if callable(response):
            response = response(messages)
        if isinstance(response, Exception):
            raise response
        return response


def make_settings(**overrides: Any) -> Settings:
    """Settings isolated from the developer's environment (mock providers by default)."""

    values: dict[str, Any] = {
        "openai_api_key": None,
        "tavily_api_key": None,
        "search_provider": "tavily",
        "redis_enabled": False,
        "progress_poll_interval_s": 0.01,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def make_criterion(cid: str, category: str = "Security", order: int = 0, **kw: Any) -> Criterion:
    return Criterion(
        id=cid,
        category=category,
        name=kw.pop("name", f"Criterion {cid}"),
        criteria=kw.pop("criteria", f"Requirement text for {cid}"),
        standards=kw.pop("standards", "ISO/IEC 27001"),
        risk=kw.pop("risk", "Data exposure"),
        order=order,
        **kw,
    )


def make_docs(n: int = 2) -> list[EvidenceDocument]:
    return [
        EvidenceDocument(
            url=f"https://example.org/{i}",
            title=f"Doc {i}",
            content=f"Content {i} about encryption and access control.",
            score=1.0 - i / 10,
        )
        for i in range(n)
    ]


@pytest.fixture
def settings() -> Settings:
    return make_settings()
