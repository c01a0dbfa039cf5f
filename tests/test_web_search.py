"""Tests for search providers and the evidence retriever."""

from __future__ import annotations

import asyncio
import json

import httpx

from assessor.models.evidence import EvidenceDocument
from assessor.tools.web_search import (
    DuckDuckGoSearchProvider,
    EvidenceRetriever,
    MockSearchProvider,
    TavilySearchError,
    TavilySearchProvider,
    deduplicate_documents,
    get_search_provider,
)
from conftest import FakeSearchProvider, make_settings


def _doc(url: str, title: str, score: float, content: str = "") -> EvidenceDocument:
    return EvidenceDocument(url=url, title=title, content=content, score=score)


def test_deduplicate_keeps_highest_scored_instance() -> None:
    """It should drop exact (url, title) duplicates and keep the best score."""

    docs = [
        _doc("https://a", "A", 0.2, "low"),
        _doc("https://b", "B", 0.5),
        _doc("https://a", "A", 0.9, "high"),
        _doc("https://a", "A different title", 0.1),
    ]
    out = deduplicate_documents(docs)

    assert [(d.url, d.title) for d in out] == [
        ("https://a", "A"),
        ("https://b", "B"),
        ("https://a", "A different title"),
    ]
    assert out[0].content == "high"


def test_deduplicate_is_idempotent() -> None:
    """Deduplicating twice should equal deduplicating once."""

    docs = [
        _doc("https://a", "A", 0.5),
        _doc("https://b", "B", 0.5),
        _doc("https://a", "A", 0.5),
        _doc("https://c", "C", 0.7),
    ]
    once = deduplicate_documents(docs)
    assert deduplicate_documents(once) == once


def test_retriever_returns_deduplicated_results() -> None:
    provider = FakeSearchProvider([_doc("https://a", "A", 0.3), _doc("https://a", "A", 0.8)])
    retriever = EvidenceRetriever(provider)

    out = asyncio.run(retriever.search("GPT security"))

    assert len(out) == 1
    assert out[0].score == 0.8
    assert provider.queries == ["GPT security"]


def test_retriever_converts_provider_error_to_empty_list() -> None:
    """A provider failure should never reach the caller."""

    retriever = EvidenceRetriever(FakeSearchProvider(error=RuntimeError("boom")))
    assert asyncio.run(retriever.search("q")) == []


def test_retriever_converts_timeout_to_empty_list() -> None:
    provider = FakeSearchProvider([_doc("https://a", "A", 1.0)], delay_s=1.0)
    retriever = EvidenceRetriever(provider, timeout_s=0.01)
    assert asyncio.run(retriever.search("q")) == []


def test_retriever_skips_blank_query() -> None:
    provider = FakeSearchProvider([_doc("https://a", "A", 1.0)])
    assert asyncio.run(EvidenceRetriever(provider).search("   ")) == []
    assert provider.calls == 0


def test_mock_provider_is_used_without_tavily_key() -> None:
    """Unconfigured search degrades to two labelled synthetic documents."""

    provider = get_search_provider(make_settings(tavily_api_key=None))
    assert isinstance(provider, MockSearchProvider)

    docs = asyncio.run(EvidenceRetriever(provider).search("TestModel"))
    assert len(docs) == 2
    assert all("[mock]" in d.title for d in docs)


def test_provider_factory_selects_configured_provider() -> None:
    assert isinstance(get_search_provider(make_settings(tavily_api_key="tvly-x")), TavilySearchProvider)
    assert isinstance(get_search_provider(make_settings(search_provider="duckduckgo")), DuckDuckGoSearchProvider)


def test_tavily_provider_parses_results() -> None:
    seen: dict[str, object] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={
                "results": [
                    {"url": "https://x", "title": "X", "content": "about x", "score": 0.7},
                    {"title": "no url"},
                    "garbage",
                ]
            },
        )

    provider = TavilySearchProvider(api_key="k", transport=httpx.MockTransport(handler))
    docs = asyncio.run(provider.search("q", max_results=5))

    assert seen["url"] == "https://api.tavily.com/search"
    assert seen["body"]["query"] == "q"  # type: ignore[index]
    assert docs == [EvidenceDocument(url="https://x", title="X", content="about x", score=0.7)]


def test_tavily_http_error_is_absorbed_by_retriever() -> None:
    transport = httpx.MockTransport(lambda request: httpx.Response(503, json={"error": "down"}))
    provider = TavilySearchProvider(api_key="k", transport=transport)

    try:
        asyncio.run(provider.search("q", max_results=5))
    except TavilySearchError:
        pass
    else:  # pragma: no cover
        raise AssertionError("expected TavilySearchError")

    assert asyncio.run(EvidenceRetriever(provider).search("q")) == []
