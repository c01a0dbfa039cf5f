"""Web search providers and the evidence retriever built on top of them."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Iterable, Protocol

import httpx
from duckduckgo_search import DDGS

from assessor.config import Settings
from assessor.logging import get_logger
from assessor.models.evidence import EvidenceDocument

logger = get_logger(__name__)

MOCK_URL_PREFIX = "https://example.com/mock"


class WebSearchProvider(Protocol):
    """Search provider interface."""

    async def search(self, query: str, *, max_results: int) -> list[EvidenceDocument]:
        """Search web."""


class WebSearchError(RuntimeError):
    pass


class TavilySearchError(WebSearchError):
    pass


@dataclass(frozen=True)
class TavilySearchProvider:
    """Tavily API search provider.

    Notes:
        - API key must be provided via settings (`ASSESSOR_TAVILY_API_KEY`).
        - One attempt per call. The retriever converts failures into an empty result.
    """

    api_key: str
    base_url: str = "https://api.tavily.com"
    search_depth: str = "advanced"
    timeout_s: float = 30.0
    source_name: str = "tavily"
    transport: httpx.AsyncBaseTransport | None = None

    async def search(self, query: str, *, max_results: int) -> list[EvidenceDocument]:
        """Search using Tavily.

        Args:
            query: Search query.
            max_results: Maximum number of results.

        Returns:
            Documents in provider order.

        Raises:
            TavilySearchError: On transport errors, HTTP errors or malformed payloads.
        """

        url = f"{self.base_url.rstrip('/')}/search"
        payload = {
            "api_key": self.api_key,
            "query": query,
            "max_results": max_results,
            "search_depth": self.search_depth,
            "include_answer": False,
            "include_raw_content": False,
            "include_images": False,
        }

        started = time.monotonic()
        try:
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout_s),
                follow_redirects=True,
                transport=self.transport,
            ) as client:
                resp = await client.post(url, json=payload)
                resp.raise_for_status()
                data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            raise TavilySearchError(f"tavily request failed: {e}") from e

        if not isinstance(data, dict):
            raise TavilySearchError("tavily response not a JSON object")
        raw_results = data.get("results")
        if not isinstance(raw_results, list):
            raise TavilySearchError("tavily response missing results list")

        results: list[EvidenceDocument] = []
        for item in raw_results:
            if not isinstance(item, dict):
                continue
            item_url = item.get("url")
            if not item_url:
                continue
            results.append(
                EvidenceDocument(
                    url=str(item_url),
                    title=str(item.get("title") or ""),
                    content=str(item.get("content") or item.get("snippet") or ""),
                    score=_as_score(item.get("score")),
                )
            )

        logger.info(
            "Tavily search ok",
            extra={
                "provider": self.source_name,
                "query_len": len(query),
                "max_results": max_results,
                "search_depth": self.search_depth,
                "status_code": resp.status_code,
                "result_count": len(results),
                "latency_ms": int((time.monotonic() - started) * 1000),
            },
        )
        return results


@dataclass(frozen=True)
class DuckDuckGoSearchProvider:
    """DuckDuckGo search provider. Needs no API key."""

    source_name: str = "duckduckgo"

    async def search(self, query: str, *, max_results: int) -> list[EvidenceDocument]:
        return await asyncio.to_thread(self._search_sync, query, max_results)

    def _search_sync(self, query: str, max_results: int) -> list[EvidenceDocument]:
        results: list[EvidenceDocument] = []
        with DDGS() as ddgs:
            hits = list(ddgs.text(query, max_results=max_results))
        for i, r in enumerate(hits, start=1):
            url = r.get("href") or r.get("url")
            if not url:
                continue
            results.append(
                EvidenceDocument(
                    url=str(url),
                    title=str(r.get("title") or ""),
                    content=str(r.get("body") or r.get("snippet") or ""),
                    # DuckDuckGo has no relevance score; derive one from rank
                    score=round(1.0 / i, 4),
                )
            )
        return results


@dataclass(frozen=True)
class MockSearchProvider:
    """Fixed synthetic documents used when no search credential is configured."""

    source_name: str = "mock"

    async def search(self, query: str, *, max_results: int) -> list[EvidenceDocument]:
        docs = [
            EvidenceDocument(
                url=f"{MOCK_URL_PREFIX}1",
                title=f"[mock] Result for {query}",
                content=(
                    "This is mock content for testing purposes. "
                    "The model shows strong security features."
                ),
                score=0.95,
            ),
            EvidenceDocument(
                url=f"{MOCK_URL_PREFIX}2",
                title=f"[mock] Security analysis for {query}",
                content=(
                    "The model implements various security measures including data encryption "
                    "and access controls."
                ),
                score=0.90,
            ),
        ]
        return docs[:max_results]


def deduplicate_documents(documents: Iterable[EvidenceDocument]) -> list[EvidenceDocument]:
    """Remove exact ``(url, title)`` duplicates, keeping the highest-scored instance.

    The result is ranked by score, highest first. Ties keep their input order, so applying
    this twice gives the same list as applying it once.
    """

    ranked = sorted(documents, key=lambda d: d.score, reverse=True)
    seen: set[tuple[str, str]] = set()
    out: list[EvidenceDocument] = []
    for doc in ranked:
        if doc.dedup_key in seen:
            continue
        seen.add(doc.dedup_key)
        out.append(doc)
    return out


class EvidenceRetriever:
    """Runs one bounded search per call and never raises."""

    def __init__(
        self,
        provider: WebSearchProvider,
        *,
        max_results: int = 20,
        timeout_s: float = 30.0,
    ) -> None:
        self._provider = provider
        self._max_results = max_results
        self._timeout_s = timeout_s

    @classmethod
    def from_settings(cls, settings: Settings) -> "EvidenceRetriever":
        return cls(
            get_search_provider(settings),
            max_results=settings.search_max_results,
            timeout_s=settings.provider_timeout_s,
        )

    @property
    def provider_name(self) -> str:
        return getattr(self._provider, "source_name", type(self._provider).__name__)

    async def search(self, query: str) -> list[EvidenceDocument]:
        """Return deduplicated, ranked documents for ``query``.

        Provider errors and timeouts are logged and turned into an empty list so the
        pipeline falls through to "insufficient evidence".
        """

        if not query.strip():
            logger.warning("Empty search query; skipping provider call")
            return []

        started = time.monotonic()
        try:
            raw = await asyncio.wait_for(
                self._provider.search(query, max_results=self._max_results),
                timeout=self._timeout_s,
            )
        except asyncio.TimeoutError:
            logger.error(
                "Search timed out",
                extra={"provider": self.provider_name, "query": query, "timeout_s": self._timeout_s},
            )
            return []
        except Exception:
            logger.exception(
                "Search provider failed",
                extra={"provider": self.provider_name, "query": query},
            )
            return []

        docs = deduplicate_documents(raw)
        logger.info(
            "Search results",
            extra={
                "provider": self.provider_name,
                "query": query,
                "results": len(raw),
                "unique": len(docs),
                "latency_ms": int((time.monotonic() - started) * 1000),
            },
        )
        return docs


def get_search_provider(settings: Settings) -> WebSearchProvider:
    """Factory to create a search provider based on settings."""

    if settings.search_provider == "duckduckgo":
        return DuckDuckGoSearchProvider()

    if not settings.tavily_api_key:
        logger.warning("Tavily API key not configured; using mock search results")
        return MockSearchProvider()

    return TavilySearchProvider(
        api_key=settings.tavily_api_key,
        base_url=settings.tavily_api_base_url,
        search_depth=settings.tavily_search_depth,
        timeout_s=settings.provider_timeout_s,
    )


def _as_score(value: object) -> float:
    try:
        return float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return 0.0
