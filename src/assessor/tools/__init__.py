"""External capability adapters."""

from __future__ import annotations

from assessor.tools.web_search import (
    DuckDuckGoSearchProvider,
    EvidenceRetriever,
    MockSearchProvider,
    TavilySearchProvider,
    WebSearchError,
    WebSearchProvider,
    deduplicate_documents,
    get_search_provider,
)

__all__ = [
    "DuckDuckGoSearchProvider",
    "EvidenceRetriever",
    "MockSearchProvider",
    "TavilySearchProvider",
    "WebSearchError",
    "WebSearchProvider",
    "deduplicate_documents",
    "get_search_provider",
]
