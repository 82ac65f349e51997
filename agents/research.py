"""
DOCFLOW RESEARCH - Background Snippets for Technical Questions

When a web search tool is registered, the question generator can attach a
few search snippets to stack and architecture questions so the interviewer
can mention concrete options.

Design:
- Search runs through the ToolRegistry ("web.search"), so it inherits the
  per-call timeout and the auth check on TAVILY_API_KEY
- Tavily is the search provider; results are normalised into SearchResult
- ResearchCache is created per conversation run and injected; there is no
  module-level memo
"""
import logging
from typing import Any, Dict, List, Optional

import msgspec
from tavily import TavilyClient

from core.schemas import DiscoverySummary, DocumentGap, TargetDocument
from infrastructure.tool_registry import ToolRegistry

logger = logging.getLogger(__name__)

WEB_SEARCH_TOOL = "web.search"
RESEARCHED_DOCUMENTS = (TargetDocument.STACK.value, TargetDocument.ARCHITECTURE.value)
MAX_SNIPPETS = 3
SNIPPET_CHARS = 280


# =============================================================================
# SEARCH RESULT SCHEMAS
# =============================================================================

class SearchResult(msgspec.Struct, kw_only=True, frozen=True):
    """A single search result, trimmed for prompt use."""
    title: str
    url: str
    snippet: str
    date: Optional[str] = None


class SearchResponse(msgspec.Struct, kw_only=True, frozen=True):
    query: str
    sources: List[SearchResult] = []
    summary: str = ""


# =============================================================================
# TAVILY TOOL
# =============================================================================

def tavily_search(query: str, limit: int = 5, api_key: Optional[str] = None) -> Dict[str, Any]:
    """
    Perform a web search with Tavily.

    Returns:
        {"results": [{"title", "url", "snippet", "date"}], "summary": str}

    Raises:
        Whatever the Tavily client raises; the registry converts it to a
        failed ToolResult
    """
    client = TavilyClient(api_key=api_key)
    raw = client.search(query=query, max_results=limit, search_depth="basic", include_answer=True)
    results = [
        {
            "title": item.get("title", ""),
            "url": item.get("url", ""),
            "snippet": item.get("content", ""),
            "date": item.get("published_date"),
        }
        for item in raw.get("results", [])
    ]
    return {"results": results, "summary": raw.get("answer") or ""}


def register_web_search(registry: ToolRegistry, api_key: Optional[str]) -> None:
    """Register the Tavily-backed web.search tool (requires TAVILY_API_KEY)."""
    def handler(query: str, limit: int = 5):
        return tavily_search(query, limit=limit, api_key=api_key)

    registry.register(
        WEB_SEARCH_TOOL,
        handler,
        description="Tavily web search",
        required_auth_env=["TAVILY_API_KEY"],
    )


def web_search(registry: ToolRegistry, query: str, limit: int = 5) -> SearchResponse:
    """Call web.search through the registry; failures give an empty response."""
    result = registry.call(WEB_SEARCH_TOOL, {"query": query, "limit": limit})
    if not result.success:
        return SearchResponse(query=query, summary=result.error or "search failed")
    data = result.data if isinstance(result.data, dict) else {}
    sources = [
        SearchResult(
            title=str(r.get("title") or "Untitled"),
            url=str(r.get("url") or ""),
            snippet=str(r.get("snippet") or ""),
            date=str(r["date"]) if r.get("date") else None,
        )
        for r in data.get("results", [])
        if isinstance(r, dict)
    ]
    return SearchResponse(query=query, sources=sources, summary=str(data.get("summary") or ""))


# =============================================================================
# PER-RUN CACHE
# =============================================================================

class ResearchCache:
    """Memoises snippet lists by query for one conversation run."""

    def __init__(self):
        self._entries: Dict[str, List[str]] = {}

    def get(self, query: str) -> Optional[List[str]]:
        return self._entries.get(query.strip().lower())

    def put(self, query: str, snippets: List[str]) -> None:
        self._entries[query.strip().lower()] = list(snippets)

    def __len__(self) -> int:
        return len(self._entries)


# =============================================================================
# RESEARCHER
# =============================================================================

class Researcher:
    """Produces background snippets for a gap, or nothing."""

    def __init__(self, registry: ToolRegistry, cache: Optional[ResearchCache] = None, max_snippets: int = MAX_SNIPPETS):
        self.registry = registry
        self.cache = cache if cache is not None else ResearchCache()
        self.max_snippets = max_snippets

    @staticmethod
    def build_query(gap: DocumentGap, summary: DiscoverySummary) -> str:
        parts = [summary.stack_suggestion or "", gap.label, summary.description or ""]
        return " ".join(p.strip() for p in parts if p and p.strip())[:300]

    def snippets_for(self, gap: DocumentGap, summary: DiscoverySummary) -> List[str]:
        if gap.target_document not in RESEARCHED_DOCUMENTS:
            return []
        if not self.registry.has(WEB_SEARCH_TOOL):
            return []

        query = self.build_query(gap, summary)
        cached = self.cache.get(query)
        if cached is not None:
            return cached

        response = web_search(self.registry, query, limit=self.max_snippets)
        snippets = [
            f"{s.title}: {s.snippet[:SNIPPET_CHARS]}"
            for s in response.sources[:self.max_snippets]
            if s.snippet
        ]
        # Failed searches are cached too, so a dead tool is tried once per run
        self.cache.put(query, snippets)
        return snippets
