"""Web search tool backed by the DuckDuckGo instant answer API."""

from __future__ import annotations

import logging
from typing import Any, Mapping
from urllib.parse import quote_plus

import httpx

from ..orchestration.tools.types import ToolSpec

LOGGER = logging.getLogger(__name__)

DEFAULT_ENDPOINT = "https://api.duckduckgo.com/"
MAX_RESULTS = 5

WEB_SEARCH_SPEC = ToolSpec(
    name="web_search",
    description="Search the web and return titles, URLs and short snippets for the query.",
    parameters={
        "type": "object",
        "properties": {
            "query": {"type": "string", "description": "What to search for."},
            "maxResults": {
                "type": "integer",
                "minimum": 1,
                "maximum": 10,
                "description": "Upper bound on the number of results returned.",
            },
        },
        "required": ["query"],
    },
    required_args=("query",),
    preference_key="web_search",
    status_message="Searching the web...",
)


class WebSearchTool:
    """Query DuckDuckGo and normalize the answer into ``{results, query}``.

    The instant answer API often returns nothing for long-tail queries; in
    that case a single link to the regular results page is returned so the
    model still has something to cite.
    """

    def __init__(
        self,
        *,
        client: httpx.AsyncClient | None = None,
        endpoint: str = DEFAULT_ENDPOINT,
        timeout: float = 15.0,
    ) -> None:
        self._client = client
        self._endpoint = endpoint
        self._timeout = timeout

    @property
    def name(self) -> str:
        return WEB_SEARCH_SPEC.name

    @property
    def spec(self) -> ToolSpec:
        return WEB_SEARCH_SPEC

    async def execute(self, arguments: Mapping[str, Any]) -> dict[str, Any]:
        query = str(arguments.get("query") or "").strip()
        limit = _coerce_limit(arguments.get("maxResults"))
        params = {"q": query, "format": "json", "no_html": "1", "skip_disambig": "1"}

        payload = await self._fetch(params)
        results = extract_results(payload)
        if not results:
            LOGGER.debug("No instant answers for %r; returning fallback link", query)
            results = [fallback_result(query)]
        return {"results": results[:limit], "query": query}

    async def _fetch(self, params: Mapping[str, str]) -> Mapping[str, Any]:
        if self._client is not None:
            response = await self._client.get(self._endpoint, params=params, timeout=self._timeout)
            response.raise_for_status()
            return _json_body(response)
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            response = await client.get(self._endpoint, params=params)
            response.raise_for_status()
            return _json_body(response)


def extract_results(payload: Mapping[str, Any]) -> list[dict[str, str]]:
    """Collect abstract, direct results and related topics in that order."""

    results: list[dict[str, str]] = []
    abstract = str(payload.get("Abstract") or "").strip()
    if abstract:
        results.append(
            {
                "title": str(payload.get("Heading") or "Summary"),
                "url": str(payload.get("AbstractURL") or ""),
                "snippet": abstract,
            }
        )
    for item in (payload.get("Results") or [])[:3]:
        entry = _topic_entry(item)
        if entry:
            results.append(entry)
    for item in (payload.get("RelatedTopics") or [])[:2]:
        entry = _topic_entry(item)
        if entry:
            results.append(entry)
    return results


def fallback_result(query: str) -> dict[str, str]:
    return {
        "title": f'Search Results for "{query}"',
        "url": f"https://duckduckgo.com/?q={quote_plus(query)}",
        "snippet": f'Click to view search results for "{query}" on DuckDuckGo.',
    }


def _topic_entry(item: Any) -> dict[str, str] | None:
    if not isinstance(item, Mapping):
        return None
    text = str(item.get("Text") or "").strip()
    url = str(item.get("FirstURL") or "").strip()
    if not text or not url:
        return None
    title = text.split(" - ", 1)[0]
    return {"title": title, "url": url, "snippet": text}


def _coerce_limit(value: Any) -> int:
    try:
        limit = int(value)
    except (TypeError, ValueError):
        return MAX_RESULTS
    return max(1, min(limit, 10))


def _json_body(response: httpx.Response) -> Mapping[str, Any]:
    data = response.json()
    if not isinstance(data, Mapping):
        raise ValueError("Search endpoint returned an unexpected payload")
    return data


__all__ = ["WebSearchTool", "WEB_SEARCH_SPEC", "extract_results", "fallback_result"]
