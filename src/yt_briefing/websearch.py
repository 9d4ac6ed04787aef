"""Web search tool for chat: Tavily search API, exposed as an LLM function tool."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List

import requests

from yt_briefing.config import get_search_config
from yt_briefing.streaming import ToolCall

log = logging.getLogger("yt_briefing.websearch")

TAVILY_SEARCH_URL = "https://api.tavily.com/search"

WEB_SEARCH_TOOL: Dict[str, Any] = {
    "type": "function",
    "function": {
        "name": "web_search",
        "description": (
            "Search the web for up-to-date information. Use this when the user asks about recent news, "
            "facts you're unsure about, or topics not covered in the video transcript."
        ),
        "parameters": {
            "type": "object",
            "properties": {
                "query": {
                    "type": "string",
                    "description": "The search query to look up on the web",
                },
            },
            "required": ["query"],
        },
    },
}

CHAT_TOOLS: List[Dict[str, Any]] = [WEB_SEARCH_TOOL]


@dataclass(frozen=True)
class SearchResult:
    title: str
    url: str
    content: str


def search(query: str) -> List[SearchResult]:
    """Run a Tavily search; each result's content is capped to the configured length.

    Raises RuntimeError when the key is missing or the request fails.
    """
    cfg = get_search_config()
    if not cfg.tavily_api_key:
        raise RuntimeError("TAVILY_API_KEY is not set")
    payload = {
        "api_key": cfg.tavily_api_key,
        "query": query,
        "max_results": cfg.max_results,
        "include_answer": False,
    }
    try:
        resp = requests.post(TAVILY_SEARCH_URL, json=payload, timeout=cfg.timeout)
        resp.raise_for_status()
        data = resp.json()
    except (requests.RequestException, ValueError) as exc:
        raise RuntimeError(f"Web search failed: {exc}") from exc

    results = []
    for item in (data.get("results") or [])[: cfg.max_results]:
        content = item.get("content") or ""
        if len(content) > cfg.content_chars:
            content = content[: cfg.content_chars] + "…"
        results.append(SearchResult(title=item.get("title") or "", url=item.get("url") or "", content=content))
    return results


def format_results(results: List[SearchResult]) -> str:
    if not results:
        return "No search results found."
    return "\n\n".join(f"[{i}] {r.title}\n{r.url}\n{r.content}" for i, r in enumerate(results, start=1))


def execute_web_search(query: str) -> str:
    """Tool body: always returns text for the model, errors included."""
    if not get_search_config().tavily_api_key:
        return "Web search is not configured (TAVILY_API_KEY is missing)."
    try:
        return format_results(search(query))
    except RuntimeError as exc:
        log.error("Web search for %r failed: %s", query, exc)
        return "An error occurred during web search."


def execute_tool_call(call: ToolCall) -> str:
    """Dispatch one assembled tool call to its implementation."""
    if call.name == "web_search":
        query = str(call.parsed_arguments().get("query") or "").strip()
        if not query:
            return "web_search needs a non-empty query."
        return execute_web_search(query)
    return f"Unknown tool: {call.name}"
