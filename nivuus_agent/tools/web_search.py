"""Web search tool backed by the DuckDuckGo HTML endpoint."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any
from urllib.parse import parse_qs, urlparse

import httpx
from bs4 import BeautifulSoup

from nivuus_agent.config import WebSearchToolConfig
from nivuus_agent.logging import get_logger
from nivuus_agent.memory import ActionStatus
from nivuus_agent.tools.registry import Tool, ToolResult

if TYPE_CHECKING:
    from nivuus_agent.runtime_context import AgentContext

log = get_logger(__name__)


def _clean_text(value: str, max_chars: int = 500) -> str:
    """Normalize whitespace and bound output size."""
    cleaned = re.sub(r"\s+", " ", (value or "")).strip()
    if len(cleaned) <= max_chars:
        return cleaned
    return cleaned[:max_chars].rstrip() + "... [truncated]"


def _unwrap_link(href: str) -> str:
    """Return the target of a DuckDuckGo redirect link (``/l/?uddg=...``)."""
    href = (href or "").strip()
    if href.startswith("//"):
        href = "https:" + href
    parsed = urlparse(href)
    if parsed.path.startswith("/l/"):
        target = parse_qs(parsed.query).get("uddg")
        if target:
            return target[0]
    return href


def parse_results(html: str, max_results: int) -> list[dict[str, str]]:
    """Extract title/url/snippet triples from a DuckDuckGo HTML result page."""
    soup = BeautifulSoup(html, "html.parser")
    results: list[dict[str, str]] = []
    for block in soup.select("div.result"):
        anchor = block.select_one("a.result__a")
        if anchor is None:
            continue
        snippet = block.select_one(".result__snippet")
        results.append(
            {
                "title": _clean_text(anchor.get_text(" "), max_chars=180) or "Untitled",
                "url": _unwrap_link(str(anchor.get("href") or "")),
                "snippet": _clean_text(snippet.get_text(" ")) if snippet else "",
            }
        )
        if len(results) >= max_results:
            break
    return results


class WebSearchTool(Tool):
    """Search the web and return ranked results."""

    name = "web_search"
    description = "Search the web and return ranked results with titles, links, and snippets."
    parameters = {
        "type": "object",
        "properties": {
            "query": {
                "type": "string",
                "description": "Search query text",
            },
        },
        "required": ["query"],
    }

    def __init__(self, config: WebSearchToolConfig | None = None, client: httpx.AsyncClient | None = None):
        self.config = config or WebSearchToolConfig()
        self.client = client or httpx.AsyncClient(
            follow_redirects=True,
            headers={"User-Agent": "Mozilla/5.0 (compatible; nivuus-agent web search)"},
        )

    async def execute(self, context: AgentContext, **kwargs: Any) -> ToolResult:
        """Execute a DuckDuckGo web search."""
        q = str(kwargs.get("query") or "").strip()
        if not q:
            return ToolResult(success=False, error="Missing required query")

        try:
            response = await self.client.post(
                self.config.base_url,
                data={"q": q},
                timeout=float(self.config.timeout),
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            detail = f"HTTP {e.response.status_code}"
            log.error("Web search failed", query=q, error=detail)
            return ToolResult(success=False, error=f"Web search failed: {detail}")
        except httpx.HTTPError as e:
            log.error("Web search failed", query=q, error=str(e))
            return ToolResult(success=False, error=f"Web search failed: {e}")

        results = parse_results(response.text, max(1, self.config.max_results))
        lines = [
            "[SEARCH ENGINE: DuckDuckGo]",
            f"[QUERY: {q}]",
            f"[RESULTS: {len(results)}]",
            "",
        ]
        if not results:
            lines.append("No results found.")
            return ToolResult(
                success=True,
                content="\n".join(lines).strip(),
                status=ActionStatus.SUCCESS_NO_RESULTS,
            )

        for idx, item in enumerate(results, start=1):
            lines.append(f"{idx}. {item['title']}")
            lines.append(f"   URL: {item['url'] or '-'}")
            lines.append(f"   Snippet: {item['snippet'] or '-'}")
            lines.append("")
        return ToolResult(success=True, content="\n".join(lines).strip())

    async def close(self) -> None:
        """Close HTTP client."""
        await self.client.aclose()
