from urllib.parse import parse_qs

import httpx
import pytest

from nivuus_agent.config import WebSearchToolConfig
from nivuus_agent.memory import ActionStatus
from nivuus_agent.tools.web_search import WebSearchTool, parse_results

_RESULT_PAGE = """
<html><body>
<div class="result results_links">
  <h2 class="result__title">
    <a class="result__a" href="//duckduckgo.com/l/?uddg=https%3A%2F%2Fdocs.python.org%2F3%2F&amp;rut=abc">Python   docs</a>
  </h2>
  <a class="result__snippet">The official   Python documentation.</a>
</div>
<div class="result">
  <a class="result__a" href="https://peps.python.org/">PEP index</a>
</div>
<div class="result">
  <a class="result__a" href="https://example.com/third">Third</a>
  <div class="result__snippet">Third snippet</div>
</div>
</body></html>
"""


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def test_parse_results_unwraps_redirect_links():
    results = parse_results(_RESULT_PAGE, max_results=2)

    assert results == [
        {
            "title": "Python docs",
            "url": "https://docs.python.org/3/",
            "snippet": "The official Python documentation.",
        },
        {"title": "PEP index", "url": "https://peps.python.org/", "snippet": ""},
    ]


@pytest.mark.asyncio
async def test_web_search_posts_query_and_formats_results(make_context):
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, text=_RESULT_PAGE)

    tool = WebSearchTool(WebSearchToolConfig(max_results=5), client=_client(handler))
    try:
        result = await tool.execute(make_context(), query="python docs")
    finally:
        await tool.close()

    assert result.success is True
    assert result.outcome is ActionStatus.SUCCESS
    assert parse_qs(seen[0].content.decode()) == {"q": ["python docs"]}
    assert "[RESULTS: 3]" in result.content
    assert "1. Python docs" in result.content
    assert "URL: https://docs.python.org/3/" in result.content
    assert "Snippet: -" in result.content


@pytest.mark.asyncio
async def test_web_search_without_results_is_success_no_results(make_context):
    tool = WebSearchTool(client=_client(lambda request: httpx.Response(200, text="<html></html>")))
    try:
        result = await tool.execute(make_context(), query="zzzz qqqq")
    finally:
        await tool.close()

    assert result.success is True
    assert result.outcome is ActionStatus.SUCCESS_NO_RESULTS
    assert "No results found." in result.content


@pytest.mark.asyncio
async def test_web_search_http_error_is_failure(make_context):
    tool = WebSearchTool(client=_client(lambda request: httpx.Response(503, text="busy")))
    try:
        result = await tool.execute(make_context(), query="python")
    finally:
        await tool.close()

    assert result.success is False
    assert "HTTP 503" in result.error
