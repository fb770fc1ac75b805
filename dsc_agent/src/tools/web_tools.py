# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
import os
import json
import logging

import httpx

from bs4 import BeautifulSoup, Comment

from typing import Literal, Optional
from pydantic import Field

from .base_tool import BaseTool
from ..types.tool_types import ToolResult

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

USER_AGENT = "Mozilla/5.0 (compatible; dsc-agent/1.0)"
FETCH_TEXT_LIMIT = 15000
JSON_LIMIT = 10000
HTTP_BODY_LIMIT = 10000
DEFAULT_TIMEOUT = 30.0


def _http_client(timeout: float = DEFAULT_TIMEOUT) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=timeout,
        follow_redirects=True,
        headers={"User-Agent": USER_AGENT},
    )


_SKIPPED_TAGS = ["script", "style", "noscript", "template", "head"]


def html_to_text(html: str) -> str:
    """Reduce an HTML page to readable text, one block of text per line."""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(_SKIPPED_TAGS):
        tag.decompose()
    for comment in soup.find_all(string=lambda node: isinstance(node, Comment)):
        comment.extract()
    return soup.get_text(separator="\n", strip=True)


def truncate(text: str, limit: int, note: str = "... (content truncated)") -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + f"\n\n{note}"


class WebSearch(BaseTool):
    TOOL_NAME = "web_search"
    TOOL_DESCRIPTION = """Search the internet for information.

Uses Google Custom Search when GOOGLE_API_KEY and GOOGLE_SEARCH_ENGINE_ID are configured,
and the DuckDuckGo instant-answer API otherwise.
"""

    query: str = Field(..., description="What to search for", min_length=1)
    num_results: int = Field(5, description="Number of results to return", ge=1, le=10)

    async def _search_google(self, api_key: str, engine_id: str) -> ToolResult:
        params = {"key": api_key, "cx": engine_id, "q": self.query, "num": self.num_results}
        async with _http_client() as client:
            response = await client.get(
                "https://www.googleapis.com/customsearch/v1", params=params
            )
        if response.status_code != 200:
            return self.fail(f"Search API error: {response.status_code}")

        items = response.json().get("items") or []
        results = [
            f"{item.get('title', '')}\n   {item.get('link', '')}\n   {item.get('snippet', '')}"
            for item in items
        ]
        if not results:
            return self.ok("No search results found.")
        return self.ok("\n\n".join(results))

    async def _search_duckduckgo(self) -> ToolResult:
        async with _http_client() as client:
            response = await client.get(
                "https://api.duckduckgo.com/",
                params={"q": self.query, "format": "json"},
            )
        data = response.json()

        results = []
        if data.get("AbstractText"):
            results.append(f"Summary: {data['AbstractText']}")
            if data.get("AbstractURL"):
                results.append(f"   Source: {data['AbstractURL']}")

        topics = [t.get("Text") for t in (data.get("RelatedTopics") or [])[:5] if t.get("Text")]
        if topics:
            results.append("\nRelated topics:")
            results.extend(f"- {text}" for text in topics)

        if not results:
            return self.ok("No direct results found. Try a different query.")
        return self.ok("\n".join(results))

    async def run(self) -> ToolResult:
        api_key = os.getenv("GOOGLE_API_KEY")
        engine_id = os.getenv("GOOGLE_SEARCH_ENGINE_ID")
        try:
            if api_key and engine_id:
                return await self._search_google(api_key, engine_id)
            return await self._search_duckduckgo()
        except (httpx.HTTPError, json.JSONDecodeError) as e:
            logger.info(f"Web search failed: {e}")
            return self.fail(f"Search failed: {str(e)}")


class WebFetch(BaseTool):
    TOOL_NAME = "web_fetch"
    TOOL_DESCRIPTION = f"""Fetch a web page.

HTML is reduced to plain text and truncated at {FETCH_TEXT_LIMIT} characters;
JSON is pretty-printed and truncated at {JSON_LIMIT} characters.
"""

    url: str = Field(..., description="The URL to fetch", min_length=1)
    extract_text: bool = Field(True, description="Reduce HTML pages to their text")

    async def run(self) -> ToolResult:
        try:
            async with _http_client() as client:
                response = await client.get(self.url)
        except httpx.HTTPError as e:
            return self.fail(f"Failed to fetch {self.url}: {str(e)}")

        if response.status_code >= 400:
            return self.fail(f"HTTP {response.status_code}: {response.reason_phrase}")

        content_type = response.headers.get("content-type", "")
        if "application/json" in content_type:
            try:
                pretty = json.dumps(response.json(), indent=2, ensure_ascii=False)
            except json.JSONDecodeError:
                pretty = response.text
            return self.ok(pretty[:JSON_LIMIT])

        content = response.text
        if self.extract_text and "text/html" in content_type:
            content = html_to_text(content)
        return self.ok(truncate(content, FETCH_TEXT_LIMIT))


class HttpRequest(BaseTool):
    TOOL_NAME = "http_request"
    TOOL_DESCRIPTION = f"""Send an HTTP request to an API and return the status and body.

Headers are given as a JSON object string. The response body is truncated at {HTTP_BODY_LIMIT} characters.
"""

    url: str = Field(..., description="The request URL", min_length=1)
    method: Literal["GET", "POST", "PUT", "DELETE", "PATCH"] = Field(
        "GET", description="The HTTP method"
    )
    headers: Optional[str] = Field(None, description="Request headers as a JSON string")
    body: Optional[str] = Field(None, description="Request body")

    async def run(self) -> ToolResult:
        try:
            headers = json.loads(self.headers) if self.headers else {}
        except json.JSONDecodeError as e:
            return self.fail(f"Headers must be a JSON object: {e}")
        if not isinstance(headers, dict):
            return self.fail("Headers must be a JSON object")

        if self.body and not any(k.lower() == "content-type" for k in headers):
            headers["Content-Type"] = "application/json"

        try:
            async with _http_client() as client:
                response = await client.request(
                    self.method, self.url, headers=headers, content=self.body
                )
        except httpx.HTTPError as e:
            return self.fail(f"HTTP request failed: {str(e)}")

        if "application/json" in response.headers.get("content-type", ""):
            try:
                body = json.dumps(response.json(), indent=2, ensure_ascii=False)
            except json.JSONDecodeError:
                body = response.text
        else:
            body = response.text

        body = truncate(body, HTTP_BODY_LIMIT, "... (response truncated)")
        return self.ok(f"Status: {response.status_code} {response.reason_phrase}\n\n{body}")
