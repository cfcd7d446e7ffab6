"""
Wikipedia tools backed by the MediaWiki action API.
"""

from typing import Any, Dict, List, Optional
from urllib.parse import quote

import aiohttp
from markdownify import markdownify

from .base import BaseTool, Safety, ToolConfig, ToolError, ToolInput, ToolOutput
from ..core.config import settings
from ..core.logging import logger


USER_AGENT = "code-agent-tools/0.1 (wikipedia tool)"


class WikipediaClient:
    """Minimal MediaWiki API client for one language edition."""

    def __init__(self, language: str = "en", timeout: Optional[int] = None):
        self.language = language
        self.timeout = timeout or settings.http_timeout
        self.base_url = f"https://{language}.wikipedia.org/w/api.php"

    def page_url(self, title: str) -> str:
        return f"https://{self.language}.wikipedia.org/wiki/{quote(title.replace(' ', '_'))}"

    async def _get(self, params: Dict[str, Any]) -> Dict[str, Any]:
        query = {"format": "json", "formatversion": "2", **params}
        timeout = aiohttp.ClientTimeout(total=self.timeout)

        async with aiohttp.ClientSession(timeout=timeout, headers={"User-Agent": USER_AGENT}) as session:
            async with session.get(self.base_url, params=query) as response:
                if response.status != 200:
                    raise ToolError(f"Error: Wikipedia API returned {response.status}", "wikipedia")
                return await response.json()

    async def search(self, query: str, limit: int = 5) -> List[str]:
        """Return page titles matching ``query``."""
        data = await self._get({
            "action": "query",
            "list": "search",
            "srsearch": query,
            "srlimit": limit,
        })
        return [item["title"] for item in data.get("query", {}).get("search", [])]

    async def parse(self, title: str) -> Dict[str, Any]:
        """Return the parsed page (HTML text, page properties and links)."""
        return await self._get({
            "action": "parse",
            "page": title,
            "prop": "text|properties|links",
            "redirects": 1,
            "disableeditsection": 1,
        })


class WikipediaSearchTool(BaseTool):
    """Search Wikipedia for page titles."""

    inputs = {
        "query": ToolInput(type="string", description="Search term to find on Wikipedia")
    }
    output_type = "string"
    safety = Safety.SAFE

    def __init__(
        self,
        config: Optional[ToolConfig] = None,
        language: Optional[str] = None,
        max_results: Optional[int] = None
    ):
        if config is None:
            config = ToolConfig(
                name="wikipedia_search",
                description="Searches Wikipedia for page suggestions matching a query. "
                            "Returns a list of matching page titles. "
                            "Call with: wikipedia_search(query)",
                timeout=settings.tool_timeout,
            )
        super().__init__(config)
        self.client = WikipediaClient(language or settings.wikipedia_language)
        self.max_results = max_results or settings.wikipedia_max_results

    async def _execute(self, validated_input: Dict[str, str]) -> ToolOutput:
        query = validated_input["query"].strip()
        if not query:
            raise ToolError("Error: Search query cannot be empty", self.name)

        try:
            suggestions = await self.client.search(query, self.max_results)
        except aiohttp.ClientError as e:
            raise ToolError(f"Error: Wikipedia search failed: {e}", self.name)

        if not suggestions:
            return f"No suggestions found for '{query}'"

        lines = [f"Wikipedia suggestions for '{query}':"]
        lines.extend(f"{i}. {suggestion}" for i, suggestion in enumerate(suggestions, 1))
        logger.info(f"[{self.name}] {len(suggestions)} suggestion(s) for '{query}'")
        return "\n".join(lines) + "\n"


class WikipediaPageTool(BaseTool):
    """Read a full Wikipedia page as Markdown."""

    inputs = {
        "title": ToolInput(type="string", description="Exact title of the Wikipedia page to read")
    }
    output_type = "string"
    safety = Safety.SAFE

    def __init__(self, config: Optional[ToolConfig] = None, language: Optional[str] = None):
        if config is None:
            config = ToolConfig(
                name="wikipedia_page",
                description="Reads the full content of a Wikipedia page and converts it to Markdown. "
                            "Use wikipedia_search first to find the exact title.",
                timeout=settings.tool_timeout,
            )
        super().__init__(config)
        self.client = WikipediaClient(language or settings.wikipedia_language)

    async def _execute(self, validated_input: Dict[str, str]) -> ToolOutput:
        title = validated_input["title"].strip()
        if not title:
            raise ToolError("Error: Page title cannot be empty", self.name)

        try:
            data = await self.client.parse(title)
        except aiohttp.ClientError as e:
            raise ToolError(f"Error: Wikipedia request failed: {e}", self.name)

        if "error" in data:
            if data["error"].get("code") == "missingtitle":
                raise ToolError(f"Error: No page found for '{title}'. Use wikipedia_search first.", self.name)
            raise ToolError(f"Error: {data['error'].get('info', 'Unknown Wikipedia error')}", self.name)

        page = data.get("parse", {})
        if "disambiguation" in page.get("properties", {}):
            options = [
                link["title"] for link in page.get("links", [])
                if link.get("ns") == 0 and link.get("exists", True)
            ]
            raise ToolError(
                f"Error: Multiple pages match '{title}'. Options: {', '.join(options[:5])}",
                self.name,
                {"options": options[:5]}
            )

        page_title = page.get("title", title)
        markdown_content = markdownify(page.get("text", ""), heading_style="ATX").strip()

        logger.info(f"[{self.name}] Read '{page_title}' ({len(markdown_content)} chars)")
        return (
            f"# {page_title}\n\n"
            f"**URL:** {self.client.page_url(page_title)}\n\n"
            f"{markdown_content}"
        )


def wikipedia_tools(language: Optional[str] = None) -> List[BaseTool]:
    """Return all Wikipedia tools."""
    return [
        WikipediaSearchTool(language=language),
        WikipediaPageTool(language=language),
    ]
