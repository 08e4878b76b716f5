import logging
from typing import Any, Dict, List, Optional

import httpx

from app.core.config import settings
from app.core.exceptions import ConfigurationError, IntegrationError

logger = logging.getLogger(__name__)

FIRECRAWL_API_URL = "https://api.firecrawl.dev/v1"
HTTP_TIMEOUT = 60.0


class FirecrawlService:
    """Web search and page scraping through the Firecrawl API."""

    async def _post(self, path: str, payload: Dict[str, Any], action: str) -> Dict[str, Any]:
        if not settings.FIRECRAWL_API_KEY:
            raise ConfigurationError("FIRECRAWL_API_KEY")

        headers = {"Authorization": f"Bearer {settings.FIRECRAWL_API_KEY}"}
        async with httpx.AsyncClient(timeout=HTTP_TIMEOUT) as client:
            try:
                resp = await client.post(f"{FIRECRAWL_API_URL}{path}", json=payload, headers=headers)
            except httpx.RequestError as e:
                logger.error(f"Firecrawl request failed ({action}): {e}")
                raise IntegrationError("Firecrawl", f"Failed to {action}", str(e))

        if resp.status_code >= 400:
            logger.error(f"Firecrawl API error ({action}): {resp.status_code} {resp.text}")
            raise IntegrationError("Firecrawl", f"Failed to {action}", resp.text)

        data = resp.json()
        if not data.get("success", True):
            raise IntegrationError("Firecrawl", f"Failed to {action}", data.get("error"))
        return data

    async def search(
        self,
        query: str,
        limit: int = 5,
        lang: Optional[str] = None,
        country: Optional[str] = None,
        tbs: Optional[str] = None,
        include_content: bool = True,
    ) -> List[Dict[str, Any]]:
        """Search results that have a title, url and description."""
        payload: Dict[str, Any] = {"query": query, "limit": limit}
        for key, value in (("lang", lang), ("country", country), ("tbs", tbs)):
            if value:
                payload[key] = value
        if include_content:
            payload["scrapeOptions"] = {"formats": ["markdown", "links"]}

        data = await self._post("/search", payload, "perform web search")

        results = []
        for doc in data.get("data") or []:
            result = {
                "title": doc.get("title") or "",
                "url": doc.get("url") or "",
                "description": doc.get("description") or "",
                "markdown": doc.get("markdown"),
                "links": doc.get("links"),
            }
            if result["title"] and result["url"] and result["description"]:
                results.append(result)
        return results

    async def scrape(self, url: str, formats: Optional[List[str]] = None) -> Dict[str, Any]:
        data = await self._post("/scrape", {"url": url, "formats": formats or ["markdown"]}, "scrape URL")
        content = data.get("data") or {}
        if not any(content.get(key) for key in ("markdown", "html", "rawHtml")):
            raise IntegrationError("Firecrawl", "Failed to scrape URL: No content returned from scrape")
        return {
            "markdown": content.get("markdown"),
            "html": content.get("html"),
            "metadata": content.get("metadata") or {},
        }


def format_search_results(query: str, results: List[Dict[str, Any]], include_content: bool = True) -> str:
    if not results:
        return "No search results found."

    lines = []
    for index, result in enumerate(results, start=1):
        entry = f"{index}. {result['title']}\n   URL: {result['url']}\n   Description: {result['description']}\n"
        if include_content:
            if result.get("markdown"):
                entry += f"   Content Preview: {result['markdown'][:150]}...\n"
            if result.get("links"):
                entry += f"   Links: {', '.join(result['links'][:3])}...\n"
        lines.append(entry)
    return f'Search results for "{query}":\n\n' + "\n".join(lines)


firecrawl_service = FirecrawlService()
