from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from app.services.firecrawl_service import firecrawl_service, format_search_results
from app.services.tools.base import Tool


class SearchWebArgs(BaseModel):
    query: str = Field(..., description="The search query to find information about")
    limit: int = Field(5, description="Maximum number of results to return")
    lang: Optional[str] = Field(None, description='Language code for search results (e.g., "en", "es")')
    country: Optional[str] = Field(None, description='Country code for search results (e.g., "us", "uk")')
    tbs: Optional[str] = Field(None, description='Time-based search filter (e.g., "qdr:w" for past week)')
    include_content: bool = Field(True, description="Whether to include scraped content")


class ScrapeWebsiteArgs(BaseModel):
    url: str = Field(..., description="The URL of the website to scrape")


class SearchWebTool(Tool):
    name = "search_web"
    description = "Search the web for information"
    args_model = SearchWebArgs

    async def execute(self, args: SearchWebArgs) -> str:
        results = await firecrawl_service.search(
            args.query,
            limit=args.limit,
            lang=args.lang,
            country=args.country,
            tbs=args.tbs,
            include_content=args.include_content,
        )
        return format_search_results(args.query, results, args.include_content)


class ScrapeWebsiteTool(Tool):
    name = "scrape_website"
    description = "Scrape a website and return its content in markdown and HTML format"
    args_model = ScrapeWebsiteArgs

    async def execute(self, args: ScrapeWebsiteArgs) -> Dict[str, Any]:
        return await firecrawl_service.scrape(args.url, formats=["markdown", "html"])
