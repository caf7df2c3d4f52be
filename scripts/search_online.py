"""Search the web and print the cleaned text of each result page as JSON."""

from __future__ import annotations

import argparse
import asyncio
import sys

import httpx

from wayfinder import Settings
from wayfinder.fetcher import WebFetcher
from wayfinder.retrieval import WebPageRetriever
from wayfinder.search import GoogleTextSearch, TextSearchService
from wayfinder.web_search import WebSearchService


async def main(query: str, *, top: int | None, concurrency: int | None) -> str:
    settings = Settings.from_env()
    if not settings.google_search_configured:
        raise SystemExit("GOOGLE_API_KEY and GOOGLE_SEARCH_ENGINE_ID must be set.")

    async with httpx.AsyncClient(**settings.http_client_kwargs()) as client:
        provider = GoogleTextSearch(settings.google_api_key, settings.google_search_engine_id, client=client)
        retriever = WebPageRetriever(
            WebFetcher(client),
            max_concurrency=concurrency or settings.fetch_max_concurrency,
        )
        service = WebSearchService(
            TextSearchService(provider),
            retriever,
            default_top=settings.search_default_top,
        )
        return await service.search_online(query, top)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("query", help="Search query")
    parser.add_argument(
        "--top",
        type=int,
        default=None,
        help="Number of search results to fetch (default: WAYFINDER_SEARCH_TOP)",
    )
    parser.add_argument(
        "--concurrency",
        type=int,
        default=None,
        help="Maximum number of pages fetched at once (default: unbounded)",
    )
    args = parser.parse_args()
    sys.stdout.write(asyncio.run(main(args.query, top=args.top, concurrency=args.concurrency)) + "\n")
