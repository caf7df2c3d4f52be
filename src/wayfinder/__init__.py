"""Wayfinder web search and knowledge ingestion package."""

from __future__ import annotations

from .config import Settings
from .fetcher import FetchFailure, FetchSuccess, WebFetcher
from .retrieval import PageContent, WebPageRetriever
from .sanitizer import clean_html
from .search import SearchResult, TextSearchService

__all__ = [
    "Settings",
    "FetchFailure",
    "FetchSuccess",
    "WebFetcher",
    "PageContent",
    "WebPageRetriever",
    "SearchResult",
    "TextSearchService",
    "clean_html",
    "KnowledgeService",
    "WebSearchService",
    "create_app",
]


def __getattr__(name: str):  # pragma: no cover - small helper
    if name == "KnowledgeService":
        from .knowledge import KnowledgeService

        return KnowledgeService
    if name == "WebSearchService":
        from .web_search import WebSearchService

        return WebSearchService
    if name == "create_app":
        from .app import create_app

        return create_app
    raise AttributeError(f"module 'wayfinder' has no attribute {name}")
