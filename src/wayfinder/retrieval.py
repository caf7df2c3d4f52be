"""Concurrent fetch-and-clean of search result links."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Iterable, Union

from .fetcher import FetchFailure, FetchSuccess, WebFetcher
from .observability import MetricsRecorder
from .sanitizer import clean_html
from .search import SearchResult


logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class PageContent:
    url: str
    content: str

    def to_dict(self) -> dict[str, str]:
        return {"url": self.url, "content": self.content}


PageOutcome = Union[PageContent, FetchFailure]


def page_from_fetch(url: str, outcome: FetchSuccess) -> PageContent:
    """Sanitise a fetched body into ``PageContent``."""

    return PageContent(url=url, content=clean_html(outcome.text()))


class WebPageRetriever:
    """Fan a list of search results out into concurrent page fetches.

    A failing page never fails the batch: each task settles into either a
    ``PageContent`` or a ``FetchFailure`` and only successes are kept.
    Cancellation of the caller still cancels every outstanding fetch.
    """

    def __init__(
        self,
        fetcher: WebFetcher,
        *,
        max_concurrency: int | None = None,
        metrics: MetricsRecorder | None = None,
    ) -> None:
        self._fetcher = fetcher
        self._max_concurrency = max_concurrency if max_concurrency and max_concurrency > 0 else None
        self._metrics = metrics

    async def retrieve_all(self, results: Iterable[SearchResult]) -> list[PageContent]:
        links = [result.link.strip() for result in results if result.has_link]
        if not links:
            return []

        semaphore = asyncio.Semaphore(self._max_concurrency) if self._max_concurrency else None
        outcomes = await asyncio.gather(*(self._retrieve_one(url, semaphore) for url in links))

        pages: list[PageContent] = []
        failures = 0
        for url, outcome in zip(links, outcomes):
            if isinstance(outcome, PageContent):
                pages.append(outcome)
            else:
                failures += 1
                logger.debug("retrieval.page_dropped url=%s reason=%s", url, outcome.reason)

        logger.info("retrieval.completed requested=%s retrieved=%s dropped=%s", len(links), len(pages), failures)
        if self._metrics is not None:
            self._metrics.increment("retrieval.pages", value=len(pages))
            if failures:
                self._metrics.increment("retrieval.dropped", value=failures)
        return pages

    async def _retrieve_one(self, url: str, semaphore: asyncio.Semaphore | None) -> PageOutcome:
        if semaphore is None:
            return await self._fetch_and_clean(url)
        async with semaphore:
            return await self._fetch_and_clean(url)

    async def _fetch_and_clean(self, url: str) -> PageOutcome:
        try:
            outcome = await self._fetcher.fetch(url)
            if isinstance(outcome, FetchFailure):
                return outcome
            return page_from_fetch(url, outcome)
        except Exception as exc:  # CancelledError is not an Exception and propagates
            logger.debug("retrieval.page_error url=%s", url, exc_info=True)
            return FetchFailure(f"{type(exc).__name__}: {exc}")


__all__ = ["PageContent", "PageOutcome", "WebPageRetriever", "page_from_fetch"]
