from __future__ import annotations

import asyncio

import pytest

from wayfinder.fetcher import FetchFailure, FetchSuccess
from wayfinder.retrieval import PageContent, WebPageRetriever
from wayfinder.search import SearchResult


def _result(link: str | None) -> SearchResult:
    return SearchResult(snippet="snippet", title="title", link=link)


class ScriptedFetcher:
    """Fetcher double returning canned outcomes or raising per URL."""

    def __init__(self, outcomes: dict) -> None:
        self._outcomes = outcomes
        self.requested: list[str] = []
        self.active = 0
        self.peak = 0

    async def fetch(self, url: str):
        self.requested.append(url)
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            await asyncio.sleep(0)
            outcome = self._outcomes[url]
            if isinstance(outcome, Exception):
                raise outcome
            return outcome
        finally:
            self.active -= 1


def _html(body: str) -> FetchSuccess:
    return FetchSuccess(content=body.encode("utf-8"), content_type="text/html")


@pytest.mark.asyncio
async def test_failing_page_is_dropped_and_others_kept() -> None:
    urls = [f"https://example.com/{i}" for i in range(1, 6)]
    outcomes = {url: _html(f"<p>Page {i}</p>") for i, url in enumerate(urls, start=1)}
    outcomes[urls[2]] = RuntimeError("boom")
    retriever = WebPageRetriever(ScriptedFetcher(outcomes))

    pages = await retriever.retrieve_all([_result(url) for url in urls])

    assert len(pages) == 4
    assert {page.url for page in pages} == set(urls) - {urls[2]}
    assert PageContent(url=urls[0], content="Page 1") in pages


@pytest.mark.asyncio
async def test_fetch_failures_are_dropped() -> None:
    outcomes = {
        "https://example.com/ok": _html("<b>fine</b>"),
        "https://example.com/404": FetchFailure("HTTP error: 404"),
    }
    retriever = WebPageRetriever(ScriptedFetcher(outcomes))

    pages = await retriever.retrieve_all([_result(url) for url in outcomes])

    assert pages == [PageContent(url="https://example.com/ok", content="fine")]


@pytest.mark.asyncio
async def test_results_without_links_are_skipped() -> None:
    fetcher = ScriptedFetcher({"https://example.com/a": _html("A")})
    retriever = WebPageRetriever(fetcher)

    pages = await retriever.retrieve_all([_result(None), _result(""), _result("https://example.com/a")])

    assert fetcher.requested == ["https://example.com/a"]
    assert pages == [PageContent(url="https://example.com/a", content="A")]


@pytest.mark.asyncio
async def test_empty_input_returns_empty_list() -> None:
    fetcher = ScriptedFetcher({})
    assert await WebPageRetriever(fetcher).retrieve_all([]) == []
    assert fetcher.requested == []


@pytest.mark.asyncio
async def test_concurrency_limit_bounds_in_flight_fetches() -> None:
    urls = [f"https://example.com/{i}" for i in range(6)]
    fetcher = ScriptedFetcher({url: _html("x") for url in urls})
    retriever = WebPageRetriever(fetcher, max_concurrency=2)

    pages = await retriever.retrieve_all([_result(url) for url in urls])

    assert len(pages) == 6
    assert fetcher.peak <= 2


@pytest.mark.asyncio
async def test_cancellation_fails_the_whole_batch() -> None:
    started = asyncio.Event()

    class HangingFetcher:
        async def fetch(self, url: str):
            started.set()
            await asyncio.sleep(3600)

    retriever = WebPageRetriever(HangingFetcher())
    task = asyncio.create_task(retriever.retrieve_all([_result("https://example.com/slow")]))
    await started.wait()
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
