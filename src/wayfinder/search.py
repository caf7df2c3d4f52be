"""Text search provider adapter."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Final, Iterable, Mapping, Protocol

import httpx

from .errors import SearchProviderError


logger = logging.getLogger(__name__)

_GOOGLE_SEARCH_URL: Final[str] = "https://www.googleapis.com/customsearch/v1"
_GOOGLE_PAGE_SIZE: Final[int] = 10
# The Custom Search JSON API never returns results past position 100.
_GOOGLE_MAX_RESULTS: Final[int] = 100


@dataclass(frozen=True, slots=True)
class SearchResult:
    """Single hit returned by the text search provider."""

    snippet: str
    title: str | None = None
    link: str | None = None

    @property
    def has_link(self) -> bool:
        return bool(self.link and self.link.strip())

    @classmethod
    def from_mapping(cls, item: Mapping[str, Any]) -> "SearchResult":
        return cls(
            snippet=str(item.get("snippet") or ""),
            title=item.get("title"),
            link=item.get("link"),
        )


class TextSearchProvider(Protocol):
    """External search capability returning relevance-ranked results."""

    async def search_results(self, query: str, top: int) -> Iterable[SearchResult | Mapping[str, Any]]:
        ...


class GoogleTextSearch:
    """Google Custom Search JSON API client."""

    def __init__(
        self,
        api_key: str | None,
        engine_id: str | None,
        *,
        client: httpx.AsyncClient | None = None,
        base_url: str = _GOOGLE_SEARCH_URL,
        timeout: float = 10.0,
    ) -> None:
        if not api_key:
            raise ValueError("Google API key is missing")
        if not engine_id:
            raise ValueError("Google search engine id is missing")
        self._api_key = api_key
        self._engine_id = engine_id
        self._base_url = base_url
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def search_results(self, query: str, top: int) -> list[SearchResult]:
        wanted = min(max(top, 0), _GOOGLE_MAX_RESULTS)
        results: list[SearchResult] = []
        start = 1
        while len(results) < wanted:
            num = min(_GOOGLE_PAGE_SIZE, wanted - len(results))
            items = await self._request_page(query, start=start, num=num)
            if not items:
                break
            results.extend(SearchResult.from_mapping(item) for item in items)
            if len(items) < num:
                break
            start += len(items)
        return results[:wanted]

    async def _request_page(self, query: str, *, start: int, num: int) -> list[Mapping[str, Any]]:
        params = {
            "key": self._api_key,
            "cx": self._engine_id,
            "q": query,
            "num": num,
            "start": start,
        }
        try:
            response = await self._client.get(self._base_url, params=params)
        except httpx.HTTPError as exc:
            raise SearchProviderError(f"Search request failed: {exc}") from exc
        if response.status_code >= 400:
            raise SearchProviderError(
                f"Search provider returned status {response.status_code}",
                status_code=response.status_code,
            )
        payload = response.json()
        return list(payload.get("items") or [])


class TextSearchService:
    """Turn provider output into a bounded, ordered stream of ``SearchResult``."""

    def __init__(self, provider: TextSearchProvider) -> None:
        self._provider = provider

    async def search(self, query: str, top: int = 5) -> AsyncIterator[SearchResult]:
        """Yield at most ``top`` results in provider order.

        The returned async generator is single-use; iterate again by calling
        ``search`` again.
        """

        if top <= 0:
            return
        raw_results = await self._provider.search_results(query, top)
        emitted = 0
        for item in raw_results:
            if emitted >= top:
                break
            result = item if isinstance(item, SearchResult) else SearchResult.from_mapping(item)
            emitted += 1
            yield result
        logger.debug("search.completed query=%r top=%s results=%s", query, top, emitted)

    async def collect(self, query: str, top: int = 5) -> list[SearchResult]:
        return [result async for result in self.search(query, top)]


__all__ = [
    "GoogleTextSearch",
    "SearchResult",
    "TextSearchProvider",
    "TextSearchService",
]
