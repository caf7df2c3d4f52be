from __future__ import annotations

from typing import Callable, Iterable

import httpx
import pytest
from qdrant_client import QdrantClient

from wayfinder.config import Settings
from wayfinder.fetcher import WebFetcher
from wayfinder.knowledge import KnowledgeService, QdrantKnowledgeStore


class FakeEmbeddingService:
    """Deterministic 3-d embeddings keyed on a few marker words."""

    def __init__(self) -> None:
        self.dimension = 3

    def embed(self, texts: Iterable[str]):
        return [self._vector_for(text) for text in texts]

    def embed_one(self, text: str):
        return self._vector_for(text)

    @staticmethod
    def _vector_for(text: str) -> list[float]:
        lowered = text.lower()
        if "alpha" in lowered:
            return [1.0, 0.0, 0.0]
        if "beta" in lowered:
            return [0.0, 1.0, 0.0]
        return [0.0, 0.0, 1.0]


class RecordingSleep:
    """Stand-in for ``asyncio.sleep`` that records requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def mock_client(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler), follow_redirects=True)


def html_response(body: str, status_code: int = 200) -> httpx.Response:
    return httpx.Response(status_code, headers={"content-type": "text/html; charset=utf-8"}, text=body)


@pytest.fixture()
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture()
def knowledge_store() -> QdrantKnowledgeStore:
    settings = Settings(qdrant_collection="knowledge-test", chunk_max_words=50, chunk_overlap_words=5)
    client = QdrantClient(path=":memory:")
    return QdrantKnowledgeStore.from_settings(settings, FakeEmbeddingService(), client=client)


@pytest.fixture()
def pages() -> dict[str, str]:
    """URL -> HTML body served by ``page_fetcher``; tests add entries."""

    return {}


@pytest.fixture()
def page_fetcher(pages: dict[str, str], recording_sleep: RecordingSleep) -> WebFetcher:
    def handler(request: httpx.Request) -> httpx.Response:
        body = pages.get(str(request.url))
        if body is None:
            return httpx.Response(404, headers={"content-type": "text/html"}, text="missing")
        return html_response(body)

    return WebFetcher(mock_client(handler), sleep=recording_sleep)


@pytest.fixture()
def knowledge_service(knowledge_store: QdrantKnowledgeStore, page_fetcher: WebFetcher) -> KnowledgeService:
    return KnowledgeService(knowledge_store, page_fetcher, search_limit=3)
