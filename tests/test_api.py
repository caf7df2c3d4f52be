from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from wayfinder.app import create_app
from wayfinder.config import Settings
from wayfinder.fetcher import WebFetcher
from wayfinder.knowledge import KnowledgeService
from wayfinder.observability import MetricsRecorder
from wayfinder.retrieval import WebPageRetriever
from wayfinder.search import SearchResult, TextSearchService
from wayfinder.web_search import WebSearchService


class StaticProvider:
    def __init__(self, links: list[str]) -> None:
        self.links = links

    async def search_results(self, query: str, top: int):
        return [SearchResult(snippet=query, title=link, link=link) for link in self.links]


@pytest.fixture()
def provider() -> StaticProvider:
    return StaticProvider([])


@pytest.fixture()
def api_client(
    provider: StaticProvider,
    page_fetcher: WebFetcher,
    knowledge_service: KnowledgeService,
) -> TestClient:
    web_search = WebSearchService(
        TextSearchService(provider),
        WebPageRetriever(page_fetcher),
        knowledge_service,
        default_top=3,
    )
    app = create_app(
        settings=Settings(),
        web_search_service=web_search,
        knowledge_service=knowledge_service,
        metrics=MetricsRecorder(enabled=False),
    )
    return TestClient(app)


def test_search_online_returns_page_contents(
    api_client: TestClient,
    provider: StaticProvider,
    pages: dict[str, str],
) -> None:
    pages["https://example.com/one"] = "<h1>One</h1>"
    pages["https://example.com/two"] = "<h1>Two</h1>"
    provider.links = ["https://example.com/one", "https://example.com/two", "https://example.com/gone"]

    response = api_client.post("/search/online", json={"query": "numbers", "top": 3})

    assert response.status_code == 200, response.text
    contents = sorted(item["content"] for item in response.json())
    assert contents == ["One", "Two"]


def test_search_online_rejects_empty_query(api_client: TestClient) -> None:
    response = api_client.post("/search/online", json={"query": ""})
    assert response.status_code == 422


def test_knowledge_search_respects_sign_in(api_client: TestClient) -> None:
    created = api_client.post(
        "/knowledge/text",
        json={"content": "Alpha salary bands", "fileName": "hr.txt", "access": "private"},
    )
    assert created.status_code == 201, created.text

    anonymous = api_client.get("/knowledge/search", params={"query": "alpha"})
    signed_in = api_client.get("/knowledge/search", params={"query": "alpha"}, headers={"X-User-Id": "u-1"})

    assert anonymous.json()["noResult"] is True
    assert signed_in.json()["tier"] == "global"
    assert signed_in.json()["results"][0]["documentId"] == created.json()["documentId"]


def test_conversation_web_search_ingests_and_falls_back(
    api_client: TestClient,
    provider: StaticProvider,
    pages: dict[str, str],
) -> None:
    pages["https://example.com/beta"] = "<p>Beta findings</p>"
    provider.links = ["https://example.com/beta"]

    response = api_client.post("/conversations/conv-1/web-search", json={"query": "beta"})

    assert response.status_code == 200, response.text
    assert response.json()["results"][0]["text"] == "Beta findings"

    fallback = api_client.get(
        "/knowledge/search",
        params={"query": "beta", "conversationId": "conv-1"},
        headers={"X-User-Id": "u-1"},
    )
    assert fallback.json()["tier"] == "conversation"

    cleared = api_client.delete("/conversations/conv-1/documents")
    assert cleared.json() == {"conversationId": "conv-1", "removed": 1}

    after = api_client.get("/knowledge/search", params={"query": "beta", "conversationId": "conv-1"})
    assert after.json()["noResult"] is True


def test_import_web_page_validates_url(api_client: TestClient) -> None:
    response = api_client.post("/knowledge/webpages", json={"url": "not-a-url", "access": "public"})

    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid URL provided."


def test_import_web_page_malformed_url_is_bad_request(api_client: TestClient) -> None:
    response = api_client.post("/knowledge/webpages", json={"url": "http://[bad", "access": "public"})

    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid URL provided."


def test_value_errors_map_to_bad_request(api_client: TestClient, knowledge_service: KnowledgeService) -> None:
    async def broken(*args, **kwargs):
        raise ValueError("No textual content could be extracted from the document")

    knowledge_service.import_text_content = broken  # type: ignore[method-assign]

    response = api_client.post("/knowledge/text", json={"content": "text", "access": "public"})

    assert response.status_code == 400
    assert "No textual content" in response.json()["detail"]


def test_import_web_page_fetch_failure_is_bad_gateway(api_client: TestClient) -> None:
    response = api_client.post("/knowledge/webpages", json={"url": "https://example.com/nope", "access": "public"})

    assert response.status_code == 502
    assert response.json()["url"] == "https://example.com/nope"


def test_upload_and_remove_document(api_client: TestClient) -> None:
    uploaded = api_client.post(
        "/knowledge/documents",
        files={"file": ("page.html", b"<p>Alpha uploaded page</p>", "text/html")},
        data={"access": "public"},
    )
    assert uploaded.status_code == 201, uploaded.text
    document_id = uploaded.json()["documentId"]

    found = api_client.get("/knowledge/search", params={"query": "alpha"})
    assert found.json()["results"][0]["text"] == "Alpha uploaded page"

    assert api_client.delete(f"/knowledge/documents/{document_id}").status_code == 204
    assert api_client.delete(f"/knowledge/documents/{document_id}").status_code == 204
    assert api_client.get("/knowledge/search", params={"query": "alpha"}).json()["noResult"] is True


def test_unknown_access_level_is_rejected(api_client: TestClient) -> None:
    response = api_client.post("/knowledge/text", json={"content": "text", "access": "secret"})
    assert response.status_code == 400


def test_metrics_endpoint_disabled(api_client: TestClient) -> None:
    assert api_client.get("/metrics").status_code == 404


def test_metrics_endpoint_exposes_prometheus(knowledge_service: KnowledgeService) -> None:
    pytest.importorskip("prometheus_client")
    metrics = MetricsRecorder(prometheus_enabled=True)
    metrics.increment("retrieval.pages", value=2)
    app = create_app(settings=Settings(), knowledge_service=knowledge_service, metrics=metrics)

    with TestClient(app) as client:
        response = client.get("/metrics")
        search = client.post("/search/online", json={"query": "anything"})

    assert response.status_code == 200
    assert "wayfinder_retrieval_pages_total 2.0" in response.text
    assert search.status_code == 503
