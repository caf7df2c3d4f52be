"""FastAPI application exposing web search and knowledge ingestion."""

from __future__ import annotations

import logging

import httpx
from fastapi import Depends, FastAPI, File, Form, Header, HTTPException, Query, Request, UploadFile
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field

from .config import Settings
from .errors import InvalidArgumentError, SearchProviderError, WebPageImportError
from .fetcher import WebFetcher
from .knowledge import KnowledgeService, QdrantKnowledgeStore, SearchScope
from .observability import MetricsRecorder
from .retrieval import WebPageRetriever
from .search import GoogleTextSearch, TextSearchService
from .web_search import WebSearchService


logger = logging.getLogger(__name__)


_LOGGING_CONFIGURED = False


def _ensure_logging() -> None:
    global _LOGGING_CONFIGURED
    if _LOGGING_CONFIGURED:
        return

    wayfinder_logger = logging.getLogger("wayfinder")
    uvicorn_logger = logging.getLogger("uvicorn.error")

    handlers = list(uvicorn_logger.handlers)
    if handlers:
        wayfinder_logger.handlers = []
        for handler in handlers:
            wayfinder_logger.addHandler(handler)
    else:
        handler = logging.StreamHandler()
        handler.setLevel(logging.INFO)
        handler.setFormatter(logging.Formatter("%(asctime)s | %(levelname)s | %(name)s | %(message)s"))
        wayfinder_logger.addHandler(handler)

    if wayfinder_logger.level == logging.NOTSET or wayfinder_logger.level > logging.INFO:
        wayfinder_logger.setLevel(logging.INFO)
    wayfinder_logger.propagate = False
    _LOGGING_CONFIGURED = True


class SearchRequest(BaseModel):
    query: str = Field(min_length=1)
    top: int | None = Field(default=None, ge=1, le=100)


class TextImportRequest(BaseModel):
    content: str
    fileName: str = "content.txt"
    access: str = "private"


class WebPageImportRequest(BaseModel):
    url: str
    access: str | None = None
    conversationId: str | None = None


class ApplicationState:
    """Container for runtime dependencies used by the FastAPI app."""

    def __init__(
        self,
        *,
        settings: Settings,
        web_search_service: WebSearchService | None,
        knowledge_service: KnowledgeService | None,
        metrics: MetricsRecorder | None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.settings = settings
        self.web_search_service = web_search_service
        self.knowledge_service = knowledge_service
        self.metrics = metrics
        self.http_client = http_client


def create_app(
    *,
    settings: Settings | None = None,
    web_search_service: WebSearchService | None = None,
    knowledge_service: KnowledgeService | None = None,
    metrics: MetricsRecorder | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Services not passed in are built from ``settings``: a shared
    ``httpx.AsyncClient`` for page fetches, Google Custom Search when
    credentials are configured, and a Qdrant-backed knowledge store.
    """

    _ensure_logging()

    settings = settings or Settings.from_env()
    metrics = metrics or settings.build_metrics_recorder()

    http_client: httpx.AsyncClient | None = None
    if web_search_service is None or knowledge_service is None:
        http_client = httpx.AsyncClient(**settings.http_client_kwargs())
        fetcher = WebFetcher(http_client, metrics=metrics)

        if knowledge_service is None:
            from .embeddings import EmbeddingService

            store = QdrantKnowledgeStore.from_settings(settings, EmbeddingService(settings))
            knowledge_service = KnowledgeService(
                store,
                fetcher,
                search_limit=settings.knowledge_search_limit,
                metrics=metrics,
            )

        if web_search_service is None and settings.google_search_configured:
            provider = GoogleTextSearch(
                settings.google_api_key,
                settings.google_search_engine_id,
                client=http_client,
            )
            web_search_service = WebSearchService(
                TextSearchService(provider),
                WebPageRetriever(fetcher, max_concurrency=settings.fetch_max_concurrency, metrics=metrics),
                knowledge_service,
                default_top=settings.search_default_top,
                metrics=metrics,
            )
        elif web_search_service is None:
            logger.warning("app.search_disabled reason=missing_google_credentials")

    logger.info("app.start qdrant=%s collection=%s", settings.qdrant_url, settings.qdrant_collection)

    app = FastAPI()
    app.state.services = ApplicationState(
        settings=settings,
        web_search_service=web_search_service,
        knowledge_service=knowledge_service,
        metrics=metrics,
        http_client=http_client,
    )

    @app.on_event("shutdown")
    async def _close_http_client() -> None:
        if http_client is not None:
            await http_client.aclose()

    @app.exception_handler(InvalidArgumentError)
    async def _invalid_argument(_: Request, exc: InvalidArgumentError) -> JSONResponse:
        return JSONResponse({"detail": str(exc)}, status_code=400)

    @app.exception_handler(ValueError)
    async def _value_error(_: Request, exc: ValueError) -> JSONResponse:
        return JSONResponse({"detail": str(exc)}, status_code=400)

    @app.exception_handler(WebPageImportError)
    async def _import_failed(_: Request, exc: WebPageImportError) -> JSONResponse:
        return JSONResponse({"detail": str(exc), "url": exc.url}, status_code=502)

    @app.exception_handler(SearchProviderError)
    async def _search_failed(_: Request, exc: SearchProviderError) -> JSONResponse:
        return JSONResponse({"detail": str(exc)}, status_code=502)

    def get_state(request: Request) -> ApplicationState:
        return request.app.state.services

    def get_web_search_service(request: Request) -> WebSearchService:
        service = get_state(request).web_search_service
        if service is None:
            raise HTTPException(status_code=503, detail="Web search is not configured")
        return service

    def get_knowledge_service(request: Request) -> KnowledgeService:
        service = get_state(request).knowledge_service
        if service is None:
            raise HTTPException(status_code=503, detail="Knowledge store is not configured")
        return service

    def get_metrics(request: Request) -> MetricsRecorder | None:
        return get_state(request).metrics

    @app.post("/search/online")
    async def search_online(
        payload: SearchRequest,
        web_search: WebSearchService = Depends(get_web_search_service),
    ) -> Response:
        body = await web_search.search_online(payload.query, payload.top)
        return Response(content=body, media_type="application/json")

    @app.post("/conversations/{conversation_id}/web-search")
    async def conversation_web_search(
        conversation_id: str,
        payload: SearchRequest,
        web_search: WebSearchService = Depends(get_web_search_service),
    ) -> JSONResponse:
        result = await web_search.search_and_ingest(payload.query, conversation_id, payload.top)
        return JSONResponse(result.to_dict())

    @app.delete("/conversations/{conversation_id}/documents")
    async def clear_conversation_documents(
        conversation_id: str,
        knowledge: KnowledgeService = Depends(get_knowledge_service),
    ) -> JSONResponse:
        removed = await knowledge.clear_conversation_documents(conversation_id)
        return JSONResponse({"conversationId": conversation_id, "removed": removed})

    @app.post("/knowledge/documents")
    async def upload_document(
        file: UploadFile = File(...),
        access: str = Form("private"),
        knowledge: KnowledgeService = Depends(get_knowledge_service),
    ) -> JSONResponse:
        data = await file.read()
        document_id = await knowledge.import_document(data, file.filename or "document", access)
        return JSONResponse({"documentId": document_id}, status_code=201)

    @app.post("/knowledge/text")
    async def import_text(
        payload: TextImportRequest,
        knowledge: KnowledgeService = Depends(get_knowledge_service),
    ) -> JSONResponse:
        document_id = await knowledge.import_text_content(payload.content, payload.fileName, payload.access)
        return JSONResponse({"documentId": document_id}, status_code=201)

    @app.post("/knowledge/webpages")
    async def import_web_page(
        payload: WebPageImportRequest,
        knowledge: KnowledgeService = Depends(get_knowledge_service),
    ) -> JSONResponse:
        document_id = await knowledge.import_web_page(
            payload.url,
            payload.access,
            conversation_id=payload.conversationId,
        )
        return JSONResponse({"documentId": document_id}, status_code=201)

    @app.delete("/knowledge/documents/{document_id}", status_code=204)
    async def remove_document(
        document_id: str,
        knowledge: KnowledgeService = Depends(get_knowledge_service),
    ) -> Response:
        await knowledge.remove_document(document_id)
        return Response(status_code=204)

    @app.get("/knowledge/search")
    async def search_knowledge(
        query: str = Query(..., min_length=1),
        conversation_id: str | None = Query(None, alias="conversationId"),
        user_id: str | None = Header(None, alias="X-User-Id"),
        knowledge: KnowledgeService = Depends(get_knowledge_service),
    ) -> JSONResponse:
        scope = SearchScope(signed_in=bool(user_id and user_id.strip()), conversation_id=conversation_id)
        result = await knowledge.search(query, scope)
        return JSONResponse(result.to_dict())

    @app.get("/metrics")
    async def metrics_endpoint(metrics: MetricsRecorder | None = Depends(get_metrics)) -> Response:
        if metrics is None or not metrics.prometheus_enabled:
            raise HTTPException(status_code=404, detail="Prometheus metrics are disabled")
        return Response(content=metrics.render_prometheus(), media_type=metrics.prometheus_content_type)

    return app


__all__ = ["ApplicationState", "create_app"]
