"""Caller-facing web search operations built on the retrieval pipeline."""

from __future__ import annotations

import asyncio
import json
import logging

from .knowledge import KnowledgeSearchResult, KnowledgeService
from .observability import MetricsRecorder
from .retrieval import PageContent, WebPageRetriever
from .sanitizer import DEFAULT_TRUNCATE_LIMIT, truncate_text
from .search import TextSearchService


logger = logging.getLogger(__name__)


class WebSearchService:
    """Search the web and either return page text or ingest it per conversation."""

    def __init__(
        self,
        search_service: TextSearchService,
        retriever: WebPageRetriever,
        knowledge_service: KnowledgeService | None = None,
        *,
        default_top: int = 3,
        metrics: MetricsRecorder | None = None,
    ) -> None:
        self._search = search_service
        self._retriever = retriever
        self._knowledge = knowledge_service
        self._default_top = max(1, default_top)
        self._metrics = metrics

    async def search_pages(self, query: str, top: int | None = None) -> list[PageContent]:
        top = self._default_top if top is None else top
        results = await self._search.collect(query, top)
        logger.info("web_search.results query=%r top=%s found=%s", query, top, len(results))
        if self._metrics is not None:
            with self._metrics.track_timing("web_search.retrieval", top=top):
                return await self._retriever.retrieve_all(results)
        return await self._retriever.retrieve_all(results)

    async def search_online(self, query: str, top: int | None = None) -> str:
        """Return a JSON array of ``{"url", "content"}`` objects for ``query``."""

        pages = await self.search_pages(query, top)
        return json.dumps([page.to_dict() for page in pages], ensure_ascii=False)

    async def search_and_ingest(
        self,
        query: str,
        conversation_id: str,
        top: int | None = None,
        *,
        max_chars: int = DEFAULT_TRUNCATE_LIMIT,
    ) -> KnowledgeSearchResult:
        """Import every linked page into the conversation, then search it."""

        knowledge = self._knowledge
        if knowledge is None:
            raise RuntimeError("Knowledge service is not configured")
        top = self._default_top if top is None else top
        results = await self._search.collect(query, top)
        links = [result.link.strip() for result in results if result.has_link]

        imported = await asyncio.gather(
            *(self._import_quietly(knowledge, url, conversation_id) for url in links)
        )
        logger.info(
            "web_search.ingested conversation=%s requested=%s imported=%s",
            conversation_id,
            len(links),
            sum(1 for document_id in imported if document_id),
        )

        found = await knowledge.search_per_conversation(query, conversation_id)
        for hit in found.hits:
            hit.text = truncate_text(hit.text, max_chars)
        return found

    async def _import_quietly(self, knowledge: KnowledgeService, url: str, conversation_id: str) -> str | None:
        try:
            return await knowledge.import_web_page(url, conversation_id=conversation_id)
        except Exception as exc:
            logger.warning("web_search.import_failed url=%s error=%s", url, exc)
            return None


__all__ = ["WebSearchService"]
