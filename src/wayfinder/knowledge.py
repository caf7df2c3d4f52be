"""Tagged knowledge store and the two-tier fallback search built on it."""

from __future__ import annotations

import asyncio
import logging
import mimetypes
from dataclasses import dataclass, field
from enum import Enum
from pathlib import PurePosixPath
from typing import Any, Iterable, Protocol
from urllib.parse import urlparse
from uuid import uuid4

from qdrant_client import QdrantClient, models

from .chunker import DEFAULT_OVERLAP_WORDS, MAX_WORDS, chunk_text
from .config import Settings
from .embeddings import Embedder
from .errors import InvalidArgumentError, WebPageImportError
from .fetcher import FetchFailure, WebFetcher
from .mime_types import is_html
from .observability import MetricsRecorder
from .sanitizer import clean_html
from .vector_store import QdrantVectorStore, VectorRecord


logger = logging.getLogger(__name__)

ACCESS_TAG = "access"
CONVERSATION_TAG = "conversationId"
SOURCE_URL_TAG = "sourceUrl"

TIER_GLOBAL = "global"
TIER_CONVERSATION = "conversation"

_DEFAULT_SEARCH_LIMIT = 3


def format_tag(key: str, value: str) -> str:
    return f"{key}={value}"


def parse_tag(tag: str) -> tuple[str, str]:
    key, _, value = tag.partition("=")
    return key, value


class AccessLevel(str, Enum):
    """Visibility of an ingested document."""

    PUBLIC = "public"
    PRIVATE = "private"

    @classmethod
    def parse(cls, value: "AccessLevel | str") -> "AccessLevel":
        if isinstance(value, AccessLevel):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError as exc:
            raise InvalidArgumentError(f"Unknown access level: {value!r}") from exc


@dataclass(frozen=True, slots=True)
class DocumentTags:
    """Tags attached to a document at import time."""

    access: AccessLevel | None = None
    conversation_id: str | None = None
    source_url: str | None = None

    def to_wire(self) -> set[str]:
        """Render the tags in the store's ``key=value`` string format."""

        tags: set[str] = set()
        if self.access is not None:
            tags.add(format_tag(ACCESS_TAG, self.access.value))
        if self.conversation_id:
            tags.add(format_tag(CONVERSATION_TAG, self.conversation_id))
        if self.source_url:
            tags.add(format_tag(SOURCE_URL_TAG, self.source_url))
        return tags

    @classmethod
    def from_wire(cls, tags: Iterable[str]) -> "DocumentTags":
        values: dict[str, str] = {}
        for tag in tags:
            key, value = parse_tag(tag)
            values.setdefault(key, value)
        access = values.get(ACCESS_TAG)
        return cls(
            access=AccessLevel(access) if access in {"public", "private"} else None,
            conversation_id=values.get(CONVERSATION_TAG),
            source_url=values.get(SOURCE_URL_TAG),
        )


@dataclass(frozen=True, slots=True)
class SearchScope:
    """Who is searching and from which conversation."""

    signed_in: bool = False
    conversation_id: str | None = None

    def access_filter(self) -> list[str]:
        levels = [AccessLevel.PUBLIC, AccessLevel.PRIVATE] if self.signed_in else [AccessLevel.PUBLIC]
        return [format_tag(ACCESS_TAG, level.value) for level in levels]

    def conversation_filter(self) -> list[str]:
        if not self.conversation_id:
            return []
        return [format_tag(CONVERSATION_TAG, self.conversation_id)]


@dataclass(slots=True)
class KnowledgeHit:
    document_id: str
    text: str
    score: float
    tags: tuple[str, ...] = ()

    @property
    def source_url(self) -> str | None:
        return DocumentTags.from_wire(self.tags).source_url

    def to_dict(self) -> dict[str, Any]:
        return {
            "documentId": self.document_id,
            "text": self.text,
            "score": self.score,
            "tags": list(self.tags),
            "sourceUrl": self.source_url,
        }


@dataclass(slots=True)
class KnowledgeSearchResult:
    query: str
    hits: list[KnowledgeHit] = field(default_factory=list)
    tier: str | None = None

    @property
    def no_result(self) -> bool:
        return not self.hits

    def to_dict(self) -> dict[str, Any]:
        return {
            "query": self.query,
            "tier": self.tier,
            "noResult": self.no_result,
            "results": [hit.to_dict() for hit in self.hits],
        }


class KnowledgeStore(Protocol):
    """Opaque tagged document store.

    ``tag_filter`` entries are OR-matched; an empty filter searches everything.
    """

    def import_text(self, text: str, *, tags: set[str], file_name: str) -> str:
        ...

    def delete(self, document_id: str) -> None:
        ...

    def search(self, query: str, *, tag_filter: list[str], limit: int) -> list[KnowledgeHit]:
        ...

    def find_documents(self, *, tag_filter: list[str]) -> list[str]:
        ...


class QdrantKnowledgeStore:
    """Knowledge store backed by a Qdrant collection of embedded chunks."""

    def __init__(
        self,
        vector_store: QdrantVectorStore,
        embedder: Embedder,
        *,
        max_words: int = MAX_WORDS,
        overlap_words: int = DEFAULT_OVERLAP_WORDS,
    ) -> None:
        self._store = vector_store
        self._embedder = embedder
        self._max_words = max_words
        self._overlap_words = overlap_words

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        embedder: Embedder,
        *,
        client: QdrantClient | None = None,
    ) -> "QdrantKnowledgeStore":
        client = client or QdrantClient(**settings.qdrant_client_kwargs())
        vector_store = QdrantVectorStore(client, settings.qdrant_collection, vector_size=embedder.dimension)
        vector_store.ensure_collection()
        vector_store.ensure_payload_indexes()
        return cls(
            vector_store,
            embedder,
            max_words=settings.chunk_max_words,
            overlap_words=settings.chunk_overlap_words,
        )

    def import_text(self, text: str, *, tags: set[str], file_name: str) -> str:
        chunks = chunk_text(text, max_words=self._max_words, overlap_words=self._overlap_words)
        if not chunks:
            raise ValueError("No textual content could be extracted from the document")

        document_id = uuid4().hex
        vectors = self._embedder.embed([chunk.text for chunk in chunks])
        sorted_tags = sorted(tags)
        records = [
            VectorRecord(
                id=str(uuid4()),
                vector=vector,
                payload={
                    "doc_id": document_id,
                    "text": chunk.text,
                    "tags": sorted_tags,
                    "source": file_name,
                    "chunk_index": chunk.index,
                },
            )
            for chunk, vector in zip(chunks, vectors, strict=True)
        ]
        self._store.upsert(records)
        return document_id

    def delete(self, document_id: str) -> None:
        self._store.delete_by_filter(_match_filter("doc_id", document_id))

    def search(self, query: str, *, tag_filter: list[str], limit: int) -> list[KnowledgeHit]:
        vector = self._embedder.embed_one(query)
        hits: list[KnowledgeHit] = []
        for point in self._store.search(vector, limit=limit, query_filter=_tags_filter(tag_filter)):
            payload = point.payload or {}
            hits.append(
                KnowledgeHit(
                    document_id=str(payload.get("doc_id", point.id)),
                    text=str(payload.get("text", "")),
                    score=point.score,
                    tags=tuple(payload.get("tags") or ()),
                )
            )
        return hits

    def find_documents(self, *, tag_filter: list[str]) -> list[str]:
        document_ids: list[str] = []
        for payload in self._store.iter_payloads(scroll_filter=_tags_filter(tag_filter)):
            doc_id = payload.get("doc_id")
            if doc_id and doc_id not in document_ids:
                document_ids.append(doc_id)
        return document_ids


def _match_filter(key: str, value: str) -> models.Filter:
    return models.Filter(must=[models.FieldCondition(key=key, match=models.MatchValue(value=value))])


def _tags_filter(tag_filter: list[str]) -> models.Filter | None:
    if not tag_filter:
        return None
    return models.Filter(must=[models.FieldCondition(key="tags", match=models.MatchAny(any=list(tag_filter)))])


def require_web_url(url: str) -> str:
    """Return ``url`` stripped, or raise if it is not an absolute http(s) URL."""

    candidate = (url or "").strip()
    try:
        parsed = urlparse(candidate)
    except ValueError as exc:
        raise InvalidArgumentError("Invalid URL provided.") from exc
    if parsed.scheme.lower() not in {"http", "https"} or not parsed.netloc:
        raise InvalidArgumentError("Invalid URL provided.")
    return candidate


def _file_name_for_url(url: str) -> str:
    name = PurePosixPath(urlparse(url).path).name
    return name or "webpage.html"


class KnowledgeService:
    """Import documents with access/conversation tags and search them.

    Searches run in two tiers. The first is filtered by the access levels the
    caller may see; when it finds nothing and the caller is inside a
    conversation, the same query is repeated against the documents imported
    into that conversation only.
    """

    def __init__(
        self,
        store: KnowledgeStore,
        fetcher: WebFetcher,
        *,
        search_limit: int = _DEFAULT_SEARCH_LIMIT,
        metrics: MetricsRecorder | None = None,
    ) -> None:
        self._store = store
        self._fetcher = fetcher
        self._search_limit = max(1, search_limit)
        self._metrics = metrics

    async def import_document(
        self,
        content: bytes | str,
        file_name: str,
        access: AccessLevel | str,
    ) -> str:
        text = content.decode("utf-8", errors="replace") if isinstance(content, bytes) else content
        if is_html(mimetypes.guess_type(file_name)[0]):
            text = clean_html(text)
        return await self.import_text_content(text, file_name, access)

    async def import_text_content(self, content: str, file_name: str, access: AccessLevel | str) -> str:
        if not content or not content.strip():
            raise InvalidArgumentError("Content cannot be null or empty.")
        tags = DocumentTags(access=AccessLevel.parse(access))
        return await self._import(content, tags, file_name)

    async def import_web_page(
        self,
        url: str,
        access: AccessLevel | str | None = None,
        *,
        conversation_id: str | None = None,
    ) -> str:
        url = require_web_url(url)
        if access is None and not conversation_id:
            raise InvalidArgumentError("An access level or a conversation id is required.")

        outcome = await self._fetcher.fetch(url)
        if isinstance(outcome, FetchFailure):
            raise WebPageImportError(url, outcome.reason)

        text = clean_html(outcome.text())
        if not text:
            raise WebPageImportError(url, "no textual content")

        tags = DocumentTags(
            access=AccessLevel.parse(access) if access is not None else None,
            conversation_id=conversation_id or None,
            source_url=url,
        )
        return await self._import(text, tags, _file_name_for_url(url))

    async def remove_document(self, document_id: str) -> None:
        """Delete a document; unknown ids are a no-op."""

        if not document_id or not document_id.strip():
            raise InvalidArgumentError("Document id is required.")
        await asyncio.to_thread(self._store.delete, document_id)
        logger.info("knowledge.removed doc_id=%s", document_id)

    async def search(self, query: str, scope: SearchScope) -> KnowledgeSearchResult:
        hits = await self._search_tier(query, scope.access_filter())
        if hits:
            return self._result(query, hits, TIER_GLOBAL)
        if not scope.conversation_id:
            return self._result(query, [], None)

        logger.debug("knowledge.fallback conversation=%s query=%r", scope.conversation_id, query)
        hits = await self._search_tier(query, scope.conversation_filter())
        return self._result(query, hits, TIER_CONVERSATION if hits else None)

    async def search_per_conversation(self, query: str, conversation_id: str) -> KnowledgeSearchResult:
        scope = SearchScope(conversation_id=conversation_id)
        hits = await self._search_tier(query, scope.conversation_filter())
        return self._result(query, hits, TIER_CONVERSATION if hits else None)

    async def clear_conversation_documents(self, conversation_id: str) -> int:
        """Delete every document tagged with ``conversation_id``; returns the count removed."""

        tag_filter = SearchScope(conversation_id=conversation_id).conversation_filter()
        if not tag_filter:
            raise InvalidArgumentError("Conversation id is required.")
        document_ids = await asyncio.to_thread(lambda: self._store.find_documents(tag_filter=tag_filter))
        removed = 0
        for document_id in document_ids:
            try:
                await asyncio.to_thread(self._store.delete, document_id)
            except Exception:
                logger.warning(
                    "knowledge.clear_failed conversation=%s doc_id=%s",
                    conversation_id,
                    document_id,
                    exc_info=True,
                )
                continue
            removed += 1
        logger.info("knowledge.cleared conversation=%s removed=%s", conversation_id, removed)
        return removed

    async def _import(self, text: str, tags: DocumentTags, file_name: str) -> str:
        wire_tags = tags.to_wire()
        document_id = await asyncio.to_thread(
            lambda: self._store.import_text(text, tags=wire_tags, file_name=file_name)
        )
        logger.info("knowledge.imported doc_id=%s file=%s tags=%s", document_id, file_name, sorted(wire_tags))
        if self._metrics is not None:
            self._metrics.increment(
                "knowledge.imports",
                access=tags.access.value if tags.access else "none",
                scoped=bool(tags.conversation_id),
            )
        return document_id

    async def _search_tier(self, query: str, tag_filter: list[str]) -> list[KnowledgeHit]:
        return await asyncio.to_thread(
            lambda: self._store.search(query, tag_filter=tag_filter, limit=self._search_limit)
        )

    def _result(self, query: str, hits: list[KnowledgeHit], tier: str | None) -> KnowledgeSearchResult:
        if self._metrics is not None:
            self._metrics.increment("knowledge.searches", tier=tier or "none")
        return KnowledgeSearchResult(query=query, hits=hits, tier=tier)


__all__ = [
    "AccessLevel",
    "DocumentTags",
    "KnowledgeHit",
    "KnowledgeSearchResult",
    "KnowledgeService",
    "KnowledgeStore",
    "QdrantKnowledgeStore",
    "SearchScope",
    "require_web_url",
]
