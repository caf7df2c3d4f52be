"""Qdrant vector store helpers."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, List, Sequence

from qdrant_client import QdrantClient, models


logger = logging.getLogger(__name__)

INDEXED_PAYLOAD_FIELDS: dict[str, models.PayloadSchemaType] = {
    "doc_id": models.PayloadSchemaType.KEYWORD,
    "tags": models.PayloadSchemaType.KEYWORD,
}


@dataclass(slots=True)
class VectorRecord:
    """Payload representing a vector to be stored in Qdrant."""

    id: int | str
    vector: Sequence[float]
    payload: dict[str, Any] | None = None


@dataclass(slots=True)
class ScoredPoint:
    id: int | str
    score: float
    payload: dict[str, Any] | None


class QdrantVectorStore:
    """Thin wrapper around a single Qdrant collection."""

    def __init__(
        self,
        client: QdrantClient,
        collection_name: str,
        *,
        vector_size: int,
        distance: models.Distance = models.Distance.COSINE,
    ) -> None:
        if vector_size <= 0:
            raise ValueError("vector_size must be a positive integer")
        self._client = client
        self._collection_name = collection_name
        self._vector_size = vector_size
        self._distance = distance

    def ensure_collection(self) -> None:
        """Create the collection, recreating it if the vector size changed."""

        if not self._client.collection_exists(self._collection_name):
            self._create_collection()
            return

        info = self._client.get_collection(self._collection_name)
        existing_size = info.config.params.vectors.size
        if existing_size != self._vector_size:
            logger.warning(
                "Qdrant collection '%s' has vector size %s but %s is expected; recreating it (stored vectors will be lost).",
                self._collection_name,
                existing_size,
                self._vector_size,
            )
            self._client.delete_collection(self._collection_name)
            self._create_collection()

    def ensure_payload_indexes(self) -> None:
        for field_name, schema in INDEXED_PAYLOAD_FIELDS.items():
            try:
                self._client.create_payload_index(
                    collection_name=self._collection_name,
                    field_name=field_name,
                    field_schema=schema,
                )
            except Exception as exc:  # pragma: no cover - already exists
                if "exists" in str(exc).lower():
                    continue
                logger.warning(
                    "Failed to create payload index for field '%s' on '%s': %s",
                    field_name,
                    self._collection_name,
                    exc,
                )

    def upsert(self, records: Sequence[VectorRecord], *, wait: bool = True) -> None:
        if not records:
            return
        points: list[models.PointStruct] = []
        for record in records:
            vector = list(record.vector)
            if len(vector) != self._vector_size:
                raise ValueError(
                    f"Vector for id {record.id!r} has length {len(vector)}, expected {self._vector_size}."
                )
            points.append(models.PointStruct(id=record.id, vector=vector, payload=record.payload or {}))
        self._client.upsert(collection_name=self._collection_name, points=points, wait=wait)

    def search(
        self,
        vector: Sequence[float],
        *,
        limit: int = 5,
        query_filter: models.Filter | None = None,
    ) -> List[ScoredPoint]:
        query_vector = list(vector)
        if len(query_vector) != self._vector_size:
            raise ValueError(f"Query vector has length {len(query_vector)}, expected {self._vector_size}.")

        response = self._client.query_points(
            collection_name=self._collection_name,
            query=query_vector,
            query_filter=query_filter,
            limit=limit,
            with_payload=True,
        )
        return [
            ScoredPoint(id=point.id, score=point.score, payload=dict(point.payload) if point.payload else None)
            for point in response.points
        ]

    def iter_payloads(
        self,
        *,
        scroll_filter: models.Filter | None = None,
        batch_size: int = 256,
    ) -> Iterable[dict[str, Any]]:
        """Yield payloads for every point matching the optional filter."""

        offset = None
        while True:
            points, offset = self._client.scroll(
                collection_name=self._collection_name,
                scroll_filter=scroll_filter,
                with_payload=True,
                limit=batch_size,
                offset=offset,
            )
            for point in points:
                if point.payload:
                    yield dict(point.payload)
            if offset is None:
                break

    def delete_by_filter(self, flt: models.Filter) -> models.UpdateResult:
        return self._client.delete(
            collection_name=self._collection_name,
            points_selector=models.FilterSelector(filter=flt),
        )

    def _create_collection(self) -> None:
        self._client.create_collection(
            collection_name=self._collection_name,
            vectors_config=models.VectorParams(size=self._vector_size, distance=self._distance),
        )


__all__ = ["QdrantVectorStore", "ScoredPoint", "VectorRecord"]
