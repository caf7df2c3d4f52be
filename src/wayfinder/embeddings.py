"""Embedding service used by the knowledge store (OpenAI or SentenceTransformers)."""

from __future__ import annotations

from collections.abc import Sequence
from enum import Enum, auto
from typing import TYPE_CHECKING, Final, List, Protocol

from openai import OpenAI

from .config import Settings

if TYPE_CHECKING:  # pragma: no cover
    from sentence_transformers import SentenceTransformer

_OPENAI_DIMENSIONS: Final[dict[str, int]] = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
}


class Embedder(Protocol):
    """Anything that can turn texts into fixed-size vectors."""

    @property
    def dimension(self) -> int:
        ...

    def embed(self, texts: Sequence[str]) -> List[List[float]]:
        ...

    def embed_one(self, text: str) -> List[float]:
        ...


class EmbeddingBackend(Enum):
    OPENAI = auto()
    HUGGINGFACE = auto()


class EmbeddingService:
    """Embed document chunks and queries with the configured model."""

    def __init__(self, settings: Settings, *, validate: bool = True) -> None:
        self._settings = settings
        self._backend = EmbeddingBackend.OPENAI if settings.is_openai_backend else EmbeddingBackend.HUGGINGFACE
        self._dimension: int | None = None
        self._openai_client: OpenAI | None = None
        self._hf_model: "SentenceTransformer | None" = None

        if self._backend is EmbeddingBackend.OPENAI:
            self._setup_openai(validate)
        else:
            self._setup_huggingface(validate)

    @property
    def dimension(self) -> int:
        if self._dimension is None:
            raise RuntimeError("Embedding dimension is not initialised.")
        return self._dimension

    def embed(self, texts: Sequence[str]) -> List[List[float]]:
        """Generate embeddings for a sequence of texts."""

        if not texts:
            return []

        if self._backend is EmbeddingBackend.OPENAI:
            assert self._openai_client is not None
            result = self._openai_client.embeddings.create(
                model=self._settings.embedding_model,
                input=list(texts),
            )
            return [list(item.embedding) for item in result.data]

        assert self._hf_model is not None
        vectors = self._hf_model.encode(list(texts), show_progress_bar=False)
        if hasattr(vectors, "tolist"):
            return vectors.tolist()
        return [list(vector) for vector in vectors]

    def embed_one(self, text: str) -> List[float]:
        return self.embed([text])[0]

    def _setup_openai(self, validate: bool) -> None:
        if not self._settings.openai_api_key:
            raise ValueError("OPENAI_API_KEY must be set when using an OpenAI embedding model.")
        model = self._settings.embedding_model
        if model not in _OPENAI_DIMENSIONS:
            raise ValueError(f"Unsupported OpenAI embedding model '{model}'.")

        self._openai_client = OpenAI(api_key=self._settings.openai_api_key)
        self._dimension = _OPENAI_DIMENSIONS[model]
        if validate:
            self._openai_client.models.retrieve(model)

    def _setup_huggingface(self, validate: bool) -> None:
        # Imported lazily: loading torch is slow and only needed for this backend.
        from sentence_transformers import SentenceTransformer

        model_name = self._settings.embedding_model
        self._hf_model = SentenceTransformer(model_name)
        self._dimension = int(self._hf_model.get_sentence_embedding_dimension())
        if validate and self._dimension <= 0:
            raise ValueError(f"Unexpected embedding dimension ({self._dimension}) for model '{model_name}'.")


__all__ = ["Embedder", "EmbeddingBackend", "EmbeddingService"]
