"""Configuration helpers for the Wayfinder service."""

from __future__ import annotations

from dataclasses import dataclass
import os
from typing import TYPE_CHECKING, Any, Final

try:  # pragma: no cover - optional dependency loaded at runtime
    from dotenv import load_dotenv
except Exception:  # pragma: no cover
    load_dotenv = None

if load_dotenv is not None:
    load_dotenv()

if TYPE_CHECKING:  # pragma: no cover
    from .observability import MetricsRecorder

_DEFAULT_SEARCH_TOP: Final[int] = 3
_DEFAULT_FETCH_TIMEOUT: Final[float] = 30.0
_DEFAULT_USER_AGENT: Final[str] = "Wayfinder-WebScraper/1.0"
_DEFAULT_QDRANT_URL: Final[str] = "http://localhost:6333"
_DEFAULT_QDRANT_COLLECTION: Final[str] = "knowledge"
_DEFAULT_EMBEDDING_MODEL: Final[str] = "sentence-transformers/all-MiniLM-L6-v2"
_DEFAULT_KNOWLEDGE_SEARCH_LIMIT: Final[int] = 3
_DEFAULT_CHUNK_MAX_WORDS: Final[int] = 300
_DEFAULT_CHUNK_OVERLAP_WORDS: Final[int] = 40
_OPENAI_MODEL_PREFIX: Final[str] = "text-embedding-"


def _env_optional_bool(name: str) -> bool | None:
    """Read an optional boolean environment variable."""

    raw = os.getenv(name)
    if raw is None:
        return None
    value = raw.strip().lower()
    if value in {"1", "true", "yes", "on"}:
        return True
    if value in {"0", "false", "no", "off"}:
        return False
    msg = f"Environment variable {name} must be a boolean value (true/false)."
    raise ValueError(msg)


def _env_optional_int(name: str) -> int | None:
    """Read an optional integer environment variable."""

    raw = os.getenv(name)
    if raw is None:
        return None
    value = raw.strip()
    if not value:
        return None
    try:
        return int(value)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be an integer") from exc


def _env_optional_float(name: str) -> float | None:
    raw = os.getenv(name)
    if raw is None:
        return None
    value = raw.strip()
    if not value:
        return None
    try:
        return float(value)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be a float") from exc


def _env_int(name: str, default: int) -> int:
    value = _env_optional_int(name)
    return default if value is None else value


def _env_bool(name: str, default: bool) -> bool:
    value = _env_optional_bool(name)
    return default if value is None else value


@dataclass(slots=True)
class Settings:
    """Runtime settings loaded from environment variables."""

    google_api_key: str | None = None
    google_search_engine_id: str | None = None
    search_default_top: int = _DEFAULT_SEARCH_TOP
    fetch_timeout: float = _DEFAULT_FETCH_TIMEOUT
    fetch_user_agent: str = _DEFAULT_USER_AGENT
    fetch_max_concurrency: int | None = None
    qdrant_url: str = _DEFAULT_QDRANT_URL
    qdrant_api_key: str | None = None
    qdrant_collection: str = _DEFAULT_QDRANT_COLLECTION
    embedding_model: str = _DEFAULT_EMBEDDING_MODEL
    openai_api_key: str | None = None
    knowledge_search_limit: int = _DEFAULT_KNOWLEDGE_SEARCH_LIMIT
    chunk_max_words: int = _DEFAULT_CHUNK_MAX_WORDS
    chunk_overlap_words: int = _DEFAULT_CHUNK_OVERLAP_WORDS
    observability_metrics_enabled: bool = True
    observability_namespace: str = "wayfinder"
    observability_prometheus_enabled: bool = False

    @classmethod
    def from_env(cls) -> "Settings":
        """Create settings by reading environment variables."""

        concurrency = _env_optional_int("WAYFINDER_FETCH_CONCURRENCY")
        timeout = _env_optional_float("WAYFINDER_FETCH_TIMEOUT")

        return cls(
            google_api_key=os.getenv("GOOGLE_API_KEY"),
            google_search_engine_id=os.getenv("GOOGLE_SEARCH_ENGINE_ID"),
            search_default_top=max(1, _env_int("WAYFINDER_SEARCH_TOP", _DEFAULT_SEARCH_TOP)),
            fetch_timeout=_DEFAULT_FETCH_TIMEOUT if timeout is None else timeout,
            fetch_user_agent=os.getenv("WAYFINDER_USER_AGENT", _DEFAULT_USER_AGENT),
            fetch_max_concurrency=concurrency if concurrency and concurrency > 0 else None,
            qdrant_url=os.getenv("QDRANT_URL", _DEFAULT_QDRANT_URL),
            qdrant_api_key=os.getenv("QDRANT_API_KEY"),
            qdrant_collection=os.getenv("QDRANT_COLLECTION", _DEFAULT_QDRANT_COLLECTION),
            embedding_model=os.getenv("EMBEDDING_MODEL", _DEFAULT_EMBEDDING_MODEL),
            openai_api_key=os.getenv("OPENAI_API_KEY"),
            knowledge_search_limit=max(
                1,
                _env_int("KNOWLEDGE_SEARCH_LIMIT", _DEFAULT_KNOWLEDGE_SEARCH_LIMIT),
            ),
            chunk_max_words=max(16, _env_int("CHUNK_MAX_WORDS", _DEFAULT_CHUNK_MAX_WORDS)),
            chunk_overlap_words=max(0, _env_int("CHUNK_OVERLAP_WORDS", _DEFAULT_CHUNK_OVERLAP_WORDS)),
            observability_metrics_enabled=_env_bool("OBSERVABILITY_METRICS_ENABLED", True),
            observability_namespace=os.getenv("OBSERVABILITY_NAMESPACE", "wayfinder"),
            observability_prometheus_enabled=_env_bool("OBSERVABILITY_PROMETHEUS_ENABLED", False),
        )

    @property
    def is_openai_backend(self) -> bool:
        """Return True when embeddings should be produced by OpenAI."""

        return self.embedding_model.startswith(_OPENAI_MODEL_PREFIX)

    @property
    def google_search_configured(self) -> bool:
        return bool(self.google_api_key and self.google_search_engine_id)

    def qdrant_client_kwargs(self) -> dict[str, Any]:
        """Configuration arguments for instantiating a Qdrant client."""

        if self.qdrant_url == ":memory:":
            return {"location": ":memory:"}
        kwargs: dict[str, Any] = {"url": self.qdrant_url}
        if self.qdrant_api_key:
            kwargs["api_key"] = self.qdrant_api_key
        return kwargs

    def http_client_kwargs(self) -> dict[str, Any]:
        """Arguments for the shared ``httpx.AsyncClient`` used to fetch pages."""

        return {
            "timeout": self.fetch_timeout,
            "follow_redirects": True,
            "headers": {"User-Agent": self.fetch_user_agent},
        }

    def build_metrics_recorder(self) -> "MetricsRecorder":
        """Instantiate the configured metrics recorder."""

        from .observability import MetricsRecorder

        return MetricsRecorder(
            enabled=self.observability_metrics_enabled,
            namespace=self.observability_namespace,
            prometheus_enabled=self.observability_prometheus_enabled,
        )
