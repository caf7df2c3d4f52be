"""HTTP content fetcher with a fixed retry schedule and MIME normalisation."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Final, Union
from urllib.parse import urlparse

import httpx

from . import mime_types
from .observability import MetricsRecorder


logger = logging.getLogger(__name__)

RETRIABLE_STATUS_CODES: Final[frozenset[int]] = frozenset({408, 500, 502, 504})
BACKOFF_SCHEDULE: Final[tuple[int, ...]] = (1, 1, 1, 2, 2, 3, 4, 5)
MAX_BACKOFF_SECONDS: Final[int] = 5
MAX_ATTEMPTS: Final[int] = 10
_ALLOWED_SCHEMES: Final[frozenset[str]] = frozenset({"http", "https"})

SleepFunc = Callable[[float], Awaitable[object]]


@dataclass(frozen=True, slots=True)
class FetchSuccess:
    """Fully buffered response body and its canonical MIME type."""

    content: bytes
    content_type: str

    def text(self) -> str:
        return self.content.decode("utf-8", errors="replace")


@dataclass(frozen=True, slots=True)
class FetchFailure:
    """Reason a URL could not be fetched."""

    reason: str


FetchOutcome = Union[FetchSuccess, FetchFailure]


@dataclass(slots=True)
class _AttemptResponse:
    status_code: int
    content_type: str
    body: bytes

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300


def backoff_delay(attempt: int) -> float:
    """Return the wait in seconds after the given 0-based attempt index."""

    if attempt < len(BACKOFF_SCHEDULE):
        return float(BACKOFF_SCHEDULE[attempt])
    return float(MAX_BACKOFF_SECONDS)


def fix_content_type(content_type: str, url: str) -> str:
    """Map a declared ``Content-Type`` header onto a canonical MIME type.

    GitHub and many other servers return ``text/plain`` for Markdown files, and
    legacy aliases are still common for Markdown and XML, so these are
    rewritten before the parameters are dropped.
    """

    if not content_type or not content_type.strip():
        raise ValueError("no content type")
    lowered = content_type.lower()

    if mime_types.PLAIN_TEXT in lowered and urlparse(url).path.lower().endswith(".md"):
        return mime_types.MARKDOWN

    if any(alias in lowered for alias in mime_types.MARKDOWN_LEGACY):
        return mime_types.MARKDOWN

    if mime_types.XML_LEGACY in lowered:
        return mime_types.XML

    return lowered.split(";", 1)[0].strip()


class WebFetcher:
    """Fetch web pages over a shared ``httpx.AsyncClient``.

    Responses with a retriable status (408, 500, 502, 504) and transport errors
    are retried following ``BACKOFF_SCHEDULE`` for at most ``MAX_ATTEMPTS``
    attempts. Every other status ends the attempt loop immediately.
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        *,
        timeout: float = 30.0,
        user_agent: str | None = None,
        sleep: SleepFunc = asyncio.sleep,
        metrics: MetricsRecorder | None = None,
    ) -> None:
        self._owns_client = client is None
        if client is None:
            headers = {"User-Agent": user_agent} if user_agent else None
            client = httpx.AsyncClient(timeout=timeout, follow_redirects=True, headers=headers)
        self._client = client
        self._sleep = sleep
        self._metrics = metrics

    async def __aenter__(self) -> "WebFetcher":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def fetch(self, url: str) -> FetchOutcome:
        try:
            scheme = urlparse(url).scheme.lower()
        except ValueError as exc:
            return FetchFailure(f"invalid url: {exc}")
        if scheme not in _ALLOWED_SCHEMES:
            return FetchFailure(f"unknown protocol: {scheme or '<none>'}")

        start = time.perf_counter()
        outcome = await self._fetch_with_retry(url)
        if self._metrics is not None:
            self._metrics.record_timing(
                "fetch.duration",
                time.perf_counter() - start,
                outcome="success" if isinstance(outcome, FetchSuccess) else "failure",
            )
        return outcome

    async def _fetch_with_retry(self, url: str) -> FetchOutcome:
        response: _AttemptResponse | None = None
        error: httpx.TransportError | None = None

        for attempt in range(MAX_ATTEMPTS):
            try:
                response = await self._attempt(url)
                error = None
            except httpx.TransportError as exc:
                response = None
                error = exc
            else:
                if response.status_code not in RETRIABLE_STATUS_CODES:
                    break

            if attempt + 1 >= MAX_ATTEMPTS:
                break
            delay = backoff_delay(attempt)
            logger.info(
                "fetch.retry url=%s status=%s error=%s attempt=%s delay=%s",
                url,
                response.status_code if response is not None else None,
                type(error).__name__ if error is not None else None,
                attempt + 1,
                delay,
            )
            if self._metrics is not None:
                self._metrics.increment("fetch.retries")
            await self._sleep(delay)

        if response is None:
            logger.warning("fetch.network_error url=%s error=%s", url, error)
            return FetchFailure(f"network error: {error}")

        if not response.is_success:
            logger.warning("fetch.http_error url=%s status=%s", url, response.status_code)
            return FetchFailure(f"HTTP error: {response.status_code}")

        if not response.content_type.strip():
            return FetchFailure("no content type")

        content_type = fix_content_type(response.content_type, url)
        logger.debug("fetch.completed url=%s content_type=%s bytes=%s", url, content_type, len(response.body))
        return FetchSuccess(content=response.body, content_type=content_type)

    async def _attempt(self, url: str) -> _AttemptResponse:
        async with self._client.stream("GET", url) as response:
            body = b""
            if response.is_success:
                # Buffer the body while the response is still open.
                body = await response.aread()
            return _AttemptResponse(
                status_code=response.status_code,
                content_type=response.headers.get("content-type", ""),
                body=body,
            )


__all__ = [
    "BACKOFF_SCHEDULE",
    "MAX_ATTEMPTS",
    "RETRIABLE_STATUS_CODES",
    "FetchFailure",
    "FetchOutcome",
    "FetchSuccess",
    "WebFetcher",
    "backoff_delay",
    "fix_content_type",
]
