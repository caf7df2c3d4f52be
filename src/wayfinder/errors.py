"""Exception types raised by the web search and ingestion pipeline."""

from __future__ import annotations


class WayfinderError(Exception):
    """Base class for pipeline errors."""


class InvalidArgumentError(WayfinderError, ValueError):
    """Raised when a caller supplies an argument that can never succeed."""


class WebPageImportError(WayfinderError):
    """Raised when a web page cannot be fetched for import."""

    def __init__(self, url: str, reason: str) -> None:
        super().__init__(f"Failed to import {url}: {reason}")
        self.url = url
        self.reason = reason


class SearchProviderError(WayfinderError):
    """Raised when the external text search provider rejects a request."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


__all__ = [
    "WayfinderError",
    "InvalidArgumentError",
    "WebPageImportError",
    "SearchProviderError",
]
