"""MIME type constants recognised by the content fetcher."""

from __future__ import annotations

from typing import Final

PLAIN_TEXT: Final[str] = "text/plain"

# Servers have labelled Markdown several ways over the years.
MARKDOWN: Final[str] = "text/markdown"
MARKDOWN_LEGACY: Final[tuple[str, ...]] = ("text/x-markdown", "text/plain-markdown")

HTML: Final[str] = "text/html"
XHTML: Final[str] = "application/xhtml+xml"
XML: Final[str] = "application/xml"
XML_LEGACY: Final[str] = "text/xml"

HTML_TYPES: Final[frozenset[str]] = frozenset({HTML, XHTML})


def is_html(content_type: str | None) -> bool:
    return bool(content_type) and content_type in HTML_TYPES
