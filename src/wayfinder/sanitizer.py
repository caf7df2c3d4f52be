"""Flatten HTML into normalised plain text."""

from __future__ import annotations

import html
import re
from typing import Final

_SCRIPT_RE: Final = re.compile(r"<script[\s\S]*?</script>", re.IGNORECASE)
_STYLE_RE: Final = re.compile(r"<style[\s\S]*?</style>", re.IGNORECASE)
_NOSCRIPT_RE: Final = re.compile(r"<noscript[\s\S]*?</noscript>", re.IGNORECASE)
_FORM_INPUT_RE: Final = re.compile(r"<(input|textarea|select)[\s\S]*?>", re.IGNORECASE)
_BR_RE: Final = re.compile(r"<br\s*/?>", re.IGNORECASE)
_PARAGRAPH_END_RE: Final = re.compile(r"</p\s*>", re.IGNORECASE)
_TAG_RE: Final = re.compile(r"<[^>]+>")
_WHITESPACE_RUN_RE: Final = re.compile(r"\s{2,}")

DEFAULT_TRUNCATE_LIMIT: Final[int] = 4000


def clean_html(markup: str | None) -> str:
    """Return the visible text of ``markup`` with whitespace collapsed.

    Steps run in a fixed order: drop script/style/noscript blocks and form
    controls, turn ``<br>`` and ``</p>`` into newlines, replace remaining tags
    with a space, decode entities, then collapse whitespace runs and trim.
    """

    if not markup or not markup.strip():
        return ""

    text = _SCRIPT_RE.sub("", markup)
    text = _STYLE_RE.sub("", text)
    text = _NOSCRIPT_RE.sub("", text)

    text = _FORM_INPUT_RE.sub("", text)

    text = _BR_RE.sub("\n", text)
    text = _PARAGRAPH_END_RE.sub("\n", text)

    text = _TAG_RE.sub(" ", text)
    text = html.unescape(text)

    return _WHITESPACE_RUN_RE.sub(" ", text).strip()


def truncate_text(text: str, limit: int = DEFAULT_TRUNCATE_LIMIT) -> str:
    if limit <= 0 or len(text) <= limit:
        return text
    return text[:limit] + "..."


__all__ = ["clean_html", "truncate_text", "DEFAULT_TRUNCATE_LIMIT"]
