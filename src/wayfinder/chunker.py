"""Split sanitised text into overlapping chunks for embedding."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List

_WORD_RE = re.compile(r"\w+")
_SENTENCE_SPLIT_RE = re.compile(r'(?<=[.!?])\s+(?=[A-Z0-9"\'\(])')

MAX_WORDS = 300
DEFAULT_OVERLAP_WORDS = 40


@dataclass(slots=True)
class Chunk:
    text: str
    index: int
    word_count: int


def _count_words(text: str) -> int:
    return len(_WORD_RE.findall(text))


def _split_units(text: str, max_words: int) -> List[str]:
    """Break text into lines, then sentences, then hard word windows."""

    units: List[str] = []
    for line in text.split("\n"):
        line = line.strip()
        if not line:
            continue
        if _count_words(line) <= max_words:
            units.append(line)
            continue
        for sentence in _SENTENCE_SPLIT_RE.split(line):
            sentence = sentence.strip()
            if not sentence:
                continue
            words = sentence.split()
            if len(words) <= max_words:
                units.append(sentence)
            else:
                units.extend(" ".join(words[i : i + max_words]) for i in range(0, len(words), max_words))
    return units


def chunk_text(
    text: str,
    *,
    max_words: int = MAX_WORDS,
    overlap_words: int = DEFAULT_OVERLAP_WORDS,
) -> List[Chunk]:
    text = text.strip()
    if not text:
        return []
    max_words = max(1, max_words)
    overlap_words = min(max(overlap_words, 0), max_words // 2)

    chunks: List[Chunk] = []
    current: List[str] = []
    current_words = 0

    def emit() -> None:
        body = "\n".join(current).strip()
        if body:
            chunks.append(Chunk(text=body, index=len(chunks), word_count=_count_words(body)))

    for unit in _split_units(text, max_words):
        unit_words = len(unit.split())
        if current and current_words + unit_words > max_words:
            emit()
            carry = " ".join(" ".join(current).split()[-overlap_words:]) if overlap_words else ""
            current = [carry] if carry else []
            current_words = len(carry.split())
        current.append(unit)
        current_words += unit_words

    if current:
        emit()
    return chunks


__all__ = ["Chunk", "chunk_text", "MAX_WORDS", "DEFAULT_OVERLAP_WORDS"]
