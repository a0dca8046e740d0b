"""Split normalized record text into overlapping chunks for embedding."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass

_WHITESPACE_RE = re.compile(r"\s+")


@dataclass(frozen=True)
class TextChunk:
    content: str
    token_count: int
    index: int


def estimate_tokens(text: str) -> int:
    """Rough token estimate (~4 characters per token)."""
    return math.ceil(len(text) / 4)


def chunk_text(text: str, max_chars: int = 8000, overlap_chars: int = 1200) -> list[TextChunk]:
    """Collapse whitespace and cut the text into overlapping windows.

    Consecutive chunks share ``overlap_chars`` characters; the last chunk ends
    exactly at the end of the text.

    Args:
        text: Raw text (header and body of a record).
        max_chars: Maximum characters per chunk.
        overlap_chars: Characters repeated at the start of the next chunk.

    Returns:
        Chunks in order; empty when the text is blank.

    Raises:
        ValueError: If overlap_chars is not smaller than max_chars.
    """
    if max_chars < 1:
        raise ValueError("max_chars must be >= 1")
    if not 0 <= overlap_chars < max_chars:
        raise ValueError("overlap_chars must be >= 0 and smaller than max_chars")

    normalized = _WHITESPACE_RE.sub(" ", text or "").strip()
    if not normalized:
        return []

    chunks: list[TextChunk] = []
    start = 0
    while True:
        end = min(start + max_chars, len(normalized))
        piece = normalized[start:end]
        chunks.append(TextChunk(content=piece, token_count=estimate_tokens(piece), index=len(chunks)))
        if end == len(normalized):
            return chunks
        start = end - overlap_chars
