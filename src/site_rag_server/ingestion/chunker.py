"""
Text Cleaning & Semantic Chunking

Turns extracted page text into bounded passages sized for embedding.

Chunk boundaries follow paragraph and sentence boundaries. The only place a
sentence is ever cut is the fallback for a single sentence longer than the
target size, which is windowed by characters with overlap.
"""

from __future__ import annotations

import logging
import re
from typing import List

logger = logging.getLogger("rag.chunker")

_WHITESPACE_RE = re.compile(r"\s+")
_ZERO_WIDTH_RE = re.compile("[\u200b-\u200d\ufeff]")
_PARAGRAPH_RE = re.compile(r"\n\s*\n")
_SENTENCE_RE = re.compile(r"(?<=[.!?])\s+(?=[A-Z])")

# Sentences carried into the next chunk after a size-triggered flush.
OVERLAP_SENTENCES = 2
# Sentences remembered while accumulating, for the overlap above.
RECENT_SENTENCES = 3


def clean_text(raw: str) -> str:
    """
    Normalize raw page text: collapse whitespace (including NBSP), drop
    zero-width characters and trim.
    """
    if not raw:
        return ""

    text = raw.replace("\u00a0", " ")
    text = _ZERO_WIDTH_RE.sub("", text)
    text = _WHITESPACE_RE.sub(" ", text)
    return text.strip()


def split_paragraphs(text: str) -> List[str]:
    return [p for p in _PARAGRAPH_RE.split(text) if p.strip()]


def split_sentences(paragraph: str) -> List[str]:
    return [s.strip() for s in _SENTENCE_RE.split(paragraph) if s.strip()]


def split_by_characters(text: str, chunk_size: int, chunk_overlap: int) -> List[str]:
    """
    Fixed-window fallback for text with no usable sentence boundary.

    Windows advance by ``chunk_size - chunk_overlap`` characters so that
    consecutive windows share ``chunk_overlap`` characters.
    """
    step = max(1, chunk_size - chunk_overlap)
    chunks: List[str] = []
    start = 0

    while start < len(text):
        piece = text[start : start + chunk_size].strip()
        if piece:
            chunks.append(piece)
        if start + chunk_size >= len(text):
            break
        start += step

    return chunks


def chunk_text(
    text: str,
    chunk_size: int = 1000,
    chunk_overlap: int = 150,
) -> List[str]:
    """
    Split text into ordered passages that respect sentence boundaries.

    Parameters
    ----------
    text : str
        Input text. Paragraphs are separated by blank lines.
    chunk_size : int
        Target maximum passage length in characters.
    chunk_overlap : int
        Character overlap used only by the oversized-sentence fallback.

    Returns
    -------
    List[str]
        Passages in document order. Empty for empty input.

    Notes
    -----
    When the next sentence would overflow a non-empty buffer, the buffer is
    flushed and the new one starts with the last one or two sentences of the
    flushed chunk followed by the triggering sentence. After each paragraph
    a buffer already past half the target size is flushed, so splits prefer
    paragraph boundaries over mid-paragraph ones.
    """
    if not text or not text.strip():
        return []

    if chunk_overlap >= chunk_size:
        raise ValueError("chunk_overlap must be smaller than chunk_size")

    chunks: List[str] = []
    current = ""
    recent: List[str] = []

    def flush() -> None:
        nonlocal current
        if current.strip():
            chunks.append(current.strip())
        current = ""

    for paragraph in split_paragraphs(text):
        for sentence in split_sentences(paragraph):
            if len(sentence) > chunk_size:
                flush()
                chunks.extend(split_by_characters(sentence, chunk_size, chunk_overlap))
                recent = []
                continue

            candidate = f"{current} {sentence}" if current else sentence

            if len(candidate) > chunk_size and current:
                flush()
                overlap = recent[-OVERLAP_SENTENCES:]
                # Drop overlap sentences until the seeded buffer fits.
                while overlap and len(" ".join(overlap + [sentence])) > chunk_size:
                    overlap = overlap[1:]
                current = " ".join(overlap + [sentence])
                recent = [sentence]
            else:
                current = candidate
                recent.append(sentence)

            recent = recent[-RECENT_SENTENCES:]

        if len(current) > chunk_size * 0.5:
            flush()
            recent = []

    flush()

    logger.debug("Created %d chunks from %d chars", len(chunks), len(text))
    return chunks
