"""Document chunker - deterministic, boundary-aware text splitting."""

import re

from backend.app.models.docs import Chunk

_SPACE_RUN = re.compile(r"[ \t\f\v]+")
_TRAILING_SPACE = re.compile(r" +\n")
_BLANK_LINES = re.compile(r"\n{3,}")
_SENTENCE_END = re.compile(r"[.!?][\"')\]]?\s")


def normalize_whitespace(text: str) -> str:
    """Normalise whitespace before chunking.

    Line endings become \\n, runs of spaces/tabs collapse to one space, trailing
    spaces are dropped, three or more newlines collapse to a paragraph break,
    and outer whitespace is stripped.
    """
    normalized = text.replace("\r\n", "\n").replace("\r", "\n")
    normalized = _SPACE_RUN.sub(" ", normalized)
    normalized = _TRAILING_SPACE.sub("\n", normalized)
    normalized = _BLANK_LINES.sub("\n\n", normalized)
    return normalized.strip()


def chunk_text(text: str, chunk_size: int, overlap: int) -> list[Chunk]:
    """Split text into bounded, slightly overlapping chunks.

    Pure function with no I/O or randomness.

    Args:
        text: Raw document text
        chunk_size: Maximum characters per chunk
        overlap: Characters shared by consecutive chunks (< chunk_size)

    Returns:
        Ordered list of chunks over the normalised text. Empty input gives [],
        text no longer than chunk_size gives exactly one chunk.

    Strategy:
        1. Normalise whitespace
        2. Take a window of chunk_size characters from the current start
        3. Cut at the last paragraph break in the window, else the last line
           break, else the last sentence end, else at the window edge
        4. Only cuts past start + overlap count, so every step advances
        5. Next chunk starts overlap characters before the cut

    Raises:
        ValueError: If chunk_size or overlap are out of range
    """
    if chunk_size <= 0:
        raise ValueError("chunk_size must be > 0")
    if overlap < 0:
        raise ValueError("overlap must be >= 0")
    if overlap >= chunk_size:
        raise ValueError("overlap must be smaller than chunk_size")

    normalized = normalize_whitespace(text)
    if not normalized:
        return []

    chunks: list[Chunk] = []
    length = len(normalized)
    start = 0

    while True:
        if length - start <= chunk_size:
            chunks.append(Chunk(order=len(chunks), start=start, text=normalized[start:]))
            break

        window_end = start + chunk_size
        cut = _find_cut(normalized, lo=start + overlap + 1, hi=window_end)
        chunks.append(Chunk(order=len(chunks), start=start, text=normalized[start:cut]))
        start = cut - overlap

    return chunks


def _find_cut(text: str, *, lo: int, hi: int) -> int:
    """Return the cut offset in (lo, hi] preferring semantic boundaries."""
    for separator in ("\n\n", "\n"):
        idx = text.rfind(separator, lo, hi)
        if idx != -1:
            return idx + len(separator)

    # Last sentence end followed by whitespace inside the window
    last_end = -1
    for match in _SENTENCE_END.finditer(text, lo, hi):
        last_end = match.end()
    if last_end != -1:
        return last_end

    return hi


def reassemble(chunks: list[Chunk]) -> str:
    """Rebuild the normalised text from chunks, dropping overlaps."""
    parts: list[str] = []
    covered = 0
    for chunk in chunks:
        parts.append(chunk.text[max(0, covered - chunk.start) :])
        covered = max(covered, chunk.end)
    return "".join(parts)
