"""Character-window text chunking with boundary-aware breaks.

Splits extracted text into overlapping windows of at most ``chunk_size``
characters.  When a window would cut the text mid-stream, the chunker looks
back for the rightmost natural break (newline, space or sentence-terminal
punctuation) and ends the window just after it, provided the break keeps the
window at least half full.  Otherwise the hard cutoff is used.

Offsets always describe the *untrimmed* window in the source text; only the
emitted ``content`` is stripped of surrounding whitespace.  Windows that are
empty after trimming are skipped, but their range still counts toward
coverage of the input.
"""

from __future__ import annotations

import structlog

from knowlex.models.project_file import TextChunk

logger = structlog.get_logger(logger_name=__name__)

DEFAULT_CHUNK_SIZE = 1000
DEFAULT_OVERLAP = 200

_BREAK_CHARS = ("\n", " ", ".", "!", "?")


class TextChunker:
    """Splits text into overlapping, boundary-aligned character windows.

    Parameters
    ----------
    chunk_size:
        Maximum number of characters per chunk (default 1000).
    overlap:
        Maximum number of characters shared by consecutive chunks
        (default 200).  Values at or above ``chunk_size`` are tolerated;
        the window still advances by at least one character per step.
    """

    def __init__(
        self,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        overlap: int = DEFAULT_OVERLAP,
    ) -> None:
        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")
        if overlap < 0:
            raise ValueError(f"overlap must be non-negative, got {overlap}")
        self._chunk_size = chunk_size
        self._overlap = overlap

    @property
    def chunk_size(self) -> int:
        return self._chunk_size

    @property
    def overlap(self) -> int:
        return self._overlap

    def chunk(self, text: str) -> list[TextChunk]:
        """Split *text* into an ordered list of :class:`TextChunk` windows."""
        chunks: list[TextChunk] = []
        length = len(text)
        start = 0

        while start < length:
            end = min(start + self._chunk_size, length)

            if end < length:
                # The break char itself stays in the current window.
                break_point = max(text.rfind(ch, start, end) for ch in _BREAK_CHARS)
                if break_point > start + self._chunk_size * 0.5:
                    end = break_point + 1

            content = text[start:end].strip()
            if content:
                chunks.append(
                    TextChunk(content=content, start_offset=start, end_offset=end)
                )

            if end >= length:
                break
            start = max(start + 1, end - self._overlap)

        logger.debug(
            "text_chunked",
            chars=length,
            chunks=len(chunks),
            chunk_size=self._chunk_size,
            overlap=self._overlap,
        )
        return chunks


def chunk_text_content(
    text: str,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    overlap: int = DEFAULT_OVERLAP,
) -> list[TextChunk]:
    """Convenience wrapper: ``TextChunker(chunk_size, overlap).chunk(text)``."""
    return TextChunker(chunk_size=chunk_size, overlap=overlap).chunk(text)
