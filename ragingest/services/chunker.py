"""Character-window text chunking with overlap and sentence-aware cuts.

Splits document text into overlapping windows of ``chunk_size`` characters.
An interior window that does not already end on a sentence boundary is
shortened to end just after its last ``.``, ``!`` or ``?``, but only when
that mark lies past the middle of the window; otherwise the hard cut is
kept so a distant boundary does not throw away most of the window.

Each window after the first starts ``overlap`` characters before the end of
the previous (possibly shortened) window, so text around a cut appears in
both neighbouring chunks.
"""

from __future__ import annotations

import re

import structlog

from ragingest.utils.errors import ConfigurationError

logger = structlog.get_logger(logger_name=__name__)

# Window already ends on a sentence boundary (trailing whitespace allowed).
_SENTENCE_END = re.compile(r"[.!?]\s*$")

_BOUNDARY_MARKS = (".", "!", "?")


class TextChunker:
    """Splits text into overlapping character windows.

    Parameters
    ----------
    chunk_size:
        Maximum number of characters per chunk (default 512).
    overlap:
        Characters shared between consecutive chunks (default 50).  Must be
        smaller than *chunk_size*.

    Raises
    ------
    ConfigurationError
        If *chunk_size* is not positive, *overlap* is negative, or
        *overlap* is not smaller than *chunk_size*.
    """

    def __init__(self, chunk_size: int = 512, overlap: int = 50) -> None:
        if chunk_size <= 0:
            raise ConfigurationError(f"chunk_size must be positive, got {chunk_size}")
        if overlap < 0:
            raise ConfigurationError(f"overlap must not be negative, got {overlap}")
        if overlap >= chunk_size:
            raise ConfigurationError(
                f"overlap ({overlap}) must be smaller than chunk_size ({chunk_size})"
            )
        self._chunk_size = chunk_size
        self._overlap = overlap

    @property
    def chunk_size(self) -> int:
        return self._chunk_size

    @property
    def overlap(self) -> int:
        return self._overlap

    def chunk(self, text: str) -> list[str]:
        """Split *text* into ordered, non-empty, stripped chunks.

        Parameters
        ----------
        text:
            The full document text.

        Returns
        -------
        list[str]
            Chunks in document order.  Whitespace-only input yields ``[]``;
            input no longer than ``chunk_size`` yields one chunk.
        """
        if len(text) <= self._chunk_size:
            stripped = text.strip()
            return [stripped] if stripped else []

        chunks: list[str] = []
        length = len(text)
        start = 0

        while start < length:
            end = min(start + self._chunk_size, length)
            window = text[start:end]

            if end < length and not _SENTENCE_END.search(window):
                boundary = max(window.rfind(mark) for mark in _BOUNDARY_MARKS)
                if boundary > self._chunk_size * 0.5:
                    window = window[: boundary + 1]
                    end = start + boundary + 1

            piece = window.strip()
            if piece:
                chunks.append(piece)

            if end >= length:
                break
            # Always advance, even when a short window meets a large overlap.
            start = max(end - self._overlap, start + 1)

        logger.debug(
            "chunking_complete",
            num_chunks=len(chunks),
            text_length=length,
            chunk_size=self._chunk_size,
            overlap=self._overlap,
        )
        return chunks
