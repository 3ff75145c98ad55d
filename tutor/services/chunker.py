# =============================================================================
# Character Chunker — Sentence-Aware Sliding Window
# =============================================================================
#
# Splits normalised page text into overlapping chunks for embedding.
#
# ALGORITHM:
# 1. Take a window of max_chars starting at `start`
# 2. If the window stops short of the end of the text, trim it back to the
#    last sentence terminator (. ! ?) inside the window, as long as that
#    terminator is not the window's first character
# 3. Strip the piece and keep it
# 4. Advance `start` by max_chars - overlap_chars, so consecutive windows
#    share overlap_chars characters of context
# 5. Stop once a window reaches the end of the text
# 6. Drop pieces shorter than min_chars (menu fragments, stray captions)
#
# Termination: every iteration advances `start` by a positive step, which
# is why overlap_chars must be smaller than max_chars.
# =============================================================================

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)

DEFAULT_MAX_CHARS = 1200
DEFAULT_OVERLAP_CHARS = 200
DEFAULT_MIN_CHARS = 50

SENTENCE_TERMINATORS = (".", "!", "?")


def chunk_text(
    text: str,
    max_chars: int = DEFAULT_MAX_CHARS,
    overlap_chars: int = DEFAULT_OVERLAP_CHARS,
    min_chars: int = DEFAULT_MIN_CHARS,
) -> list[str]:
    """
    Split text into overlapping, sentence-aligned chunks.

    Args:
        text: Normalised text (whitespace already collapsed).
        max_chars: Maximum window length in characters.
        overlap_chars: Characters shared by consecutive windows.
        min_chars: Pieces shorter than this are discarded.

    Returns:
        Chunks in document order. Empty for empty input.

    Raises:
        ValueError: If the sizes would not make progress.
    """
    if max_chars <= 0:
        raise ValueError(f"max_chars must be positive, got {max_chars}")
    if overlap_chars < 0 or overlap_chars >= max_chars:
        raise ValueError(
            f"overlap_chars must be in [0, max_chars), got {overlap_chars} "
            f"with max_chars={max_chars}"
        )

    if not text:
        return []

    step = max_chars - overlap_chars
    text_length = len(text)
    pieces: list[str] = []
    start = 0

    while start < text_length:
        end = min(start + max_chars, text_length)
        window = text[start:end]

        if end < text_length:
            cut = max(window.rfind(mark) for mark in SENTENCE_TERMINATORS)
            if cut > 0:
                window = window[: cut + 1]

        pieces.append(window.strip())

        if end == text_length:
            break
        start += step

    chunks = [piece for piece in pieces if len(piece) >= min_chars]

    logger.debug(
        "Chunked %d chars into %d chunks (%d fragments dropped, "
        "max=%d, overlap=%d)",
        text_length, len(chunks), len(pieces) - len(chunks),
        max_chars, overlap_chars,
    )
    return chunks
