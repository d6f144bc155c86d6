"""Word-window chunker for uploaded document text.

Splits extracted text into overlapping windows sized for embedding.
"""

from typing import Iterator

from study_assistant.knowledge.models import TextChunk

# Default chunk configuration
DEFAULT_CHUNK_SIZE = 300  # words
DEFAULT_CHUNK_OVERLAP = 50  # words
DEFAULT_MIN_WORDS = 10


def iter_chunks(
    text: str,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    overlap: int = DEFAULT_CHUNK_OVERLAP,
    min_words: int = DEFAULT_MIN_WORDS,
) -> Iterator[TextChunk]:
    """Lazily split text into overlapping word windows.

    A window starts every ``chunk_size - overlap`` words and spans up to
    ``chunk_size`` words, so neighbouring chunks share ``overlap`` words.
    Windows with ``min_words`` words or fewer are dropped.

    Args:
        text: Raw extracted document text.
        chunk_size: Maximum words per chunk.
        overlap: Words shared between consecutive chunks.
        min_words: Windows must have more words than this to be kept.

    Returns:
        Lazy iterator of TextChunk objects in document order.

    Raises:
        ValueError: If the window parameters cannot make progress.
    """
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")
    if overlap < 0 or overlap >= chunk_size:
        raise ValueError(
            f"overlap must be in [0, chunk_size), got overlap={overlap}, chunk_size={chunk_size}"
        )

    # Validate eagerly; only the windowing itself is lazy
    return _iter_windows(text.split(), chunk_size, chunk_size - overlap, min_words)


def _iter_windows(
    words: list[str],
    chunk_size: int,
    step: int,
    min_words: int,
) -> Iterator[TextChunk]:
    index = 0

    for start in range(0, len(words), step):
        window = words[start : start + chunk_size]
        content = " ".join(window).strip()
        if not content or len(window) <= min_words:
            continue

        yield TextChunk(index=index, content=content, word_count=len(window))
        index += 1


def chunk_text(
    text: str,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    overlap: int = DEFAULT_CHUNK_OVERLAP,
    min_words: int = DEFAULT_MIN_WORDS,
) -> list[str]:
    """Split text into overlapping chunk strings.

    Eager convenience wrapper around :func:`iter_chunks`.
    """
    return [chunk.content for chunk in iter_chunks(text, chunk_size, overlap, min_words)]
