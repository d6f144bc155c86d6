"""Tests for the word-window chunker."""

import pytest

from study_assistant.knowledge.chunker import chunk_text, iter_chunks


def _words(count: int, prefix: str = "w") -> str:
    return " ".join(f"{prefix}{i}" for i in range(count))


class TestChunkText:
    """Tests for chunk_text windowing."""

    def test_thousand_words_default_window(self):
        """A 1000-word document yields four 300-word windows stepping by 250."""
        chunks = chunk_text(_words(1000), chunk_size=300, overlap=50)

        assert len(chunks) == 4
        assert [len(chunk.split()) for chunk in chunks] == [300, 300, 300, 250]

    def test_consecutive_chunks_share_overlap(self):
        chunks = chunk_text(_words(1000), chunk_size=300, overlap=50)

        for current, following in zip(chunks, chunks[1:]):
            assert current.split()[-50:] == following.split()[:50]

    def test_short_trailing_window_is_discarded(self):
        """Windows with ten words or fewer are dropped."""
        # Windows start at 0, 250, 500; the last one has only 10 words
        chunks = chunk_text(_words(510), chunk_size=300, overlap=50)

        assert len(chunks) == 2
        assert chunks[-1].split()[0] == "w250"

    def test_eleven_words_is_kept(self):
        assert chunk_text(_words(11)) == [_words(11)]

    def test_ten_words_is_dropped(self):
        assert chunk_text(_words(10)) == []

    def test_empty_and_whitespace_input(self):
        assert chunk_text("") == []
        assert chunk_text("   \n\t  ") == []

    def test_whitespace_is_normalized_within_chunks(self):
        text = "satu\n\ndua   tiga\tempat lima enam tujuh delapan sembilan sepuluh sebelas"

        assert chunk_text(text) == [
            "satu dua tiga empat lima enam tujuh delapan sembilan sepuluh sebelas"
        ]

    def test_deterministic(self):
        text = _words(777)

        assert chunk_text(text, 120, 30) == chunk_text(text, 120, 30)

    def test_zero_overlap_partitions_words(self):
        chunks = chunk_text(_words(60), chunk_size=20, overlap=0)

        assert len(chunks) == 3
        assert " ".join(chunks) == _words(60)


class TestIterChunks:
    """Tests for the lazy chunk iterator."""

    def test_indexes_are_sequential(self):
        chunks = list(iter_chunks(_words(1000)))

        assert [chunk.index for chunk in chunks] == [0, 1, 2, 3]
        assert all(chunk.word_count == len(chunk.content.split()) for chunk in chunks)

    def test_is_lazy(self):
        iterator = iter_chunks(_words(1000))

        first = next(iterator)
        assert first.index == 0

    @pytest.mark.parametrize(
        "chunk_size, overlap",
        [(0, 0), (-5, 0), (50, 50), (50, 60), (50, -1)],
    )
    def test_invalid_window_raises_immediately(self, chunk_size: int, overlap: int):
        with pytest.raises(ValueError):
            iter_chunks("some text", chunk_size=chunk_size, overlap=overlap)
