"""Tests for context formatting, prompt assembly and query classification."""

from datetime import date

import pytest

from study_assistant.core.ai_constants import (
    FORMAT_INSTRUCTIONS,
    LLAMA_MODEL_NOTE,
    MEMORY_NOTE,
    TEMPERATURE_CONFIG,
)
from study_assistant.knowledge.classifier import (
    KeywordClassifier,
    get_temperature,
    is_code_query,
    is_document_query,
)
from study_assistant.knowledge.models import SimilarityResult
from study_assistant.knowledge.prompts import (
    SystemPromptOptions,
    build_chat_messages,
    build_system_prompt,
    format_context,
    format_indonesian_date,
    relevance_percent,
)

NO_CONTEXT_MARKER = "TIDAK ADA KONTEKS DARI KNOWLEDGE BASE"
NO_CONTEXT_REPLY = "Maaf, saya tidak menemukan informasi tentang ini di knowledge base Anda."
CONTEXT_MARKER = "KONTEKS DARI KNOWLEDGE BASE USER"

TODAY = date(2026, 10, 19)


class TestFormatContext:
    """Tests for format_context."""

    def test_blocks_in_order_with_percentages(self):
        results = [
            SimilarityResult(id=4, content="Fotosintesis terjadi di daun.", score=0.876),
            SimilarityResult(id=2, content="Klorofil menyerap cahaya.", score=0.41),
        ]

        context = format_context(results)

        assert context == (
            "[Dokumen 1 - Relevansi: 88%]\nFotosintesis terjadi di daun."
            "\n\n---\n\n"
            "[Dokumen 2 - Relevansi: 41%]\nKlorofil menyerap cahaya."
        )

    def test_each_content_appears_once(self):
        contents = ["alpha beta", "gamma delta", "epsilon zeta"]
        results = [
            SimilarityResult(id=i, content=content, score=0.9 - i * 0.1)
            for i, content in enumerate(contents)
        ]

        context = format_context(results)

        positions = [context.index(content) for content in contents]
        assert positions == sorted(positions)
        assert all(context.count(content) == 1 for content in contents)

    def test_empty_results(self):
        assert format_context([]) == ""

    def test_max_chars_drops_whole_blocks(self):
        results = [
            SimilarityResult(id=1, content="a" * 50, score=0.9),
            SimilarityResult(id=2, content="b" * 50, score=0.8),
        ]

        context = format_context(results, max_chars=100)

        assert "a" * 50 in context
        assert "b" not in context

    def test_oversized_top_result_is_truncated_not_dropped(self):
        results = [
            SimilarityResult(id=1, content="Jawaban: " + "x" * 7000, score=0.9),
            SimilarityResult(id=2, content="kedua", score=0.8),
        ]

        context = format_context(results, max_chars=6000)

        assert context.startswith("[Dokumen 1 - Relevansi: 90%]\nJawaban: x")
        assert len(context) == 6000
        assert "kedua" not in context

    @pytest.mark.parametrize(
        "score, percent",
        [(0.875, 88), (0.8249, 82), (0.3001, 30), (1.0, 100), (0.125, 13)],
    )
    def test_relevance_percent_rounds_half_up(self, score: float, percent: int):
        assert relevance_percent(score) == percent


class TestIndonesianDate:
    def test_long_form(self):
        assert format_indonesian_date(TODAY) == "19 Oktober 2026"

    def test_single_digit_day(self):
        assert format_indonesian_date(date(2025, 1, 5)) == "5 Januari 2025"


class TestBuildSystemPrompt:
    """Tests for build_system_prompt section selection and order."""

    def test_document_query_without_results_gets_no_context_directive(self):
        prompt = build_system_prompt(
            SystemPromptOptions(
                today=TODAY,
                rag_context=format_context([]),
                is_document_query=True,
            )
        )

        assert NO_CONTEXT_MARKER in prompt
        assert NO_CONTEXT_REPLY in prompt
        assert CONTEXT_MARKER not in prompt

    def test_rag_context_included_with_rules(self):
        context = "[Dokumen 1 - Relevansi: 91%]\nHukum Newton pertama."
        prompt = build_system_prompt(
            SystemPromptOptions(today=TODAY, rag_context=context, is_document_query=True)
        )

        assert CONTEXT_MARKER in prompt
        assert context in prompt
        assert NO_CONTEXT_MARKER not in prompt

    def test_general_question_has_neither_block(self):
        prompt = build_system_prompt(SystemPromptOptions(today=TODAY))

        assert CONTEXT_MARKER not in prompt
        assert NO_CONTEXT_MARKER not in prompt

    def test_section_order(self):
        prompt = build_system_prompt(
            SystemPromptOptions(today=TODAY, rag_context="isi dokumen", is_document_query=True)
        )

        persona = prompt.index("AI Study Assistant")
        factual = prompt.index("19 Oktober 2026")
        context = prompt.index(CONTEXT_MARKER)
        formatting = prompt.index("FORMAT JAWABAN")
        assert persona < factual < context < formatting
        assert prompt.endswith(FORMAT_INSTRUCTIONS)

    def test_llama_note_and_guest_memory(self):
        llama = build_system_prompt(SystemPromptOptions(model="llama", today=TODAY))
        guest = build_system_prompt(SystemPromptOptions(is_guest=True, today=TODAY))

        assert LLAMA_MODEL_NOTE in llama
        assert MEMORY_NOTE in llama
        assert LLAMA_MODEL_NOTE not in guest
        assert MEMORY_NOTE not in guest

    def test_stable_output(self):
        options = SystemPromptOptions(today=TODAY, rag_context="isi", is_document_query=True)

        assert build_system_prompt(options) == build_system_prompt(options)


class TestBuildChatMessages:
    def test_history_between_system_and_user(self):
        messages = build_chat_messages(
            "SYSTEM",
            [("halo", "hai"), ("apa kabar", "baik")],
            "terima kasih",
        )

        assert messages == [
            {"role": "system", "content": "SYSTEM"},
            {"role": "user", "content": "halo"},
            {"role": "assistant", "content": "hai"},
            {"role": "user", "content": "apa kabar"},
            {"role": "assistant", "content": "baik"},
            {"role": "user", "content": "terima kasih"},
        ]

    def test_history_limit_keeps_most_recent(self):
        history = [(f"q{i}", f"a{i}") for i in range(15)]

        messages = build_chat_messages("SYSTEM", history, "baru", history_limit=10)

        assert len(messages) == 1 + 20 + 1
        assert messages[1]["content"] == "q5"
        assert messages[-2]["content"] == "a14"


class TestClassifier:
    """Tests for keyword classification and temperature choice."""

    @pytest.mark.parametrize(
        "message",
        ["Apa isi BAB 2 dari materi ini?", "ringkas dokumen yang saya upload", "Jelaskan slide tadi"],
    )
    def test_document_queries(self, message: str):
        assert is_document_query(message) is True

    def test_general_question_is_not_document_query(self):
        assert is_document_query("Siapa presiden pertama Indonesia?") is False

    def test_code_query(self):
        assert is_code_query("Kenapa fungsi Python saya error?") is True
        assert is_code_query("Apa itu fotosintesis?") is False

    def test_custom_vocabulary(self):
        classifier = KeywordClassifier({"Skripsi"})

        assert classifier("bantu revisi skripsi saya") is True
        assert classifier("bantu revisi makalah") is False

    @pytest.mark.parametrize(
        "has_rag, is_code, expected",
        [
            (True, True, TEMPERATURE_CONFIG["code"]),
            (False, True, TEMPERATURE_CONFIG["code"]),
            (True, False, TEMPERATURE_CONFIG["rag"]),
            (False, False, TEMPERATURE_CONFIG["general"]),
        ],
    )
    def test_temperature_priority(self, has_rag: bool, is_code: bool, expected: float):
        assert get_temperature(has_rag_context=has_rag, is_code_question=is_code) == expected
