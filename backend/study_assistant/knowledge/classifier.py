"""Keyword-based query classification.

Heuristic only: a query is tagged when it contains any term of a
vocabulary as a case-insensitive substring. The vocabularies are
configuration, so they can be tuned or localized without code changes.
"""

from typing import Iterable

from study_assistant.core.ai_constants import (
    CODE_QUERY_KEYWORDS,
    DOCUMENT_QUERY_KEYWORDS,
    TEMPERATURE_CONFIG,
)


class KeywordClassifier:
    """Flags text that mentions any keyword of a fixed vocabulary."""

    def __init__(self, keywords: Iterable[str]) -> None:
        self.keywords = tuple(sorted({keyword.lower() for keyword in keywords if keyword}))

    def matches(self, text: str) -> bool:
        lowered = text.lower()
        return any(keyword in lowered for keyword in self.keywords)

    __call__ = matches


document_query_classifier = KeywordClassifier(DOCUMENT_QUERY_KEYWORDS)
code_query_classifier = KeywordClassifier(CODE_QUERY_KEYWORDS)


def is_document_query(message: str) -> bool:
    """Whether the message appears to ask about the user's uploaded material."""
    return document_query_classifier.matches(message)


def is_code_query(message: str) -> bool:
    return code_query_classifier.matches(message)


def get_temperature(has_rag_context: bool, is_code_question: bool) -> float:
    """Pick the sampling temperature for a chat reply.

    Code questions win over grounded answers, which win over general chat.
    """
    if is_code_question:
        return TEMPERATURE_CONFIG["code"]
    if has_rag_context:
        return TEMPERATURE_CONFIG["rag"]
    return TEMPERATURE_CONFIG["general"]
