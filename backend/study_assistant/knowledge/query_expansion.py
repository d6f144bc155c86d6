"""Query expansion for better knowledge-base recall.

A fast auxiliary model (Llama 3.1 8B on Groq, via its OpenAI-compatible
API) rewrites a short question into the same question plus related
keywords before it is embedded. Any failure leaves the query untouched.
"""

import logging
import re
import time
from typing import Iterable, Optional

from openai import AsyncOpenAI, OpenAIError

from study_assistant.core.ai_constants import (
    QUERY_EXPANSION_MAX_CHARS,
    QUERY_EXPANSION_MAX_TOKENS,
    QUERY_EXPANSION_MIN_CHARS,
    QUERY_EXPANSION_PROMPT,
    QUERY_EXPANSION_TEMPERATURE,
    STOPWORDS,
)
from study_assistant.knowledge.models import ExpandedQuery
from study_assistant.observability import MetricsBackend, NullMetrics, log_ai_event

logger = logging.getLogger(__name__)

_NON_WORD = re.compile(r"[^\w\s]")


class QueryExpander:
    """Expands user queries with related search terms."""

    def __init__(
        self,
        client: AsyncOpenAI,
        model: str = "llama-3.1-8b-instant",
        min_chars: int = QUERY_EXPANSION_MIN_CHARS,
        max_chars: int = QUERY_EXPANSION_MAX_CHARS,
        metrics: Optional[MetricsBackend] = None,
    ) -> None:
        self._client = client
        self.model = model
        self.min_chars = min_chars
        self.max_chars = max_chars
        self._metrics = metrics or NullMetrics()

    def should_expand(self, query: str) -> bool:
        """Very short queries carry nothing to expand; long ones are specific enough."""
        return self.min_chars <= len(query) <= self.max_chars

    async def expand(self, query: str) -> ExpandedQuery:
        """Expand a query, or return it unchanged.

        Never raises for service problems: timeouts, API errors and empty
        completions all produce ``was_expanded=False``.
        """
        if not self.should_expand(query):
            return ExpandedQuery(original=query, expanded=query, was_expanded=False)

        start = time.perf_counter()
        expanded = await self.request_expansion(query)
        latency_ms = round((time.perf_counter() - start) * 1000)

        if expanded is None:
            return ExpandedQuery(original=query, expanded=query, was_expanded=False)

        log_ai_event(
            "info",
            "QUERY_EXPANDED",
            metadata={"original": query, "expanded": expanded, "latency_ms": latency_ms},
        )
        return ExpandedQuery(
            original=query,
            expanded=expanded,
            was_expanded=expanded != query,
        )

    async def request_expansion(self, query: str) -> Optional[str]:
        """Ask the auxiliary model for an expanded query.

        Returns:
            The trimmed completion, or None if the call failed or came back empty.
        """
        start = time.perf_counter()
        try:
            response = await self._client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": QUERY_EXPANSION_PROMPT},
                    {"role": "user", "content": query},
                ],
                max_tokens=QUERY_EXPANSION_MAX_TOKENS,
                temperature=QUERY_EXPANSION_TEMPERATURE,
            )
        except OpenAIError as e:
            self._observe(getattr(e, "status_code", 0) or 0, start)
            log_ai_event("error", "QUERY_EXPANSION_ERROR", error=str(e))
            return None

        self._observe(200, start)

        content = None
        if response.choices:
            content = response.choices[0].message.content
        if not content or not content.strip():
            log_ai_event("warn", "QUERY_EXPANSION_ERROR", error="empty completion")
            return None

        return content.strip()

    def _observe(self, status_code: int, start: float) -> None:
        self._metrics.observe_external_api(
            "groq",
            "expand",
            status_code,
            (time.perf_counter() - start) * 1000,
        )


def extract_keywords(text: str, stopwords: Iterable[str] = STOPWORDS) -> list[str]:
    """Extract search keywords without calling a model.

    Lowercases, strips punctuation and drops stopwords and tokens of two
    characters or fewer. Order and duplicates are preserved.
    """
    excluded = frozenset(stopwords)
    return [
        word
        for word in _NON_WORD.sub(" ", text.lower()).split()
        if len(word) > 2 and word not in excluded
    ]
