"""Context assembly and system prompt construction.

Pure formatting: the same inputs always give byte-identical output, so
prompts can be asserted on in tests.
"""

import math
from datetime import date
from typing import Optional, Sequence

from pydantic import BaseModel, Field

from study_assistant.core.ai_constants import (
    BASE_SYSTEM_PROMPT,
    CONTEXT_BLOCK_HEADER,
    CONTEXT_BLOCK_SEPARATOR,
    FACTUAL_UPDATES_PROMPT,
    FORMAT_INSTRUCTIONS,
    INDONESIAN_MONTHS,
    LLAMA_MODEL_NOTE,
    MEMORY_NOTE,
    NO_CONTEXT_PROMPT,
    RAG_CONTEXT_PROMPT,
    TOKEN_CONFIG,
)
from study_assistant.knowledge.models import SimilarityResult


def relevance_percent(score: float) -> int:
    """Score as a whole percentage, rounding halves up (0.875 -> 88)."""
    return math.floor(score * 100 + 0.5)


def format_context(
    results: Sequence[SimilarityResult],
    max_chars: Optional[int] = None,
) -> str:
    """Format retrieval results as labeled context blocks.

    Each block is headed by its 1-based ordinal and relevance percentage.
    With ``max_chars`` set, later blocks that would overflow the budget are
    dropped whole rather than cut mid-sentence. The top block is always
    kept, truncated to the budget if it alone exceeds it.

    Returns:
        The joined blocks, or an empty string when there are no results.
    """
    blocks: list[str] = []
    total = 0

    for ordinal, result in enumerate(results, start=1):
        header = CONTEXT_BLOCK_HEADER.format(
            ordinal=ordinal,
            percent=relevance_percent(result.score),
        )
        block = f"{header}\n{result.content}"

        if not blocks:
            if max_chars is not None:
                # Header always survives
                block = block[: max(max_chars, len(header) + 1)]
            blocks.append(block)
            total = len(block)
            continue

        added = len(CONTEXT_BLOCK_SEPARATOR) + len(block)
        if max_chars is not None and total + added > max_chars:
            break

        blocks.append(block)
        total += added

    return CONTEXT_BLOCK_SEPARATOR.join(blocks)


def format_indonesian_date(value: date) -> str:
    """Long-form Indonesian date, e.g. ``19 Oktober 2026``."""
    return f"{value.day} {INDONESIAN_MONTHS[value.month - 1]} {value.year}"


class SystemPromptOptions(BaseModel):
    """Inputs for building the chat system prompt."""

    model: str = Field("gpt", description="Chat model key: gpt or llama")
    is_guest: bool = False
    today: date
    rag_context: str = ""
    is_document_query: bool = False

    @property
    def has_rag_context(self) -> bool:
        return bool(self.rag_context.strip())


def build_system_prompt(options: SystemPromptOptions) -> str:
    """Assemble the system instruction in its fixed section order.

    Persona, then the dated factual directive, then either the retrieved
    context with its usage rules or (for document questions that found
    nothing) the no-context directive, then the formatting rules.
    """
    parts = [
        BASE_SYSTEM_PROMPT.format(
            model_note=LLAMA_MODEL_NOTE if options.model == "llama" else "",
            memory_note="" if options.is_guest else MEMORY_NOTE,
        ),
        FACTUAL_UPDATES_PROMPT.format(today=format_indonesian_date(options.today)),
    ]

    if options.has_rag_context:
        parts.append(RAG_CONTEXT_PROMPT.format(context=options.rag_context))
    elif options.is_document_query:
        parts.append(NO_CONTEXT_PROMPT)

    parts.append(FORMAT_INSTRUCTIONS)
    return "\n\n".join(parts)


def build_chat_messages(
    system_prompt: str,
    history: Sequence[tuple[str, str]],
    user_message: str,
    history_limit: int = TOKEN_CONFIG["history_limit"],
) -> list[dict[str, str]]:
    """Build the role-tagged message list for the completion call.

    Args:
        system_prompt: Output of :func:`build_system_prompt`.
        history: Previous ``(message, reply)`` turns, oldest first.
        user_message: The new user message.
        history_limit: Only the most recent turns are replayed.
    """
    messages = [{"role": "system", "content": system_prompt}]

    recent = history[-history_limit:] if history_limit > 0 else []
    for message, reply in recent:
        messages.append({"role": "user", "content": message})
        messages.append({"role": "assistant", "content": reply})

    messages.append({"role": "user", "content": user_message})
    return messages
