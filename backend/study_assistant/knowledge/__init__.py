"""Knowledge base module for RAG over each user's uploaded study material.

This module chunks and embeds documents, ranks stored chunks against a
question and assembles the context handed to the chat model.
"""

from study_assistant.knowledge.chunker import chunk_text, iter_chunks
from study_assistant.knowledge.embeddings import EmbeddingProvider, fallback_embedding
from study_assistant.knowledge.models import (
    Embedding,
    EmbeddingBackend,
    ExpandedQuery,
    IngestedChunk,
    KnowledgeCandidate,
    RetrievalReport,
    SimilarityResult,
)
from study_assistant.knowledge.prompts import (
    SystemPromptOptions,
    build_chat_messages,
    build_system_prompt,
    format_context,
)
from study_assistant.knowledge.query_expansion import QueryExpander, extract_keywords
from study_assistant.knowledge.retriever import KnowledgeRetriever
from study_assistant.knowledge.similarity import cosine_similarity, rank

__all__ = [
    "Embedding",
    "EmbeddingBackend",
    "EmbeddingProvider",
    "ExpandedQuery",
    "IngestedChunk",
    "KnowledgeCandidate",
    "KnowledgeRetriever",
    "QueryExpander",
    "RetrievalReport",
    "SimilarityResult",
    "SystemPromptOptions",
    "build_chat_messages",
    "build_system_prompt",
    "chunk_text",
    "cosine_similarity",
    "extract_keywords",
    "fallback_embedding",
    "format_context",
    "iter_chunks",
    "rank",
]
