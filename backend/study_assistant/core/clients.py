"""Construction of external clients and the AI components built on them.

The application lifespan builds everything once from Settings and stores
it on ``app.state``; endpoints reach it through the dependencies below,
which tests override.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import httpx
from fastapi import Request
from openai import AsyncOpenAI

from study_assistant.core.config import Settings
from study_assistant.knowledge.embeddings import EmbeddingProvider
from study_assistant.knowledge.query_expansion import QueryExpander
from study_assistant.knowledge.retriever import KnowledgeRetriever
from study_assistant.observability import MetricsBackend
from study_assistant.services.chat_completion import ChatCompletionService

logger = logging.getLogger(__name__)


@dataclass
class AIComponents:
    """Everything the endpoints need to talk to AI services."""

    http_client: httpx.AsyncClient
    openai_client: Optional[AsyncOpenAI]
    groq_client: Optional[AsyncOpenAI]
    embedder: EmbeddingProvider
    expander: Optional[QueryExpander]
    retriever: KnowledgeRetriever
    chat_service: ChatCompletionService

    async def aclose(self) -> None:
        await self.http_client.aclose()
        for client in (self.openai_client, self.groq_client):
            if client is not None:
                await client.close()


def build_openai_client(settings: Settings) -> Optional[AsyncOpenAI]:
    if not settings.openai_api_key:
        logger.warning("OPENAI_API_KEY not set; GPT chat is disabled")
        return None
    return AsyncOpenAI(api_key=settings.openai_api_key)


def build_groq_client(settings: Settings) -> Optional[AsyncOpenAI]:
    if not settings.groq_api_key:
        logger.warning("GROQ_API_KEY not set; Llama chat and query expansion are disabled")
        return None
    return AsyncOpenAI(api_key=settings.groq_api_key, base_url=settings.groq_base_url)


def build_ai_components(settings: Settings, metrics: MetricsBackend) -> AIComponents:
    """Create clients and AI components from settings."""
    http_client = httpx.AsyncClient(timeout=settings.embedding_timeout_seconds)
    openai_client = build_openai_client(settings)
    groq_client = build_groq_client(settings)

    embedder = EmbeddingProvider(
        client=http_client,
        api_url=settings.embedding_api_url,
        api_token=settings.embedding_api_token,
        dimensions=settings.embedding_dimensions,
        max_input_chars=settings.embedding_max_input_chars,
        metrics=metrics,
    )

    expander = None
    if settings.rag_query_expansion_enabled and groq_client is not None:
        expander = QueryExpander(
            client=groq_client,
            model=settings.query_expansion_model,
            metrics=metrics,
        )

    retriever = KnowledgeRetriever(
        embedder=embedder,
        expander=expander,
        top_k=settings.rag_top_k,
        min_score=settings.rag_min_similarity,
        chunk_size=settings.chunk_size_words,
        chunk_overlap=settings.chunk_overlap_words,
        chunk_min_words=settings.chunk_min_words,
        metrics=metrics,
    )

    chat_service = ChatCompletionService(
        openai_client=openai_client,
        groq_client=groq_client,
        gpt_model=settings.openai_model,
        llama_model=settings.groq_chat_model,
        metrics=metrics,
    )

    return AIComponents(
        http_client=http_client,
        openai_client=openai_client,
        groq_client=groq_client,
        embedder=embedder,
        expander=expander,
        retriever=retriever,
        chat_service=chat_service,
    )


# -------------------------------------------------------------------------
# FastAPI dependencies
# -------------------------------------------------------------------------


def get_retriever(request: Request) -> KnowledgeRetriever:
    return request.app.state.ai.retriever


def get_chat_service(request: Request) -> ChatCompletionService:
    return request.app.state.ai.chat_service
