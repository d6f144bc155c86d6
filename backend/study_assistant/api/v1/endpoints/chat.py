"""RAG chat endpoint with guest mode and model fallback."""

import logging
import math
import time
from datetime import date
from typing import Annotated, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from openai import APIStatusError, OpenAIError, RateLimitError
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from study_assistant.core.ai_constants import TOKEN_CONFIG
from study_assistant.core.auth import get_optional_user
from study_assistant.core.clients import get_chat_service, get_retriever
from study_assistant.core.config import get_settings
from study_assistant.core.database import get_db
from study_assistant.knowledge.classifier import get_temperature, is_code_query, is_document_query
from study_assistant.knowledge.prompts import (
    SystemPromptOptions,
    build_chat_messages,
    build_system_prompt,
    format_context,
)
from study_assistant.knowledge.retriever import KnowledgeRetriever
from study_assistant.models.user import User
from study_assistant.observability import log_ai_event
from study_assistant.services import knowledge_store
from study_assistant.services.chat_completion import (
    ChatCompletionService,
    ChatProviderNotConfigured,
)

router = APIRouter()
settings = get_settings()
logger = logging.getLogger(__name__)

# Saved with history so replays know which model answered
LLAMA_HISTORY_PREFIX = "[LLAMA] "


# -------------------------------------------------------------------------
# Request/Response Models
# -------------------------------------------------------------------------


class ChatRequest(BaseModel):
    """Chat message from a signed-in user or a guest."""

    message: str
    model: Literal["gpt", "llama"] = "gpt"
    guest_chat_count: int = Field(0, ge=0, alias="guestChatCount")

    class Config:
        populate_by_name = True


class ChatResponse(BaseModel):
    """Assistant reply."""

    reply: str
    model: str
    is_fallback: bool = False
    rag_used: bool = False
    is_guest: bool = False
    remaining_chats: Optional[int] = None


# -------------------------------------------------------------------------
# Helpers
# -------------------------------------------------------------------------


def rate_limit_message(retry_after: Optional[str]) -> str:
    """User-facing retry hint from a Retry-After header (seconds)."""
    try:
        seconds = int(retry_after or "60")
    except ValueError:
        seconds = 60

    minutes = math.ceil(seconds / 60)
    wait = f"{math.ceil(minutes / 60)} jam" if minutes > 60 else f"{minutes} menit"
    return f"Rate limit tercapai. Coba lagi dalam {wait}."


def provider_error_to_http(error: Exception) -> HTTPException:
    """Map a chat provider failure to the HTTP error shown to the user."""
    if isinstance(error, RateLimitError):
        return HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=rate_limit_message(error.response.headers.get("retry-after")),
        )

    status_code = error.status_code if isinstance(error, APIStatusError) else None

    if status_code == 401:
        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="API key tidak valid. Hubungi administrator.",
        )
    if status_code == 503 or isinstance(error, ChatProviderNotConfigured):
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Server AI sedang sibuk. Coba lagi dalam beberapa saat.",
        )
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="Terjadi kesalahan pada server. Silakan coba lagi.",
    )


# -------------------------------------------------------------------------
# Endpoints
# -------------------------------------------------------------------------


@router.post("", response_model=ChatResponse)
async def chat(
    request: ChatRequest,
    current_user: Annotated[Optional[User], Depends(get_optional_user)],
    retriever: Annotated[KnowledgeRetriever, Depends(get_retriever)],
    chat_service: Annotated[ChatCompletionService, Depends(get_chat_service)],
    db: AsyncSession = Depends(get_db),
) -> ChatResponse:
    """Answer a message, grounded in the user's knowledge base when possible.

    Guests get a limited number of chats and no knowledge base or memory.
    A GPT rate limit switches the reply to Llama transparently.

    Raises:
        HTTPException: 400 for an empty message, 403 when the guest limit
            is reached, 429/500/503 for provider failures.
    """
    if not request.message.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Message wajib diisi",
        )

    is_guest = current_user is None
    if is_guest and request.guest_chat_count >= settings.guest_chat_limit:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "error": "Batas chat gratis tercapai",
                "require_login": True,
                "message": (
                    f"Anda telah mencapai batas {settings.guest_chat_limit} chat gratis. "
                    "Silakan login atau daftar untuk chat tanpa batas!"
                ),
            },
        )

    start = time.perf_counter()

    # Knowledge base context (signed-in users only)
    rag_context = ""
    history: list[tuple[str, str]] = []
    if current_user is not None:
        candidates = await knowledge_store.list_candidates(db, current_user.id)
        if candidates:
            try:
                report = await retriever.search(request.message, candidates)
            except Exception as e:
                # Answer without context rather than fail the chat
                logger.exception("Knowledge retrieval failed")
                log_ai_event("error", "RAG_SEARCH", user_id=current_user.id, error=str(e))
            else:
                rag_context = format_context(
                    report.results, max_chars=settings.rag_max_context_chars
                )

        history = [
            (message.removeprefix(LLAMA_HISTORY_PREFIX), reply)
            for message, reply in await knowledge_store.recent_history(
                db, current_user.id, TOKEN_CONFIG["history_limit"]
            )
        ]

    document_query = is_document_query(request.message)
    temperature = get_temperature(
        has_rag_context=bool(rag_context),
        is_code_question=is_code_query(request.message),
    )

    def messages_for(model: str) -> list[dict[str, str]]:
        system_prompt = build_system_prompt(
            SystemPromptOptions(
                model=model,
                is_guest=is_guest,
                today=date.today(),
                rag_context=rag_context,
                is_document_query=document_query,
            )
        )
        return build_chat_messages(system_prompt, history, request.message)

    try:
        result = await chat_service.complete(
            messages_for(request.model),
            model=request.model,
            temperature=temperature,
            fallback_messages=messages_for("llama"),
        )
    except (OpenAIError, ChatProviderNotConfigured) as e:
        log_ai_event(
            "error",
            "CHAT_COMPLETION",
            user_id=current_user.id if current_user else None,
            model=request.model,
            error=str(e),
        )
        raise provider_error_to_http(e)

    if current_user is not None:
        saved_message = request.message
        if result.model == "llama":
            saved_message = f"{LLAMA_HISTORY_PREFIX}{request.message}"
        await knowledge_store.save_chat(
            db,
            user_id=current_user.id,
            message=saved_message,
            reply=result.reply,
            model=result.model,
        )

    log_ai_event(
        "info",
        "CHAT_COMPLETION",
        user_id=current_user.id if current_user else None,
        model=result.model,
        is_fallback=result.is_fallback,
        rag_used=bool(rag_context),
        context_found=bool(rag_context) if document_query else None,
        latency_ms=round((time.perf_counter() - start) * 1000),
        metadata={"temperature": temperature, "tokens": result.tokens},
    )

    return ChatResponse(
        reply=result.reply,
        model=result.model,
        is_fallback=result.is_fallback,
        rag_used=bool(rag_context),
        is_guest=is_guest,
        remaining_chats=(
            settings.guest_chat_limit - (request.guest_chat_count + 1) if is_guest else None
        ),
    )
