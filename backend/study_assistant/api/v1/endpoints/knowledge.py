"""Knowledge base endpoints: upload, list, delete, search and re-embed."""

import logging
from collections import Counter
from datetime import datetime
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from study_assistant.core.auth import get_current_user, get_optional_user
from study_assistant.core.clients import get_retriever
from study_assistant.core.config import get_settings
from study_assistant.core.database import get_db
from study_assistant.knowledge.models import ExpandedQuery, SimilarityResult
from study_assistant.knowledge.prompts import format_context
from study_assistant.knowledge.retriever import KnowledgeRetriever
from study_assistant.models.user import User
from study_assistant.services import knowledge_store

router = APIRouter()
settings = get_settings()
logger = logging.getLogger(__name__)

_TEXT_EXTENSIONS = (".txt", ".md")


# -------------------------------------------------------------------------
# Request/Response Models
# -------------------------------------------------------------------------


class KnowledgeUploadResponse(BaseModel):
    """Result of a knowledge upload."""

    message: str
    count: int
    embedding_backend: dict[str, int] = Field(default_factory=dict)


class KnowledgeItemResponse(BaseModel):
    """Knowledge record summary."""

    id: int
    title: str
    source: str
    created_at: datetime

    class Config:
        from_attributes = True


class KnowledgeSearchRequest(BaseModel):
    """Semantic search over the caller's knowledge base."""

    query: str
    top_k: int = Field(3, ge=1, le=20)


class KnowledgeSearchResponse(BaseModel):
    """Ranked results plus the context block built from them."""

    results: list[SimilarityResult]
    context: str
    has_results: bool
    query: Optional[ExpandedQuery] = None


class ReembedResponse(BaseModel):
    """Result of upgrading fallback-embedded records."""

    message: str
    stale: int
    updated: int


class MessageResponse(BaseModel):
    message: str


# -------------------------------------------------------------------------
# Helpers
# -------------------------------------------------------------------------


def _is_text_upload(file: UploadFile) -> bool:
    content_type = file.content_type or ""
    filename = (file.filename or "").lower()
    return content_type.startswith("text/") or filename.endswith(_TEXT_EXTENSIONS)


# -------------------------------------------------------------------------
# Endpoints
# -------------------------------------------------------------------------


@router.post("", response_model=KnowledgeUploadResponse)
async def upload_knowledge(
    current_user: Annotated[User, Depends(get_current_user)],
    retriever: Annotated[KnowledgeRetriever, Depends(get_retriever)],
    db: AsyncSession = Depends(get_db),
    title: str = Form("Untitled"),
    content: str = Form(""),
    source: Optional[str] = Form(None),
    file: Optional[UploadFile] = File(None),
) -> KnowledgeUploadResponse:
    """Chunk, embed and store text in the caller's knowledge base.

    Text comes from the ``content`` field or an uploaded plain-text file.
    Binary formats (PDF, Word, Excel) must be converted to text first.
    """
    text = content
    record_source = source or "manual"

    if file is not None:
        if not _is_text_upload(file):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Format file tidak didukung. Gunakan file teks (.txt atau .md).",
            )
        raw = await file.read()
        text = raw.decode("utf-8", errors="replace")
        record_source = source or "text"

    if not text.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Konten tidak boleh kosong",
        )

    chunks = await retriever.ingest(text)
    records = await knowledge_store.save_chunks(
        db,
        user_id=current_user.id,
        title=title or "Untitled",
        source=record_source,
        chunks=chunks,
    )

    backends = Counter(chunk.embedding_backend.value for chunk in chunks)
    logger.info(
        f"Knowledge upload: user_id={current_user.id} chunks={len(records)} "
        f"backends={dict(backends)}"
    )

    return KnowledgeUploadResponse(
        message=f"Berhasil menyimpan {len(records)} dokumen dengan AI embedding",
        count=len(records),
        embedding_backend=dict(backends),
    )


@router.get("", response_model=list[KnowledgeItemResponse])
async def list_knowledge(
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
) -> list[KnowledgeItemResponse]:
    """List the caller's knowledge records, newest first."""
    records = await knowledge_store.list_records(db, current_user.id)
    return [KnowledgeItemResponse.model_validate(record) for record in records]


@router.delete("/{knowledge_id}", response_model=MessageResponse)
async def delete_knowledge(
    knowledge_id: int,
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    """Delete one of the caller's knowledge records."""
    deleted = await knowledge_store.delete_record(db, current_user.id, knowledge_id)
    if not deleted:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Knowledge tidak ditemukan",
        )
    return MessageResponse(message="Knowledge berhasil dihapus")


@router.post("/search", response_model=KnowledgeSearchResponse)
async def search_knowledge(
    request: KnowledgeSearchRequest,
    current_user: Annotated[Optional[User], Depends(get_optional_user)],
    retriever: Annotated[KnowledgeRetriever, Depends(get_retriever)],
    db: AsyncSession = Depends(get_db),
) -> KnowledgeSearchResponse:
    """Semantic search in the caller's knowledge base.

    Guests have no knowledge base and always get an empty result.
    """
    if not request.query.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Query diperlukan",
        )

    if current_user is None:
        return KnowledgeSearchResponse(results=[], context="", has_results=False)

    candidates = await knowledge_store.list_candidates(db, current_user.id)
    report = await retriever.search(request.query, candidates, top_k=request.top_k)

    return KnowledgeSearchResponse(
        results=report.results,
        context=format_context(report.results, max_chars=settings.rag_max_context_chars),
        has_results=bool(report.results),
        query=report.query,
    )


@router.post("/reembed", response_model=ReembedResponse)
async def reembed_knowledge(
    current_user: Annotated[User, Depends(get_current_user)],
    retriever: Annotated[KnowledgeRetriever, Depends(get_retriever)],
    db: AsyncSession = Depends(get_db),
) -> ReembedResponse:
    """Re-embed records stored with the hashed fallback or without a backend tag.

    Only records that now get a semantic vector are updated; if the
    embedding service is still down nothing changes.
    """
    stale = await knowledge_store.list_stale_records(db, current_user.id)
    updates = await retriever.reembed(stale)
    updated = await knowledge_store.update_embeddings(db, current_user.id, updates)

    return ReembedResponse(
        message=f"{updated} dari {len(stale)} dokumen diperbarui",
        stale=len(stale),
        updated=updated,
    )
