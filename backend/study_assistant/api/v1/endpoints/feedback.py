"""Answer feedback: positively rated Q&A pairs become knowledge records."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from study_assistant.core.auth import get_current_user
from study_assistant.core.clients import get_retriever
from study_assistant.core.database import get_db
from study_assistant.knowledge.models import IngestedChunk
from study_assistant.knowledge.retriever import KnowledgeRetriever
from study_assistant.knowledge.similarity import serialize_embedding
from study_assistant.models.user import User
from study_assistant.services import knowledge_store

router = APIRouter()
logger = logging.getLogger(__name__)

FEEDBACK_SOURCE = "feedback"


class FeedbackRequest(BaseModel):
    """Thumbs up/down on an assistant answer."""

    question: str
    answer: str
    is_positive: bool = Field(False, alias="isPositive")

    class Config:
        populate_by_name = True


class FeedbackResponse(BaseModel):
    message: str
    saved: bool


def feedback_content(question: str, answer: str) -> str:
    return f"Pertanyaan: {question}\n\nJawaban: {answer}"


def feedback_title(question: str) -> str:
    return f"Q&A: {question[:50]}..."


@router.post("", response_model=FeedbackResponse)
async def submit_feedback(
    request: FeedbackRequest,
    current_user: Annotated[User, Depends(get_current_user)],
    retriever: Annotated[KnowledgeRetriever, Depends(get_retriever)],
    db: AsyncSession = Depends(get_db),
) -> FeedbackResponse:
    """Store a positively rated answer in the caller's knowledge base.

    The whole Q&A pair is embedded as one record, without chunking.
    Negative feedback is acknowledged only.
    """
    if not request.question.strip() or not request.answer.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Question dan answer diperlukan",
        )

    if not request.is_positive:
        return FeedbackResponse(
            message="Terima kasih atas feedback Anda. Kami akan berusaha lebih baik.",
            saved=False,
        )

    content = feedback_content(request.question, request.answer)
    embedding = await retriever.embedder.embed(content)

    await knowledge_store.save_chunks(
        db,
        user_id=current_user.id,
        title=feedback_title(request.question),
        source=FEEDBACK_SOURCE,
        chunks=[
            IngestedChunk(
                content=content,
                embedding=serialize_embedding(embedding.vector),
                embedding_backend=embedding.backend,
            )
        ],
    )
    logger.info(f"Feedback saved to knowledge base: user_id={current_user.id}")

    return FeedbackResponse(
        message="Terima kasih! Jawaban ini telah disimpan ke knowledge base Anda.",
        saved=True,
    )
