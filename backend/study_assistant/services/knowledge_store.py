"""Owner-scoped data access for knowledge records and chat history.

Every query here filters on ``user_id``; the retrieval core trusts the
candidate sets it receives from these functions.
"""

import logging
from typing import Iterable, Optional, Sequence

from sqlalchemy import delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from study_assistant.knowledge.models import (
    EmbeddingBackend,
    IngestedChunk,
    KnowledgeCandidate,
)
from study_assistant.models.chat import ChatMessage
from study_assistant.models.knowledge import Knowledge

logger = logging.getLogger(__name__)


def _to_candidate(record: Knowledge) -> KnowledgeCandidate:
    backend: Optional[EmbeddingBackend] = None
    if record.embedding_backend:
        try:
            backend = EmbeddingBackend(record.embedding_backend)
        except ValueError:
            logger.warning(
                f"Unknown embedding backend {record.embedding_backend!r} on knowledge {record.id}"
            )
    return KnowledgeCandidate(
        id=record.id,
        content=record.content,
        embedding=record.embedding,
        embedding_backend=backend,
    )


async def list_candidates(db: AsyncSession, user_id: int) -> list[KnowledgeCandidate]:
    """All of a user's records as retrieval candidates, oldest first."""
    result = await db.execute(
        select(Knowledge).where(Knowledge.user_id == user_id).order_by(Knowledge.id)
    )
    return [_to_candidate(record) for record in result.scalars().all()]


async def list_records(db: AsyncSession, user_id: int) -> list[Knowledge]:
    """A user's records for display, newest first."""
    result = await db.execute(
        select(Knowledge)
        .where(Knowledge.user_id == user_id)
        .order_by(Knowledge.created_at.desc(), Knowledge.id.desc())
    )
    return list(result.scalars().all())


def chunk_title(title: str, index: int, total: int) -> str:
    """Record title for one chunk of a multi-part upload."""
    if total > 1:
        return f"{title} (Part {index + 1})"
    return title


async def save_chunks(
    db: AsyncSession,
    user_id: int,
    title: str,
    source: str,
    chunks: Sequence[IngestedChunk],
) -> list[Knowledge]:
    """Store one knowledge record per ingested chunk."""
    records = [
        Knowledge(
            user_id=user_id,
            title=chunk_title(title, index, len(chunks)),
            content=chunk.content,
            embedding=chunk.embedding,
            embedding_backend=chunk.embedding_backend.value,
            source=source,
        )
        for index, chunk in enumerate(chunks)
    ]
    db.add_all(records)
    await db.commit()

    logger.info(f"Saved {len(records)} knowledge records for user {user_id} (source={source})")
    return records


async def delete_record(db: AsyncSession, user_id: int, record_id: int) -> bool:
    """Delete a record if it belongs to the user.

    Returns:
        True if a record was deleted.
    """
    result = await db.execute(
        delete(Knowledge).where(Knowledge.id == record_id, Knowledge.user_id == user_id)
    )
    await db.commit()
    return result.rowcount > 0


async def list_stale_records(db: AsyncSession, user_id: int) -> list[KnowledgeCandidate]:
    """Records embedded with the hashed fallback or with no backend tag."""
    result = await db.execute(
        select(Knowledge)
        .where(
            Knowledge.user_id == user_id,
            or_(
                Knowledge.embedding_backend.is_(None),
                Knowledge.embedding_backend == EmbeddingBackend.HASHED.value,
            ),
        )
        .order_by(Knowledge.id)
    )
    return [_to_candidate(record) for record in result.scalars().all()]


async def update_embeddings(
    db: AsyncSession,
    user_id: int,
    updates: Iterable[tuple[int, IngestedChunk]],
) -> int:
    """Replace stored vectors for the user's records.

    Returns:
        Number of records updated.
    """
    by_id = {record_id: chunk for record_id, chunk in updates}
    if not by_id:
        return 0

    result = await db.execute(
        select(Knowledge).where(Knowledge.user_id == user_id, Knowledge.id.in_(by_id))
    )
    records = result.scalars().all()
    for record in records:
        chunk = by_id[record.id]
        record.embedding = chunk.embedding
        record.embedding_backend = chunk.embedding_backend.value

    await db.commit()
    return len(records)


async def recent_history(db: AsyncSession, user_id: int, limit: int) -> list[tuple[str, str]]:
    """The user's last ``limit`` exchanges as ``(message, reply)``, oldest first."""
    result = await db.execute(
        select(ChatMessage)
        .where(ChatMessage.user_id == user_id)
        .order_by(ChatMessage.created_at.desc(), ChatMessage.id.desc())
        .limit(limit)
    )
    # Reverse to get chronological order
    return [(chat.message, chat.reply) for chat in reversed(result.scalars().all())]


async def save_chat(
    db: AsyncSession,
    user_id: int,
    message: str,
    reply: str,
    model: str,
) -> ChatMessage:
    chat = ChatMessage(user_id=user_id, message=message, reply=reply, model=model)
    db.add(chat)
    await db.commit()
    return chat
