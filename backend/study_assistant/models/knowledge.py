"""Knowledge base records."""

from typing import TYPE_CHECKING, Optional

from sqlalchemy import ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from study_assistant.models.base import BaseModel

if TYPE_CHECKING:
    from study_assistant.models.user import User


class Knowledge(BaseModel):
    """One retrievable chunk of a user's knowledge base.

    The embedding is stored as a JSON array. ``embedding_backend`` records
    which embedding space produced it ("semantic" or "hashed"); legacy rows
    may leave it empty.
    """

    __tablename__ = "knowledge"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        index=True,
    )

    title: Mapped[str] = mapped_column(String(255))
    content: Mapped[str] = mapped_column(Text, nullable=False)
    embedding: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    embedding_backend: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    source: Mapped[str] = mapped_column(String(50), default="manual")  # manual, text, feedback

    # Relationship
    user: Mapped["User"] = relationship("User", back_populates="knowledge")

    def __repr__(self) -> str:
        return f"<Knowledge(id={self.id}, user_id={self.user_id}, source={self.source})>"
