"""User model."""

from typing import TYPE_CHECKING, Optional

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from study_assistant.models.base import BaseModel

if TYPE_CHECKING:
    from study_assistant.models.chat import ChatMessage
    from study_assistant.models.knowledge import Knowledge


class User(BaseModel):
    """A student using the assistant."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    password_hash: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    display_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # Relationships
    knowledge: Mapped[list["Knowledge"]] = relationship(
        "Knowledge",
        back_populates="user",
        cascade="all, delete-orphan",
    )
    chat_messages: Mapped[list["ChatMessage"]] = relationship(
        "ChatMessage",
        back_populates="user",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email})>"
