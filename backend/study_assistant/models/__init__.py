"""Database models."""

from study_assistant.models.base import BaseModel
from study_assistant.models.chat import ChatMessage
from study_assistant.models.knowledge import Knowledge
from study_assistant.models.user import User

__all__ = [
    "BaseModel",
    "ChatMessage",
    "Knowledge",
    "User",
]
