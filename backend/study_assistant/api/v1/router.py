"""API v1 router aggregating all endpoint routers.

Knowledge base:
  /api/v1/knowledge (upload, list, delete), /search, /reembed

Chat:
  /api/v1/chat

Feedback:
  /api/v1/feedback
"""

from fastapi import APIRouter

from study_assistant.api.v1.endpoints import chat, feedback, knowledge

api_router = APIRouter()

api_router.include_router(knowledge.router, prefix="/knowledge", tags=["knowledge"])
api_router.include_router(chat.router, prefix="/chat", tags=["chat"])
api_router.include_router(feedback.router, prefix="/feedback", tags=["feedback"])
