"""Application configuration settings."""

import logging
import warnings
from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Application
    app_name: str = "AI Study Assistant"
    app_version: str = "0.1.0"
    debug: bool = False
    api_prefix: str = "/api/v1"
    cors_origins: list[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    # Database
    database_url: str = "sqlite+aiosqlite:///./study_assistant.db"
    database_echo: bool = False

    # Bearer tokens
    jwt_secret: str = "change-me-in-production"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24 * 7

    # OpenAI (primary chat model)
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4o-mini"

    # Groq (OpenAI-compatible endpoint; chat fallback + query expansion)
    groq_api_key: Optional[str] = None
    groq_base_url: str = "https://api.groq.com/openai/v1"
    groq_chat_model: str = "llama-3.3-70b-versatile"
    query_expansion_model: str = "llama-3.1-8b-instant"

    # Semantic embeddings (HuggingFace feature-extraction, all-MiniLM-L6-v2)
    embedding_api_url: str = (
        "https://router.huggingface.co/hf-inference/models/"
        "sentence-transformers/all-MiniLM-L6-v2/pipeline/feature-extraction"
    )
    embedding_api_token: Optional[str] = None
    embedding_timeout_seconds: float = 30.0
    embedding_dimensions: int = 384
    embedding_max_input_chars: int = 512

    # Chunking
    chunk_size_words: int = 300
    chunk_overlap_words: int = 50
    chunk_min_words: int = 10

    # Retrieval
    rag_top_k: int = 3
    rag_min_similarity: float = 0.3
    rag_query_expansion_enabled: bool = True
    rag_max_context_chars: int = 6000

    # Guests
    guest_chat_limit: int = 7

    # Observability
    metrics_enabled: bool = True


_INSECURE_DEFAULT = "change-me-in-production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Warns if security-sensitive settings are using default values.
    """
    settings = Settings()

    if settings.jwt_secret == _INSECURE_DEFAULT:
        msg = (
            "jwt_secret is using the default value. "
            "Set JWT_SECRET environment variable for production."
        )
        if not settings.debug:
            logger.warning(msg)
        warnings.warn(msg, UserWarning, stacklevel=2)

    return settings
