"""Pytest configuration and fixtures for backend tests."""

from typing import AsyncGenerator
from unittest.mock import MagicMock

import httpx
import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy import StaticPool
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from study_assistant.core.clients import get_chat_service, get_retriever
from study_assistant.core.database import Base, get_db
from study_assistant.core.security import create_access_token, get_password_hash
from study_assistant.knowledge.embeddings import EmbeddingProvider
from study_assistant.knowledge.retriever import KnowledgeRetriever
from study_assistant.main import app as main_app
from study_assistant.models import User
from study_assistant.services.chat_completion import ChatCompletionService

from fakes import EMBEDDING_URL, embedding_transport, failing_embedding_handler, mock_chat_client


# -------------------------------------------------------------------------
# Database Fixtures
# -------------------------------------------------------------------------


@pytest.fixture
async def async_engine():
    """Create an async SQLite engine for testing."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def db_session(async_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for testing."""
    async_session_maker = async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    async with async_session_maker() as session:
        yield session
        await session.rollback()


# -------------------------------------------------------------------------
# AI Component Fixtures
# -------------------------------------------------------------------------


@pytest.fixture
async def embedding_client() -> AsyncGenerator[httpx.AsyncClient, None]:
    """HTTP client whose embedding service is down (hashed fallback)."""
    async with embedding_transport(failing_embedding_handler) as client:
        yield client


@pytest.fixture
def embedder(embedding_client: httpx.AsyncClient) -> EmbeddingProvider:
    return EmbeddingProvider(client=embedding_client, api_url=EMBEDDING_URL)


@pytest.fixture
def retriever(embedder: EmbeddingProvider) -> KnowledgeRetriever:
    return KnowledgeRetriever(embedder=embedder)


@pytest.fixture
def openai_client() -> MagicMock:
    return mock_chat_client("Jawaban dari GPT")


@pytest.fixture
def groq_client() -> MagicMock:
    return mock_chat_client("Jawaban dari Llama")


@pytest.fixture
def chat_service(openai_client: MagicMock, groq_client: MagicMock) -> ChatCompletionService:
    return ChatCompletionService(openai_client=openai_client, groq_client=groq_client)


# -------------------------------------------------------------------------
# App Fixtures
# -------------------------------------------------------------------------


@pytest.fixture
def app(
    db_session: AsyncSession,
    retriever: KnowledgeRetriever,
    chat_service: ChatCompletionService,
) -> FastAPI:
    """Create a FastAPI app instance with test database and fake AI clients."""

    async def override_get_db():
        yield db_session

    main_app.dependency_overrides[get_db] = override_get_db
    main_app.dependency_overrides[get_retriever] = lambda: retriever
    main_app.dependency_overrides[get_chat_service] = lambda: chat_service
    yield main_app
    main_app.dependency_overrides.clear()


@pytest.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Create an async HTTP client for testing."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


# -------------------------------------------------------------------------
# User Fixtures
# -------------------------------------------------------------------------


@pytest.fixture
async def test_user(db_session: AsyncSession) -> User:
    """Create a test user."""
    user = User(
        email="test@example.com",
        password_hash=get_password_hash("testpassword123"),
        display_name="Test User",
    )
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


@pytest.fixture
async def other_user(db_session: AsyncSession) -> User:
    """A second user whose data must stay invisible to test_user."""
    user = User(email="other@example.com", display_name="Other User")
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


@pytest.fixture
async def auth_client(
    app: FastAPI,
    test_user: User,
) -> AsyncGenerator[AsyncClient, None]:
    """Create an HTTP client carrying test_user's bearer token."""
    token = create_access_token(test_user.id)
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        headers={"Authorization": f"Bearer {token}"},
    ) as ac:
        yield ac
