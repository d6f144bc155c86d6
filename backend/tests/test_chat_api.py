"""Tests for the chat endpoint, health check and metrics."""

from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import pytest
from fastapi import FastAPI
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from study_assistant.api.v1.endpoints.chat import rate_limit_message
from study_assistant.core.ai_constants import LLAMA_MODEL_NOTE, MEMORY_NOTE, TEMPERATURE_CONFIG
from study_assistant.core.clients import get_chat_service, get_retriever
from study_assistant.knowledge.embeddings import fallback_embedding
from study_assistant.knowledge.similarity import serialize_embedding
from study_assistant.models import ChatMessage, Knowledge, User
from study_assistant.services.chat_completion import ChatCompletionService

from fakes import api_status_error

PHOTOSYNTHESIS = (
    "Fotosintesis adalah proses tumbuhan hijau membuat makanan sendiri menggunakan "
    "cahaya matahari, air dan karbon dioksida di dalam daun."
)


def _sent_kwargs(client: MagicMock) -> dict:
    return client.chat.completions.create.await_args.kwargs


class TestGuestChat:
    """Guests chat without a knowledge base, up to a fixed limit."""

    async def test_guest_gets_reply_and_remaining_count(
        self, client: AsyncClient, openai_client: MagicMock
    ):
        response = await client.post(
            "/api/v1/chat",
            json={"message": "Siapa penemu lampu pijar?", "guestChatCount": 2},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["reply"] == "Jawaban dari GPT"
        assert data["model"] == "gpt"
        assert data["is_guest"] is True
        assert data["rag_used"] is False
        assert data["remaining_chats"] == 4

        system_prompt = _sent_kwargs(openai_client)["messages"][0]["content"]
        assert MEMORY_NOTE not in system_prompt
        assert _sent_kwargs(openai_client)["temperature"] == TEMPERATURE_CONFIG["general"]

    async def test_guest_limit_requires_login(self, client: AsyncClient, openai_client: MagicMock):
        response = await client.post(
            "/api/v1/chat",
            json={"message": "Satu pertanyaan lagi", "guestChatCount": 7},
        )

        assert response.status_code == 403
        detail = response.json()["detail"]
        assert detail["require_login"] is True
        assert detail["error"] == "Batas chat gratis tercapai"
        openai_client.chat.completions.create.assert_not_awaited()

    async def test_code_question_uses_code_temperature(
        self, client: AsyncClient, openai_client: MagicMock
    ):
        await client.post("/api/v1/chat", json={"message": "Kenapa fungsi Python saya error?"})

        assert _sent_kwargs(openai_client)["temperature"] == TEMPERATURE_CONFIG["code"]

    async def test_blank_message_rejected(self, client: AsyncClient):
        response = await client.post("/api/v1/chat", json={"message": "   "})

        assert response.status_code == 400
        assert response.json()["detail"] == "Message wajib diisi"

    async def test_negative_guest_count_rejected(self, client: AsyncClient):
        response = await client.post("/api/v1/chat", json={"message": "Halo", "guestChatCount": -1})

        assert response.status_code == 422


class TestSignedInChat:
    """Signed-in chat uses the knowledge base and remembers history."""

    async def test_rag_context_reaches_prompt(
        self,
        auth_client: AsyncClient,
        db_session: AsyncSession,
        test_user: User,
        openai_client: MagicMock,
    ):
        db_session.add(
            Knowledge(
                user_id=test_user.id,
                title="Biologi",
                content=PHOTOSYNTHESIS,
                embedding=serialize_embedding(fallback_embedding(PHOTOSYNTHESIS)),
                embedding_backend="hashed",
            )
        )
        await db_session.commit()

        response = await auth_client.post(
            "/api/v1/chat",
            json={"message": "fotosintesis tumbuhan cahaya matahari"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["rag_used"] is True
        assert data["is_guest"] is False
        assert data["remaining_chats"] is None

        kwargs = _sent_kwargs(openai_client)
        assert PHOTOSYNTHESIS in kwargs["messages"][0]["content"]
        assert MEMORY_NOTE in kwargs["messages"][0]["content"]
        assert kwargs["temperature"] == TEMPERATURE_CONFIG["rag"]

        chats = (await db_session.execute(select(ChatMessage))).scalars().all()
        assert [(chat.message, chat.reply, chat.model) for chat in chats] == [
            ("fotosintesis tumbuhan cahaya matahari", "Jawaban dari GPT", "gpt"),
        ]

    async def test_oversized_top_result_still_grounds_reply(
        self,
        auth_client: AsyncClient,
        db_session: AsyncSession,
        test_user: User,
        openai_client: MagicMock,
    ):
        long_answer = " ".join([PHOTOSYNTHESIS] * 60)
        db_session.add(
            Knowledge(
                user_id=test_user.id,
                title="Q&A: Fotosintesis",
                content=long_answer,
                embedding=serialize_embedding(fallback_embedding(long_answer)),
                embedding_backend="hashed",
                source="feedback",
            )
        )
        await db_session.commit()

        response = await auth_client.post(
            "/api/v1/chat",
            json={"message": "fotosintesis tumbuhan cahaya matahari"},
        )

        assert response.json()["rag_used"] is True
        system_prompt = _sent_kwargs(openai_client)["messages"][0]["content"]
        assert "[Dokumen 1 - Relevansi: " in system_prompt
        assert "TIDAK ADA KONTEKS" not in system_prompt

    async def test_retrieval_failure_answers_without_context(
        self,
        app: FastAPI,
        auth_client: AsyncClient,
        db_session: AsyncSession,
        test_user: User,
    ):
        db_session.add(
            Knowledge(
                user_id=test_user.id,
                title="Biologi",
                content=PHOTOSYNTHESIS,
                embedding=serialize_embedding(fallback_embedding(PHOTOSYNTHESIS)),
                embedding_backend="hashed",
            )
        )
        await db_session.commit()
        broken = MagicMock()
        broken.search = AsyncMock(side_effect=httpx.InvalidURL("bad embedding url"))
        app.dependency_overrides[get_retriever] = lambda: broken

        response = await auth_client.post(
            "/api/v1/chat",
            json={"message": "fotosintesis tumbuhan cahaya matahari"},
        )

        assert response.status_code == 200
        assert response.json()["rag_used"] is False
        assert response.json()["reply"] == "Jawaban dari GPT"
        broken.search.assert_awaited_once()

    async def test_history_is_replayed_without_model_prefix(
        self,
        auth_client: AsyncClient,
        db_session: AsyncSession,
        test_user: User,
        openai_client: MagicMock,
    ):
        db_session.add(
            ChatMessage(
                user_id=test_user.id,
                message="[LLAMA] Apa itu sel?",
                reply="Unit terkecil kehidupan.",
                model="llama",
            )
        )
        await db_session.commit()

        await auth_client.post("/api/v1/chat", json={"message": "Contohnya apa?"})

        messages = _sent_kwargs(openai_client)["messages"]
        assert messages[1:] == [
            {"role": "user", "content": "Apa itu sel?"},
            {"role": "assistant", "content": "Unit terkecil kehidupan."},
            {"role": "user", "content": "Contohnya apa?"},
        ]

    async def test_other_users_knowledge_is_not_used(
        self,
        auth_client: AsyncClient,
        db_session: AsyncSession,
        other_user: User,
    ):
        db_session.add(
            Knowledge(
                user_id=other_user.id,
                title="Biologi",
                content=PHOTOSYNTHESIS,
                embedding=serialize_embedding(fallback_embedding(PHOTOSYNTHESIS)),
                embedding_backend="hashed",
            )
        )
        await db_session.commit()

        response = await auth_client.post(
            "/api/v1/chat",
            json={"message": "fotosintesis tumbuhan cahaya matahari"},
        )

        assert response.json()["rag_used"] is False


class TestModelFallback:
    """GPT rate limits fall back to Llama."""

    async def test_rate_limited_gpt_answers_with_llama(
        self,
        auth_client: AsyncClient,
        db_session: AsyncSession,
        openai_client: MagicMock,
        groq_client: MagicMock,
    ):
        openai_client.chat.completions.create = AsyncMock(
            side_effect=api_status_error(openai.RateLimitError, 429)
        )

        response = await auth_client.post("/api/v1/chat", json={"message": "Apa itu atom?"})

        assert response.status_code == 200
        data = response.json()
        assert data["model"] == "llama"
        assert data["is_fallback"] is True
        assert data["reply"] == "Jawaban dari Llama"
        assert LLAMA_MODEL_NOTE in _sent_kwargs(groq_client)["messages"][0]["content"]

        chat = (await db_session.execute(select(ChatMessage))).scalar_one()
        assert chat.message == "[LLAMA] Apa itu atom?"
        assert chat.model == "llama"

    async def test_llama_requested_directly(self, client: AsyncClient, groq_client: MagicMock):
        response = await client.post("/api/v1/chat", json={"message": "Halo", "model": "llama"})

        assert response.json()["model"] == "llama"
        assert response.json()["is_fallback"] is False
        groq_client.chat.completions.create.assert_awaited_once()


class TestProviderErrors:
    """Provider failures map to user-facing HTTP errors."""

    async def test_rate_limit_includes_retry_hint(self, client: AsyncClient, groq_client: MagicMock):
        groq_client.chat.completions.create = AsyncMock(
            side_effect=api_status_error(openai.RateLimitError, 429, {"retry-after": "120"})
        )

        response = await client.post("/api/v1/chat", json={"message": "Halo", "model": "llama"})

        assert response.status_code == 429
        assert response.json()["detail"] == "Rate limit tercapai. Coba lagi dalam 2 menit."

    async def test_invalid_api_key(self, client: AsyncClient, openai_client: MagicMock):
        openai_client.chat.completions.create = AsyncMock(
            side_effect=api_status_error(openai.AuthenticationError, 401)
        )

        response = await client.post("/api/v1/chat", json={"message": "Halo"})

        assert response.status_code == 500
        assert response.json()["detail"] == "API key tidak valid. Hubungi administrator."

    async def test_provider_unavailable(self, client: AsyncClient, openai_client: MagicMock):
        openai_client.chat.completions.create = AsyncMock(
            side_effect=api_status_error(openai.InternalServerError, 503)
        )

        response = await client.post("/api/v1/chat", json={"message": "Halo"})

        assert response.status_code == 503
        assert response.json()["detail"] == "Server AI sedang sibuk. Coba lagi dalam beberapa saat."

    async def test_other_errors_are_generic(self, client: AsyncClient, openai_client: MagicMock):
        openai_client.chat.completions.create = AsyncMock(
            side_effect=api_status_error(openai.BadRequestError, 400)
        )

        response = await client.post("/api/v1/chat", json={"message": "Halo"})

        assert response.status_code == 500
        assert response.json()["detail"] == "Terjadi kesalahan pada server. Silakan coba lagi."

    async def test_unconfigured_provider(self, app: FastAPI, client: AsyncClient):
        app.dependency_overrides[get_chat_service] = lambda: ChatCompletionService(
            openai_client=None, groq_client=None
        )

        response = await client.post("/api/v1/chat", json={"message": "Halo"})

        assert response.status_code == 503


class TestRateLimitMessage:
    @pytest.mark.parametrize(
        "retry_after, expected",
        [
            (None, "1 menit"),
            ("30", "1 menit"),
            ("120", "2 menit"),
            ("7200", "2 jam"),
            ("soon", "1 menit"),
        ],
    )
    def test_wait_hint(self, retry_after, expected: str):
        assert rate_limit_message(retry_after) == f"Rate limit tercapai. Coba lagi dalam {expected}."


class TestServiceEndpoints:
    async def test_health(self, client: AsyncClient):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    async def test_metrics_exposes_request_counters(self, client: AsyncClient):
        await client.get("/health")

        response = await client.get("/metrics")

        assert response.status_code == 200
        assert "http_requests_total" in response.text
