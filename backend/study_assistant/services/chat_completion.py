"""Primary chat completion with provider fallback.

GPT answers by default; when OpenAI rate-limits the request it is retried
on Llama through Groq's OpenAI-compatible endpoint. Every other provider
error propagates for the HTTP layer to map.
"""

import logging
import time
from dataclasses import dataclass
from typing import Optional

from openai import APIStatusError, AsyncOpenAI, RateLimitError

from study_assistant.core.ai_constants import AI_MODELS, TOKEN_CONFIG
from study_assistant.observability import MetricsBackend, NullMetrics, log_ai_event

logger = logging.getLogger(__name__)


class ChatProviderNotConfigured(RuntimeError):
    """Raised when the requested chat provider has no API key."""


@dataclass
class ChatCompletionResult:
    """Reply text plus which model actually produced it."""

    reply: str
    model: str  # "gpt" or "llama"
    is_fallback: bool = False
    tokens: Optional[int] = None


class ChatCompletionService:
    """Sends role-tagged messages to the selected chat provider."""

    def __init__(
        self,
        openai_client: Optional[AsyncOpenAI],
        groq_client: Optional[AsyncOpenAI],
        gpt_model: str = AI_MODELS["gpt"]["id"],
        llama_model: str = AI_MODELS["llama"]["id"],
        metrics: Optional[MetricsBackend] = None,
    ) -> None:
        self._clients = {"gpt": openai_client, "llama": groq_client}
        self._model_ids = {"gpt": gpt_model, "llama": llama_model}
        self._metrics = metrics or NullMetrics()

    async def complete(
        self,
        messages: list[dict[str, str]],
        model: str = "gpt",
        temperature: float = 0.5,
        max_tokens: int = TOKEN_CONFIG["max_output"],
        fallback_messages: Optional[list[dict[str, str]]] = None,
    ) -> ChatCompletionResult:
        """Generate a reply, falling back from GPT to Llama on rate limits.

        ``fallback_messages`` replaces ``messages`` for the Llama retry, so the
        system prompt can name the model that actually answers.

        Raises:
            ValueError: Unknown model key.
            ChatProviderNotConfigured: The provider has no client.
            openai.OpenAIError: Any provider failure other than a GPT rate limit.
        """
        if model not in self._clients:
            raise ValueError(f"Unknown chat model: {model}")

        try:
            return await self._call(model, messages, temperature, max_tokens)
        except RateLimitError as e:
            if model != "gpt" or self._clients["llama"] is None:
                raise
            log_ai_event(
                "warn",
                "CHAT_MODEL_FALLBACK",
                model="llama",
                is_fallback=True,
                error=str(e),
                metadata={"from": "gpt", "reason": "rate_limit"},
            )

        result = await self._call(
            "llama",
            fallback_messages or messages,
            temperature,
            max_tokens,
        )
        result.is_fallback = True
        return result

    async def _call(
        self,
        model: str,
        messages: list[dict[str, str]],
        temperature: float,
        max_tokens: int,
    ) -> ChatCompletionResult:
        client = self._clients[model]
        if client is None:
            raise ChatProviderNotConfigured(f"{AI_MODELS[model]['name']} is not configured")

        provider = AI_MODELS[model]["provider"]
        start_time = time.perf_counter()
        status_code = 500
        try:
            response = await client.chat.completions.create(
                model=self._model_ids[model],
                messages=messages,
                max_tokens=max_tokens,
                temperature=temperature,
            )
            status_code = 200
        except APIStatusError as e:
            status_code = e.status_code
            raise
        finally:
            duration_ms = (time.perf_counter() - start_time) * 1000
            self._metrics.observe_external_api(provider, "chat", status_code, duration_ms)
            logger.info(
                "%s chat.completions status=%s duration_ms=%.2f",
                provider,
                status_code,
                duration_ms,
            )

        reply = ""
        if response.choices:
            reply = (response.choices[0].message.content or "").strip()

        return ChatCompletionResult(
            reply=reply,
            model=model,
            tokens=response.usage.total_tokens if response.usage else None,
        )
