"""Embedding generation for knowledge base chunks and queries.

The semantic backend is a hosted sentence-transformers model
(all-MiniLM-L6-v2, 384 dimensions) reached over HTTP. When the service is
unreachable or answers with anything other than well-formed vectors, a
deterministic bag-of-words hash embedding of the same width is used
instead. Callers always get a vector back, tagged with its backend.
"""

import logging
import re
import time
from typing import Any, Optional

import httpx
import numpy as np
from pydantic import FiniteFloat, TypeAdapter, ValidationError

from study_assistant.knowledge.models import (
    Embedding,
    EmbeddingBackend,
    EmbeddingErr,
    EmbeddingOk,
    EmbeddingOutcome,
)
from study_assistant.observability import MetricsBackend, NullMetrics, log_ai_event

logger = logging.getLogger(__name__)

DEFAULT_DIMENSIONS = 384
DEFAULT_MAX_INPUT_CHARS = 512

_WHITESPACE = re.compile(r"\s+")
_NON_WORD = re.compile(r"[^\w\s]")

_FLAT_VECTOR = TypeAdapter(list[FiniteFloat])
_VECTOR_LIST = TypeAdapter(list[list[FiniteFloat]])


def preprocess_text(text: str, max_chars: int = DEFAULT_MAX_INPUT_CHARS) -> str:
    """Collapse whitespace and truncate to the model's input limit."""
    return _WHITESPACE.sub(" ", text).strip()[:max_chars]


def _word_bucket(word: str, dimensions: int) -> int:
    # 32-bit signed rolling hash (h * 31 + c), stable across processes
    h = 0
    for char in word:
        h = (h * 31 + ord(char)) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return abs(h) % dimensions


def fallback_embedding(text: str, dimensions: int = DEFAULT_DIMENSIONS) -> list[float]:
    """Deterministic local embedding used when the semantic service fails.

    Each word is hashed into a bucket and the bucket count incremented;
    the result is L2-normalized. Text without words yields the zero vector.

    Args:
        text: Preprocessed text.
        dimensions: Vector width; matches the semantic backend.

    Returns:
        List of floats of length ``dimensions``.
    """
    vector = np.zeros(dimensions, dtype=np.float64)
    for word in _NON_WORD.sub(" ", text.lower()).split():
        vector[_word_bucket(word, dimensions)] += 1.0

    norm = np.linalg.norm(vector)
    if norm > 0:
        vector = vector / norm

    return vector.tolist()


def decode_embedding_response(
    payload: Any,
    expected_count: int,
    dimensions: int,
    batched: bool,
) -> EmbeddingOutcome:
    """Validate the JSON body returned by the feature-extraction endpoint.

    A single input yields either a flat vector or a one-element nested list;
    a batch yields one vector per input, in order.
    """
    try:
        if batched:
            vectors = _VECTOR_LIST.validate_python(payload)
        else:
            try:
                vectors = [_FLAT_VECTOR.validate_python(payload)]
            except ValidationError:
                vectors = _VECTOR_LIST.validate_python(payload)[:1]
    except ValidationError as e:
        return EmbeddingErr(f"malformed response: {e.error_count()} validation errors")

    if len(vectors) != expected_count:
        return EmbeddingErr(f"expected {expected_count} vectors, got {len(vectors)}")

    for vector in vectors:
        if len(vector) != dimensions:
            return EmbeddingErr(f"expected {dimensions} dimensions, got {len(vector)}")

    return EmbeddingOk(vectors=vectors)


class EmbeddingProvider:
    """Turns text into fixed-width vectors.

    The HTTP client is owned by the caller (the application lifespan), so
    tests can inject an ``httpx.AsyncClient`` backed by a mock transport.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_url: str,
        api_token: Optional[str] = None,
        dimensions: int = DEFAULT_DIMENSIONS,
        max_input_chars: int = DEFAULT_MAX_INPUT_CHARS,
        metrics: Optional[MetricsBackend] = None,
    ) -> None:
        self._client = client
        self._api_url = api_url
        self._api_token = api_token
        self.dimensions = dimensions
        self.max_input_chars = max_input_chars
        self._metrics = metrics or NullMetrics()

    async def embed(self, text: str) -> Embedding:
        """Embed one text, falling back to the hash embedding on failure."""
        clean_text = preprocess_text(text, self.max_input_chars)
        if not clean_text:
            return Embedding(vector=[0.0] * self.dimensions, backend=EmbeddingBackend.HASHED)

        outcome = await self.request_embeddings([clean_text], batched=False)

        if isinstance(outcome, EmbeddingOk):
            return Embedding(vector=outcome.vectors[0], backend=EmbeddingBackend.SEMANTIC)

        log_ai_event("warn", "EMBEDDING_FALLBACK", error=outcome.reason, metadata={"count": 1})
        return self._fallback(clean_text)

    async def embed_many(self, texts: list[str]) -> list[Embedding]:
        """Embed several texts in one request, preserving order.

        If the batch call fails every text gets the hash embedding.
        """
        if not texts:
            return []

        clean_texts = [preprocess_text(text, self.max_input_chars) for text in texts]
        outcome = await self.request_embeddings(clean_texts, batched=True)

        if isinstance(outcome, EmbeddingOk):
            return [
                Embedding(vector=vector, backend=EmbeddingBackend.SEMANTIC)
                for vector in outcome.vectors
            ]

        log_ai_event(
            "warn",
            "EMBEDDING_FALLBACK",
            error=outcome.reason,
            metadata={"count": len(clean_texts)},
        )
        return [self._fallback(text) for text in clean_texts]

    async def request_embeddings(self, inputs: list[str], batched: bool) -> EmbeddingOutcome:
        """Call the semantic embedding service once, without retries.

        Args:
            inputs: Preprocessed texts.
            batched: Send a list (batch) instead of a single string.

        Returns:
            EmbeddingOk with one vector per input, or EmbeddingErr.
        """
        headers = {"Content-Type": "application/json"}
        if self._api_token:
            headers["Authorization"] = f"Bearer {self._api_token}"

        body = {
            "inputs": inputs if batched else inputs[0],
            "options": {"wait_for_model": True},
        }

        start = time.perf_counter()
        try:
            response = await self._client.post(self._api_url, json=body, headers=headers)
        except httpx.HTTPError as e:
            self._observe(0, start)
            return EmbeddingErr(f"request failed: {e!r}")

        self._observe(response.status_code, start)

        if not response.is_success:
            return EmbeddingErr(f"embedding service returned HTTP {response.status_code}")

        try:
            payload = response.json()
        except ValueError:
            return EmbeddingErr("embedding service returned invalid JSON")

        return decode_embedding_response(
            payload,
            expected_count=len(inputs),
            dimensions=self.dimensions,
            batched=batched,
        )

    def _fallback(self, clean_text: str) -> Embedding:
        return Embedding(
            vector=fallback_embedding(clean_text, self.dimensions),
            backend=EmbeddingBackend.HASHED,
        )

    def _observe(self, status_code: int, start: float) -> None:
        self._metrics.observe_external_api(
            "huggingface",
            "embed",
            status_code,
            (time.perf_counter() - start) * 1000,
        )
