"""Data models for knowledge chunks, embeddings and retrieval results."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class EmbeddingBackend(str, Enum):
    """Embedding space a vector was produced in.

    Vectors from different backends share a width but not a geometry,
    so they must never be scored against each other.
    """

    SEMANTIC = "semantic"  # hosted sentence-transformers model
    HASHED = "hashed"  # local bag-of-words hash fallback


class TextChunk(BaseModel):
    """A contiguous word window of a source document."""

    model_config = ConfigDict(frozen=True)

    index: int = Field(..., ge=0, description="Position of the chunk in its document")
    content: str = Field(..., description="Chunk text content")
    word_count: int = Field(..., gt=0)


class Embedding(BaseModel):
    """A fixed-width vector tagged with the backend that produced it."""

    model_config = ConfigDict(frozen=True)

    vector: list[float]
    backend: EmbeddingBackend

    @property
    def dimensions(self) -> int:
        return len(self.vector)


@dataclass(frozen=True)
class EmbeddingOk:
    """Successful response from the semantic embedding service."""

    vectors: list[list[float]]


@dataclass(frozen=True)
class EmbeddingErr:
    """Failed call to the semantic embedding service."""

    reason: str


EmbeddingOutcome = Union[EmbeddingOk, EmbeddingErr]


class KnowledgeCandidate(BaseModel):
    """A stored knowledge record as seen by the retrieval core.

    The candidate set is always scoped to one owner by the caller.
    """

    id: int
    content: str
    embedding: Optional[str] = Field(None, description="Serialized vector (JSON array)")
    embedding_backend: Optional[EmbeddingBackend] = None


class SimilarityResult(BaseModel):
    """A candidate scored against a query vector."""

    id: int
    content: str
    score: float = Field(..., ge=-1.0, le=1.0, description="Cosine similarity")


class ExpandedQuery(BaseModel):
    """Outcome of query expansion."""

    original: str
    expanded: str
    was_expanded: bool = False


class IngestedChunk(BaseModel):
    """A chunk with its serialized embedding, ready for storage."""

    content: str
    embedding: str
    embedding_backend: EmbeddingBackend


class RetrievalReport(BaseModel):
    """Everything a retrieval run produced, for callers that log or display it."""

    query: ExpandedQuery
    query_backend: Optional[EmbeddingBackend] = None
    candidate_count: int = 0
    results: list[SimilarityResult] = Field(default_factory=list)
