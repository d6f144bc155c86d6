"""Cosine similarity scoring and ranking over stored knowledge vectors.

Brute-force and exact: candidate sets are one user's documents, so no
index structure is needed. Everything here is pure and side-effect free.
"""

import json
import math
from typing import Optional, Sequence

import numpy as np
from pydantic import FiniteFloat, TypeAdapter, ValidationError

from study_assistant.knowledge.models import (
    Embedding,
    KnowledgeCandidate,
    SimilarityResult,
)

_STORED_VECTOR = TypeAdapter(list[FiniteFloat])


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity of two vectors.

    Returns exactly 0.0 when the lengths differ, either vector is empty,
    either vector has zero magnitude, or the result is not finite (NaN or
    infinite components, or magnitudes that overflow).
    """
    if len(a) != len(b) or len(a) == 0:
        return 0.0

    vec_a = np.asarray(a, dtype=np.float64)
    vec_b = np.asarray(b, dtype=np.float64)

    with np.errstate(invalid="ignore", over="ignore"):
        magnitude_a = np.linalg.norm(vec_a)
        magnitude_b = np.linalg.norm(vec_b)
        if magnitude_a == 0 or magnitude_b == 0:
            return 0.0
        score = float(np.dot(vec_a, vec_b) / (magnitude_a * magnitude_b))

    if not math.isfinite(score):
        return 0.0
    # Rounding can push |score| a hair past 1
    return max(-1.0, min(1.0, score))


def serialize_embedding(vector: Sequence[float]) -> str:
    """Serialize a vector for storage as a JSON array."""
    return json.dumps([float(value) for value in vector])


def deserialize_embedding(raw: Optional[str]) -> Optional[list[float]]:
    """Parse a stored vector, or return None if it is absent or corrupt.

    Vectors holding NaN or infinite values count as corrupt.
    """
    if not raw:
        return None
    try:
        return _STORED_VECTOR.validate_json(raw)
    except ValidationError:
        return None


def score_candidate(query: Embedding, candidate: KnowledgeCandidate) -> float:
    """Score one stored candidate against a query embedding.

    Missing or corrupt vectors score 0. A candidate tagged with a different
    embedding backend than the query also scores 0, since the two spaces
    are not comparable; untagged (legacy) vectors are compared as-is.
    """
    if candidate.embedding_backend is not None and candidate.embedding_backend != query.backend:
        return 0.0

    stored = deserialize_embedding(candidate.embedding)
    if stored is None:
        return 0.0

    return cosine_similarity(query.vector, stored)


def rank(
    scored: Sequence[SimilarityResult],
    top_k: int,
    min_score: float,
) -> list[SimilarityResult]:
    """Order scored results best-first, drop weak ones, keep the top K.

    The sort is stable, so equal scores keep their input order. Only
    results scoring strictly above ``min_score`` survive.

    Raises:
        ValueError: If ``top_k`` is less than 1.
    """
    if top_k < 1:
        raise ValueError(f"top_k must be at least 1, got {top_k}")

    ordered = sorted(scored, key=lambda result: result.score, reverse=True)
    return [result for result in ordered if result.score > min_score][:top_k]


def rank_candidates(
    query: Embedding,
    candidates: Sequence[KnowledgeCandidate],
    top_k: int,
    min_score: float,
) -> list[SimilarityResult]:
    """Score every candidate against the query and rank them."""
    scored = [
        SimilarityResult(
            id=candidate.id,
            content=candidate.content,
            score=score_candidate(query, candidate),
        )
        for candidate in candidates
    ]
    return rank(scored, top_k=top_k, min_score=min_score)
