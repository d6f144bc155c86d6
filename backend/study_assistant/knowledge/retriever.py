"""Knowledge retriever for RAG over a user's own documents.

Ties chunking, embedding, query expansion and similarity ranking into
the two operations the rest of the application uses: ``search`` over an
owner-scoped candidate set, and ``ingest`` of new document text.
"""

import logging
import time
from typing import Optional, Sequence

from study_assistant.knowledge.chunker import (
    DEFAULT_CHUNK_OVERLAP,
    DEFAULT_CHUNK_SIZE,
    DEFAULT_MIN_WORDS,
    chunk_text,
)
from study_assistant.knowledge.embeddings import EmbeddingProvider
from study_assistant.knowledge.models import (
    EmbeddingBackend,
    ExpandedQuery,
    IngestedChunk,
    KnowledgeCandidate,
    RetrievalReport,
    SimilarityResult,
)
from study_assistant.knowledge.query_expansion import QueryExpander
from study_assistant.knowledge.similarity import (
    deserialize_embedding,
    rank_candidates,
    serialize_embedding,
)
from study_assistant.observability import MetricsBackend, NullMetrics, log_ai_event

logger = logging.getLogger(__name__)

DEFAULT_TOP_K = 3
DEFAULT_MIN_SCORE = 0.3


class KnowledgeRetriever:
    """Semantic search and ingestion for per-user knowledge records.

    Performs no ownership filtering: callers pass candidates that already
    belong to the requesting user.
    """

    def __init__(
        self,
        embedder: EmbeddingProvider,
        expander: Optional[QueryExpander] = None,
        top_k: int = DEFAULT_TOP_K,
        min_score: float = DEFAULT_MIN_SCORE,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        chunk_overlap: int = DEFAULT_CHUNK_OVERLAP,
        chunk_min_words: int = DEFAULT_MIN_WORDS,
        metrics: Optional[MetricsBackend] = None,
    ) -> None:
        if top_k < 1:
            raise ValueError(f"top_k must be at least 1, got {top_k}")
        self.embedder = embedder
        self.expander = expander
        self.top_k = top_k
        self.min_score = min_score
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self.chunk_min_words = chunk_min_words
        self._metrics = metrics or NullMetrics()

    async def search(
        self,
        query: str,
        candidates: Sequence[KnowledgeCandidate],
        top_k: Optional[int] = None,
        expand: bool = True,
    ) -> RetrievalReport:
        """Find the stored records most relevant to a query.

        Steps run strictly in order: expand the query, embed it, score
        every candidate, then rank with the relevance threshold.

        Args:
            query: User question.
            candidates: Owner-scoped records to search.
            top_k: Maximum results; defaults to the retriever's setting.
            expand: Run query expansion when an expander is configured.

        Returns:
            RetrievalReport with the (possibly expanded) query and ranked results.

        Raises:
            ValueError: If the query is missing or blank, or top_k < 1.
        """
        if query is None or not query.strip():
            raise ValueError("query must be a non-empty string")

        limit = self.top_k if top_k is None else top_k
        if limit < 1:
            raise ValueError(f"top_k must be at least 1, got {limit}")

        if not candidates:
            return RetrievalReport(
                query=ExpandedQuery(original=query, expanded=query),
            )

        start = time.perf_counter()

        if expand and self.expander is not None:
            expanded = await self.expander.expand(query)
        else:
            expanded = ExpandedQuery(original=query, expanded=query)

        query_embedding = await self.embedder.embed(expanded.expanded)

        corrupt_ids = [
            candidate.id
            for candidate in candidates
            if candidate.embedding and deserialize_embedding(candidate.embedding) is None
        ]
        if corrupt_ids:
            logger.warning(
                f"Unreadable stored embeddings scored as 0 for knowledge ids {corrupt_ids}"
            )

        results = rank_candidates(
            query_embedding,
            candidates,
            top_k=limit,
            min_score=self.min_score,
        )

        log_ai_event(
            "info",
            "RAG_SEARCH",
            context_found=bool(results),
            latency_ms=round((time.perf_counter() - start) * 1000),
            metadata={
                "candidates": len(candidates),
                "results": len(results),
                "top_score": results[0].score if results else None,
                "query_backend": query_embedding.backend.value,
                "was_expanded": expanded.was_expanded,
            },
        )
        self._metrics.observe_retrieval(
            query_embedding.backend.value,
            expanded.was_expanded,
            len(results),
        )

        return RetrievalReport(
            query=expanded,
            query_backend=query_embedding.backend,
            candidate_count=len(candidates),
            results=results,
        )

    async def retrieve(
        self,
        query: str,
        candidates: Sequence[KnowledgeCandidate],
        top_k: Optional[int] = None,
    ) -> list[SimilarityResult]:
        """Ranked ``(id, content, score)`` results for a query."""
        report = await self.search(query, candidates, top_k=top_k)
        return report.results

    async def ingest(self, text: str) -> list[IngestedChunk]:
        """Chunk and embed document text, ready for storage.

        All chunks are embedded in one batch request; on failure every
        chunk carries a hashed fallback vector.
        """
        chunks = chunk_text(
            text,
            chunk_size=self.chunk_size,
            overlap=self.chunk_overlap,
            min_words=self.chunk_min_words,
        )
        if not chunks:
            return []

        embeddings = await self.embedder.embed_many(chunks)
        return [
            IngestedChunk(
                content=content,
                embedding=serialize_embedding(embedding.vector),
                embedding_backend=embedding.backend,
            )
            for content, embedding in zip(chunks, embeddings)
        ]

    async def reembed(
        self,
        candidates: Sequence[KnowledgeCandidate],
    ) -> list[tuple[int, IngestedChunk]]:
        """Re-embed records and keep only the ones that got a semantic vector.

        Used to upgrade records stored during an embedding-service outage.
        Returns ``(record id, new chunk)`` pairs; records that would only get
        another hashed vector are left out.
        """
        if not candidates:
            return []

        embeddings = await self.embedder.embed_many([candidate.content for candidate in candidates])

        updates: list[tuple[int, IngestedChunk]] = []
        for candidate, embedding in zip(candidates, embeddings):
            if embedding.backend != EmbeddingBackend.SEMANTIC:
                continue
            updates.append(
                (
                    candidate.id,
                    IngestedChunk(
                        content=candidate.content,
                        embedding=serialize_embedding(embedding.vector),
                        embedding_backend=embedding.backend,
                    ),
                )
            )

        logger.info(f"Re-embedded {len(updates)} of {len(candidates)} knowledge records")
        return updates
