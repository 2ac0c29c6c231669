from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Any
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from docuground.core.config import EMBED_DIM
from docuground.core.errors import EmbeddingError, ProviderConfigError, SearchError
from docuground.persistence.repos import chunks as chunks_repo
from docuground.providers.embeddings.base import EmbeddingProvider


logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 5
DEFAULT_THRESHOLD = 0.7


@dataclass(frozen=True)
class RetrievedChunk:
    id: UUID
    document_id: str
    chunk_index: int
    content: str
    similarity: float
    metadata: dict[str, Any] = field(default_factory=dict)


class RetrievalEngine:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        embedder: EmbeddingProvider,
        ef_search: int = chunks_repo.DEFAULT_EF_SEARCH,
    ) -> None:
        self._session_factory = session_factory
        # Must be the same provider instance ingestion uses so embedding spaces match.
        self._embedder = embedder
        self._ef_search = ef_search

    async def search_similar_chunks(
        self,
        query: str,
        project_id: str,
        limit: int = DEFAULT_LIMIT,
        threshold: float = DEFAULT_THRESHOLD,
    ) -> list[RetrievedChunk]:
        """Return up to ``limit`` chunks with similarity >= ``threshold``, best first.

        An empty list is a normal outcome. Embedding or store failures raise
        ``SearchError`` so callers can continue without context.
        """
        if not 0.0 <= threshold <= 1.0:
            raise ValueError("similarity threshold must be within [0, 1]")
        if limit < 1:
            raise ValueError("limit must be >= 1")

        try:
            vectors = await self._embedder.embed([query])
        except (EmbeddingError, ProviderConfigError) as exc:
            logger.warning("search_embedding_failed project_id=%s", project_id, exc_info=exc)
            raise SearchError(f"Failed to search similar chunks: {exc}") from exc
        if len(vectors) != 1 or len(vectors[0]) != EMBED_DIM:
            # Retrieval must fail fast if the embedding dimension doesn't match the schema.
            raise SearchError("query embedding dimension mismatch")

        async with self._session_factory() as session:
            try:
                matches = await chunks_repo.match_document_chunks(
                    session,
                    query_embedding=vectors[0],
                    similarity_threshold=threshold,
                    match_count=limit,
                    project_id=project_id,
                    ef_search=self._ef_search,
                )
            except SQLAlchemyError as exc:
                logger.warning("search_query_failed project_id=%s", project_id, exc_info=exc)
                raise SearchError("Vector search failed") from exc

        results = [
            RetrievedChunk(
                id=match.id,
                document_id=match.document_id,
                chunk_index=match.chunk_index,
                content=match.content,
                # Clamp float noise from the distance conversion.
                similarity=max(0.0, min(1.0, match.similarity)),
                metadata=match.metadata_json,
            )
            for match in matches
        ]
        results.sort(key=lambda item: item.similarity, reverse=True)
        logger.info(
            "search_done project_id=%s limit=%s threshold=%s results=%s",
            project_id,
            limit,
            threshold,
            len(results),
        )
        return results[:limit]
