from __future__ import annotations

from dataclasses import dataclass
from typing import Any
from uuid import UUID

from sqlalchemy import Select, TextClause, select, text
from sqlalchemy.ext.asyncio import AsyncSession

from docuground.domain.models import Document, DocumentChunk, UploadStatus


# pgvector defaults hnsw.ef_search to 40 and accepts values up to 1000.
DEFAULT_EF_SEARCH = 100
MAX_EF_SEARCH = 1000


@dataclass(frozen=True)
class ChunkMatch:
    id: UUID
    document_id: str
    chunk_index: int
    content: str
    metadata_json: dict[str, Any]
    similarity: float


async def insert_chunks(session: AsyncSession, chunks: list[DocumentChunk]) -> None:
    # One flush for the whole batch; the caller's commit makes it all-or-nothing.
    session.add_all(chunks)
    await session.flush()


async def list_document_chunks(session: AsyncSession, document_id: str) -> list[DocumentChunk]:
    result = await session.execute(
        select(DocumentChunk)
        .where(DocumentChunk.document_id == document_id)
        .order_by(DocumentChunk.chunk_index)
    )
    return list(result.scalars().all())


def build_match_stmt(
    query_embedding: list[float],
    *,
    similarity_threshold: float,
    match_count: int,
    project_id: str,
) -> Select:
    # Use cosine distance from pgvector; similarity = 1 - distance.
    distance_expr = DocumentChunk.embedding.cosine_distance(query_embedding)
    return (
        select(
            DocumentChunk.id,
            DocumentChunk.document_id,
            DocumentChunk.chunk_index,
            DocumentChunk.content,
            DocumentChunk.metadata_json,
            (1 - distance_expr).label("similarity"),
        )
        .join(Document, Document.id == DocumentChunk.document_id)
        .where(
            Document.project_id == project_id,
            Document.upload_status == UploadStatus.COMPLETED.value,
            # Filter on distance so the HNSW index can serve the ORDER BY.
            distance_expr <= 1 - similarity_threshold,
        )
        # Secondary ordering keeps tie-breaking deterministic.
        .order_by(distance_expr.asc(), DocumentChunk.id.asc())
        .limit(match_count)
    )


def build_search_width_stmt(ef_search: int, match_count: int) -> TextClause:
    # The HNSW index spans every project, and the scope and status filters only see
    # the ef_search candidates it yields. Widening per transaction keeps small
    # projects from coming back short; results remain approximate.
    width = min(max(int(ef_search), int(match_count), 1), MAX_EF_SEARCH)
    # SET does not take bind parameters; width is always a bounded int.
    return text(f"SET LOCAL hnsw.ef_search = {width}")


async def match_document_chunks(
    session: AsyncSession,
    *,
    query_embedding: list[float],
    similarity_threshold: float,
    match_count: int,
    project_id: str,
    ef_search: int = DEFAULT_EF_SEARCH,
) -> list[ChunkMatch]:
    # SET LOCAL lasts until the end of the transaction the search runs in.
    await session.execute(build_search_width_stmt(ef_search, match_count))
    result = await session.execute(
        build_match_stmt(
            query_embedding,
            similarity_threshold=similarity_threshold,
            match_count=match_count,
            project_id=project_id,
        )
    )
    return [
        ChunkMatch(
            id=row.id,
            document_id=row.document_id,
            chunk_index=row.chunk_index,
            content=row.content,
            metadata_json=row.metadata_json or {},
            similarity=float(row.similarity),
        )
        for row in result.all()
    ]
