from __future__ import annotations

from dataclasses import dataclass, field
import logging
import time
from uuid import uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from docuground.core.config import EMBED_DIM, Settings
from docuground.core.errors import (
    ChunkStoreError,
    DatabaseError,
    DocumentCreateError,
    EmbeddingError,
    EmptyDocumentError,
    NoChunksError,
)
from docuground.domain.metadata import ChunkMetadata
from docuground.domain.models import DocumentChunk, UploadStatus
from docuground.ingestion.chunking import chunk_text
from docuground.ingestion.embeddings import content_hash
from docuground.ingestion.extraction import extract_text, validate_upload
from docuground.persistence.repos import chunks as chunks_repo
from docuground.persistence.repos import documents as documents_repo
from docuground.providers.embeddings.base import EmbeddingProvider


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProcessedChunk:
    content: str
    chunk_index: int
    metadata: ChunkMetadata


@dataclass(frozen=True)
class IngestionResult:
    document_id: str
    content_hash: str
    chunks: list[ProcessedChunk] = field(default_factory=list)
    duplicate_of: list[str] = field(default_factory=list)


def resolve_project_scope(project_id: str | None, account_id: str) -> str:
    # An omitted project means the account's implicit default project, not "no project".
    return project_id or account_id


class IngestionCoordinator:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        embedder: EmbeddingProvider,
        settings: Settings,
    ) -> None:
        self._session_factory = session_factory
        self._embedder = embedder
        self._settings = settings

    async def process_document(
        self,
        data: bytes,
        filename: str,
        mime_type: str,
        project_id: str,
        account_id: str,
    ) -> IngestionResult:
        """Extract, chunk, embed and store one uploaded file.

        Extraction failures happen before any row exists. Once the document
        row is created every failure marks that row ``failed`` (best effort)
        and re-raises.
        """
        started = time.monotonic()
        text = await extract_text(data, filename)
        if not text.strip():
            raise EmptyDocumentError("No text content found in the document")

        digest = content_hash(text)
        document_id = await self._create_document(
            document_id=uuid4().hex,
            project_id=project_id,
            account_id=account_id,
            filename=filename,
            mime_type=mime_type,
            file_size=len(data),
            digest=digest,
        )

        try:
            duplicates = await self._find_duplicates(document_id, project_id, digest)
            chunks = self._chunk(text, document_id)
            embeddings = await self._embed(chunks)
            await self._store_chunks(document_id, chunks, embeddings)
        except Exception as exc:
            # Chunk-store failures already recorded their own, more specific message.
            if not isinstance(exc, ChunkStoreError):
                await self._mark_failed(document_id, str(exc))
            raise

        logger.info(
            "ingest_completed document_id=%s project_id=%s chunks=%s duration_ms=%.1f",
            document_id,
            project_id,
            len(chunks),
            (time.monotonic() - started) * 1000.0,
        )
        return IngestionResult(
            document_id=document_id,
            content_hash=digest,
            chunks=chunks,
            duplicate_of=duplicates,
        )

    async def process_upload(
        self,
        data: bytes,
        filename: str,
        mime_type: str,
        project_id: str | None,
        account_id: str,
    ) -> IngestionResult:
        # Upload-boundary checks, then the regular pipeline in the resolved scope.
        validate_upload(mime_type, len(data), max_bytes=self._settings.upload_max_bytes)
        return await self.process_document(
            data,
            filename,
            mime_type,
            resolve_project_scope(project_id, account_id),
            account_id,
        )

    async def get_document_chunks(self, document_id: str) -> list[ProcessedChunk]:
        async with self._session_factory() as session:
            try:
                rows = await chunks_repo.list_document_chunks(session, document_id)
            except SQLAlchemyError as exc:
                raise DatabaseError(f"Failed to fetch document chunks: {exc}") from exc
        return [
            ProcessedChunk(
                content=row.content,
                chunk_index=row.chunk_index,
                metadata=ChunkMetadata.from_row(
                    row.metadata_json,
                    document_id=row.document_id,
                    chunk_index=row.chunk_index,
                    content_length=row.content_length,
                ),
            )
            for row in rows
        ]

    async def _create_document(
        self,
        *,
        document_id: str,
        project_id: str,
        account_id: str,
        filename: str,
        mime_type: str,
        file_size: int,
        digest: str,
    ) -> str:
        # Creation and the first status are combined: rows start in processing.
        async with self._session_factory() as session:
            try:
                await documents_repo.create_document(
                    session,
                    document_id=document_id,
                    project_id=project_id,
                    account_id=account_id,
                    filename=filename,
                    mime_type=mime_type,
                    file_size=file_size,
                    content_hash=digest,
                    status=UploadStatus.PROCESSING.value,
                )
                await session.commit()
            except SQLAlchemyError as exc:
                await session.rollback()
                raise DocumentCreateError(f"Failed to create document record: {exc}") from exc
        logger.info(
            "ingest_document_created document_id=%s project_id=%s filename=%s bytes=%s",
            document_id,
            project_id,
            filename,
            file_size,
        )
        return document_id

    async def _find_duplicates(self, document_id: str, project_id: str, digest: str) -> list[str]:
        # Detection only and best effort; identical uploads still produce independent documents.
        async with self._session_factory() as session:
            try:
                duplicates = await documents_repo.find_completed_by_content_hash(
                    session,
                    project_id=project_id,
                    content_hash=digest,
                    exclude_id=document_id,
                )
            except SQLAlchemyError as exc:
                logger.warning(
                    "ingest_duplicate_check_failed document_id=%s project_id=%s",
                    document_id,
                    project_id,
                    exc_info=exc,
                )
                return []
        if duplicates:
            logger.info(
                "ingest_duplicate_content document_id=%s project_id=%s duplicate_of=%s",
                document_id,
                project_id,
                ",".join(duplicates),
            )
        return duplicates

    def _chunk(self, text: str, document_id: str) -> list[ProcessedChunk]:
        pieces = chunk_text(
            text,
            max_chars=self._settings.chunk_max_chars,
            overlap_chars=self._settings.chunk_overlap_chars,
            overlap_enabled=self._settings.chunk_overlap_enabled,
        )
        if not pieces:
            raise NoChunksError("No valid chunks created from document")
        return [
            ProcessedChunk(
                content=piece,
                chunk_index=index,
                metadata=ChunkMetadata(
                    document_id=document_id,
                    chunk_index=index,
                    content_length=len(piece),
                ),
            )
            for index, piece in enumerate(pieces)
        ]

    async def _embed(self, chunks: list[ProcessedChunk]) -> list[list[float]]:
        embeddings = await self._embedder.embed([chunk.content for chunk in chunks])
        if len(embeddings) != len(chunks):
            raise EmbeddingError(
                f"embedding generation failed: expected {len(chunks)} vectors, got {len(embeddings)}"
            )
        if any(len(vector) != EMBED_DIM for vector in embeddings):
            raise EmbeddingError(f"Embedding dimension mismatch; expected {EMBED_DIM}.")
        return embeddings

    async def _store_chunks(
        self,
        document_id: str,
        chunks: list[ProcessedChunk],
        embeddings: list[list[float]],
    ) -> None:
        rows = [
            DocumentChunk(
                id=uuid4(),
                document_id=document_id,
                chunk_index=chunk.chunk_index,
                content=chunk.content,
                content_length=len(chunk.content),
                embedding=embedding,
                metadata_json=chunk.metadata.to_json(),
            )
            for chunk, embedding in zip(chunks, embeddings)
        ]
        # Chunks and the completed status commit together, so a failure leaves no chunk rows.
        async with self._session_factory() as session:
            try:
                await chunks_repo.insert_chunks(session, rows)
                await documents_repo.update_status(
                    session, document_id, status=UploadStatus.COMPLETED.value
                )
                await session.commit()
            except SQLAlchemyError as exc:
                await session.rollback()
                message = f"Failed to store chunks: {exc}"
                await self._mark_failed(document_id, message)
                raise ChunkStoreError(f"Failed to store document chunks: {exc}") from exc

    async def _mark_failed(self, document_id: str, message: str) -> None:
        async with self._session_factory() as session:
            try:
                await documents_repo.update_status(
                    session,
                    document_id,
                    status=UploadStatus.FAILED.value,
                    processing_error=message,
                )
                await session.commit()
            except SQLAlchemyError as exc:
                await session.rollback()
                logger.warning("ingest_mark_failed_error document_id=%s", document_id, exc_info=exc)
                return
        logger.warning("ingest_failed document_id=%s error=%s", document_id, message)
