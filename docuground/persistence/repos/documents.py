from __future__ import annotations

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from docuground.domain.models import Document, UploadStatus


async def create_document(
    session: AsyncSession,
    *,
    document_id: str,
    project_id: str,
    account_id: str,
    filename: str,
    mime_type: str,
    file_size: int,
    content_hash: str,
    status: str,
) -> Document:
    # Create a document row explicitly so status transitions are tracked.
    doc = Document(
        id=document_id,
        project_id=project_id,
        account_id=account_id,
        filename=filename,
        original_filename=filename,
        mime_type=mime_type,
        file_size=file_size,
        content_hash=content_hash,
        upload_status=status,
        processing_error=None,
    )
    session.add(doc)
    await session.flush()
    return doc


async def update_status(
    session: AsyncSession,
    document_id: str,
    *,
    status: str,
    processing_error: str | None = None,
) -> None:
    # Status is the only mutable part of a document row.
    await session.execute(
        update(Document)
        .where(Document.id == document_id)
        .values(upload_status=status, processing_error=processing_error)
    )


async def find_completed_by_content_hash(
    session: AsyncSession,
    *,
    project_id: str,
    content_hash: str,
    exclude_id: str,
) -> list[str]:
    result = await session.execute(
        select(Document.id)
        .where(
            Document.project_id == project_id,
            Document.content_hash == content_hash,
            Document.upload_status == UploadStatus.COMPLETED.value,
            Document.id != exclude_id,
        )
        .order_by(Document.created_at.desc())
    )
    return list(result.scalars().all())
