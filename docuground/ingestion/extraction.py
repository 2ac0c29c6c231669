from __future__ import annotations

import asyncio
import io
import logging
from pathlib import PurePath

from docuground.core.errors import (
    DocxParseError,
    PdfParseError,
    UnsupportedFileTypeError,
    UploadValidationError,
)


logger = logging.getLogger(__name__)

PDF_MIME_TYPE = "application/pdf"
DOCX_MIME_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"

ALLOWED_MIME_TYPES = frozenset(
    {
        PDF_MIME_TYPE,
        DOCX_MIME_TYPE,
        "text/plain",
        "text/markdown",
    }
)

_PLAIN_EXTENSIONS = frozenset({"txt", "md"})


def file_extension(filename: str) -> str:
    # Match on the last suffix only; "notes.tar.txt" is plain text.
    return PurePath(filename).suffix.lstrip(".").lower()


def validate_upload(mime_type: str, size: int, *, max_bytes: int) -> None:
    # The declared MIME type gates the upload; the extension picks the decoder.
    if mime_type not in ALLOWED_MIME_TYPES:
        raise UploadValidationError(
            "Unsupported file type. Please upload PDF, DOCX, TXT, or MD files."
        )
    if size > max_bytes:
        limit_mb = max_bytes // (1024 * 1024)
        raise UploadValidationError(f"File size too large. Maximum size is {limit_mb}MB.")


def _extract_pdf(data: bytes) -> str:
    from pypdf import PdfReader

    try:
        reader = PdfReader(io.BytesIO(data))
        return "\n".join(page.extract_text() or "" for page in reader.pages)
    except Exception as exc:
        raise PdfParseError(f"Failed to parse PDF: {exc}") from exc


def _extract_docx(data: bytes) -> str:
    import docx

    try:
        document = docx.Document(io.BytesIO(data))
        return "\n".join(paragraph.text for paragraph in document.paragraphs)
    except Exception as exc:
        raise DocxParseError(f"Failed to parse DOCX: {exc}") from exc


def extract_text_sync(data: bytes, filename: str) -> str:
    extension = file_extension(filename)
    if extension == "pdf":
        return _extract_pdf(data)
    if extension == "docx":
        return _extract_docx(data)
    if extension in _PLAIN_EXTENSIONS:
        return data.decode("utf-8", errors="replace")
    raise UnsupportedFileTypeError(extension)


async def extract_text(data: bytes, filename: str) -> str:
    # Decoders are CPU-bound; keep them off the event loop.
    text = await asyncio.to_thread(extract_text_sync, data, filename)
    logger.info("extract_text_done filename=%s chars=%s", filename, len(text))
    return text
