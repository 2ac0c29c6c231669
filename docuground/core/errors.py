from __future__ import annotations


class DocugroundError(Exception):
    """Base error for docuground."""


class ProviderConfigError(DocugroundError):
    """Missing or invalid provider configuration."""


class DatabaseError(DocugroundError):
    """Database layer failure."""


class UploadValidationError(DocugroundError):
    """Upload rejected before extraction (type or size)."""


class ExtractionError(DocugroundError):
    """Text extraction failure."""


class UnsupportedFileTypeError(ExtractionError):
    def __init__(self, extension: str) -> None:
        super().__init__(f"Unsupported file type: {extension}")
        self.extension = extension


class PdfParseError(ExtractionError):
    """PDF decoder failure."""


class DocxParseError(ExtractionError):
    """DOCX decoder failure."""


class EmptyDocumentError(ExtractionError):
    """Extraction produced no text."""


class IngestionError(DocugroundError):
    """Ingestion pipeline failure after extraction."""


class DocumentCreateError(IngestionError):
    """Document row could not be created."""


class NoChunksError(IngestionError):
    """Chunking produced nothing to embed."""


class ChunkStoreError(IngestionError):
    """Bulk chunk insert failed; nothing was committed."""


class EmbeddingError(DocugroundError):
    """Embedding generation failed."""


class CompletionError(DocugroundError):
    """Completion service failure."""


class SearchError(DocugroundError):
    """Similarity search failed."""


class InvalidApiKeyError(DocugroundError):
    """API key missing, unknown, inactive or expired."""


class ApiKeyNotFoundError(DocugroundError):
    """No API key with that id belongs to the account."""


class AccountNotFoundError(DocugroundError):
    """Account row missing."""


class UsageLimitExceededError(DocugroundError):
    def __init__(self, current: int, limit: int) -> None:
        super().__init__(f"Usage limit exceeded ({current}/{limit})")
        self.current = current
        self.limit = limit
