from __future__ import annotations

from docuground.core.config import Settings
from docuground.core.errors import ProviderConfigError
from docuground.providers.embeddings.base import EmbeddingProvider
from docuground.providers.embeddings.fake import FakeEmbeddingProvider
from docuground.providers.embeddings.openai import OpenAIEmbeddingProvider


def get_embedding_provider(settings: Settings) -> EmbeddingProvider:
    # Build once at startup and inject into both ingestion and retrieval.
    provider = (settings.embedding_provider or "openai").lower()

    if provider == "fake":
        return FakeEmbeddingProvider(model=settings.embedding_model)
    if provider == "openai":
        return OpenAIEmbeddingProvider(settings)

    raise ProviderConfigError(f"Unsupported embedding provider: {provider}")
