from __future__ import annotations

from docuground.core.config import EMBED_DIM
from docuground.core.errors import EmbeddingError
from docuground.ingestion.embeddings import hashed_embedding


class FakeEmbeddingProvider:
    def __init__(self, model: str = "fake-hashed", *, dim: int = EMBED_DIM) -> None:
        # Deterministic vectors keep tests stable without external calls.
        self.model = model
        self._dim = dim
        self.calls: list[list[str]] = []

    async def embed(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            raise EmbeddingError("embedding generation failed: empty batch")
        self.calls.append(list(texts))
        return [hashed_embedding(text, dim=self._dim) for text in texts]
