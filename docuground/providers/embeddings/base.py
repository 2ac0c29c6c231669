from __future__ import annotations

from typing import Protocol


class EmbeddingProvider(Protocol):
    model: str

    async def embed(self, texts: list[str]) -> list[list[float]]:
        ...
