from __future__ import annotations

import logging
import time

import httpx

from docuground.core.config import EMBED_DIM, Settings
from docuground.core.errors import EmbeddingError, ProviderConfigError


logger = logging.getLogger(__name__)


class OpenAIEmbeddingProvider:
    def __init__(self, settings: Settings, client: httpx.AsyncClient | None = None) -> None:
        self._settings = settings
        self._client = client
        self.model = settings.embedding_model

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is not None:
            return self._client
        # Reuse a single client per provider for connection pooling.
        timeout_s = self._settings.ext_call_timeout_ms / 1000.0
        self._client = httpx.AsyncClient(timeout=timeout_s)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()

    async def embed(self, texts: list[str]) -> list[list[float]]:
        api_key = self._settings.openai_api_key
        if not api_key:
            raise ProviderConfigError("OPENAI_API_KEY is required for OpenAI embeddings")
        if not texts:
            raise EmbeddingError("embedding generation failed: empty batch")

        url = f"{self._settings.openai_base_url.rstrip('/')}/embeddings"
        payload = {"model": self.model, "input": texts}
        headers = {"Authorization": f"Bearer {api_key}"}
        start = time.monotonic()
        try:
            response = await self._get_client().post(url, json=payload, headers=headers)
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPStatusError as exc:
            logger.warning(
                "embedding_request_failed model=%s status=%s batch=%s",
                self.model,
                exc.response.status_code,
                len(texts),
            )
            raise EmbeddingError(
                f"embedding generation failed: HTTP {exc.response.status_code}"
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("embedding_request_failed model=%s batch=%s", self.model, len(texts), exc_info=exc)
            raise EmbeddingError(f"embedding generation failed: {exc}") from exc

        vectors = _vectors_in_input_order(body, expected=len(texts))
        logger.info(
            "embedding_batch_done model=%s batch=%s latency_ms=%.1f",
            self.model,
            len(texts),
            (time.monotonic() - start) * 1000.0,
        )
        return vectors


def _vectors_in_input_order(body: dict, *, expected: int) -> list[list[float]]:
    # The API tags each item with its input index; never trust response order.
    try:
        items = sorted(body["data"], key=lambda item: item["index"])
        vectors = [list(map(float, item["embedding"])) for item in items]
    except (KeyError, TypeError, ValueError) as exc:
        raise EmbeddingError("embedding generation failed: malformed response") from exc
    if len(vectors) != expected:
        raise EmbeddingError(
            f"embedding generation failed: expected {expected} vectors, got {len(vectors)}"
        )
    if any(len(vector) != EMBED_DIM for vector in vectors):
        raise EmbeddingError(f"embedding generation failed: expected dimension {EMBED_DIM}")
    return vectors
