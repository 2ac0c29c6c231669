from __future__ import annotations

import logging

import httpx

from docuground.core.config import Settings
from docuground.core.errors import CompletionError, ProviderConfigError
from docuground.providers.llm.base import Completion


logger = logging.getLogger(__name__)

_FALLBACK_TEXT = "Sorry, I could not generate a response."


class OpenAICompletionProvider:
    def __init__(self, settings: Settings, client: httpx.AsyncClient | None = None) -> None:
        self._settings = settings
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is not None:
            return self._client
        timeout_s = self._settings.ext_call_timeout_ms / 1000.0
        self._client = httpx.AsyncClient(timeout=timeout_s)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()

    async def complete(self, messages: list[dict], *, model: str) -> Completion:
        api_key = self._settings.openai_api_key
        if not api_key:
            raise ProviderConfigError("OPENAI_API_KEY is required for OpenAI completions")

        url = f"{self._settings.openai_base_url.rstrip('/')}/chat/completions"
        payload = {
            "model": model,
            "messages": messages,
            "max_tokens": self._settings.completion_max_tokens,
            "temperature": self._settings.completion_temperature,
        }
        headers = {"Authorization": f"Bearer {api_key}"}
        try:
            response = await self._get_client().post(url, json=payload, headers=headers)
            response.raise_for_status()
            body = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("completion_request_failed model=%s", model, exc_info=exc)
            raise CompletionError("Completion request failed.") from exc

        choices = body.get("choices") or []
        text = (choices[0].get("message") or {}).get("content") if choices else None
        usage = body.get("usage") or {}
        return Completion(
            text=text or _FALLBACK_TEXT,
            total_tokens=int(usage.get("total_tokens") or 0),
        )
