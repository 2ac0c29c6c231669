from __future__ import annotations

from docuground.core.config import Settings
from docuground.core.errors import ProviderConfigError
from docuground.providers.llm.base import CompletionProvider
from docuground.providers.llm.fake import FakeCompletionProvider
from docuground.providers.llm.openai_chat import OpenAICompletionProvider


def get_completion_provider(settings: Settings) -> CompletionProvider:
    provider = (settings.completion_provider or "openai").lower()

    if provider == "fake":
        return FakeCompletionProvider()
    if provider == "openai":
        return OpenAICompletionProvider(settings)

    raise ProviderConfigError(f"Unsupported completion provider: {provider}")
