from __future__ import annotations

from docuground.providers.llm.base import Completion


class FakeCompletionProvider:
    def __init__(self, response: str = "This is a fake response.", total_tokens: int = 42) -> None:
        # Deterministic response keeps tests stable without external calls.
        self._response = response
        self._total_tokens = total_tokens
        self.calls: list[tuple[list[dict], str]] = []

    async def complete(self, messages: list[dict], *, model: str) -> Completion:
        self.calls.append((messages, model))
        return Completion(text=self._response, total_tokens=self._total_tokens)
