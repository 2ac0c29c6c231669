from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class Completion:
    text: str
    total_tokens: int


class CompletionProvider(Protocol):
    async def complete(self, messages: list[dict], *, model: str) -> Completion:
        ...
