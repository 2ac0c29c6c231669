from __future__ import annotations

import re


# Chunking constants keep ingestion deterministic across runs.
CHUNK_MAX_CHARS = 1000
CHUNK_OVERLAP_CHARS = 200

_SENTENCE_SPLIT_RE = re.compile(r"[.!?]+")


def split_sentences(text: str) -> list[str]:
    # Terminal punctuation is dropped here and normalized back to a period.
    return [f"{fragment.strip()}." for fragment in _SENTENCE_SPLIT_RE.split(text) if fragment.strip()]


def _overlap_tail(sentences: list[str], overlap: int) -> list[str]:
    # Carry whole trailing sentences that fit in the overlap allowance.
    tail: list[str] = []
    size = 0
    for sentence in reversed(sentences):
        added = len(sentence) + (1 if tail else 0)
        if size + added > overlap:
            break
        tail.insert(0, sentence)
        size += added
    return tail


def chunk_text(
    text: str,
    *,
    max_chars: int = CHUNK_MAX_CHARS,
    overlap_chars: int = CHUNK_OVERLAP_CHARS,
    overlap_enabled: bool = False,
) -> list[str]:
    """Greedily pack sentences into chunks of at most ``max_chars`` characters.

    A sentence longer than ``max_chars`` is emitted as its own chunk. Adjacent
    chunks do not share text unless ``overlap_enabled`` is set, in which case
    up to ``overlap_chars`` of trailing sentences seed the next chunk.
    """
    _validate_chunk_params(max_chars=max_chars, overlap_chars=overlap_chars, overlap_enabled=overlap_enabled)
    chunks: list[str] = []
    current: list[str] = []
    current_len = 0

    for sentence in split_sentences(text):
        if current and current_len + 1 + len(sentence) > max_chars:
            chunks.append(" ".join(current).strip())
            current = _overlap_tail(current, overlap_chars) if overlap_enabled else []
            current_len = len(" ".join(current))
            if current and current_len + 1 + len(sentence) > max_chars:
                # Drop the carried tail when it would push the new chunk over the bound.
                current = []
                current_len = 0
        current_len += len(sentence) + (1 if current else 0)
        current.append(sentence)

    if current:
        chunks.append(" ".join(current).strip())
    return chunks


def _validate_chunk_params(*, max_chars: int, overlap_chars: int, overlap_enabled: bool) -> None:
    if max_chars < 1 or overlap_chars < 0:
        raise ValueError("max_chars must be >= 1 and overlap_chars must be >= 0")
    if overlap_enabled and overlap_chars >= max_chars:
        raise ValueError("overlap_chars must be smaller than max_chars")
