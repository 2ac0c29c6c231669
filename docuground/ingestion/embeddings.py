from __future__ import annotations

import hashlib
import math
import re

from docuground.core.config import EMBED_DIM


_TOKEN_RE = re.compile(r"[A-Za-z0-9_]+")


def _hash_token(token: str, dim: int) -> tuple[int, float]:
    digest = hashlib.sha256(token.encode("utf-8")).hexdigest()
    # Hash to a stable index within the fixed embedding dimension.
    idx = int(digest[:8], 16) % dim
    sign = 1.0 if int(digest[8:12], 16) % 2 == 0 else -1.0
    magnitude = (int(digest[12:20], 16) % 1000) / 1000.0
    return idx, sign * (0.2 + magnitude)


def hashed_embedding(text: str, *, dim: int = EMBED_DIM) -> list[float]:
    """Bag-of-tokens vector, L2-normalized; deterministic and offline."""
    vector = [0.0] * dim
    for token in _TOKEN_RE.findall(text.lower()):
        idx, value = _hash_token(token, dim)
        vector[idx] += value

    norm = math.sqrt(sum(v * v for v in vector))
    if norm == 0:
        return vector
    return [v / norm for v in vector]


def content_hash(text: str) -> str:
    # Hash extracted text, not raw bytes, so re-encoded copies still collide.
    return hashlib.sha256(text.encode("utf-8")).hexdigest()
