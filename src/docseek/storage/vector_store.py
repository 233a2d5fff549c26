"""In-memory vector store with exact cosine similarity search."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Sequence

from docseek.models import Chunk

logger = logging.getLogger(__name__)

# Below this magnitude a vector is treated as zero
_MIN_MAGNITUDE = 1e-10


@dataclass
class SearchResult:
    chunk: Chunk
    score: float


def _finite(v: object) -> bool:
    return isinstance(v, (int, float)) and not isinstance(v, bool) and math.isfinite(v)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity in [-1, 1]; 0 for anything that cannot be compared.

    Vectors of different length are compared over the shorter prefix.
    Dimensions where either side is not a finite number are skipped; if fewer
    than 10% of the dimensions are usable the result is 0.
    """
    if not isinstance(a, (list, tuple)) or not isinstance(b, (list, tuple)):
        return 0.0
    length = min(len(a), len(b))
    if length == 0:
        return 0.0

    dot = norm_a = norm_b = 0.0
    usable = 0
    for x, y in zip(a[:length], b[:length]):
        if not (_finite(x) and _finite(y)):
            continue
        dot += x * y
        norm_a += x * x
        norm_b += y * y
        usable += 1

    if usable < length * 0.1:
        return 0.0
    norm_a = math.sqrt(norm_a)
    norm_b = math.sqrt(norm_b)
    if norm_a < _MIN_MAGNITUDE or norm_b < _MIN_MAGNITUDE:
        return 0.0
    score = dot / (norm_a * norm_b)
    if not math.isfinite(score):
        return 0.0
    return max(-1.0, min(1.0, score))


class InMemoryVectorStore:
    """Parallel lists of vectors and chunks, searched by brute force."""

    def __init__(self) -> None:
        self._vectors: list[list[float]] = []
        self._chunks: list[Chunk] = []

    def add(self, vectors: Sequence[list[float]], chunks: Sequence[Chunk]) -> None:
        if len(vectors) != len(chunks):
            raise ValueError(f"{len(vectors)} vectors but {len(chunks)} chunks")
        self._vectors.extend(vectors)
        self._chunks.extend(chunks)

    @classmethod
    def from_records(cls, vectors: Sequence[list[float]], chunks: Sequence[Chunk]) -> InMemoryVectorStore:
        store = cls()
        store.add(vectors, chunks)
        return store

    def count(self) -> int:
        return len(self._chunks)

    @property
    def chunks(self) -> list[Chunk]:
        return list(self._chunks)

    def similarity_search(self, query_vector: Sequence[float], k: int = 4) -> list[SearchResult]:
        """Top-``k`` chunks by descending cosine score; ties keep insertion order."""
        if k <= 0 or not self._chunks:
            return []
        scored = [
            (cosine_similarity(query_vector, vec), i)
            for i, vec in enumerate(self._vectors)
        ]
        # sorted() is stable, so equal scores stay in insertion order
        scored = sorted(scored, key=lambda s: s[0], reverse=True)[:k]
        return [SearchResult(chunk=self._chunks[i], score=score) for score, i in scored]
