"""Embed chunk texts through an EmbeddingProvider.

Every input position yields an explicit result, either ``EmbeddingOk`` or
``EmbeddingFailure``. What to do with failures is a separate decision made by
``resolve_embeddings`` according to a policy.
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from typing import Sequence, TypeVar, Union

from docseek import config
from docseek.provider import EmbeddingProvider

logger = logging.getLogger(__name__)

# Gemini allows up to 250 texts per request, but we use a conservative batch
# size to stay well within token limits.
DEFAULT_BATCH_SIZE = 20

PROVIDER_UNAVAILABLE = "provider_unavailable"
INVALID_VECTOR = "invalid_vector"

POLICY_PLACEHOLDER = "placeholder"
POLICY_SKIP = "skip"
POLICY_ABORT = "abort"
POLICIES = (POLICY_PLACEHOLDER, POLICY_SKIP, POLICY_ABORT)

T = TypeVar("T")


class ProviderUnavailableError(RuntimeError):
    """The embedding provider cannot be used (bad key, outage, bad output)."""


@dataclass(frozen=True)
class EmbeddingOk:
    vector: list[float]


@dataclass(frozen=True)
class EmbeddingFailure:
    reason: str  # PROVIDER_UNAVAILABLE or INVALID_VECTOR
    detail: str = ""


EmbeddingResult = Union[EmbeddingOk, EmbeddingFailure]


def is_valid_vector(vector: object, min_dims: int = 10) -> bool:
    """True if ``vector`` is a list of at least ``min_dims`` entries, 10%+ finite numbers."""
    if not isinstance(vector, list) or len(vector) < min_dims:
        return False
    usable = sum(
        1
        for v in vector
        if isinstance(v, (int, float)) and not isinstance(v, bool) and math.isfinite(v)
    )
    return usable >= len(vector) * 0.1


def placeholder_vector(position: int, dims: int) -> list[float]:
    """Deterministic non-zero vector keyed by ``position``.

    Distinct positions below ``dims`` produce distinct vectors, so placeholder
    chunks do not all collapse onto one point.
    """
    vec = [0.0] * dims
    idx = position % dims
    vec[idx] = 0.1 + (position % 10) / 100
    vec[(idx + 1) % dims] = 0.2 + (position % 5) / 100
    vec[(idx + 2) % dims] = 0.3 + (position % 7) / 100
    return vec


def _is_auth_error(exc: Exception) -> bool:
    err_str = str(exc)
    return "API_KEY_INVALID" in err_str or "PERMISSION_DENIED" in err_str


class Embedder:
    """Batches texts through a provider and reports a result per position."""

    def __init__(
        self,
        provider: EmbeddingProvider | None = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        min_dims: int | None = None,
        retry_delay: float = 2.0,
    ) -> None:
        if provider is None:
            from docseek.provider import GeminiProvider

            provider = GeminiProvider()
        self._provider = provider
        self._batch_size = batch_size
        self._min_dims = min_dims if min_dims is not None else config.MIN_VECTOR_DIMS
        self._retry_delay = retry_delay

    def _embed_batch(self, texts: list[str], label: str) -> list[list[float]] | None:
        """Call the provider, retrying once. Returns None if both attempts fail."""
        try:
            return self._provider.embed(texts)
        except Exception as e:
            # Fail fast on authentication errors
            if _is_auth_error(e):
                raise ProviderUnavailableError(f"API key error, aborting: {e}") from e
            logger.warning("Error embedding batch %s: %s", label, e)
        if self._retry_delay:
            time.sleep(self._retry_delay)
        try:
            return self._provider.embed(texts)
        except Exception as e:
            if _is_auth_error(e):
                raise ProviderUnavailableError(f"API key error, aborting: {e}") from e
            logger.error("Retry failed for batch %s: %s", label, e)
            return None

    def embed(self, texts: Sequence[str]) -> list[EmbeddingResult]:
        """Embed ``texts``; the result list is aligned with the input."""
        total = len(texts)
        results: list[EmbeddingResult] = []
        if total == 0:
            return results

        total_batches = (total + self._batch_size - 1) // self._batch_size
        logger.info("Embedding %d text(s) in %d batch(es)", total, total_batches)
        t0 = time.perf_counter()

        for batch_start in range(0, total, self._batch_size):
            batch = list(texts[batch_start : batch_start + self._batch_size])
            batch_num = batch_start // self._batch_size + 1
            vectors = self._embed_batch(batch, f"{batch_num}/{total_batches}")

            if vectors is None:
                results.extend(
                    EmbeddingFailure(PROVIDER_UNAVAILABLE, "batch failed after retry")
                    for _ in batch
                )
                continue

            for i in range(len(batch)):
                vector = vectors[i] if i < len(vectors) else None
                if isinstance(vector, tuple):
                    vector = list(vector)
                if is_valid_vector(vector, self._min_dims):
                    results.append(EmbeddingOk([float(v) for v in vector]))
                else:
                    logger.warning(
                        "Invalid embedding at position %d (batch %d/%d)",
                        batch_start + i, batch_num, total_batches,
                    )
                    results.append(EmbeddingFailure(INVALID_VECTOR, f"position {batch_start + i}"))

        failed = sum(1 for r in results if isinstance(r, EmbeddingFailure))
        logger.info(
            "Embedding complete: %d ok, %d failed (%.2fs)",
            total - failed, failed, time.perf_counter() - t0,
        )
        return results

    def embed_query(self, text: str) -> list[float]:
        """Embed a single query. Raises ProviderUnavailableError on any failure."""
        try:
            vectors = self._provider.embed([text])
        except Exception as e:
            raise ProviderUnavailableError(f"query embedding failed: {e}") from e
        vector = vectors[0] if vectors else None
        if not is_valid_vector(vector, self._min_dims):
            raise ProviderUnavailableError("query embedding returned an invalid vector")
        return [float(v) for v in vector]  # type: ignore[union-attr]


def resolve_embeddings(
    items: Sequence[T],
    results: Sequence[EmbeddingResult],
    policy: str = POLICY_PLACEHOLDER,
    dims: int | None = None,
) -> tuple[list[T], list[list[float]]]:
    """Pair ``items`` with usable vectors according to ``policy``.

    - ``placeholder``: failed positions get ``placeholder_vector(position)``.
    - ``skip``: failed positions are dropped together with their item.
    - ``abort``: any failure raises ProviderUnavailableError.

    Placeholder width follows the first successful vector, falling back to
    ``dims`` (or EMBEDDING_DIMS).
    """
    if policy not in POLICIES:
        raise ValueError(f"Unknown embedding failure policy: {policy!r}")
    if len(items) != len(results):
        raise ValueError(f"{len(items)} items but {len(results)} embedding results")

    failures = [i for i, r in enumerate(results) if isinstance(r, EmbeddingFailure)]
    if failures and policy == POLICY_ABORT:
        first = results[failures[0]]
        raise ProviderUnavailableError(
            f"{len(failures)} embedding(s) failed, first: {first.reason}"  # type: ignore[union-attr]
        )

    width = next((len(r.vector) for r in results if isinstance(r, EmbeddingOk)), None)
    width = width or dims or config.EMBEDDING_DIMS

    kept_items: list[T] = []
    vectors: list[list[float]] = []
    for i, (item, result) in enumerate(zip(items, results)):
        if isinstance(result, EmbeddingOk):
            kept_items.append(item)
            vectors.append(result.vector)
        elif policy == POLICY_PLACEHOLDER:
            kept_items.append(item)
            vectors.append(placeholder_vector(i, width))

    if failures:
        logger.warning(
            "%d of %d embedding(s) failed; policy=%s", len(failures), len(results), policy
        )
    return kept_items, vectors
