"""Embedding provider interface and Gemini implementation."""

from __future__ import annotations

import logging
import time
from typing import Protocol

from google import genai
from google.genai import types

from docseek import config

logger = logging.getLogger(__name__)


class EmbeddingProvider(Protocol):
    """Protocol for embedding providers."""

    def embed(self, texts: list[str]) -> list[list[float]]:
        """Embed a list of texts, returning a list of float vectors."""
        ...


class GeminiProvider:
    """Gemini embedding provider with a bounded request timeout."""

    def __init__(
        self,
        api_key: str | None = None,
        embedding_model: str | None = None,
        embedding_dims: int | None = None,
        timeout_secs: float | None = None,
    ) -> None:
        timeout = timeout_secs if timeout_secs is not None else config.EMBED_TIMEOUT_SECS
        self._client = genai.Client(
            api_key=api_key or config.GEMINI_API_KEY,
            # HttpOptions.timeout is in milliseconds
            http_options=types.HttpOptions(timeout=int(timeout * 1000)),
        )
        self._embedding_model = embedding_model or config.EMBEDDING_MODEL
        self._embedding_dims = embedding_dims or config.EMBEDDING_DIMS

    def embed(self, texts: list[str]) -> list[list[float]]:
        """Embed texts using Gemini embedding API.

        Args:
            texts: List of strings to embed. Max 250 per call.

        Returns:
            List of float vectors, one per input text.
        """
        total_chars = sum(len(t) for t in texts)
        logger.debug("Embedding %d text(s) (%d chars) via %s", len(texts), total_chars, self._embedding_model)
        t0 = time.perf_counter()
        result = self._client.models.embed_content(
            model=self._embedding_model,
            contents=texts,
            config=types.EmbedContentConfig(
                output_dimensionality=self._embedding_dims,
            ),
        )
        logger.debug("Embed complete: %.0fms", (time.perf_counter() - t0) * 1000)
        return [e.values for e in result.embeddings]
