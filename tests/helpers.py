"""Shared test helpers: fake embedding providers and sample documents."""

import hashlib
from unittest.mock import MagicMock

from docseek.sources import SourceDocument

DIMS = 16

HANDBOOK_MD = """# Handbook

Intro paragraph.

## Remote Work

We use Zoom for meetings.

- Core hours are 10-16
- Use Slack for async
  - Threads for long discussions

### Equipment

Laptops are provided.

## Vacation

Ask your manager two weeks ahead.
"""

ONBOARDING_MD = """# Onboarding

## First Week

Meet your buddy on day one.

1. Set up your laptop
2. Read the handbook
"""


def fake_embed(texts: list[str]) -> list[list[float]]:
    """Deterministic 16-dim embeddings derived from an md5 of each text."""
    results = []
    for t in texts:
        h = hashlib.md5(t.encode()).digest()
        results.append([float(b) / 255.0 + 0.01 for b in h[:DIMS]])
    return results


def make_provider() -> MagicMock:
    provider = MagicMock()
    provider.embed = MagicMock(side_effect=fake_embed)
    return provider


def make_failing_provider(message: str = "503 Service Unavailable") -> MagicMock:
    provider = MagicMock()
    provider.embed = MagicMock(side_effect=RuntimeError(message))
    return provider


def make_vector_provider(vectors: dict[str, list[float]], default: list[float] | None = None) -> MagicMock:
    """Provider that returns fixed vectors for known texts."""
    fallback = default or [0.0] * 11 + [1.0]

    def _embed(texts: list[str]) -> list[list[float]]:
        return [list(vectors.get(t, fallback)) for t in texts]

    provider = MagicMock()
    provider.embed = MagicMock(side_effect=_embed)
    return provider


def sample_documents() -> list[SourceDocument]:
    base = "https://github.com/acme/handbook/blob/main"
    return [
        SourceDocument(name="handbook.md", path="handbook.md", content=HANDBOOK_MD, source_url=f"{base}/handbook.md"),
        SourceDocument(name="onboarding.md", path="onboarding.md", content=ONBOARDING_MD, source_url=f"{base}/onboarding.md"),
    ]
