"""Configuration loaded from environment variables."""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()


# Paths
# None when unset, so callers can tell "not configured" from the current directory
_docs_path = os.getenv("DOCS_PATH", "")
DOCS_PATH: Path | None = Path(_docs_path) if _docs_path else None
DATA_DIR: Path = Path(os.getenv("DATA_DIR", "./data"))
CACHE_DIR: Path = Path(os.getenv("CACHE_DIR", str(DATA_DIR / "cache" / "vector-store")))

# Public URL of the docs repository, used to build per-file source links
DOCS_BASE_URL: str = os.getenv("DOCS_BASE_URL", "")
DOCS_REF: str = os.getenv("DOCS_REF", "main")

# API keys
GEMINI_API_KEY: str = os.getenv("GEMINI_API_KEY", "")

# Embeddings
EMBEDDING_MODEL: str = os.getenv("EMBEDDING_MODEL", "gemini-embedding-001")
EMBEDDING_DIMS: int = int(os.getenv("EMBEDDING_DIMS", "768"))
EMBED_BATCH_SIZE: int = int(os.getenv("EMBED_BATCH_SIZE", "20"))
EMBED_TIMEOUT_SECS: float = float(os.getenv("EMBED_TIMEOUT_SECS", "30"))
# One of "placeholder", "skip", "abort"
EMBED_FAILURE_POLICY: str = os.getenv("EMBED_FAILURE_POLICY", "placeholder").lower()
MIN_VECTOR_DIMS: int = int(os.getenv("MIN_VECTOR_DIMS", "10"))

# Search
MIN_RELEVANCE_SCORE: float = float(os.getenv("MIN_RELEVANCE_SCORE", "0.7"))
DEFAULT_K: int = int(os.getenv("DEFAULT_K", "5"))

# Server
HOST: str = os.getenv("HOST", "0.0.0.0")
PORT: int = int(os.getenv("PORT", "8000"))
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
