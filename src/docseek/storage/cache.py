"""Durable, content-addressed cache of chunks and their embeddings.

One JSON file per corpus at ``{cache_dir}/{owner}-{repo}-embeddings.json``.
A cached record is reused only when its ``content_hash`` matches a hash
recomputed over the current corpus files.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import tempfile
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable

from docseek import config
from docseek.models import Chunk

logger = logging.getLogger(__name__)

CACHE_SUFFIX = "-embeddings.json"


class CacheCorruptError(ValueError):
    """A cache file failed structural validation."""


@dataclass
class CacheRecord:
    content_hash: str
    chunks: list[Chunk]
    embeddings: list[list[float]]
    timestamp: float = field(default_factory=time.time)
    tree_snapshots: dict[str, dict] | None = None

    def to_dict(self) -> dict:
        data: dict = {
            "content_hash": self.content_hash,
            "chunks": [c.to_dict() for c in self.chunks],
            "embeddings": self.embeddings,
            "timestamp": self.timestamp,
        }
        if self.tree_snapshots is not None:
            data["tree_snapshots"] = self.tree_snapshots
        return data


def content_hash(files: Iterable[tuple[str, str]]) -> str:
    """SHA-256 over ``path:content`` lines joined by newlines.

    Order-sensitive: the same files in a different order hash differently.
    Pass files sorted by path to get a stable identity.
    """
    joined = "\n".join(f"{path}:{content}" for path, content in files)
    return hashlib.sha256(joined.encode("utf-8")).hexdigest()


def parse_record(data: object, min_dims: int = 10) -> CacheRecord:
    """Validate the structure of a decoded cache file and build a CacheRecord."""
    if not isinstance(data, dict):
        raise CacheCorruptError("cache root is not an object")
    chunks = data.get("chunks")
    embeddings = data.get("embeddings")
    if not isinstance(chunks, list) or not chunks:
        raise CacheCorruptError("chunks missing or empty")
    if not isinstance(embeddings, list) or not embeddings:
        raise CacheCorruptError("embeddings missing or empty")
    if len(chunks) != len(embeddings):
        raise CacheCorruptError(f"{len(chunks)} chunks but {len(embeddings)} embeddings")

    width = None
    for i, vec in enumerate(embeddings):
        if not isinstance(vec, list) or len(vec) < min_dims:
            raise CacheCorruptError(f"embedding {i} is not a vector of at least {min_dims} dims")
        if width is None:
            width = len(vec)
        elif len(vec) != width:
            raise CacheCorruptError(f"embedding {i} has {len(vec)} dims, expected {width}")

    timestamp = data.get("timestamp")
    if not isinstance(timestamp, (int, float)) or isinstance(timestamp, bool):
        raise CacheCorruptError("timestamp is not a number")
    digest = data.get("content_hash")
    if not isinstance(digest, str) or not digest:
        raise CacheCorruptError("content_hash is not a string")

    try:
        parsed_chunks = [Chunk.from_dict(c) for c in chunks]
    except (KeyError, TypeError, AttributeError) as e:
        raise CacheCorruptError(f"malformed chunk: {e}") from e

    snapshots = data.get("tree_snapshots")
    return CacheRecord(
        content_hash=digest,
        chunks=parsed_chunks,
        embeddings=embeddings,
        timestamp=float(timestamp),
        tree_snapshots=snapshots if isinstance(snapshots, dict) else None,
    )


class CacheManager:
    """Reads, writes, validates and quarantines per-corpus cache files."""

    def __init__(self, cache_dir: Path | None = None, min_dims: int | None = None) -> None:
        self._cache_dir = Path(cache_dir) if cache_dir is not None else config.CACHE_DIR
        self._min_dims = min_dims if min_dims is not None else config.MIN_VECTOR_DIMS

    @property
    def cache_dir(self) -> Path:
        return self._cache_dir

    def cache_path(self, corpus_id: str) -> Path:
        owner, _, repo = corpus_id.partition("/")
        return self._cache_dir / f"{owner or 'default'}-{repo or 'default'}{CACHE_SUFFIX}"

    # ── Write ──

    def save(self, corpus_id: str, record: CacheRecord) -> Path:
        """Write ``record`` atomically (temp file in the same dir, then rename)."""
        if len(record.chunks) != len(record.embeddings):
            raise ValueError("chunks and embeddings must have the same length")

        path = self.cache_path(corpus_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        t0 = time.perf_counter()
        fd, tmp_name = tempfile.mkstemp(prefix=path.name + ".", suffix=".tmp", dir=path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(record.to_dict(), f, ensure_ascii=False)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.info(
            "Saved cache for %s: %d chunks to %s (%.0fms)",
            corpus_id, len(record.chunks), path, (time.perf_counter() - t0) * 1000,
        )
        return path

    # ── Read ──

    def load(self, corpus_id: str) -> CacheRecord | None:
        """Load the cache for ``corpus_id``.

        Returns None if there is no file. A file that cannot be decoded or
        fails structural validation is quarantined and also yields None.
        """
        path = self.cache_path(corpus_id)
        if not path.exists():
            logger.info("No cache file found at %s", path)
            return None
        try:
            try:
                data = json.loads(path.read_text(encoding="utf-8"))
            except (json.JSONDecodeError, UnicodeDecodeError) as e:
                raise CacheCorruptError(f"unreadable JSON: {e}") from e
            return parse_record(data, self._min_dims)
        except CacheCorruptError as e:
            logger.warning("Cache file %s is invalid (%s)", path, e)
            self.quarantine(path)
            return None

    def validate(self, record: CacheRecord, files: Iterable[tuple[str, str]]) -> bool:
        """True if ``record`` was built from exactly ``files``."""
        current = content_hash(files)
        if record.content_hash != current:
            logger.info("Cache is outdated (content hash mismatch)")
            return False
        return True

    def load_valid(self, corpus_id: str, files: Iterable[tuple[str, str]]) -> CacheRecord | None:
        record = self.load(corpus_id)
        if record is None:
            return None
        if not self.validate(record, files):
            return None
        logger.info("Cache for %s is valid and up-to-date", corpus_id)
        return record

    # ── Maintenance ──

    def quarantine(self, path: Path) -> Path | None:
        """Rename ``path`` to ``{path}.bak-{ms}`` so it is no longer picked up."""
        if not path.exists():
            return None
        backup = path.with_name(f"{path.name}.bak-{int(time.time() * 1000)}")
        os.replace(path, backup)
        logger.info("Invalid cache moved to %s", backup)
        return backup

    def delete(self, corpus_id: str) -> bool:
        """Remove the cache file for ``corpus_id``. Returns False if there was none."""
        path = self.cache_path(corpus_id)
        if not path.exists():
            return False
        path.unlink()
        logger.info("Deleted cache %s", path)
        return True

    def find_cache_files(self) -> list[Path]:
        if not self._cache_dir.is_dir():
            return []
        return sorted(self._cache_dir.glob(f"*{CACHE_SUFFIX}"))

    def invalidate_all(self) -> int:
        """Quarantine every cache file. Returns the number invalidated."""
        files = self.find_cache_files()
        if not files:
            logger.info("No cache files found to invalidate")
            return 0
        for path in files:
            self.quarantine(path)
        logger.info("Invalidated %d cache file(s)", len(files))
        return len(files)

    def cache_status(self, corpus_id: str) -> dict:
        path = self.cache_path(corpus_id)
        if not path.exists():
            logger.info("Cache file does not exist: %s", path)
            return {"path": str(path), "exists": False}
        stat = path.stat()
        size_mb = stat.st_size / (1024 * 1024)
        modified = datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc).isoformat()
        logger.info("Cache file: %s, size: %.2f MB, last modified: %s", path, size_mb, modified)
        return {
            "path": str(path),
            "exists": True,
            "size_bytes": stat.st_size,
            "last_modified": modified,
        }
