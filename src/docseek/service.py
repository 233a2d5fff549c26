"""Corpus service: owns the parsed documents, the cache and the live search index.

The index is published as one immutable CorpusSnapshot. Rebuilds construct a
complete new snapshot and swap it in with a single attribute assignment, so
readers always see either the old or the new index, never a mix. Only one
rebuild (or edit) runs at a time; a concurrent request fails fast.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Sequence

from docseek import config
from docseek.diff import RenderedDiff, build_diff
from docseek.document.parser import parse_markdown
from docseek.document.serializer import serialize
from docseek.document.tree import DocumentTree, find_node, tree_from_dict, tree_to_dict
from docseek.document.tree import update_node_content as _update_node_content
from docseek.indexer.chunker import chunk_tree
from docseek.indexer.embedder import POLICY_PLACEHOLDER, Embedder, EmbeddingFailure, resolve_embeddings
from docseek.models import Chunk
from docseek.search import EnhancedSearchResult, SearchParams, SearchService
from docseek.sources import DEFAULT_CORPUS_ID, DocumentSource, SourceDocument
from docseek.storage.cache import CacheManager, CacheRecord, content_hash
from docseek.storage.vector_store import InMemoryVectorStore

logger = logging.getLogger(__name__)


class IndexNotReadyError(RuntimeError):
    """The service has not been started, or has been shut down."""


class RebuildInProgressError(RuntimeError):
    """Another rebuild or edit is already running."""


class DocumentNotFoundError(KeyError):
    """No document with the requested name is loaded."""


@dataclass(frozen=True)
class CorpusSnapshot:
    documents: Mapping[str, SourceDocument]
    trees: Mapping[str, DocumentTree]
    chunks: tuple[Chunk, ...]
    search: SearchService
    content_hash: str
    from_cache: bool
    failed_embeddings: int = 0
    built_at: float = field(default_factory=time.time)


@dataclass
class EditResult:
    applied: bool
    file_name: str
    node_id: str
    markdown: str | None = None
    diff: RenderedDiff | None = None

    def to_dict(self) -> dict:
        return {
            "applied": self.applied,
            "file_name": self.file_name,
            "node_id": self.node_id,
            "markdown": self.markdown,
            "diff": self.diff.to_dict() if self.diff else None,
        }


class DocumentIndexService:
    """Explicitly constructed corpus service with start/shutdown lifecycle."""

    def __init__(
        self,
        embedder: Embedder | None = None,
        cache: CacheManager | None = None,
        corpus_id: str = DEFAULT_CORPUS_ID,
        source: DocumentSource | None = None,
        failure_policy: str | None = None,
    ) -> None:
        self._embedder = embedder or Embedder(batch_size=config.EMBED_BATCH_SIZE)
        self._cache = cache or CacheManager()
        self._corpus_id = corpus_id
        self._source = source
        self._failure_policy = failure_policy or config.EMBED_FAILURE_POLICY
        self._documents: list[SourceDocument] = []
        self._snapshot: CorpusSnapshot | None = None
        self._rebuild_lock = threading.Lock()

    @property
    def corpus_id(self) -> str:
        return self._corpus_id

    @property
    def is_ready(self) -> bool:
        return self._snapshot is not None

    # ── Lifecycle ──

    def start(self, documents: Sequence[SourceDocument] | None = None) -> CorpusSnapshot:
        """Load ``documents`` (or fetch them from the source) and build the index.

        A valid cache is reused; otherwise everything is parsed, chunked and
        embedded and the cache is rewritten.
        """
        if documents is None:
            if self._source is None:
                raise ValueError("No documents given and no document source configured")
            documents = self._source.fetch_documents()
        with self._exclusive("start"):
            return self._build(force=False, documents=sorted(documents, key=lambda d: d.path))

    def shutdown(self) -> None:
        with self._rebuild_lock:
            self._snapshot = None
            self._documents = []
        logger.info("Document index service shut down")

    def rebuild(self, force: bool = False) -> CorpusSnapshot:
        """Rebuild the index from the loaded documents.

        With ``force`` the corpus cache file is deleted first so every
        chunk is re-embedded. Raises RebuildInProgressError if another
        rebuild is running.
        """
        with self._exclusive("rebuild"):
            if not self._documents:
                raise IndexNotReadyError("No documents loaded; call start() first")
            if force:
                self._cache.delete(self._corpus_id)
            return self._build(force=force)

    # ── Reads ──

    def _require_snapshot(self) -> CorpusSnapshot:
        snapshot = self._snapshot
        if snapshot is None:
            raise IndexNotReadyError("Index is not built; call start() first")
        return snapshot

    def similarity_search(self, query: str, k: int | None = None) -> list[Chunk]:
        return self._require_snapshot().search.similarity_search(query, k)

    def enhanced_search(self, params: SearchParams) -> list[EnhancedSearchResult]:
        return self._require_snapshot().search.enhanced_search(params)

    def find_by_entity(self, term: str) -> list[Chunk]:
        return self._require_snapshot().search.find_by_entity(term)

    def chunks_for_section(self, section_id: str, file_name: str | None = None) -> list[Chunk]:
        return self._require_snapshot().search.chunks_for_section(section_id, file_name)

    def get_document(self, file_name: str) -> DocumentTree | None:
        return self._require_snapshot().trees.get(file_name)

    def document_names(self) -> list[str]:
        return list(self._require_snapshot().trees)

    # ── Tree operations ──

    def update_node_content(self, tree: DocumentTree, node_id: str, new_text: str) -> DocumentTree:
        return _update_node_content(tree, node_id, new_text)

    def serialize(self, tree: DocumentTree) -> str:
        return serialize(tree)

    def build_diff(self, old_text: str, new_text: str) -> RenderedDiff:
        return build_diff(old_text, new_text)

    def apply_edit(self, file_name: str, node_id: str, new_text: str) -> EditResult:
        """Replace one node's text, re-serialize the document and rebuild the index.

        If the node is missing or not editable nothing changes and
        ``applied`` is False. Raises DocumentNotFoundError for an unknown
        document and RebuildInProgressError if a rebuild is running.
        """
        with self._exclusive("edit"):
            snapshot = self._require_snapshot()
            tree = snapshot.trees.get(file_name)
            if tree is None:
                raise DocumentNotFoundError(file_name)

            updated = _update_node_content(tree, node_id, new_text)
            if updated is tree:
                logger.info("Edit of %s#%s not applied (missing or read-only node)", file_name, node_id)
                return EditResult(applied=False, file_name=file_name, node_id=node_id)

            old_node = find_node(tree, node_id)
            markdown = serialize(updated)
            documents = [
                SourceDocument(d.name, d.path, markdown, d.source_url) if d.name == file_name else d
                for d in self._documents
            ]
            logger.info("Applied edit to %s#%s, rebuilding index", file_name, node_id)
            # Loaded documents only change once the rebuild has succeeded
            self._build(force=False, documents=documents)
            return EditResult(
                applied=True,
                file_name=file_name,
                node_id=node_id,
                markdown=markdown,
                diff=build_diff(old_node.text if old_node else "", new_text),
            )

    # ── Diagnostics ──

    def diagnose(self) -> dict:
        """Health summary: ``error`` before start or with no vectors,
        ``degraded`` when fewer than 90% of chunks have real embeddings.
        """
        snapshot = self._snapshot
        if snapshot is None:
            return {"status": "error", "details": {"initialized": False, "chunks": 0, "vectors": 0}}

        search = snapshot.search.diagnostics()
        vectors = search["chunks"]
        chunk_count = len(snapshot.chunks)
        real_vectors = vectors - snapshot.failed_embeddings
        if vectors == 0 or chunk_count == 0:
            status = "error"
        elif real_vectors < chunk_count * 0.9:
            status = "degraded"
        else:
            status = "healthy"
        return {
            "status": status,
            "details": {
                "initialized": True,
                "corpus_id": self._corpus_id,
                "documents": len(snapshot.trees),
                "chunks": chunk_count,
                "vectors": vectors,
                "failed_embeddings": snapshot.failed_embeddings,
                "from_cache": snapshot.from_cache,
                "content_hash": snapshot.content_hash,
                "built_at": snapshot.built_at,
                "search_indices": search,
                "cache": self._cache.cache_status(self._corpus_id),
            },
        }

    # ── Internals ──

    def _exclusive(self, what: str) -> _ExclusiveSection:
        return _ExclusiveSection(self._rebuild_lock, what)

    def _build(self, force: bool, documents: list[SourceDocument] | None = None) -> CorpusSnapshot:
        """Build and publish a new snapshot. Caller holds the rebuild lock.

        ``documents`` replaces the loaded documents, but only if the build
        succeeds.
        """
        t0 = time.perf_counter()
        docs = self._documents if documents is None else documents
        files = [(d.path, d.content) for d in docs]
        digest = content_hash(files)

        record = None if force else self._cache.load_valid(self._corpus_id, files)
        if record is not None:
            trees = self._restore_trees(docs, record.tree_snapshots)
            chunks, vectors = record.chunks, record.embeddings
            failed = 0
            from_cache = True
        else:
            trees = {d.name: parse_markdown(d.content) for d in docs}
            all_chunks: list[Chunk] = []
            for d in docs:
                doc_chunks = chunk_tree(trees[d.name], d.name, d.source_url)
                logger.debug("Chunked %s: %d chunk(s)", d.name, len(doc_chunks))
                all_chunks.extend(doc_chunks)

            results = self._embedder.embed([c.text for c in all_chunks])
            failed = sum(1 for r in results if isinstance(r, EmbeddingFailure))
            chunks, vectors = resolve_embeddings(all_chunks, results, self._failure_policy)
            from_cache = False
            if failed:
                # Never cache a partial build; the next start retries the provider
                logger.warning("Not caching %s: %d embedding(s) failed", self._corpus_id, failed)
            elif chunks:
                self._save_cache(digest, chunks, vectors, trees)

        store = InMemoryVectorStore.from_records(vectors, chunks)
        search = SearchService(store, self._embedder)
        search.build_indices(chunks)

        snapshot = CorpusSnapshot(
            documents=MappingProxyType({d.name: d for d in docs}),
            trees=MappingProxyType(trees),
            chunks=tuple(chunks),
            search=search,
            content_hash=digest,
            from_cache=from_cache,
            failed_embeddings=failed if self._failure_policy == POLICY_PLACEHOLDER else 0,
        )
        self._documents = list(docs)
        self._snapshot = snapshot
        logger.info(
            "Index built: %d document(s), %d chunk(s), from_cache=%s (%.2fs)",
            len(docs), len(chunks), from_cache, time.perf_counter() - t0,
        )
        return snapshot

    def _restore_trees(
        self, docs: Sequence[SourceDocument], snapshots: dict[str, dict] | None
    ) -> dict[str, DocumentTree]:
        trees: dict[str, DocumentTree] = {}
        for d in docs:
            data = (snapshots or {}).get(d.name)
            if data is not None:
                try:
                    trees[d.name] = tree_from_dict(data)
                    continue
                except (KeyError, TypeError, ValueError) as e:
                    logger.warning("Cached tree for %s is unusable (%s), re-parsing", d.name, e)
            trees[d.name] = parse_markdown(d.content)
        return trees

    def _save_cache(
        self,
        digest: str,
        chunks: list[Chunk],
        vectors: list[list[float]],
        trees: Mapping[str, DocumentTree],
    ) -> None:
        record = CacheRecord(
            content_hash=digest,
            chunks=chunks,
            embeddings=vectors,
            tree_snapshots={name: tree_to_dict(t) for name, t in trees.items()},
        )
        try:
            self._cache.save(self._corpus_id, record)
        except OSError:
            # The fresh index is still served from memory
            logger.exception("Failed to write cache for %s", self._corpus_id)


class _ExclusiveSection:
    """Non-blocking acquire of the rebuild lock; raises if it is held."""

    def __init__(self, lock: threading.Lock, what: str) -> None:
        self._lock = lock
        self._what = what

    def __enter__(self) -> None:
        if not self._lock.acquire(blocking=False):
            raise RebuildInProgressError(f"Cannot {self._what}: a rebuild is already in progress")

    def __exit__(self, *exc) -> None:
        self._lock.release()
