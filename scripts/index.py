#!/usr/bin/env python3
"""CLI: Build (or refresh) the embedding cache for a Markdown docs checkout."""

from __future__ import annotations

import argparse
import logging
import sys
import time
from pathlib import Path

# Ensure the package is importable when running as a script
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "src"))

from docseek import config
from docseek.document.parser import parse_markdown
from docseek.git_utils import GitError, get_head_sha
from docseek.indexer.chunker import chunk_tree
from docseek.indexer.embedder import Embedder, ProviderUnavailableError
from docseek.search import SearchParams
from docseek.service import DocumentIndexService
from docseek.sources import LocalRepoSource
from docseek.storage.cache import CacheManager, content_hash


def main() -> None:
    parser = argparse.ArgumentParser(description="Index a Markdown documentation repository")
    parser.add_argument(
        "--repo",
        type=Path,
        default=None,
        help="Path to the docs checkout (default: DOCS_PATH)",
    )
    parser.add_argument(
        "--base-url",
        type=str,
        default=None,
        help="Repository URL used for source links and the cache name (default: DOCS_BASE_URL or git remote)",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Ignore the existing cache and re-embed every chunk",
    )
    parser.add_argument(
        "--invalidate-all",
        action="store_true",
        help="Quarantine every cache file in CACHE_DIR and exit",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would be embedded without calling the embedding API",
    )
    parser.add_argument(
        "--query",
        type=str,
        default=None,
        help="Run a search against the built index",
    )
    parser.add_argument(
        "--enhanced",
        action="store_true",
        help="Use metadata re-ranking for --query",
    )
    parser.add_argument("-k", type=int, default=None, help="Number of results for --query")
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, config.LOG_LEVEL, logging.INFO),
        format="%(asctime)s %(levelname)-5s [%(name)s] %(message)s",
        datefmt="%H:%M:%S",
    )

    cache = CacheManager(config.CACHE_DIR)

    if args.invalidate_all:
        n = cache.invalidate_all()
        print(f"Invalidated {n} cache file(s) in {cache.cache_dir}")
        return

    repo_path = args.repo or config.DOCS_PATH
    if repo_path is None:
        print("Error: no docs repository given.", file=sys.stderr)
        print("Set DOCS_PATH in .env or use --repo <path>.", file=sys.stderr)
        sys.exit(1)
    if not repo_path.is_dir():
        print(f"Error: {repo_path} is not a valid directory.", file=sys.stderr)
        print("Set DOCS_PATH in .env or use --repo <path>.", file=sys.stderr)
        sys.exit(1)

    source = LocalRepoSource(repo_path, base_url=args.base_url)
    documents = source.fetch_documents()
    if not documents:
        print(f"No markdown files found in {repo_path}.", file=sys.stderr)
        sys.exit(1)

    # ── Dry run: report what would happen, then exit ──
    if args.dry_run:
        files = sorted((d.path, d.content) for d in documents)
        record = cache.load_valid(source.corpus_id, files)
        total_chunks = sum(len(chunk_tree(parse_markdown(d.content), d.name, d.source_url)) for d in documents)
        print(f"Repository: {repo_path} (corpus {source.corpus_id})")
        print(f"Documents:  {len(documents)}")
        print(f"Chunks:     {total_chunks}")
        print(f"Hash:       {content_hash(files)}")
        print(f"Cache:      {cache.cache_path(source.corpus_id)}")
        if record is not None and not args.force:
            print("[embed]      cache is valid, nothing to embed")
        else:
            print(f"[embed]      {total_chunks} chunk(s) would be embedded (Gemini API calls)")
        return

    if not config.GEMINI_API_KEY:
        print("Error: embedding requires GEMINI_API_KEY in .env", file=sys.stderr)
        sys.exit(1)

    # ── Real run ──
    try:
        head = get_head_sha(repo_path)
    except GitError:
        head = None
    print(f"Indexing docs: {repo_path}" + (f" @ {head[:12]}" if head else ""))
    print(f"Documents: {len(documents)}")
    start = time.time()

    service = DocumentIndexService(
        embedder=Embedder(batch_size=config.EMBED_BATCH_SIZE),
        cache=cache,
        corpus_id=source.corpus_id,
    )
    try:
        snapshot = service.start(documents)
        if args.force and snapshot.from_cache:
            snapshot = service.rebuild(force=True)
    except ProviderUnavailableError as e:
        print(f"Error: embedding provider unavailable: {e}", file=sys.stderr)
        sys.exit(1)

    print("\nIndex ready:")
    print(f"  Chunks: {len(snapshot.chunks)}")
    print(f"  From cache: {snapshot.from_cache}")
    if snapshot.failed_embeddings:
        print(f"  Placeholder embeddings: {snapshot.failed_embeddings}")
    print(f"  Cache file: {cache.cache_path(source.corpus_id)}")

    if args.query:
        print(f"\nResults for {args.query!r}:")
        if args.enhanced:
            results = service.enhanced_search(SearchParams(query=args.query, k=args.k))
            for i, r in enumerate(results, 1):
                meta = r.chunk.metadata
                print(f"  {i}. {meta.file_name}#{meta.node_id} ({meta.node_type}) score={r.score:.4f}")
                print(f"     {r.chunk.text[:200]!r}")
        else:
            for i, chunk in enumerate(service.similarity_search(args.query, args.k), 1):
                meta = chunk.metadata
                print(f"  {i}. {meta.file_name}#{meta.node_id} ({meta.node_type})")
                print(f"     {chunk.text[:200]!r}")

    print(f"\nDone in {time.time() - start:.1f}s")
    service.shutdown()


if __name__ == "__main__":
    main()
