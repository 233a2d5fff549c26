"""Semantic search over the in-memory vector store, with metadata re-ranking."""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass, field

from docseek import config
from docseek.indexer.embedder import Embedder, ProviderUnavailableError
from docseek.models import Chunk
from docseek.storage.vector_store import InMemoryVectorStore

logger = logging.getLogger(__name__)

# Chat user mentions such as <@U123ABC>
_MENTION_RE = re.compile(r"<@[A-Z0-9]+>")

_QUOTED_RE = re.compile(r'"([^"]+)"')
_CAPITALIZED_RE = re.compile(r"\b[A-Z][a-z]{2,}\b")
_CODE_PATTERNS = [
    re.compile(r"\b([a-zA-Z][a-zA-Z0-9_]{3,})\("),  # function call
    re.compile(r"\b([a-z][a-zA-Z0-9_]*[A-Z][a-zA-Z0-9_]*)\b"),  # camelCase
    re.compile(r"\b([A-Z][a-zA-Z0-9_]+)\b"),  # PascalCase
]

IMPORTANCE_WEIGHT = 0.3
SECTION_SUMMARY_BOOST = 1.2
ENTITY_BOOST_PER_MATCH = 0.1
MAX_ENTITY_BOOST = 0.3


@dataclass
class SearchParams:
    query: str
    k: int | None = None
    min_relevance_score: float | None = None
    boost_important_nodes: bool = True
    boost_section_summaries: bool = True
    boost_by_entity_match: bool = True
    include_chunk_context: bool = True
    filter_by_node_type: list[str] | None = None
    filter_by_section_id: str | None = None
    filter_by_file_name: str | None = None


@dataclass
class EnhancedSearchResult:
    chunk: Chunk
    score: float
    section_summary: Chunk | None = None
    related_chunks: list[Chunk] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "chunk": self.chunk.to_dict(),
            "score": self.score,
            "section_summary": self.section_summary.to_dict() if self.section_summary else None,
            "related_chunks": [c.to_dict() for c in self.related_chunks],
        }


def clean_query(query: str) -> str:
    return _MENTION_RE.sub("", query).strip()


def extract_query_entities(query: str) -> list[str]:
    """Likely entity names in a query, lower-cased and de-duplicated.

    Picks up quoted phrases, capitalized words, call-like identifiers
    (``name(``), camelCase and PascalCase tokens.
    """
    entities: dict[str, None] = {}
    for phrase in _QUOTED_RE.findall(query):
        entities.setdefault(phrase.lower(), None)
    for word in _CAPITALIZED_RE.findall(query):
        entities.setdefault(word.lower(), None)
    for pattern in _CODE_PATTERNS:
        for match in pattern.findall(query):
            cleaned = match.lower()
            if len(cleaned) > 2:
                entities.setdefault(cleaned, None)
    return list(entities)


def _matches_filters(chunk: Chunk, params: SearchParams) -> bool:
    meta = chunk.metadata
    if params.filter_by_node_type and meta.node_type not in params.filter_by_node_type:
        return False
    if params.filter_by_section_id and meta.section_id != params.filter_by_section_id:
        return False
    if params.filter_by_file_name and meta.file_name != params.filter_by_file_name:
        return False
    return True


# Indices are keyed by (file_name, id): node and section ids are only unique
# within one document.
_Key = tuple[str, str]


class SearchService:
    """Query embedding, vector lookup and metadata-aware re-ranking."""

    def __init__(self, vector_store: InMemoryVectorStore, embedder: Embedder) -> None:
        self._store = vector_store
        self._embedder = embedder
        self._by_node: dict[_Key, list[Chunk]] = {}
        self._by_section: dict[_Key, list[Chunk]] = {}
        self._section_summaries: dict[_Key, Chunk] = {}
        self._by_entity: dict[str, list[Chunk]] = {}

    def build_indices(self, chunks: list[Chunk]) -> None:
        """Rebuild the lookup maps from ``chunks`` in one pass, replacing any previous ones."""
        by_node: dict[_Key, list[Chunk]] = {}
        by_section: dict[_Key, list[Chunk]] = {}
        summaries: dict[_Key, Chunk] = {}
        by_entity: dict[str, list[Chunk]] = {}

        for chunk in chunks:
            meta = chunk.metadata
            if meta.node_id:
                by_node.setdefault((meta.file_name, meta.node_id), []).append(chunk)
            if meta.section_id:
                key = (meta.file_name, meta.section_id)
                by_section.setdefault(key, []).append(chunk)
                if chunk.is_section_summary:
                    summaries.setdefault(key, chunk)
            for entity in meta.entity_mentions:
                by_entity.setdefault(entity, []).append(chunk)

        self._by_node = by_node
        self._by_section = by_section
        self._section_summaries = summaries
        self._by_entity = by_entity
        logger.info("Built search indices for %d chunks", len(chunks))

    # ── Search ──

    def similarity_search(self, query: str, k: int | None = None) -> list[Chunk]:
        """Plain vector search. Returns [] on empty query or any failure."""
        k = config.DEFAULT_K if k is None else k
        if k <= 0:
            return []
        cleaned = clean_query(query)
        if not cleaned:
            logger.warning("Empty query after cleaning")
            return []
        logger.info("Similarity search k=%d query=%r", k, cleaned[:50])
        try:
            t0 = time.perf_counter()
            vector = self._embedder.embed_query(cleaned)
            results = self._store.similarity_search(vector, k)
            logger.debug("Similarity search: %d results, %.0fms", len(results), (time.perf_counter() - t0) * 1000)
            return [r.chunk for r in results]
        except ProviderUnavailableError as e:
            logger.error("Similarity search unavailable: %s", e)
            return []
        except Exception:
            logger.exception("Similarity search failed")
            return []

    def enhanced_search(self, params: SearchParams) -> list[EnhancedSearchResult]:
        """Vector search over ``2k`` candidates, re-ranked by chunk metadata.

        Scores are multiplied by importance, section-summary and entity-match
        boosts. Chunks excluded by the node-type, section or file filters are
        dropped before scoring. Results below ``min_relevance_score`` are
        dropped and at most ``k`` are returned, optionally with their section
        summary and sibling chunks.
        Returns [] on any failure.
        """
        k = config.DEFAULT_K if params.k is None else params.k
        if k <= 0:
            return []
        min_score = (
            params.min_relevance_score
            if params.min_relevance_score is not None
            else config.MIN_RELEVANCE_SCORE
        )
        cleaned = clean_query(params.query)
        if not cleaned:
            return []
        logger.info("Enhanced search k=%d min_score=%.2f query=%r", k, min_score, cleaned[:50])

        try:
            t0 = time.perf_counter()
            query_entities = set(extract_query_entities(cleaned))
            vector = self._embedder.embed_query(cleaned)
            raw = self._store.similarity_search(vector, k * 2)

            scored: list[EnhancedSearchResult] = []
            for r in raw:
                if not _matches_filters(r.chunk, params):
                    continue
                score = self._rescore(r.chunk, r.score, params, query_entities)
                if score >= min_score:
                    scored.append(EnhancedSearchResult(chunk=r.chunk, score=score))

            scored.sort(key=lambda s: s.score, reverse=True)
            results = scored[:k]
            if params.include_chunk_context:
                for result in results:
                    self._add_context(result)
            logger.debug(
                "Enhanced search: %d raw, %d kept, %.0fms",
                len(raw), len(results), (time.perf_counter() - t0) * 1000,
            )
            return results
        except ProviderUnavailableError as e:
            logger.error("Enhanced search unavailable: %s", e)
            return []
        except Exception:
            logger.exception("Enhanced search failed")
            return []

    def _rescore(
        self, chunk: Chunk, score: float, params: SearchParams, query_entities: set[str]
    ) -> float:
        meta = chunk.metadata
        if params.boost_important_nodes and meta.importance is not None:
            score *= 1 + meta.importance * IMPORTANCE_WEIGHT
        if params.boost_section_summaries and chunk.is_section_summary:
            score *= SECTION_SUMMARY_BOOST
        if params.boost_by_entity_match and query_entities and meta.entity_mentions:
            matches = sum(1 for e in meta.entity_mentions if e in query_entities)
            if matches:
                score *= 1 + min(MAX_ENTITY_BOOST, matches * ENTITY_BOOST_PER_MATCH)

        return score

    def _add_context(self, result: EnhancedSearchResult) -> None:
        meta = result.chunk.metadata
        if meta.section_id:
            result.section_summary = self._section_summaries.get((meta.file_name, meta.section_id))
        if meta.node_id and meta.total_chunks and meta.total_chunks > 1:
            siblings = [
                c
                for c in self._by_node.get((meta.file_name, meta.node_id), [])
                if c.metadata.chunk_index != meta.chunk_index
            ]
            result.related_chunks = sorted(siblings, key=lambda c: c.metadata.chunk_index or 0)

    # ── Lookups ──

    def chunks_for_section(self, section_id: str, file_name: str | None = None) -> list[Chunk]:
        return [
            chunk
            for (fname, sid), chunks in self._by_section.items()
            if sid == section_id and (file_name is None or fname == file_name)
            for chunk in chunks
        ]

    def find_by_entity(self, term: str) -> list[Chunk]:
        """Chunks mentioning any entity that contains ``term`` (case-insensitive)."""
        needle = term.lower()
        seen: set[int] = set()
        found: list[Chunk] = []
        for entity, chunks in self._by_entity.items():
            if needle not in entity:
                continue
            for chunk in chunks:
                if id(chunk) not in seen:
                    seen.add(id(chunk))
                    found.append(chunk)
        return found

    def diagnostics(self) -> dict:
        return {
            "chunks": self._store.count(),
            "nodes": len(self._by_node),
            "sections": len(self._by_section),
            "section_summaries": len(self._section_summaries),
            "entities": len(self._by_entity),
        }
