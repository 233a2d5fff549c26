"""Retrievable chunks and the metadata that travels with them."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field

# node_type value of the per-section chunk (heading + first content block)
SECTION_SUMMARY = "section-summary"


@dataclass
class ChunkMetadata:
    file_name: str
    source_url: str = ""
    node_id: str | None = None
    section_id: str | None = None
    section_path: list[str] = field(default_factory=list)
    node_type: str | None = None
    importance: float | None = None
    entity_mentions: list[str] = field(default_factory=list)
    chunk_index: int | None = None
    total_chunks: int | None = None


@dataclass
class Chunk:
    text: str
    metadata: ChunkMetadata

    @property
    def is_section_summary(self) -> bool:
        return self.metadata.node_type == SECTION_SUMMARY

    def to_dict(self) -> dict:
        return {"text": self.text, "metadata": asdict(self.metadata)}

    @classmethod
    def from_dict(cls, data: dict) -> Chunk:
        meta = dict(data.get("metadata") or {})
        return cls(
            text=data["text"],
            metadata=ChunkMetadata(
                file_name=meta.get("file_name", ""),
                source_url=meta.get("source_url", ""),
                node_id=meta.get("node_id"),
                section_id=meta.get("section_id"),
                section_path=list(meta.get("section_path") or []),
                node_type=meta.get("node_type"),
                importance=meta.get("importance"),
                entity_mentions=list(meta.get("entity_mentions") or []),
                chunk_index=meta.get("chunk_index"),
                total_chunks=meta.get("total_chunks"),
            ),
        )
