"""Turn a DocumentTree into retrievable chunks.

Granularity: one chunk per section (heading + first content block) and one
chunk per list item (section heading + item text). List items are the unit
most often edited on their own, so each gets its own embedding; the section
heading is repeated in every chunk to anchor it semantically.
"""

from __future__ import annotations

import re

from docseek.document.tree import DocumentTree, Node, NodeType, ancestors, plain_text, section_path, walk
from docseek.models import SECTION_SUMMARY, Chunk, ChunkMetadata

# Bodies longer than this are split on paragraph and sentence boundaries
OPTIMAL_CHUNK_SIZE = 1000
MAX_ENTITIES = 10

_STOPWORDS = frozenset({
    "a", "an", "the", "and", "or", "but", "is", "are", "in", "to",
    "for", "of", "with", "on", "at", "this", "that", "from", "was", "were",
})

_WORD_RE = re.compile(r"\b[A-Za-z0-9_]{3,}\b")

_CODE_PATTERNS: dict[str, list[re.Pattern[str]]] = {
    "python": [
        re.compile(r"def\s+([A-Za-z0-9_]+)"),
        re.compile(r"class\s+([A-Za-z0-9_]+)"),
        re.compile(r"([A-Za-z0-9_]+)\s*=\s*"),
    ],
    "javascript": [
        re.compile(r"function\s+([A-Za-z0-9_]+)"),
        re.compile(r"class\s+([A-Za-z0-9_]+)"),
        re.compile(r"(?:const|let|var)\s+([A-Za-z0-9_]+)"),
        re.compile(r"([A-Za-z0-9_]+)\s*=\s*function"),
    ],
    "typescript": [
        re.compile(r"function\s+([A-Za-z0-9_]+)"),
        re.compile(r"class\s+([A-Za-z0-9_]+)"),
        re.compile(r"(?:interface|type)\s+([A-Za-z0-9_]+)"),
        re.compile(r"(?:const|let)\s+([A-Za-z0-9_]+)"),
    ],
}
_CODE_PATTERNS["py"] = _CODE_PATTERNS["python"]
_CODE_PATTERNS["js"] = _CODE_PATTERNS["javascript"]
_CODE_PATTERNS["ts"] = _CODE_PATTERNS["typescript"]

_DEFAULT_CODE_PATTERNS = [
    re.compile(r"\b([A-Z][A-Za-z0-9_]+)\b"),
    re.compile(r"\b([a-z][A-Za-z0-9_]{5,})\b"),
]


def extract_entities(text: str) -> list[str]:
    """Keyword-style entity mentions: distinct words, stopwords removed, lower-cased."""
    seen: dict[str, None] = {}
    for word in _WORD_RE.findall(text):
        lowered = word.lower()
        if lowered in _STOPWORDS:
            continue
        seen.setdefault(lowered, None)
        if len(seen) >= MAX_ENTITIES:
            break
    return list(seen)


def extract_code_entities(code: str, lang: str | None) -> list[str]:
    """Identifier names declared or referenced in a code block."""
    patterns = _CODE_PATTERNS.get((lang or "").lower(), _DEFAULT_CODE_PATTERNS)
    seen: dict[str, None] = {}
    for pattern in patterns:
        for m in pattern.finditer(code):
            name = m.group(1)
            if name and len(name) > 2:
                seen.setdefault(name.lower(), None)
    return list(seen)[:MAX_ENTITIES]


def calculate_importance(node: Node, depth: int, heading_path_len: int) -> float:
    """Heuristic 0..1 weight: shallow, sectioned nodes and code rank higher."""
    score = 0.5
    score += max(0.0, 0.3 - depth * 0.05)
    if node.section_id:
        score += 0.1
    score += max(0.0, 0.2 - heading_path_len * 0.05)
    if node.type == NodeType.HEADING:
        score += 0.1
    elif node.type == NodeType.CODE:
        score += 0.15
    elif node.type == NodeType.LIST_ITEM:
        score += 0.05
    return min(1.0, max(0.0, score))


def split_text(text: str, target_size: int = OPTIMAL_CHUNK_SIZE) -> list[str]:
    """Split ``text`` into pieces of at most roughly ``target_size`` characters.

    Paragraphs are packed together; a paragraph that is too large on its own
    is split on sentence boundaries.
    """
    if len(text) <= target_size:
        return [text]

    chunks: list[str] = []
    current = ""
    for para in re.split(r"\n\s*\n", text):
        if len(para) > target_size:
            if current:
                chunks.append(current)
                current = ""
            sentences = re.findall(r"[^.!?]+[.!?]+|[^.!?]+$", para) or [para]
            piece = ""
            for sentence in sentences:
                if len(piece + sentence) <= target_size:
                    piece += sentence
                else:
                    if piece:
                        chunks.append(piece.strip())
                    piece = sentence
            if piece.strip():
                chunks.append(piece.strip())
        elif len(current) + len(para) + 2 <= target_size:
            current = f"{current}\n\n{para}" if current else para
        else:
            if current:
                chunks.append(current)
            current = para
    if current:
        chunks.append(current)
    return chunks


def _first_content(heading: Node) -> Node | None:
    for child in heading.children:
        if child.type != NodeType.HEADING:
            return child
    return None


def _section_items(heading: Node) -> list[Node]:
    """List items belonging to ``heading``'s own section (not to sub-sections)."""
    items: list[Node] = []
    for child in heading.children:
        if child.type == NodeType.HEADING:
            continue
        items.extend(n for n in walk(child) if n.type == NodeType.LIST_ITEM)
    return items


def _entities_for(node: Node, text: str) -> list[str]:
    if node.type == NodeType.CODE:
        return extract_code_entities(node.text, node.lang)
    return extract_entities(text)


def chunk_tree(tree: DocumentTree, file_name: str, source_url: str = "") -> list[Chunk]:
    """Produce the retrievable chunks for one document."""
    chunks: list[Chunk] = []

    def emit(
        context: str,
        body: str,
        node: Node,
        node_type: str,
        importance: float,
        entities: list[str],
        path: list[str],
    ) -> None:
        pieces = split_text(body)
        total = len(pieces)
        for i, piece in enumerate(pieces):
            text = f"{context}\n\n{piece}" if context else piece
            chunks.append(
                Chunk(
                    text=text,
                    metadata=ChunkMetadata(
                        file_name=file_name,
                        source_url=source_url,
                        node_id=node.id,
                        section_id=node.section_id,
                        section_path=list(path),
                        node_type=node_type,
                        importance=round(importance, 4),
                        entity_mentions=entities,
                        chunk_index=i if total > 1 else None,
                        total_chunks=total if total > 1 else None,
                    ),
                )
            )

    # Preamble lists that sit before the first heading use the title as context
    for child in tree.root.children:
        if child.type == NodeType.LIST:
            for item in (n for n in walk(child) if n.type == NodeType.LIST_ITEM):
                if not item.text.strip():
                    continue
                depth = len(ancestors(tree, item))
                emit(
                    tree.title,
                    item.text,
                    item,
                    NodeType.LIST_ITEM.value,
                    calculate_importance(item, depth, 0),
                    extract_entities(item.text),
                    [],
                )

    for heading in (n for n in walk(tree.root) if n.type == NodeType.HEADING):
        path = section_path(tree, heading)
        depth = len(ancestors(tree, heading))

        content = _first_content(heading)
        if content is not None:
            body = plain_text(content)
            if body.strip():
                emit(
                    heading.text,
                    body,
                    heading,
                    SECTION_SUMMARY,
                    calculate_importance(heading, depth, len(path)),
                    _entities_for(content, f"{heading.text} {body}"),
                    path,
                )

        for item in _section_items(heading):
            if not item.text.strip():
                continue
            item_depth = len(ancestors(tree, item))
            emit(
                heading.text,
                item.text,
                item,
                NodeType.LIST_ITEM.value,
                calculate_importance(item, item_depth, len(path)),
                extract_entities(item.text),
                path,
            )

    return chunks
