"""Markdown block parser: builds a DocumentTree from raw text.

Recognizes ATX headings, paragraphs, bullet and ordered lists (nested by
indentation), fenced code, blockquotes, and thematic breaks. Inline markup is
left untouched in node text.
"""

from __future__ import annotations

import itertools
import re
from dataclasses import dataclass, field

from docseek.document.tree import DocumentTree, Node, NodeType, build_tree

_HEADING_RE = re.compile(r"^ {0,3}(#{1,6})(?:[ \t]+(.*?))?(?:[ \t]+#+)?[ \t]*$")
_FENCE_RE = re.compile(r"^( {0,3})(`{3,}|~{3,})[ \t]*([^`\s]*)[^`]*$")
_HR_RE = re.compile(r"^ {0,3}([-*_])(?:[ \t]*\1){2,}[ \t]*$")
_QUOTE_RE = re.compile(r"^ {0,3}> ?(.*)$")
_LIST_RE = re.compile(r"^([ \t]*)([-*+]|\d{1,9}[.)])[ \t]+(.*)$")

# Text stored for a thematic break
THEMATIC_BREAK = "---"


@dataclass
class _Block:
    """Mutable intermediate node; frozen into a Node once parsing is done."""

    type: NodeType
    text: str = ""
    children: list[_Block] = field(default_factory=list)
    section_id: str | None = None
    depth: int | None = None
    ordered: bool = False
    start: int | None = None
    lang: str | None = None
    indent: int = 0  # list marker column, lists only


def _indent_of(line: str) -> int:
    expanded = line.expandtabs(4)
    return len(expanded) - len(expanded.lstrip(" "))


def _is_block_start(line: str) -> bool:
    return bool(
        _HEADING_RE.match(line)
        or _FENCE_RE.match(line)
        or _HR_RE.match(line)
        or _QUOTE_RE.match(line)
        or _LIST_RE.match(line)
    )


class MarkdownParser:
    """Single-use parser: ``MarkdownParser(text).parse()``."""

    def __init__(self, text: str) -> None:
        self._lines = text.replace("\r\n", "\n").replace("\r", "\n").split("\n")
        self._pos = 0
        self._title = ""
        self._title_found = False
        self._root = _Block(NodeType.ROOT)
        # Open section headings, outermost first
        self._section_stack: list[_Block] = []
        self._section_count = 0

    # ── Entry point ──

    def parse(self) -> DocumentTree:
        while self._pos < len(self._lines):
            line = self._lines[self._pos]
            if not line.strip():
                self._pos += 1
            elif _FENCE_RE.match(line):
                self._attach(self._parse_fence())
            elif _HEADING_RE.match(line):
                self._parse_heading()
            elif _HR_RE.match(line):
                self._pos += 1
                self._attach(_Block(NodeType.PARAGRAPH, text=THEMATIC_BREAK))
            elif _QUOTE_RE.match(line):
                self._attach(self._parse_blockquote())
            elif _LIST_RE.match(line):
                self._attach(self._parse_list())
            else:
                self._attach(self._parse_paragraph())

        root = _freeze(self._root, None, None, itertools.count())
        return build_tree(self._title, root)

    # ── Sections ──

    def _current_section(self) -> _Block | None:
        return self._section_stack[-1] if self._section_stack else None

    def _attach(self, block: _Block) -> None:
        section = self._current_section()
        parent = section or self._root
        if section is not None:
            block.section_id = section.section_id
        parent.children.append(block)

    def _parse_heading(self) -> None:
        m = _HEADING_RE.match(self._lines[self._pos])
        self._pos += 1
        assert m is not None
        depth = len(m.group(1))
        text = (m.group(2) or "").strip()

        if depth == 1 and not self._title_found:
            self._title = text
            self._title_found = True
            return

        self._section_count += 1
        heading = _Block(
            NodeType.HEADING,
            text=text,
            depth=depth,
            section_id=f"section-{self._section_count}",
        )
        while self._section_stack and (self._section_stack[-1].depth or 0) >= depth:
            self._section_stack.pop()
        parent = self._current_section() or self._root
        parent.children.append(heading)
        self._section_stack.append(heading)

    # ── Leaf blocks ──

    def _parse_fence(self) -> _Block:
        m = _FENCE_RE.match(self._lines[self._pos])
        assert m is not None
        fence_indent, fence, lang = len(m.group(1)), m.group(2), m.group(3)
        self._pos += 1
        body: list[str] = []
        closing = re.compile(r"^ {0,3}" + re.escape(fence[0]) + "{" + str(len(fence)) + r",}[ \t]*$")
        while self._pos < len(self._lines):
            line = self._lines[self._pos]
            self._pos += 1
            if closing.match(line):
                break
            # Strip up to the opening fence's indentation
            strip = min(fence_indent, _indent_of(line))
            body.append(line[strip:])
        return _Block(NodeType.CODE, text="\n".join(body), lang=lang or None)

    def _parse_blockquote(self) -> _Block:
        body: list[str] = []
        while self._pos < len(self._lines):
            m = _QUOTE_RE.match(self._lines[self._pos])
            if not m:
                break
            body.append(m.group(1))
            self._pos += 1
        return _Block(NodeType.BLOCKQUOTE, text="\n".join(body).strip("\n"))

    def _parse_paragraph(self) -> _Block:
        body: list[str] = []
        while self._pos < len(self._lines):
            line = self._lines[self._pos]
            if not line.strip() or (body and _is_block_start(line)):
                break
            body.append(line.strip())
            self._pos += 1
        return _Block(NodeType.PARAGRAPH, text="\n".join(body))

    # ── Lists ──

    def _parse_list(self) -> _Block:
        """Consume a contiguous list region and nest items by indentation."""
        first = _LIST_RE.match(self._lines[self._pos])
        assert first is not None
        base_indent = _indent_of(self._lines[self._pos])

        top: _Block | None = None
        # Open lists, outermost first
        stack: list[_Block] = []
        last_item: _Block | None = None
        pending_blank = False

        while self._pos < len(self._lines):
            line = self._lines[self._pos]

            if not line.strip():
                if not self._list_continues_after_blank(base_indent, last_item):
                    break
                pending_blank = True
                self._pos += 1
                continue

            m = _LIST_RE.match(line)
            indent = _indent_of(line)
            if m and indent >= base_indent and not _HR_RE.match(line):
                marker, text = m.group(2), m.group(3).strip()
                ordered = marker[0].isdigit()
                while stack and indent < stack[-1].indent:
                    stack.pop()
                if not stack or indent > stack[-1].indent:
                    new_list = _Block(
                        NodeType.LIST,
                        ordered=ordered,
                        start=int(marker[:-1]) if ordered else None,
                        indent=indent,
                    )
                    if stack:
                        # Nest under the last item of the enclosing list
                        stack[-1].children[-1].children.append(new_list)
                    else:
                        top = new_list
                    stack.append(new_list)
                last_item = _Block(NodeType.LIST_ITEM, text=text)
                stack[-1].children.append(last_item)
                pending_blank = False
                self._pos += 1
                continue

            if last_item is None:
                break
            if indent > base_indent:
                # Indented continuation of the current item
                sep = "\n\n" if pending_blank else "\n"
                last_item.text = f"{last_item.text}{sep}{line.strip()}" if last_item.text else line.strip()
                pending_blank = False
                self._pos += 1
                continue
            if not pending_blank and not _is_block_start(line):
                # Lazy continuation line
                last_item.text = f"{last_item.text}\n{line.strip()}"
                self._pos += 1
                continue
            break

        assert top is not None
        return top

    def _list_continues_after_blank(self, base_indent: int, last_item: _Block | None) -> bool:
        j = self._pos
        while j < len(self._lines) and not self._lines[j].strip():
            j += 1
        if j >= len(self._lines) or last_item is None:
            return False
        nxt = self._lines[j]
        indent = _indent_of(nxt)
        if _LIST_RE.match(nxt) and indent >= base_indent and not _HR_RE.match(nxt):
            return True
        return indent > base_indent + 1


def _freeze(block: _Block, parent_id: str | None, section_id: str | None, counter) -> Node:
    """Assign pre-order ids and convert the builder tree to immutable Nodes."""
    node_id = f"{block.type.value}-{next(counter)}"
    sid = block.section_id if block.section_id is not None else section_id
    children = tuple(_freeze(c, node_id, sid, counter) for c in block.children)
    return Node(
        id=node_id,
        type=block.type,
        text=block.text,
        parent_id=parent_id,
        section_id=sid,
        children=children,
        depth=block.depth,
        ordered=block.ordered,
        start=block.start,
        lang=block.lang,
    )


def parse_markdown(text: str) -> DocumentTree:
    """Parse Markdown text into a DocumentTree.

    The first depth-1 heading becomes the tree title and is not part of the
    body. Later headings open sections that nest by depth. Ids are derived
    from pre-order position, so parsing the same text twice yields identical
    trees.
    """
    return MarkdownParser(text).parse()
