"""Render a DocumentTree back to Markdown text."""

from __future__ import annotations

from docseek.document.tree import DocumentTree, Node, NodeType


def _indent_lines(text: str, prefix: str) -> str:
    return "\n".join(prefix + line if line else "" for line in text.split("\n"))


def _render_list(node: Node, indent: str = "") -> str:
    lines: list[str] = []
    number = node.start if node.start is not None else 1
    for item in node.children:
        marker = f"{number}." if node.ordered else "-"
        number += 1
        pad = " " * (len(marker) + 1)
        head, _, rest = item.text.partition("\n")
        lines.append(f"{indent}{marker} {head}".rstrip())
        if rest:
            lines.append(_indent_lines(rest, indent + pad))
        for child in item.children:
            if child.type == NodeType.LIST:
                lines.append(_render_list(child, indent + pad))
    return "\n".join(lines)


def _render_blocks(node: Node) -> list[str]:
    """Render a node to a list of top-level Markdown blocks."""
    if node.type == NodeType.ROOT:
        blocks: list[str] = []
        for child in node.children:
            blocks.extend(_render_blocks(child))
        return blocks
    if node.type == NodeType.HEADING:
        blocks = [f"{'#' * (node.depth or 2)} {node.text}".rstrip()]
        for child in node.children:
            blocks.extend(_render_blocks(child))
        return blocks
    if node.type == NodeType.LIST:
        return [_render_list(node)]
    if node.type == NodeType.LIST_ITEM:
        # Only reached for a detached item; render as a one-item bullet list
        return [f"- {node.text}"]
    if node.type == NodeType.CODE:
        return [f"```{node.lang or ''}\n{node.text}\n```"]
    if node.type == NodeType.BLOCKQUOTE:
        return ["\n".join(f"> {line}" if line else ">" for line in node.text.split("\n"))]
    return [node.text]


def serialize(tree: DocumentTree) -> str:
    """Render ``tree`` to Markdown.

    The title is emitted as a depth-1 heading. Blocks are separated by one
    blank line; original spacing is not preserved.
    """
    blocks: list[str] = []
    if tree.title:
        blocks.append(f"# {tree.title}")
    blocks.extend(b for b in _render_blocks(tree.root) if b)
    if not blocks:
        return ""
    return "\n\n".join(blocks) + "\n"
