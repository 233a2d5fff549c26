"""Immutable document tree: node types, lookups, and copy-on-write edits."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from types import MappingProxyType
from typing import Iterator, Mapping


class NodeType(str, Enum):
    ROOT = "root"
    HEADING = "heading"
    PARAGRAPH = "paragraph"
    LIST = "list"
    LIST_ITEM = "list_item"
    CODE = "code"
    BLOCKQUOTE = "blockquote"


# Node types whose text can be replaced in place
EDITABLE_TYPES = frozenset({NodeType.HEADING, NodeType.PARAGRAPH, NodeType.LIST_ITEM})


@dataclass(frozen=True)
class Node:
    id: str
    type: NodeType
    text: str = ""
    parent_id: str | None = None
    section_id: str | None = None
    children: tuple[Node, ...] = ()
    depth: int | None = None  # heading level, 2 for "##"
    ordered: bool = False
    start: int | None = None  # first number of an ordered list
    lang: str | None = None  # code fence info string


@dataclass(frozen=True)
class DocumentTree:
    """A parsed document.

    ``node_map`` and ``section_map`` are read-only views built from ``root``;
    they are never mutated after construction.
    """

    title: str
    root: Node
    node_map: Mapping[str, Node] = field(default_factory=dict, compare=False, repr=False)
    section_map: Mapping[str, Node] = field(default_factory=dict, compare=False, repr=False)


def walk(node: Node) -> Iterator[Node]:
    """Yield ``node`` and all of its descendants in pre-order."""
    yield node
    for child in node.children:
        yield from walk(child)


def plain_text(node: Node) -> str:
    """Concatenate the text of a node and its descendants."""
    parts = [n.text for n in walk(node) if n.text]
    return "\n".join(parts)


def build_tree(title: str, root: Node) -> DocumentTree:
    """Wrap a root node in a DocumentTree with freshly built lookup maps."""
    node_map: dict[str, Node] = {}
    section_map: dict[str, Node] = {}
    for node in walk(root):
        node_map[node.id] = node
        if node.type == NodeType.HEADING and node.section_id:
            section_map[node.section_id] = node
    return DocumentTree(
        title=title,
        root=root,
        node_map=MappingProxyType(node_map),
        section_map=MappingProxyType(section_map),
    )


def find_node(tree: DocumentTree, node_id: str) -> Node | None:
    return tree.node_map.get(node_id)


def find_section(tree: DocumentTree, section_id: str) -> Node | None:
    return tree.section_map.get(section_id)


def nodes_in_section(tree: DocumentTree, section_id: str) -> list[Node]:
    """Return every node tagged with ``section_id``, in document order."""
    return [n for n in walk(tree.root) if n.section_id == section_id]


def ancestors(tree: DocumentTree, node: Node) -> list[Node]:
    """Return the ancestors of ``node``, root first."""
    chain: list[Node] = []
    parent_id = node.parent_id
    while parent_id is not None:
        parent = tree.node_map.get(parent_id)
        if parent is None:
            break
        chain.append(parent)
        parent_id = parent.parent_id
    chain.reverse()
    return chain


def section_path(tree: DocumentTree, node: Node) -> list[str]:
    """Heading texts enclosing ``node``, outermost first (includes node if a heading)."""
    chain = ancestors(tree, node) + [node]
    return [n.text for n in chain if n.type == NodeType.HEADING]


def update_node_content(tree: DocumentTree, node_id: str, new_text: str) -> DocumentTree:
    """Return a new tree with the text of ``node_id`` replaced.

    If the node does not exist or is not a heading, paragraph, or list item,
    the input tree object itself is returned; callers detect "nothing
    changed" with ``result is tree``.

    Only the nodes on the path from the edited node to the root are copied.
    All other subtrees are shared with the input tree, which is safe because
    nodes are immutable.
    """
    target = tree.node_map.get(node_id)
    if target is None or target.type not in EDITABLE_TYPES:
        return tree

    updated = replace(target, text=new_text)
    replaced: dict[str, Node] = {updated.id: updated}

    child = updated
    for parent in reversed(ancestors(tree, target)):
        new_children = tuple(child if c.id == child.id else c for c in parent.children)
        child = replace(parent, children=new_children)
        replaced[child.id] = child

    node_map = dict(tree.node_map)
    node_map.update(replaced)
    section_map = dict(tree.section_map)
    for node in replaced.values():
        if node.type == NodeType.HEADING and node.section_id:
            section_map[node.section_id] = node

    return DocumentTree(
        title=tree.title,
        root=child,
        node_map=MappingProxyType(node_map),
        section_map=MappingProxyType(section_map),
    )


def update_section_content(
    tree: DocumentTree, section_id: str, node_id: str, new_text: str
) -> str | None:
    """Edit a node that belongs to ``section_id`` and return the new Markdown.

    Returns None if the section is unknown, the node is not part of it, or
    the edit was a no-op.
    """
    from docseek.document.serializer import serialize

    if section_id not in tree.section_map:
        return None
    node = tree.node_map.get(node_id)
    if node is None or node.section_id != section_id:
        return None
    updated = update_node_content(tree, node_id, new_text)
    if updated is tree:
        return None
    return serialize(updated)


# ── Snapshots ──


def node_to_dict(node: Node) -> dict:
    data: dict = {"id": node.id, "type": node.type.value}
    if node.text:
        data["text"] = node.text
    if node.parent_id is not None:
        data["parent_id"] = node.parent_id
    if node.section_id is not None:
        data["section_id"] = node.section_id
    if node.depth is not None:
        data["depth"] = node.depth
    if node.ordered:
        data["ordered"] = True
    if node.start is not None:
        data["start"] = node.start
    if node.lang:
        data["lang"] = node.lang
    if node.children:
        data["children"] = [node_to_dict(c) for c in node.children]
    return data


def node_from_dict(data: dict) -> Node:
    return Node(
        id=data["id"],
        type=NodeType(data["type"]),
        text=data.get("text", ""),
        parent_id=data.get("parent_id"),
        section_id=data.get("section_id"),
        children=tuple(node_from_dict(c) for c in data.get("children", [])),
        depth=data.get("depth"),
        ordered=data.get("ordered", False),
        start=data.get("start"),
        lang=data.get("lang"),
    )


def tree_to_dict(tree: DocumentTree) -> dict:
    return {"title": tree.title, "root": node_to_dict(tree.root)}


def tree_from_dict(data: dict) -> DocumentTree:
    return build_tree(data.get("title", ""), node_from_dict(data["root"]))
