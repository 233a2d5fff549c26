"""Tests for tree lookups, copy-on-write edits and snapshots."""

from __future__ import annotations

import pytest

from docseek.document.parser import parse_markdown
from docseek.document.tree import (
    ancestors,
    find_node,
    find_section,
    nodes_in_section,
    section_path,
    tree_from_dict,
    tree_to_dict,
    update_node_content,
    update_section_content,
)
from tests.helpers import HANDBOOK_MD


@pytest.fixture
def tree():
    return parse_markdown(HANDBOOK_MD)


class TestLookups:
    def test_find_node(self, tree) -> None:
        assert find_node(tree, "paragraph-3").text == "We use Zoom for meetings."
        assert find_node(tree, "nope") is None

    def test_find_section(self, tree) -> None:
        assert find_section(tree, "section-3").text == "Vacation"
        assert find_section(tree, "section-99") is None

    def test_nodes_in_section(self, tree) -> None:
        ids = [n.id for n in nodes_in_section(tree, "section-2")]
        assert ids == ["heading-9", "paragraph-10"]

    def test_ancestors_root_first(self, tree) -> None:
        chain = ancestors(tree, tree.node_map["list_item-8"])
        assert [n.id for n in chain] == ["root-0", "heading-2", "list-4", "list_item-6", "list-7"]

    def test_section_path(self, tree) -> None:
        assert section_path(tree, tree.node_map["paragraph-10"]) == ["Remote Work", "Equipment"]
        assert section_path(tree, tree.node_map["paragraph-1"]) == []


class TestUpdateNodeContent:
    def test_returns_new_tree(self, tree) -> None:
        updated = update_node_content(tree, "list_item-5", "Core hours are 9-15")
        assert updated is not tree
        assert updated.node_map["list_item-5"].text == "Core hours are 9-15"

    def test_old_tree_unchanged(self, tree) -> None:
        update_node_content(tree, "list_item-5", "changed")
        assert tree.node_map["list_item-5"].text == "Core hours are 10-16"
        assert tree.node_map["list-4"].children[0].text == "Core hours are 10-16"

    def test_missing_node_returns_same_object(self, tree) -> None:
        assert update_node_content(tree, "missing-1", "x") is tree

    @pytest.mark.parametrize("node_id", ["root-0", "list-4"])
    def test_unsupported_type_returns_same_object(self, tree, node_id) -> None:
        assert update_node_content(tree, node_id, "x") is tree

    def test_path_copying_shares_untouched_subtrees(self, tree) -> None:
        updated = update_node_content(tree, "list_item-5", "changed")
        # Nodes on the path to the root are new
        for node_id in ("root-0", "heading-2", "list-4", "list_item-5"):
            assert updated.node_map[node_id] is not tree.node_map[node_id]
        # Everything else is shared
        for node_id in ("heading-11", "paragraph-12", "paragraph-3", "list_item-6", "heading-9"):
            assert updated.node_map[node_id] is tree.node_map[node_id]

    def test_new_root_reaches_edit(self, tree) -> None:
        updated = update_node_content(tree, "list_item-8", "Use threads")
        nested = updated.root.children[1].children[1].children[1].children[0]
        assert nested.children[0].text == "Use threads"

    def test_heading_edit_updates_section_map(self, tree) -> None:
        updated = update_node_content(tree, "heading-2", "Working Remotely")
        assert updated.section_map["section-1"].text == "Working Remotely"
        assert tree.section_map["section-1"].text == "Remote Work"

    def test_ids_preserved(self, tree) -> None:
        updated = update_node_content(tree, "paragraph-3", "We use Meet.")
        assert set(updated.node_map) == set(tree.node_map)


class TestUpdateSectionContent:
    def test_returns_markdown(self, tree) -> None:
        md = update_section_content(tree, "section-2", "paragraph-10", "Laptops and monitors are provided.")
        assert md is not None
        assert "Laptops and monitors are provided." in md
        assert md.startswith("# Handbook\n")

    def test_node_outside_section(self, tree) -> None:
        assert update_section_content(tree, "section-2", "paragraph-3", "x") is None

    def test_unknown_section(self, tree) -> None:
        assert update_section_content(tree, "section-42", "paragraph-10", "x") is None


class TestSnapshots:
    def test_round_trip(self, tree) -> None:
        restored = tree_from_dict(tree_to_dict(tree))
        assert restored == tree
        assert set(restored.node_map) == set(tree.node_map)
        assert set(restored.section_map) == set(tree.section_map)
