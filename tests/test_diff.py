"""Tests for tokenization, token diffs and rich-text diff rendering."""

from __future__ import annotations

import pytest

from docseek.diff import ADDED, REMOVED, UNCHANGED, DiffRun, build_diff, diff_tokens, tokenize


class TestTokenize:
    def test_kinds(self) -> None:
        tokens = tokenize("see https://example.com/a?b=1  now")
        assert [(t.text, t.kind) for t in tokens] == [
            ("see", "word"),
            (" ", "space"),
            ("https://example.com/a?b=1", "url"),
            ("  ", "space"),
            ("now", "word"),
        ]

    def test_www_url(self) -> None:
        assert tokenize("www.example.com")[0].kind == "url"

    def test_concatenation_restores_text(self) -> None:
        text = "line one\n\n- item *bold*\thttp://x.y/z end"
        assert "".join(t.text for t in tokenize(text)) == text

    def test_empty(self) -> None:
        assert tokenize("") == []


class TestDiffTokens:
    def test_identical(self) -> None:
        assert diff_tokens("same text", "same text") == [DiffRun(UNCHANGED, "same text")]

    def test_insert(self) -> None:
        assert diff_tokens("Hello world", "Hello there world") == [
            DiffRun(UNCHANGED, "Hello "),
            DiffRun(ADDED, "there "),
            DiffRun(UNCHANGED, "world"),
        ]

    def test_replace_emits_removed_then_added(self) -> None:
        assert diff_tokens("old text", "new text") == [
            DiffRun(REMOVED, "old"),
            DiffRun(ADDED, "new"),
            DiffRun(UNCHANGED, " text"),
        ]

    @pytest.mark.parametrize(
        "old,new",
        [
            ("a b c", "a c d"),
            ("", "brand new"),
            ("all gone", ""),
            ("visit https://a.com today", "visit https://b.com tomorrow"),
        ],
    )
    def test_runs_reconstruct_both_sides(self, old, new) -> None:
        runs = diff_tokens(old, new)
        assert "".join(r.text for r in runs if r.kind != ADDED) == old
        assert "".join(r.text for r in runs if r.kind != REMOVED) == new


class TestBuildDiff:
    def test_styles(self) -> None:
        elements = build_diff("old text", "new text").to_dict()["elements"][0]["elements"]
        assert elements == [
            {"type": "text", "text": "old", "style": {"strike": True}},
            {"type": "text", "text": "new", "style": {"bold": True}},
            {"type": "text", "text": " text"},
        ]

    def test_block_structure(self) -> None:
        block = build_diff("a", "a").to_dict()
        assert block["type"] == "rich_text"
        assert block["elements"][0]["type"] == "rich_text_section"

    def test_identical_texts_have_no_styled_spans(self) -> None:
        text = "Core hours are 10-16 and see https://example.com"
        elements = build_diff(text, text).to_dict()["elements"][0]["elements"]
        assert elements == [{"type": "text", "text": text}]

    def test_insert_into_empty(self) -> None:
        elements = build_diff("", "X").to_dict()["elements"][0]["elements"]
        assert elements == [{"type": "text", "text": "X", "style": {"bold": True}}]

    def test_divider(self) -> None:
        elements = build_diff("intro", "intro ---").to_dict()["elements"][0]["elements"]
        assert elements == [{"type": "text", "text": "intro"}, {"type": "divider"}]

    def test_inline_bold(self) -> None:
        elements = build_diff("*Note* read this", "*Note* read this").to_dict()["elements"][0]["elements"]
        assert elements == [
            {"type": "text", "text": "Note", "style": {"bold": True}},
            {"type": "text", "text": " read this"},
        ]

    def test_inline_bold_inside_removed(self) -> None:
        elements = build_diff("keep *gone*", "keep").to_dict()["elements"][0]["elements"]
        assert elements[-1] == {"type": "text", "text": "gone", "style": {"strike": True, "bold": True}}

    def test_pure(self) -> None:
        assert build_diff("x y", "x z").to_dict() == build_diff("x y", "x z").to_dict()
