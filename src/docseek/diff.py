"""Word-level diff of two texts, rendered as a rich-text block for chat clients.

Removed runs are struck through and added runs are bold. ``*text*`` inside a
run is additionally bold, and a run that is just ``---`` becomes a divider.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from difflib import SequenceMatcher

_TOKEN_RE = re.compile(r"(https?://\S+|www\.\S+|\s+|\S+)")
_INLINE_BOLD_RE = re.compile(r"\*(.+?)\*")

DIVIDER_TEXT = "---"

UNCHANGED = "unchanged"
REMOVED = "removed"
ADDED = "added"


@dataclass(frozen=True)
class Token:
    text: str
    kind: str  # "url", "space" or "word"


@dataclass(frozen=True)
class DiffRun:
    kind: str  # UNCHANGED, REMOVED or ADDED
    text: str


@dataclass
class TextElement:
    text: str
    style: dict[str, bool] = field(default_factory=dict)

    def to_dict(self) -> dict:
        data: dict = {"type": "text", "text": self.text}
        if self.style:
            data["style"] = dict(self.style)
        return data


@dataclass
class DividerElement:
    def to_dict(self) -> dict:
        return {"type": "divider"}


@dataclass
class RenderedDiff:
    elements: list[TextElement | DividerElement] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "type": "rich_text",
            "elements": [
                {
                    "type": "rich_text_section",
                    "elements": [e.to_dict() for e in self.elements],
                }
            ],
        }


def _kind(token: str) -> str:
    if token.startswith(("http://", "https://", "www.")):
        return "url"
    if token.isspace():
        return "space"
    return "word"


def tokenize(text: str) -> list[Token]:
    """Split ``text`` into URL, whitespace and word tokens; joining them gives back ``text``."""
    return [Token(m.group(0), _kind(m.group(0))) for m in _TOKEN_RE.finditer(text)]


def diff_tokens(old: str, new: str) -> list[DiffRun]:
    """Token-level diff of ``old`` against ``new`` as a list of runs.

    Joining the unchanged and removed runs reproduces ``old``; joining the
    unchanged and added runs reproduces ``new``.

    Alignment is SequenceMatcher's longest-matching-block recursion, not a
    strict LCS, so a replacement next to repeated tokens can come out longer
    than the minimal edit. Both reconstructions above still hold.
    """
    old_tokens = [t.text for t in tokenize(old)]
    new_tokens = [t.text for t in tokenize(new)]
    matcher = SequenceMatcher(None, old_tokens, new_tokens, autojunk=False)

    runs: list[DiffRun] = []
    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        if tag == "equal":
            runs.append(DiffRun(UNCHANGED, "".join(old_tokens[i1:i2])))
            continue
        if tag in ("delete", "replace"):
            runs.append(DiffRun(REMOVED, "".join(old_tokens[i1:i2])))
        if tag in ("insert", "replace"):
            runs.append(DiffRun(ADDED, "".join(new_tokens[j1:j2])))
    return runs


def _inline_bold(text: str, base_style: dict[str, bool]) -> list[TextElement]:
    elements: list[TextElement] = []
    last = 0
    for m in _INLINE_BOLD_RE.finditer(text):
        if m.start() > last:
            elements.append(TextElement(text[last : m.start()], dict(base_style)))
        elements.append(TextElement(m.group(1), {**base_style, "bold": True}))
        last = m.end()
    if last < len(text):
        elements.append(TextElement(text[last:], dict(base_style)))
    return elements


def build_diff(old_text: str, new_text: str) -> RenderedDiff:
    rendered = RenderedDiff()
    for run in diff_tokens(old_text, new_text):
        if run.text.strip() == DIVIDER_TEXT:
            rendered.elements.append(DividerElement())
            continue
        base_style: dict[str, bool] = {}
        if run.kind == ADDED:
            base_style["bold"] = True
        elif run.kind == REMOVED:
            base_style["strike"] = True
        rendered.elements.extend(_inline_bold(run.text, base_style))
    return rendered
