"""Rich-text runs: the content of every text-bearing block.

A block's content is an ordered list of :class:`TextRun` values.  Each run
has a text, an :class:`Annotations` set and an optional link target.  Runs
are immutable so that a block snapshot can share them with the live block.

Notion's ``rich_text`` arrays are converted with :func:`runs_from_api` and
:func:`runs_to_api`.  Non-text items (mentions, equations) keep their raw
API payload so that an unchanged block serializes them back losslessly.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any

from notionsync.utils.text_split import RICH_TEXT_LIMIT, split_text

DEFAULT_COLOR = "default"


@dataclass(frozen=True)
class Annotations:
    """Inline formatting of a run."""

    bold: bool = False
    italic: bool = False
    strikethrough: bool = False
    underline: bool = False
    code: bool = False
    color: str = DEFAULT_COLOR

    @classmethod
    def from_api(cls, data: dict[str, Any] | None) -> Annotations:
        if not data:
            return cls()
        return cls(
            bold=bool(data.get("bold", False)),
            italic=bool(data.get("italic", False)),
            strikethrough=bool(data.get("strikethrough", False)),
            underline=bool(data.get("underline", False)),
            code=bool(data.get("code", False)),
            color=data.get("color") or DEFAULT_COLOR,
        )

    def to_api(self) -> dict[str, Any]:
        return {
            "bold": self.bold,
            "italic": self.italic,
            "strikethrough": self.strikethrough,
            "underline": self.underline,
            "code": self.code,
            "color": self.color,
        }

    @property
    def is_plain(self) -> bool:
        return self == _PLAIN


_PLAIN = Annotations()


@dataclass(frozen=True)
class TextRun:
    """A span of text with uniform annotations.

    Attributes
    ----------
    text:
        The visible text of the run.
    annotations:
        Inline formatting.
    href:
        Link target, if the run is a link.
    raw:
        Original API item for non-text runs (mentions, equations).  Ignored
        by equality so that a reloaded block compares equal to its snapshot.
    """

    text: str
    annotations: Annotations = field(default_factory=Annotations)
    href: str | None = None
    raw: dict[str, Any] | None = field(default=None, compare=False, repr=False)


# ---------------------------------------------------------------------------
# API conversion
# ---------------------------------------------------------------------------

def run_from_api(item: dict[str, Any]) -> TextRun:
    """Convert one Notion ``rich_text`` item into a :class:`TextRun`."""
    item_type = item.get("type", "text")
    text = item.get("plain_text")
    if text is None:
        text = (item.get("text") or {}).get("content") or ""
    href = item.get("href")
    if href is None and item_type == "text":
        link = (item.get("text") or {}).get("link") or {}
        href = link.get("url")
    raw = item if item_type != "text" else None
    return TextRun(
        text=text,
        annotations=Annotations.from_api(item.get("annotations")),
        href=href,
        raw=raw,
    )


def runs_from_api(rich_text: list[dict[str, Any]] | None) -> list[TextRun]:
    """Convert a Notion ``rich_text`` array into runs."""
    return [run_from_api(item) for item in rich_text or []]


def run_to_api(run: TextRun, limit: int = RICH_TEXT_LIMIT) -> list[dict[str, Any]]:
    """Convert a run into one or more ``rich_text`` items.

    Runs longer than *limit* are split into several items with the same
    annotations and link.
    """
    if run.raw is not None and run.raw.get("type") != "text":
        return [run.raw]
    items: list[dict[str, Any]] = []
    for chunk in split_text(run.text, limit):
        text_obj: dict[str, Any] = {"content": chunk}
        if run.href:
            text_obj["link"] = {"url": run.href}
        items.append({
            "type": "text",
            "text": text_obj,
            "annotations": run.annotations.to_api(),
        })
    return items


def runs_to_api(runs: list[TextRun]) -> list[dict[str, Any]]:
    """Convert runs into a Notion ``rich_text`` array."""
    items: list[dict[str, Any]] = []
    for run in runs:
        items.extend(run_to_api(run))
    return items


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def plain_text(runs: list[TextRun]) -> str:
    """Concatenated text of *runs* without formatting."""
    return "".join(run.text for run in runs)


def from_plain(text: str) -> list[TextRun]:
    """Build the runs for unformatted *text* (empty text has no runs)."""
    if not text:
        return []
    return [TextRun(text=text)]


def merge_adjacent(runs: list[TextRun]) -> list[TextRun]:
    """Merge neighbouring runs that share annotations and link target.

    Runs carrying a raw non-text payload are never merged.
    """
    merged: list[TextRun] = []
    for run in runs:
        if not run.text and run.raw is None:
            continue
        if (
            merged
            and merged[-1].raw is None
            and run.raw is None
            and merged[-1].annotations == run.annotations
            and merged[-1].href == run.href
        ):
            merged[-1] = replace(merged[-1], text=merged[-1].text + run.text)
        else:
            merged.append(run)
    return merged


def runs_equal(a: list[TextRun], b: list[TextRun]) -> bool:
    """Whether two run lists render identically.

    Splitting differences (one run vs two adjacent runs with the same
    formatting) are not significant.
    """
    return merge_adjacent(a) == merge_adjacent(b)
