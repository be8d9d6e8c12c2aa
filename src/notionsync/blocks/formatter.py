"""The text⇄block boundary.

The sync core never renders or parses text itself.  It talks to a
:class:`Formatter`, a pure and total transform between a block and the
buffer lines that show it.  :class:`LineFormatter` is the reference
implementation: one prefix per block variant, no concealment.

========================  =====================================
Variant                   Buffer text
========================  =====================================
paragraph                 ``text`` (``\\text`` when it looks like a prefix)
heading_1 / 2 / 3         ``# text`` / ``## text`` / ``### text``
bulleted_list_item        ``- text`` (``*`` and ``+`` also parse)
numbered_list_item        ``1. text``
to_do                     ``[ ] text`` / ``[x] text``
quote                     ``| text``
toggle                    ``> text``
code                      fenced with ``` and an optional language
divider                   ``---``
unsupported               ``[<type> - read only]``
========================  =====================================

Continuation lines of prefixed blocks are indented by two spaces.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from typing import Protocol, runtime_checkable

from .model import DEFAULT_CODE_LANGUAGE, Block, BlockFields, BlockType
from .rich_text import from_plain

CONTINUATION_INDENT = "  "

_DIVIDER_RE = re.compile(r"^-{3,}\s*$")
_FENCE = "```"
_ESCAPE = "\\"

# Ordered: longer heading prefixes must be tried first.
_PREFIX_PATTERNS: list[tuple[re.Pattern[str], BlockType]] = [
    (re.compile(r"^### "), BlockType.HEADING_3),
    (re.compile(r"^## "), BlockType.HEADING_2),
    (re.compile(r"^# "), BlockType.HEADING_1),
    (re.compile(r"^[-*+] "), BlockType.BULLETED_LIST_ITEM),
    (re.compile(r"^\d+\. "), BlockType.NUMBERED_LIST_ITEM),
    (re.compile(r"^\[[ xX]\] "), BlockType.TO_DO),
    (re.compile(r"^\| "), BlockType.QUOTE),
    (re.compile(r"^> "), BlockType.TOGGLE),
]


@runtime_checkable
class Formatter(Protocol):
    """What the sync core needs from a text formatter."""

    def format(self, block: Block, *, number: int = 1) -> list[str]:
        """Render *block* as buffer lines (at least one)."""
        ...

    def parse(self, lines: list[str]) -> BlockFields:
        """Parse the lines of one block back into fields."""
        ...

    def split(self, lines: list[str]) -> list[tuple[int, int]]:
        """Group untracked lines into half-open per-block line ranges."""
        ...


def _needs_escape(line: str) -> bool:
    if line.startswith((_ESCAPE, _FENCE)) or _DIVIDER_RE.match(line):
        return True
    return any(pattern.match(line) for pattern, _ in _PREFIX_PATTERNS)


def _with_prefix(prefix: str, text: str) -> list[str]:
    first, *rest = text.split("\n")
    return [prefix + first] + [CONTINUATION_INDENT + line for line in rest]


def _format_paragraph(block: Block, number: int) -> list[str]:
    lines = block.text.split("\n")
    if _needs_escape(lines[0]):
        lines[0] = _ESCAPE + lines[0]
    return lines


def _format_heading(block: Block, number: int) -> list[str]:
    level = block.block_type.heading_level or 1
    return _with_prefix("#" * level + " ", block.text)


def _format_code(block: Block, number: int) -> list[str]:
    language = block.language or DEFAULT_CODE_LANGUAGE
    tag = "" if language == DEFAULT_CODE_LANGUAGE else language
    return [_FENCE + tag, *block.text.split("\n"), _FENCE]


def _format_to_do(block: Block, number: int) -> list[str]:
    return _with_prefix("[x] " if block.checked else "[ ] ", block.text)


def _format_unsupported(block: Block, number: int) -> list[str]:
    return [f"[{block.type_name} - read only]"]


_FORMATTERS: dict[BlockType, Callable[[Block, int], list[str]]] = {
    BlockType.PARAGRAPH: _format_paragraph,
    BlockType.HEADING_1: _format_heading,
    BlockType.HEADING_2: _format_heading,
    BlockType.HEADING_3: _format_heading,
    BlockType.QUOTE: lambda block, number: _with_prefix("| ", block.text),
    BlockType.BULLETED_LIST_ITEM: lambda block, number: _with_prefix("- ", block.text),
    BlockType.NUMBERED_LIST_ITEM: lambda block, number: _with_prefix(f"{number}. ", block.text),
    BlockType.TO_DO: _format_to_do,
    BlockType.CODE: _format_code,
    BlockType.DIVIDER: lambda block, number: ["---"],
    BlockType.TOGGLE: lambda block, number: _with_prefix("> ", block.text),
    BlockType.UNSUPPORTED: _format_unsupported,
}


def _strip_continuation(line: str) -> str:
    if line.startswith(CONTINUATION_INDENT):
        return line[len(CONTINUATION_INDENT):]
    return line.lstrip(" ")


class LineFormatter:
    """Reference :class:`Formatter`: one visible prefix per variant."""

    def format(self, block: Block, *, number: int = 1) -> list[str]:
        return _FORMATTERS[block.block_type](block, number)

    def format_page(self, blocks: list[Block]) -> list[list[str]]:
        """Render a block sequence, numbering consecutive list items."""
        rendered: list[list[str]] = []
        number = 0
        for block in blocks:
            if block.block_type is BlockType.NUMBERED_LIST_ITEM:
                number += 1
            else:
                number = 0
            rendered.append(self.format(block, number=max(number, 1)))
        return rendered

    def parse(self, lines: list[str]) -> BlockFields:
        if not lines:
            return BlockFields(BlockType.PARAGRAPH)
        first = lines[0]

        if first.startswith(_FENCE):
            language = first[len(_FENCE):].strip() or DEFAULT_CODE_LANGUAGE
            body = list(lines[1:])
            if body and body[-1].strip() == _FENCE:
                body.pop()
            return BlockFields(
                BlockType.CODE,
                content=from_plain("\n".join(body)),
                language=language,
            )

        if _DIVIDER_RE.match(first):
            return BlockFields(BlockType.DIVIDER)

        if first.startswith(_ESCAPE):
            text = "\n".join([first[len(_ESCAPE):], *lines[1:]])
            return BlockFields(BlockType.PARAGRAPH, content=from_plain(text))

        for pattern, block_type in _PREFIX_PATTERNS:
            match = pattern.match(first)
            if match is None:
                continue
            head = first[match.end():]
            rest = [_strip_continuation(line) for line in lines[1:]]
            fields = BlockFields(block_type, content=from_plain("\n".join([head, *rest])))
            if block_type is BlockType.TO_DO:
                fields.checked = first[1] in "xX"
            return fields

        return BlockFields(BlockType.PARAGRAPH, content=from_plain("\n".join(lines)))

    def split(self, lines: list[str]) -> list[tuple[int, int]]:
        groups: list[tuple[int, int]] = []
        i = 0
        n = len(lines)
        while i < n:
            line = lines[i]
            if not line.strip():
                i += 1
                continue
            if line.startswith(_FENCE):
                j = i + 1
                while j < n and lines[j].strip() != _FENCE:
                    j += 1
                end = min(j + 1, n)
                groups.append((i, end))
                i = end
                continue
            j = i + 1
            while j < n and lines[j].startswith(CONTINUATION_INDENT) and lines[j].strip():
                j += 1
            groups.append((i, j))
            i = j
        return groups
