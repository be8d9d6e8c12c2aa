"""Position-tracking line markers.

Every block shown in a session owns one marker: a half-open ``[start, end)``
line span that moves with edits made around it.  A block's line range is
always read back from its marker, never stored as an absolute position.

Edit rules for replacing lines ``[start, end)`` with ``new_count`` lines:

* a mark entirely before the edit is unchanged;
* a mark entirely after the edit shifts by the line delta (an insertion at a
  mark's first line pushes the mark down);
* a mark starting exactly at ``start`` keeps its start and absorbs the
  replacement lines;
* a mark whose start falls strictly inside the replaced region loses its
  leading lines and starts after the replacement;
* a mark whose end falls strictly inside the replaced region ends after the
  replacement.

A mark whose span becomes empty is collapsed: its block was deleted.
"""

from __future__ import annotations

from collections.abc import Iterator


class MarkerTable:
    """Half-open line marks keyed by integer handles."""

    __slots__ = ("_marks", "_next_id")

    def __init__(self) -> None:
        self._marks: dict[int, tuple[int, int]] = {}
        self._next_id = 1

    def add(self, start: int, end: int) -> int:
        if start < 0 or end < start:
            raise ValueError(f"invalid mark span [{start}, {end})")
        mark_id = self._next_id
        self._next_id += 1
        self._marks[mark_id] = (start, end)
        return mark_id

    def get(self, mark_id: int | None) -> tuple[int, int] | None:
        if mark_id is None:
            return None
        return self._marks.get(mark_id)

    def remove(self, mark_id: int | None) -> None:
        if mark_id is not None:
            self._marks.pop(mark_id, None)

    def clear(self) -> None:
        self._marks.clear()

    def is_collapsed(self, mark_id: int | None) -> bool:
        span = self.get(mark_id)
        return span is None or span[0] >= span[1]

    def apply_edit(self, start: int, end: int, new_count: int) -> None:
        """Adjust every mark for lines ``[start, end)`` becoming *new_count* lines."""
        if start < 0 or end < start or new_count < 0:
            raise ValueError(f"invalid edit [{start}, {end}) -> {new_count} lines")
        delta = new_count - (end - start)
        replaced_end = start + new_count
        for mark_id, (s, e) in list(self._marks.items()):
            if s < start:
                new_s = s
            elif s == start and end > start:
                new_s = start
            elif s >= end:
                new_s = s + delta
            else:
                new_s = replaced_end

            if e <= start:
                new_e = e
            elif e >= end:
                new_e = e + delta
            else:
                new_e = replaced_end

            self._marks[mark_id] = (new_s, max(new_e, new_s))

    def items(self) -> Iterator[tuple[int, tuple[int, int]]]:
        return iter(list(self._marks.items()))

    def __len__(self) -> int:
        return len(self._marks)

    def __contains__(self, mark_id: object) -> bool:
        return mark_id in self._marks
