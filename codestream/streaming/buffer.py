"""Append-only stream buffer shared by the block extractors.

Chunks are appended as they arrive; extractors scan the accumulated text
and remove only the spans they have fully attributed to a directive block
(or its tag markup). Removal is index based, never a search for the matched
text, so identical leading text cannot be removed by mistake.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable


class StreamBuffer:
    """Mutable text accumulator for one generation."""

    def __init__(self) -> None:
        self._text = ""

    @property
    def text(self) -> str:
        return self._text

    def __len__(self) -> int:
        return len(self._text)

    def __str__(self) -> str:
        return self._text

    def append(self, chunk: str) -> None:
        """Append a chunk of model output."""
        self._text += chunk

    def consume(self, end: int) -> str:
        """Remove and return everything before ``end``.

        Raises:
            ValueError: If ``end`` lies outside the buffer.
        """
        if end < 0 or end > len(self._text):
            raise ValueError(f"consume index {end} outside buffer of length {len(self._text)}")
        consumed, self._text = self._text[:end], self._text[end:]
        return consumed

    def remove_spans(self, spans: Iterable[tuple[int, int]]) -> None:
        """Remove several ``(start, end)`` spans in a single rebuild.

        Spans are given in coordinates of the current text and may arrive in
        any order, but must not overlap.

        Raises:
            ValueError: If a span is out of range, inverted, or overlaps another.
        """
        ordered = sorted(spans)
        if not ordered:
            return

        pieces: list[str] = []
        cursor = 0
        for start, end in ordered:
            if start < cursor or end < start or end > len(self._text):
                raise ValueError(f"invalid span ({start}, {end}) for buffer removal")
            pieces.append(self._text[cursor:start])
            cursor = end
        pieces.append(self._text[cursor:])
        self._text = "".join(pieces)
