"""Offset <-> line/column translation for a fixed text buffer."""

from __future__ import annotations

from dataclasses import dataclass

_LINE_FEED = "\n"
_CARRIAGE_RETURN = "\r"


@dataclass(frozen=True)
class LineAndColumn:
    """1-based line and column numbers."""

    line: int
    column: int


def compute_line_starts(text: str) -> tuple[int, ...]:
    """Return the offset of every line start, plus an end-of-text sentinel.

    ``\\n``, ``\\r\\n`` and a lone ``\\r`` each end a line. The sentinel is
    only appended when the text does not already end on a line boundary, so
    the result is strictly increasing.
    """
    starts = [0]
    length = len(text)
    index = 0
    while index < length:
        ch = text[index]
        if ch == _LINE_FEED:
            starts.append(index + 1)
        elif ch == _CARRIAGE_RETURN:
            if index + 1 < length and text[index + 1] == _LINE_FEED:
                index += 1
            starts.append(index + 1)
        index += 1
    if starts[-1] != length:
        starts.append(length)
    return tuple(starts)


def lower_bound_index(values: tuple[int, ...], value: int) -> int:
    """Index of the last element of ``values`` not exceeding ``value``.

    Returns 0 when every element is greater than ``value``. ``values`` must be
    sorted and non-empty.
    """
    low, high = 0, len(values) - 1
    if value < values[0]:
        return 0
    if value >= values[high]:
        return high
    while low < high:
        mid = high - ((high - low) >> 1)
        if value < values[mid]:
            high = mid - 1
        else:
            low = mid
    return low


class LineTable:
    """Offset lookups over 0-based line indexes; ``line_and_column`` is 1-based."""

    def __init__(self, text: str) -> None:
        self._text = text
        self._line_starts = compute_line_starts(text)

    @property
    def line_starts(self) -> tuple[int, ...]:
        return self._line_starts

    def start_of_line(self, line: int) -> int:
        return self._line_starts[line]

    def line_from_offset(self, offset: int) -> int:
        return lower_bound_index(self._line_starts, offset)

    def column_from_line_and_offset(self, line: int, offset: int) -> int:
        return offset - self._line_starts[line]

    def line_and_column(self, offset: int) -> LineAndColumn:
        line = self.line_from_offset(offset)
        column = self.column_from_line_and_offset(line, offset)
        return LineAndColumn(line=line + 1, column=column + 1)

    def line_text(self, line: int) -> str:
        """Text of a 0-based line without its terminator."""
        start = self._line_starts[line]
        if line + 1 < len(self._line_starts):
            end = self._line_starts[line + 1]
        else:
            end = len(self._text)
        return self._text[start:end].rstrip("\r\n")
