"""A grid of hexadecimal digits edited with the keyboard, and the byte packing of its cells."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple, Union

# Key codes as returned by curses for the arrow keys.
KEY_DOWN = 258
KEY_UP = 259
KEY_LEFT = 260
KEY_RIGHT = 261

_HEX_DIGITS = {char: int(char, 16) for char in "0123456789abcdefABCDEF"}


def _c_divmod(value: int, divisor: int) -> Tuple[int, int]:
    """Integer division that truncates toward zero, with the matching remainder."""
    quotient = abs(value) // divisor
    if value < 0:
        quotient = -quotient
    return quotient, value - quotient * divisor


def pack_pairs(matrix: Sequence[Sequence[int]]) -> List[List[int]]:
    """Combine each pair of digit cells in a row into one value (high * 16 + low).

    An unpaired last column is ignored.
    """
    return [[high * 16 + low for high, low in zip(row[0::2], row[1::2])] for row in matrix]


def unpack_pairs(values: Sequence[Sequence[int]], cols: int) -> List[List[int]]:
    """Split each packed value into two digit cells, giving rows of ``cols`` cells.

    Cells that no packed value covers are zero.
    """
    if cols < 0:
        raise ValueError(f"column count must not be negative: {cols}")
    matrix = []
    for row in values:
        cells: List[int] = []
        for value in row[: cols // 2]:
            cells.extend(_c_divmod(value, 16))
        cells.extend([0] * (cols - len(cells)))
        matrix.append(cells)
    return matrix


@dataclass
class HexGrid:
    """A rows x cols grid of hex digits with a cursor and the last command key.

    ``flag`` holds the code of the last key that was neither a cursor move
    nor a hex digit, and 0 otherwise.
    """

    rows: int
    cols: int
    matrix: List[List[int]] = field(default_factory=list)
    current_row: int = 0
    current_col: int = 0
    flag: int = 0

    def __post_init__(self) -> None:
        if self.rows < 0 or self.cols < 0:
            raise ValueError(f"invalid grid size: {self.rows}x{self.cols}")
        if not self.matrix:
            self.matrix = [[0] * self.cols for _ in range(self.rows)]
        elif len(self.matrix) != self.rows or any(len(row) != self.cols for row in self.matrix):
            raise ValueError("matrix does not match the grid size")
        self._clamp_cursor()

    def _clamp_cursor(self) -> None:
        self.current_row = max(0, min(self.current_row, self.rows - 1))
        self.current_col = max(0, min(self.current_col, self.cols - 1))

    def handle_key(self, key: Union[int, str]) -> bool:
        """Apply one key press; return True if the cursor moved or a cell changed."""
        code = ord(key) if isinstance(key, str) else int(key)
        self.flag = code
        if code in (KEY_UP, KEY_DOWN, KEY_LEFT, KEY_RIGHT):
            self.flag = 0
            return self._move(code)
        digit: Optional[int] = None
        if 0 <= code < 0x110000:
            digit = _HEX_DIGITS.get(chr(code))
        if digit is not None and self.rows > 0 and self.cols > 0:
            self.matrix[self.current_row][self.current_col] = digit
            self.flag = 0
            return True
        return False

    def _move(self, code: int) -> bool:
        if code == KEY_UP and self.current_row > 0:
            self.current_row -= 1
        elif code == KEY_DOWN and self.current_row < self.rows - 1:
            self.current_row += 1
        elif code == KEY_LEFT and self.current_col > 0:
            self.current_col -= 1
        elif code == KEY_RIGHT and self.current_col < self.cols - 1:
            self.current_col += 1
        else:
            return False
        return True

    def packed(self) -> List[List[int]]:
        """Return the grid with each pair of cells packed into one value."""
        return pack_pairs(self.matrix)

    def load_packed(self, values: Sequence[Sequence[int]], cols: int) -> None:
        """Replace the grid with the unpacked ``values``, taking a new size."""
        self.matrix = unpack_pairs(values, cols)
        self.rows = len(self.matrix)
        self.cols = cols
        self._clamp_cursor()

    def resize(self, rows: int, cols: int) -> None:
        """Change the grid size, keeping the overlapping cells and zeroing new ones."""
        if rows <= 0 or cols <= 0:
            raise ValueError(f"invalid matrix size: {rows}x{cols}")
        old = self.matrix
        resized = []
        for row in range(rows):
            kept = old[row][:cols] if row < len(old) else []
            resized.append(kept + [0] * (cols - len(kept)))
        self.matrix = resized
        self.rows = rows
        self.cols = cols
        self._clamp_cursor()