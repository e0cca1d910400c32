"""Wave blocks: a wave shape that picks notes over time, their files, and merging them into tracks."""

from __future__ import annotations

import math
import os
import re
import struct
from dataclasses import dataclass, field
from os import PathLike
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple, Union

from blockdaw.grid import _c_divmod
from blockdaw.midi_writer import MidiEvent

UNIT_TIME = 480 * 32
MAX_EVENTS = 4096
LINES_GEN = 1024
DEFAULT_BPM = 120
BLOCK_SUFFIX = ".wblk"
SUPPLEMENT_SUFFIX = ".wbsp"
NOTE_ON_VELOCITY = 0xFF

_INT = struct.Struct("<i")
_BPM = re.compile(r"\s*([+-]?\d+)")

PathType = Union[str, "PathLike[str]"]
Logger = Callable[[str], None]


def _ignore(_message: str) -> None:
    """Discard a log message."""


class BlockFormatError(ValueError):
    """Raised when a wave block is malformed or its file is truncated."""


@dataclass
class WaveBlock:
    """Packed wave-block values with the grid size they came from and the time step.

    Rows 0-4 hold the wave coefficients, row 5 the number of steps and rows
    from 6 on the note of each step, all in the first column.
    """

    rows: int = 32
    cols: int = 2
    values: List[List[int]] = field(default_factory=list)
    time_step: int = 1

    def __post_init__(self) -> None:
        if not self.values:
            self.values = [[0] * (self.cols // 2) for _ in range(self.rows)]


def _cell(values: Sequence[Sequence[int]], row: int) -> int:
    if row < 0:
        raise BlockFormatError(f"wave block row out of range: {row}")
    try:
        return values[row][0]
    except IndexError:
        raise BlockFormatError(f"wave block has no value in row {row}") from None


def _coefficients(values: Sequence[Sequence[int]]) -> Tuple[float, ...]:
    return tuple(_cell(values, row) / 16.0 * 2 * math.pi for row in range(5))


def _wave(coefficients: Tuple[float, ...], x: float) -> float:
    a1, b1, c, a2, b2 = coefficients
    return math.sin(a1 + b1 * x + c * math.sin(a2 + b2 * x))


def wave_value(values: Sequence[Sequence[int]], x: float) -> float:
    """Evaluate y = sin(a1 + b1 x + c sin(a2 + b2 x)) with coefficients value / 16 * 2 pi."""
    return _wave(_coefficients(values), x)


def _level(fx: float) -> int:
    return LINES_GEN - int((LINES_GEN // 2 - 1) * (1 - fx)) - 1


def _band(level: int, step: int) -> int:
    return _c_divmod(level * step, LINES_GEN)[0]


def generate_wave_events(
    values: Sequence[Sequence[int]],
    length: int,
    step: int,
    time_step: int,
    log: Optional[Logger] = None,
) -> List[MidiEvent]:
    """Turn a wave block into note events over ``length`` ticks.

    The wave height is split into ``step`` bands, each playing its own note;
    a note change is emitted whenever the sampled wave moves to another band.
    A note of 0 is silent. At most MAX_EVENTS events are produced.
    """
    if length <= 0:
        raise ValueError(f"length must be positive: {length}")
    if time_step <= 0:
        raise ValueError(f"time step must be positive: {time_step}")
    log = log or _ignore
    coefficients = _coefficients(values)

    def note_at(band: int) -> int:
        return _cell(values, 6 + band)

    prev_y = _level(_wave(coefficients, 0.0))
    first = note_at(_band(prev_y, step))
    events = [MidiEvent(0, first, NOTE_ON_VELOCITY if first else 0)]

    for tick in range(time_step, length + 1, time_step):
        y = _level(_wave(coefficients, tick / length))
        prev_band = _band(prev_y, step)
        if tick > length - time_step:
            log("Wave length exceeded.")
            if len(events) < MAX_EVENTS:
                events.append(MidiEvent(tick, note_at(prev_band), 0))
        else:
            next_band = _band(y, step)
            if prev_band != next_band and len(events) < MAX_EVENTS - 1:
                following = note_at(next_band)
                events.append(MidiEvent(tick, note_at(prev_band), 0))
                events.append(
                    MidiEvent(tick, following, NOTE_ON_VELOCITY if following else 0)
                )
        prev_y = y
    return events


def save_values(
    path: PathType, rows: int, cols: int, values: Sequence[Sequence[int]]
) -> None:
    """Write the grid size and ``rows`` x ``cols // 2`` packed values as 32-bit integers."""
    width = cols // 2
    if rows < 0 or cols < 0 or len(values) != rows or any(len(row) < width for row in values):
        raise ValueError("values do not match the given size")
    data = bytearray(_INT.pack(rows) + _INT.pack(cols))
    for row in values:
        data += struct.pack(f"<{width}i", *row[:width])
    Path(path).write_bytes(bytes(data))


def load_values(path: PathType) -> Tuple[int, int, List[List[int]]]:
    """Read ``(rows, cols, values)`` from a file written by save_values."""
    data = Path(path).read_bytes()
    if len(data) < 2 * _INT.size:
        raise BlockFormatError("error reading wave block file header")
    (rows,) = _INT.unpack_from(data, 0)
    (cols,) = _INT.unpack_from(data, _INT.size)
    if rows < 0 or cols < 0:
        raise BlockFormatError(f"invalid block size: {rows}x{cols}")
    width = cols // 2
    row_size = width * _INT.size
    offset = 2 * _INT.size
    if len(data) - offset < rows * row_size:
        raise BlockFormatError("error reading wave block data")
    values = [
        list(struct.unpack_from(f"<{width}i", data, offset + row * row_size))
        for row in range(rows)
    ]
    return rows, cols, values


def _supplement_path(path: PathType) -> Path:
    return Path(os.fspath(path) + SUPPLEMENT_SUFFIX)


def _read_time_step(path: Path) -> Optional[int]:
    """Return the stored time step, or None if the file is too short."""
    data = path.read_bytes()
    if len(data) < _INT.size:
        return None
    return _INT.unpack_from(data, 0)[0]


def save_block(path: PathType, block: WaveBlock) -> None:
    """Save the block values to ``path`` and its time step to ``path`` + '.wbsp'."""
    save_values(path, block.rows, block.cols, block.values)
    _supplement_path(path).write_bytes(_INT.pack(block.time_step))


def load_block(path: PathType) -> WaveBlock:
    """Load a block; the time step is 1 if its supplement file is missing or short."""
    rows, cols, values = load_values(path)
    try:
        time_step = _read_time_step(_supplement_path(path))
    except FileNotFoundError:
        time_step = None
    return WaveBlock(rows, cols, values, time_step if time_step is not None else 1)


def merge_tracks(
    values: Sequence[Sequence[int]],
    directory: PathType = ".",
    column: Optional[int] = None,
    log: Optional[Logger] = None,
) -> List[List[MidiEvent]]:
    """Build one track per merge-grid row from the numbered block files in ``directory``.

    Each packed value names block ``<n>.wblk``; 0 leaves the slot empty.
    Slot ``i`` starts at ``i * UNIT_TIME``. When ``column`` is given only that
    packed column is rendered, starting at time 0.
    """
    log = log or _ignore
    base = Path(directory)
    tracks: List[List[MidiEvent]] = []
    for row in values:
        events: List[MidiEvent] = []
        for slot, filenum in enumerate(row):
            if column is not None and slot != column:
                continue
            if filenum <= 0:
                continue
            block_path = base / f"{filenum}{BLOCK_SUFFIX}"
            try:
                _rows, _cols, block_values = load_values(block_path)
            except OSError:
                log("Error opening wave block file." if column is None else "Error loading wave block.")
                continue
            except BlockFormatError:
                log("Error reading file.")
                continue

            time_step = 1
            supplement = _supplement_path(block_path)
            try:
                stored = _read_time_step(supplement)
            except OSError:
                log("No wave block supplement file found.")
                if column is not None:
                    log(str(supplement))
            else:
                if stored is None:
                    log("Error reading wave block supplement file.")
                else:
                    time_step = stored

            try:
                step = _cell(block_values, 5)
                block_events = generate_wave_events(
                    block_values, UNIT_TIME, step, time_step, log
                )
            except ValueError as exc:
                log(str(exc))
                continue
            offset = 0 if column is not None else slot * UNIT_TIME
            events.extend(
                MidiEvent(event.time + offset, event.note_number, event.velocity)
                for event in block_events
            )
        tracks.append(events)
    return tracks


def read_bpm(path: PathType = "supplement.txt", log: Optional[Logger] = None) -> int:
    """Read the tempo from the first integer in ``path``, falling back to 120."""
    log = log or _ignore
    try:
        text = Path(path).read_text(errors="replace")
    except OSError:
        log("Config file not found. Using default BPM 120.")
        return DEFAULT_BPM
    match = _BPM.match(text)
    if match is None:
        log("Error reading BPM from config file. Using default BPM 120.")
        return DEFAULT_BPM
    return int(match.group(1))