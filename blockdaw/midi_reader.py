"""Reading note events from a MIDI file and turning them into timed notes."""

from __future__ import annotations

import itertools
import struct
from dataclasses import dataclass, field
from os import PathLike
from typing import BinaryIO, Callable, List, Optional, Sequence, Tuple, Union

TICKS_PER_QUARTER = 960


class MidiFormatError(ValueError):
    """Raised when a MIDI file cannot be parsed."""


@dataclass
class TrackEvent:
    """A note-on or note-off event with its delta time in ticks."""

    delta_time: int
    note_number: int
    velocity: int


@dataclass
class Note:
    """A sounding note; ``end_sec`` is None while the note has not been released."""

    note_number: int
    start_sec: float
    end_sec: Optional[float] = None


@dataclass
class Track:
    """The note events of one track and the notes built from them."""

    events: List[TrackEvent] = field(default_factory=list)
    notes: List[Note] = field(default_factory=list)


def _read_exact(stream: BinaryIO, size: int) -> bytes:
    data = stream.read(size)
    if len(data) != size:
        raise MidiFormatError("unexpected end of file")
    return data


def read_varlen(stream: BinaryIO) -> Tuple[int, int]:
    """Read a variable-length quantity; return ``(value, bytes_consumed)``."""
    result = 0
    for count in itertools.count(1):
        byte = _read_exact(stream, 1)[0]
        result = (result << 7) | (byte & 0x7F)
        if count > 4:
            raise MidiFormatError("invalid variable-length integer")
        if not byte & 0x80:
            return result, count
    raise AssertionError("unreachable")


def _read_track_events(stream: BinaryIO, track: Track, length: int) -> None:
    consumed = 0
    status = 0
    while consumed < length:
        delta_time, count = read_varlen(stream)
        consumed += count

        first = _read_exact(stream, 1)[0]
        pending: List[int] = []
        if first & 0x80:
            status = first
            consumed += 1
        else:
            # Running status: the byte just read is the first data byte.
            pending.append(first)

        def take() -> int:
            if pending:
                return pending.pop()
            return _read_exact(stream, 1)[0]

        def skip(size: int, take: Callable[[], int] = take) -> None:
            if pending and size > 0:
                pending.pop()
                size -= 1
            if size > 0:
                stream.read(size)

        if status == 0xFF:
            meta_type = take()
            consumed += 1
            meta_length, count = read_varlen(stream)
            consumed += count
            if meta_type == 0x03:
                _read_exact(stream, meta_length)
            else:
                skip(meta_length)
            consumed += meta_length
        elif status & 0xF0 in (0x80, 0x90):
            note_number = take()
            velocity = take()
            consumed += 2
            track.events.append(TrackEvent(delta_time, note_number, velocity))
        elif status & 0xF0 in (0xC0, 0xD0):
            skip(1)
            consumed += 1
        else:
            skip(2)
            consumed += 2


def read_tracks(stream: BinaryIO) -> List[Track]:
    """Parse a MIDI file from a binary stream, keeping only note events."""
    if _read_exact(stream, 4) != b"MThd":
        raise MidiFormatError("missing MThd header")
    _read_exact(stream, 4)  # header length; the fixed 6-byte layout is assumed
    _format_type, num_tracks, _division = struct.unpack(">HHH", _read_exact(stream, 6))

    tracks = [Track() for _ in range(num_tracks)]
    for track in tracks:
        if _read_exact(stream, 4) != b"MTrk":
            raise MidiFormatError("missing MTrk chunk")
        (length,) = struct.unpack(">I", _read_exact(stream, 4))
        _read_track_events(stream, track, length)
    return tracks


def read_midi(path: Union[str, "PathLike[str]"]) -> List[Track]:
    """Read the tracks of the MIDI file at ``path``."""
    with open(path, "rb") as handle:
        return read_tracks(handle)


def collect_notes(tracks: Sequence[Track], bpm: int) -> float:
    """Build each track's notes from its events and return the latest note end in seconds.

    A quarter note is 960 ticks. A note-on is ended by the most recent
    unreleased note-on of the same pitch.
    """
    if bpm <= 0:
        raise ValueError(f"bpm must be positive: {bpm}")
    seconds_per_tick = 60.0 / (bpm * float(TICKS_PER_QUARTER))
    for track in tracks:
        track.notes = []
        ticks = 0
        for event in track.events:
            ticks += event.delta_time
            seconds = ticks * seconds_per_tick
            if event.velocity > 0:
                track.notes.append(Note(event.note_number, seconds))
            else:
                for note in reversed(track.notes):
                    if note.note_number == event.note_number and note.end_sec is None:
                        note.end_sec = seconds
                        break
    return max(
        (
            note.end_sec
            for track in tracks
            for note in track.notes
            if note.end_sec is not None
        ),
        default=0.0,
    ) if any(t.notes for t in tracks) else 0.0


def midi_note_to_freq(note: int) -> float:
    """Return the frequency in hertz of a MIDI note number (A4 = 440 Hz)."""
    return 440.0 * 2.0 ** ((note - 69) / 12.0)