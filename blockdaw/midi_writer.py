"""Writing note events as a Standard MIDI File (format 1)."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from os import PathLike
from typing import Iterable, Sequence, Union

TICKS_PER_QUARTER = 960
NOTE_ON = 0x90
NOTE_OFF = 0x80
_MAX_VARLEN = 0x0FFFFFFF


@dataclass
class MidiEvent:
    """A note event at an absolute time in ticks.

    A positive velocity is written as note-on, anything else as note-off.
    """

    time: int
    note_number: int
    velocity: int


def encode_varlen(value: int) -> bytes:
    """Encode a MIDI variable-length quantity."""
    if value < 0:
        raise ValueError(f"variable-length value must not be negative: {value}")
    if value > _MAX_VARLEN:
        raise ValueError(f"variable-length value too large: {value}")
    groups = [value & 0x7F]
    value >>= 7
    while value:
        groups.append(0x80 | (value & 0x7F))
        value >>= 7
    return bytes(reversed(groups))


def _encode_track(events: Iterable[MidiEvent]) -> bytes:
    body = bytearray()
    current_time = 0
    for event in events:
        delta = event.time - current_time
        current_time = event.time
        body += encode_varlen(delta)
        if event.velocity > 0:
            body += bytes((NOTE_ON, event.note_number & 0xFF, event.velocity & 0xFF))
        else:
            body += bytes((NOTE_OFF, event.note_number & 0xFF, 0))
    return b"MTrk" + struct.pack(">I", len(body)) + bytes(body)


def encode_midi(tracks: Iterable[Iterable[MidiEvent]]) -> bytes:
    """Return the bytes of a format-1 MIDI file holding one chunk per track.

    Events in a track must be in non-decreasing time order.
    """
    track_list = [list(track) for track in tracks]
    if len(track_list) > 0xFFFF:
        raise ValueError(f"too many tracks: {len(track_list)}")
    header = b"MThd" + struct.pack(">IHHH", 6, 1, len(track_list), TICKS_PER_QUARTER)
    return header + b"".join(_encode_track(track) for track in track_list)


def write_midi(
    path: Union[str, "PathLike[str]"],
    tracks: Iterable[Sequence[MidiEvent]],
) -> None:
    """Write the tracks to a MIDI file at ``path``."""
    data = encode_midi(tracks)
    with open(path, "wb") as handle:
        handle.write(data)