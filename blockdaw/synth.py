"""Rendering MIDI note tracks into 24-bit stereo WAV audio."""

from __future__ import annotations

import math
import re
import struct
from dataclasses import dataclass
from enum import IntEnum
from os import PathLike
from pathlib import Path
from typing import List, Optional, Sequence, Tuple, Union

import numpy as np

from blockdaw.midi_reader import Note, Track, collect_notes, midi_note_to_freq, read_midi

SAMPLE_RATE = 44100
CHANNELS = 2
BYTES_PER_SAMPLE = 3
BITS_PER_SAMPLE = 24
PEAK_LEVEL = 0.6
_FULL_SCALE = 1 << (BITS_PER_SAMPLE - 1)
_INT32_MIN = -(1 << 31)
_INT32_MAX = (1 << 31) - 1

_SPACE = re.compile(r"\s*")
_INT = re.compile(r"[+-]?\d+")
_FLOAT = re.compile(
    r"[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?|[+-]?(?:infinity|inf|nan)",
    re.IGNORECASE,
)

PathType = Union[str, "PathLike[str]"]


class WaveType(IntEnum):
    """Oscillator shapes a voice can use."""

    SINE = 0
    TRIANGLE = 1
    SQUARE = 2
    SAWTOOTH = 3
    HIGH_NOISE = 4
    MEDIUM_NOISE = 5
    LOW_NOISE = 6


@dataclass(frozen=True)
class Voice:
    """Sound settings of one track: oscillator, volume, ADSR envelope and pan.

    Times are in seconds; ``pan`` runs from 0 (left) to 1 (right).
    """

    wave_type: int = WaveType.SINE
    volume: float = 0.5
    attack: float = 0.01
    decay: float = 0.1
    sustain: float = 0.7
    release: float = 0.2
    pan: float = 0.5


def _scan_voice(text: str, pos: int) -> Tuple[Optional[Voice], int]:
    fields: List[str] = []
    for pattern in (_INT,) + (_FLOAT,) * 6:
        pos = _SPACE.match(text, pos).end()
        match = pattern.match(text, pos)
        if match is None:
            return None, pos
        fields.append(match.group())
        pos = match.end()
    wave_type, *rest = fields
    return Voice(int(wave_type), *(float(value) for value in rest)), pos


def parse_voices(text: str, count: int) -> List[Voice]:
    """Parse ``count`` voices from configuration text.

    Each voice is seven whitespace-separated numbers (wave volume attack
    decay sustain release pan); whatever follows them on the same line is
    ignored. A voice that cannot be read gets the default settings.
    """
    voices: List[Voice] = []
    pos = 0
    for _ in range(count):
        voice, pos = _scan_voice(text, pos)
        voices.append(voice if voice is not None else Voice())
        newline = text.find("\n", pos)
        pos = len(text) if newline < 0 else newline + 1
    return voices


def load_voices(path: PathType, count: int) -> List[Voice]:
    """Read ``count`` voices from the configuration file at ``path``."""
    return parse_voices(Path(path).read_text(), count)


def wav_header(data_size: int) -> bytes:
    """Return the 44-byte header of a 44.1 kHz, 24-bit stereo PCM WAV file."""
    riff_size = (36 + data_size * 2) & 0xFFFFFFFF
    block_align = BYTES_PER_SAMPLE * CHANNELS
    return (
        b"RIFF"
        + struct.pack("<I", riff_size)
        + b"WAVE"
        + b"fmt "
        + struct.pack(
            "<IHHIIHH",
            16,
            1,
            CHANNELS,
            SAMPLE_RATE,
            SAMPLE_RATE * block_align,
            block_align,
            BITS_PER_SAMPLE,
        )
        + b"data"
        + struct.pack("<I", data_size & 0xFFFFFFFF)
    )


def _envelope(
    index: np.ndarray,
    start: int,
    end: int,
    attack: float,
    decay: float,
    release: float,
    sustain: float,
) -> np.ndarray:
    i = index.astype(np.float64)
    with np.errstate(divide="ignore", invalid="ignore"):
        attack_part = (i - start) / attack
        decay_part = (1.0 - sustain) * (1.0 - (i - start - attack) / decay) + sustain
        release_factor = np.minimum((i - end) / release, 1.0)
        release_part = (1.0 - release_factor) * sustain
    return np.select(
        [i < start + attack, i < start + attack + decay, i < end],
        [attack_part, decay_part, np.full_like(i, sustain)],
        release_part,
    )


def _held_noise(
    index: np.ndarray, gain: np.ndarray, period: int, rng: np.random.Generator
) -> np.ndarray:
    # The held value keeps the gain already applied to it, so it is scaled
    # again on every sample until the next fresh draw.
    seeds = iter(rng.uniform(-1.0, 1.0, int(np.count_nonzero(index % period == 0))))
    sample = 0.0
    out = []
    for position, factor in zip(index.tolist(), gain.tolist()):
        if position % period == 0:
            sample = float(next(seeds))
        sample *= factor
        out.append(sample)
    return np.array(out, dtype=np.float64)


def _oscillate(
    wave_type: int,
    index: np.ndarray,
    frequency: float,
    gain: np.ndarray,
    rng: np.random.Generator,
) -> np.ndarray:
    t = index / SAMPLE_RATE
    phase = t * frequency
    if wave_type == WaveType.SINE:
        raw = np.sin(2.0 * math.pi * frequency * t)
    elif wave_type == WaveType.TRIANGLE:
        raw = 2.0 * np.abs(2.0 * (phase - np.floor(phase + 0.5))) - 1.0
    elif wave_type == WaveType.SQUARE:
        raw = np.where(np.fmod(phase, 1.0) < 0.5, 1.0, -1.0)
    elif wave_type == WaveType.SAWTOOTH:
        raw = 2.0 * (phase - np.floor(phase + 0.5))
    elif wave_type == WaveType.HIGH_NOISE:
        raw = rng.uniform(-1.0, 1.0, len(index))
    elif wave_type == WaveType.MEDIUM_NOISE:
        return _held_noise(index, gain, 4, rng)
    elif wave_type == WaveType.LOW_NOISE:
        return _held_noise(index, gain, 16, rng)
    else:
        raw = np.zeros(len(index))
    return raw * gain


def add_wave(
    left: np.ndarray,
    right: np.ndarray,
    note: Note,
    voice: Voice,
    rng: Optional[np.random.Generator] = None,
) -> None:
    """Mix one note into the left and right sample buffers in place.

    Notes that were never released are skipped; samples past the end of the
    buffers are dropped.
    """
    if note.end_sec is None:
        return
    start = int(note.start_sec * SAMPLE_RATE)
    end = int(note.end_sec * SAMPLE_RATE)
    attack = voice.attack * SAMPLE_RATE
    decay = voice.decay * SAMPLE_RATE
    release = voice.release * SAMPLE_RATE
    stop = min(math.ceil(end + release), len(left), len(right))
    if stop <= start:
        return
    if rng is None:
        rng = np.random.default_rng()

    index = np.arange(start, stop, dtype=np.int64)
    gain = voice.volume * _envelope(index, start, end, attack, decay, release, voice.sustain)
    samples = _oscillate(
        voice.wave_type, index, midi_note_to_freq(note.note_number), gain, rng
    )
    left[start:stop] += samples * (1.0 - voice.pan)
    right[start:stop] += samples * voice.pan


def encode_pcm24(left: np.ndarray, right: np.ndarray) -> bytes:
    """Interleave both channels, normalise the peak to 0.6 of full scale and
    return little-endian 24-bit samples."""
    interleaved = np.empty(len(left) * 2, dtype=np.float64)
    interleaved[0::2] = left
    interleaved[1::2] = right
    data = np.trunc(
        np.clip(interleaved * _FULL_SCALE, _INT32_MIN, _INT32_MAX)
    ).astype(np.int64)
    peak = int(np.abs(data).max(initial=0))
    if peak == 0:
        scaled = np.zeros(len(data), dtype="<i4")
    else:
        scaled = np.trunc(data / peak * PEAK_LEVEL * _FULL_SCALE).astype("<i4")
    return scaled.view(np.uint8).reshape(-1, 4)[:, :BYTES_PER_SAMPLE].tobytes()


def render_tracks(
    tracks: Sequence[Track],
    voices: Sequence[Voice],
    end_time: float,
    rng: Optional[np.random.Generator] = None,
) -> Tuple[np.ndarray, np.ndarray]:
    """Render every track's notes with its voice into ``end_time`` seconds of audio."""
    num_samples = max(int(SAMPLE_RATE * end_time), 0)
    left = np.zeros(num_samples, dtype=np.float64)
    right = np.zeros(num_samples, dtype=np.float64)
    if rng is None:
        rng = np.random.default_rng()
    for track, voice in zip(tracks, voices):
        for note in track.notes:
            add_wave(left, right, note, voice, rng)
    return left, right


def midi_to_wav(
    midi_path: PathType,
    output_path: PathType,
    config_path: PathType,
    bpm: int,
) -> int:
    """Render the MIDI file to a WAV file using one voice per track from the
    configuration file; return the number of frames written.

    One second is added after the last note for the release tails.
    """
    tracks = read_midi(midi_path)
    end_time = collect_notes(tracks, bpm) + 1.0
    voices = load_voices(config_path, len(tracks))
    left, right = render_tracks(tracks, voices, end_time)
    num_samples = len(left)
    with open(output_path, "wb") as handle:
        handle.write(wav_header(num_samples * CHANNELS * BYTES_PER_SAMPLE))
        handle.write(encode_pcm24(left, right))
    return num_samples