# blockdaw

A library for making music out of *wave blocks*: short hex-encoded parameter
sets describing the curve

    y = sin(a1 + b1·x + c·sin(a2 + b2·x))

whose height is cut into steps, each step mapped to a MIDI note. Blocks are
turned into note events, laid out on a merge grid of channels and columns,
written as a MIDI file and synthesised into a 24-bit stereo WAV file.

## Installation

    pip install .

For the test suite:

    pip install ".[test]"
    pytest

## Modules

### `blockdaw.midi_writer`

`MidiEvent(time, note_number, velocity)` is a note event at an absolute tick;
a positive velocity is a note-on, anything else a note-off.
`encode_varlen` encodes a variable-length quantity, `encode_midi(tracks)`
returns a format-1 file (960 ticks per quarter note) and
`write_midi(path, tracks)` writes it.

### `blockdaw.midi_reader`

`read_midi(path)` / `read_tracks(stream)` parse a MIDI file into `Track`
objects, keeping only note-on and note-off events as `TrackEvent`s (running
status is understood; other events are skipped). `collect_notes(tracks, bpm)`
fills each track's `notes` with `Note(note_number, start_sec, end_sec)` and
returns the latest note end in seconds. `midi_note_to_freq` gives the pitch
in hertz (A4 = 440 Hz). Malformed input raises `MidiFormatError`.

### `blockdaw.synth`

A `Voice` holds a `WaveType` (sine, triangle, square, sawtooth, high, medium
or low noise), volume, an ADSR envelope and pan (0 left, 1 right).
`parse_voices` / `load_voices` read one voice per line as

    wave volume attack decay sustain release pan

falling back to defaults for a line that cannot be read. `add_wave` mixes a
note into sample buffers, `render_tracks` renders whole tracks,
`encode_pcm24` interleaves the channels, normalises the peak to 0.6 of full
scale and packs 24-bit samples, and `wav_header` builds the 44.1 kHz stereo
header. `midi_to_wav(midi_path, output_path, config_path, bpm)` does the
whole job and returns the number of frames written.

### `blockdaw.grid`

`HexGrid` is a grid of hex digits with a cursor. `handle_key` applies a key
press (arrow keys move, `0`–`9`, `a`–`f`, `A`–`F` set the cell, any other key
is kept in `flag`). `pack_pairs` / `unpack_pairs` and the methods `packed`,
`load_packed` and `resize` convert between digit cells and packed byte values.

### `blockdaw.wave_block`

`WaveBlock` holds packed values: rows 0–4 the coefficients (each
`value / 16 · 2π`), row 5 the number of steps, rows 6 onward one note per
step. `wave_value` evaluates the curve; `generate_wave_events` turns a block
into note events. `save_block` / `load_block` store a block as `<name>.wblk`
with its time step in `<name>.wblk.wbsp`; `save_values` / `load_values` handle
the plain grid files (also used for merge grids). `merge_tracks` builds one
track per merge-grid row from numbered files `<n>.wblk`, each column placed
`UNIT_TIME` ticks after the previous one. `read_bpm` reads the tempo from
`supplement.txt`, 120 if absent. Bad files raise `BlockFormatError`.

Example:

```python
from blockdaw.midi_writer import write_midi
from blockdaw.synth import midi_to_wav
from blockdaw.wave_block import UNIT_TIME, generate_wave_events, load_block, read_bpm

block = load_block("1.wblk")
events = generate_wave_events(block.values, UNIT_TIME, block.values[5][0], block.time_step)
write_midi("preview.mid", [events])
midi_to_wav("preview.mid", "preview.wav", "preview.txt", read_bpm())
```

### `blockdaw.screen`

`Screen` wraps a curses main window with a log panel in the top-right corner
(`LogBuffer`, the last ten messages). It draws hex grids, the key guide and
editor labels, reads keys (with `push_key` to queue one), and asks for a line
of text with `prompt`, edited by a `LineEditor`. Used as a context manager it
restores the terminal on exit.

### `blockdaw.panels`

`SynthEditor` shows `preview.txt` one channel per line and, on `w`, replaces
the selected channel's line (`write_channel_line`). `ProjectEditor` saves the
working directory's `.wblk`, `.mdat` and `.txt` files into a `prj_<name>`
directory listed in its `project.txt` (`copy_project_files`, `project_path`),
and on load changes into that directory.

## What is not included

The package has no command to start and no top-level program that switches
between editors; there is no wave editor or merge editor screen, only the
functions above that they would drive. It does not play audio: WAV files are
written to disk for playback with another player.