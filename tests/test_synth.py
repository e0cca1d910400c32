import struct
import wave

import numpy as np
import pytest

from blockdaw.midi_reader import Note, Track
from blockdaw.midi_writer import MidiEvent, write_midi
from blockdaw.synth import (
    SAMPLE_RATE,
    Voice,
    WaveType,
    add_wave,
    encode_pcm24,
    load_voices,
    midi_to_wav,
    parse_voices,
    render_tracks,
    wav_header,
)


def _decode24(data):
    raw = np.frombuffer(data, dtype=np.uint8).reshape(-1, 3).astype(np.int64)
    values = raw[:, 0] | (raw[:, 1] << 8) | (raw[:, 2] << 16)
    return np.where(values >= 1 << 23, values - (1 << 24), values)


def _buffers(seconds=1.0):
    size = int(SAMPLE_RATE * seconds)
    return np.zeros(size), np.zeros(size)


def _flat_voice(wave_type, volume=1.0, pan=0.5, sustain=1.0, release=0.0, attack=0.0):
    return Voice(wave_type, volume, attack, 0.0, sustain, release, pan)


def test_wav_header_layout():
    header = wav_header(600)
    assert len(header) == 44
    assert header[:4] == b"RIFF"
    assert struct.unpack_from("<I", header, 4)[0] == 36 + 600 * 2
    assert header[8:16] == b"WAVEfmt "
    assert struct.unpack_from("<IHHIIHH", header, 16) == (16, 1, 2, 44100, 44100 * 3 * 2, 6, 24)
    assert header[36:40] == b"data"
    assert struct.unpack_from("<I", header, 40)[0] == 600


def test_parse_voices_reads_fields():
    voices = parse_voices("1 0.3 0.0 0.1 0.5 0.2 0.25\n", 1)
    assert voices == [Voice(1, 0.3, 0.0, 0.1, 0.5, 0.2, 0.25)]
    assert voices[0].wave_type == WaveType.TRIANGLE


def test_parse_voices_missing_lines_use_defaults():
    voices = parse_voices("", 2)
    assert voices == [Voice(), Voice()]
    assert voices[0].volume == 0.5


def test_parse_voices_bad_line_skipped():
    voices = parse_voices("x\n2 1 0 0 1 0 0\n", 2)
    assert voices[0] == Voice()
    assert voices[1] == Voice(2, 1.0, 0.0, 0.0, 1.0, 0.0, 0.0)


def test_parse_voices_fields_may_span_lines():
    voices = parse_voices("1 0.5\n0 1 0 0 1 0 0.5\n", 2)
    assert voices == [Voice(1, 0.5, 0.0, 1.0, 0.0, 0.0, 1.0), Voice()]


def test_parse_voices_ignores_trailing_text():
    voices = parse_voices("3 0.4 0.1 0.2 0.6 0.3 0.7 comment\n4 1 0 0 1 0 0\n", 2)
    assert voices[0] == Voice(3, 0.4, 0.1, 0.2, 0.6, 0.3, 0.7)
    assert voices[1] == Voice(4, 1.0, 0.0, 0.0, 1.0, 0.0, 0.0)


def test_load_voices_from_file(tmp_path):
    path = tmp_path / "voices.txt"
    path.write_text("2 0.8 0 0 1 0 1\n")
    assert load_voices(path, 1) == [Voice(2, 0.8, 0.0, 0.0, 1.0, 0.0, 1.0)]


def test_add_wave_only_touches_note_span():
    left, right = _buffers()
    add_wave(left, right, Note(69, 0.25, 0.5), _flat_voice(WaveType.SINE), np.random.default_rng(0))
    assert np.count_nonzero(left[:11025]) == 0
    assert np.count_nonzero(left[22050:]) == 0
    assert np.abs(left[11025:22050]).max() > 0
    assert np.abs(left).max() <= 0.5
    np.testing.assert_array_equal(left, right)


def test_add_wave_square_levels():
    left, right = _buffers()
    add_wave(left, right, Note(60, 0.25, 0.5), _flat_voice(WaveType.SQUARE), np.random.default_rng(0))
    np.testing.assert_allclose(np.abs(left[11025:22050]), 0.5)


def test_add_wave_pan_left():
    left, right = _buffers()
    add_wave(left, right, Note(60, 0.25, 0.5), _flat_voice(WaveType.SAWTOOTH, pan=0.0), np.random.default_rng(0))
    assert np.count_nonzero(right) == 0
    assert np.abs(left).max() > 0


def test_add_wave_attack_ramps_up():
    left, right = _buffers()
    voice = _flat_voice(WaveType.SQUARE, attack=0.1)
    add_wave(left, right, Note(60, 0.0, 0.5), voice, np.random.default_rng(0))
    ramp = np.abs(left[:4410])
    assert ramp[0] == 0.0
    assert np.all(np.diff(ramp) >= 0)


def test_add_wave_release_decays():
    left, right = _buffers()
    voice = _flat_voice(WaveType.SQUARE, sustain=0.5, release=0.25)
    add_wave(left, right, Note(60, 0.0, 0.5), voice, np.random.default_rng(0))
    tail = np.abs(left[22050:22050 + 11025])
    assert tail[0] == pytest.approx(0.5 * 0.5)
    assert np.all(np.diff(tail) <= 1e-12)


def test_add_wave_release_past_buffer_is_clipped():
    left, right = _buffers()
    voice = _flat_voice(WaveType.SQUARE, release=0.5)
    add_wave(left, right, Note(60, 0.5, 0.9), voice, np.random.default_rng(0))
    assert len(left) == SAMPLE_RATE
    assert np.abs(left[-100:]).max() > 0


def test_add_wave_skips_unreleased_note():
    left, right = _buffers()
    add_wave(left, right, Note(60, 0.1), _flat_voice(WaveType.SINE), np.random.default_rng(0))
    assert np.count_nonzero(left) == 0
    assert np.count_nonzero(right) == 0


def test_add_wave_unknown_type_is_silent():
    left, right = _buffers()
    add_wave(left, right, Note(60, 0.0, 0.5), _flat_voice(42), np.random.default_rng(0))
    assert np.count_nonzero(left) == 0


def test_medium_noise_holds_value():
    left, right = _buffers()
    add_wave(left, right, Note(60, 0.0, 0.5), _flat_voice(WaveType.MEDIUM_NOISE), np.random.default_rng(3))
    assert left[0] == left[1] == left[2] == left[3]
    assert left[4] == left[5] == left[6] == left[7]


def test_held_noise_compounds_volume():
    left, right = _buffers()
    add_wave(left, right, Note(60, 0.0, 0.5), _flat_voice(WaveType.LOW_NOISE, volume=0.5), np.random.default_rng(3))
    assert left[1] == pytest.approx(left[0] * 0.5)
    assert left[2] == pytest.approx(left[1] * 0.5)


def test_high_noise_is_seeded():
    first = _buffers()
    second = _buffers()
    voice = _flat_voice(WaveType.HIGH_NOISE)
    add_wave(*first, Note(60, 0.0, 0.5), voice, np.random.default_rng(7))
    add_wave(*second, Note(60, 0.0, 0.5), voice, np.random.default_rng(7))
    np.testing.assert_array_equal(first[0], second[0])
    assert np.abs(first[0]).max() <= 0.5


def test_encode_pcm24_normalises_peak():
    left = np.array([0.5, -0.25, 0.1])
    right = np.array([0.0, 0.0, 0.0])
    data = encode_pcm24(left, right)
    assert len(data) == 3 * 2 * 3
    values = _decode24(data)
    assert values[0] == int(0.6 * (1 << 23))
    assert values[2] < 0
    assert values[2] == pytest.approx(-values[0] / 2, abs=1)
    assert list(values[1::2]) == [0, 0, 0]


def test_encode_pcm24_right_channel_second():
    data = encode_pcm24(np.array([0.0]), np.array([-0.3]))
    values = _decode24(data)
    assert values[0] == 0
    assert values[1] == -int(0.6 * (1 << 23))


def test_encode_pcm24_silence():
    data = encode_pcm24(np.zeros(4), np.zeros(4))
    assert data == bytes(24)


def test_render_tracks_matches_add_wave():
    voice = _flat_voice(WaveType.SINE)
    track = Track(notes=[Note(69, 0.0, 0.25)])
    left, right = render_tracks([track], [voice], 0.5, np.random.default_rng(0))
    assert len(left) == len(right) == int(SAMPLE_RATE * 0.5)
    expected_left, expected_right = _buffers(0.5)
    add_wave(expected_left, expected_right, track.notes[0], voice, np.random.default_rng(0))
    np.testing.assert_array_equal(left, expected_left)
    np.testing.assert_array_equal(right, expected_right)


def test_midi_to_wav_round_trip(tmp_path):
    midi_path = tmp_path / "in.mid"
    wav_path = tmp_path / "out.wav"
    config_path = tmp_path / "voices.txt"
    write_midi(midi_path, [[MidiEvent(0, 69, 100), MidiEvent(960, 69, 0)]])
    config_path.write_text("0 0.5 0.01 0.1 0.7 0.2 0.5\n")
    frames = midi_to_wav(midi_path, wav_path, config_path, 120)
    assert frames == 66150
    with wave.open(str(wav_path), "rb") as reader:
        assert reader.getnchannels() == 2
        assert reader.getsampwidth() == 3
        assert reader.getframerate() == 44100
        assert reader.getnframes() == frames
        samples = _decode24(reader.readframes(frames))
    assert np.abs(samples).max() == int(0.6 * (1 << 23))


def test_midi_to_wav_missing_config(tmp_path):
    midi_path = tmp_path / "in.mid"
    write_midi(midi_path, [[MidiEvent(0, 60, 100), MidiEvent(480, 60, 0)]])
    with pytest.raises(FileNotFoundError):
        midi_to_wav(midi_path, tmp_path / "out.wav", tmp_path / "absent.txt", 120)