"""Wave blocks rendered to MIDI and 24-bit WAV, with curses screens for the synth and project editors."""

__version__ = "0.1.0"