"""The synth editor, which sets per-channel voices, and the project editor, which saves and opens projects."""

from __future__ import annotations

import os
import shutil
import sys
from os import PathLike
from pathlib import Path
from typing import List, Optional, Union

from blockdaw.grid import HexGrid
from blockdaw.screen import Screen, _put

VOICE_FILE = "preview.txt"
PROJECT_FILE = "project.txt"
PROJECT_PREFIX = "prj_"
PROJECT_EXTENSIONS = frozenset({"wblk", "mdat", "txt"})
LISTING_TOP = 6

PathType = Union[str, "PathLike[str]"]


def write_channel_line(path: PathType, line: int, param: str) -> bool:
    """Write ``param`` and a newline over the start of line ``line`` of the file.

    The bytes are overwritten in place, so a shorter text leaves the rest of
    the old line behind it. Return False if the file has no such line.
    """
    target = Path(path)
    data = target.read_bytes()
    if line < 0:
        return False
    offset = 0
    for _ in range(line):
        newline = data.find(b"\n", offset)
        if newline < 0:
            return False
        offset = newline + 1
    if offset >= len(data):
        return False
    with target.open("r+b") as handle:
        handle.seek(offset)
        handle.write(param.encode() + b"\n")
    return True


def _is_project_file(name: str) -> bool:
    _stem, dot, extension = name.rpartition(".")
    return bool(dot) and extension in PROJECT_EXTENSIONS


def copy_project_files(source_dir: PathType, dest_dir: PathType) -> List[str]:
    """Copy the regular .wblk, .mdat and .txt files of ``source_dir`` into ``dest_dir``.

    Return the names copied, in name order. Files that cannot be copied are skipped.
    """
    destination = Path(dest_dir)
    copied: List[str] = []
    with os.scandir(source_dir) as entries:
        candidates = sorted(
            (entry for entry in entries if entry.is_file(follow_symlinks=False)),
            key=lambda entry: entry.name,
        )
    for entry in candidates:
        if not _is_project_file(entry.name):
            continue
        target = destination / entry.name
        try:
            if not (target.exists() and os.path.samefile(entry.path, target)):
                shutil.copyfile(entry.path, target)
        except OSError:
            continue
        copied.append(entry.name)
    return copied


def project_path(name: str, base: Optional[PathType] = None) -> Path:
    """Return the directory of project ``name``: ``prj_<name>`` inside ``base``.

    Without a base the directory of the running program is used.
    """
    root = Path(base) if base is not None else Path(sys.argv[0]).resolve().parent
    return root / f"{PROJECT_PREFIX}{name}"


class SynthEditor:
    """Shows the voice of each channel and rewrites the line of a chosen channel."""

    def __init__(self, screen: Screen, directory: PathType = ".") -> None:
        self.screen = screen
        self.directory = Path(directory)
        self.grid = HexGrid(1, 2)

    @property
    def flag(self) -> int:
        """The last command key read by the editor, or 0."""
        return self.grid.flag

    @property
    def voice_path(self) -> Path:
        return self.directory / VOICE_FILE

    def _draw(self) -> None:
        win = self.screen.window
        win.clear()
        try:
            lines = self.voice_path.read_text(errors="replace").splitlines()
        except OSError:
            self.screen.log("Error loading preview.txt.")
            lines = []
        for channel, text in enumerate(lines):
            _put(win, LISTING_TOP + channel, 0, f"ch {channel}: {text}")
        self.screen.draw_grid(self.grid)
        self.screen.draw_guide()
        self.screen.draw_label(2, 0)
        win.refresh()
        self.screen.draw_log()

    def _write(self) -> None:
        log = self.screen.log
        channel = self.grid.packed()[0][0]
        param = self.screen.prompt("WRITE", f"ch {channel}:", "")
        if param is None:
            log("Canceled writing parameter.")
            return
        try:
            write_channel_line(self.voice_path, channel, param)
        except OSError:
            log("Error opening preview.txt.")
            return
        log("Parameter written to preview.txt.")

    def handle(self, rewrite: bool = False) -> None:
        """Process one key press; when rewriting, only redraw."""
        self.grid.handle_key(self.screen.read_key())
        if rewrite:
            self.grid.flag = 0
        if self.grid.flag == ord("w"):
            self._write()
        elif self.grid.flag == 0:
            self._draw()


class ProjectEditor:
    """Saves the working files into a project directory and switches to saved projects."""

    def __init__(self, screen: Screen, home: Optional[PathType] = None) -> None:
        self.screen = screen
        self.home = Path(home) if home is not None else None
        self.grid = HexGrid(0, 0)

    @property
    def flag(self) -> int:
        """The last command key read by the editor, or 0."""
        return self.grid.flag

    def save(self, name: str) -> Optional[Path]:
        """Copy the working files into the project directory and list them in project.txt.

        Return the project directory, or None on failure.
        """
        log = self.screen.log
        target = project_path(name, self.home)
        try:
            target.mkdir(exist_ok=True)
        except OSError:
            log("Error creating directory.")
            return None
        try:
            copied = copy_project_files(Path.cwd(), target)
        except OSError:
            log("Error getting current directory.")
            return None
        try:
            (target / PROJECT_FILE).write_text(
                "".join(f"Copied: {file_name}\n" for file_name in copied)
            )
        except OSError:
            log("Error saving project.")
            return None
        log("Project saved and files copied.")
        return target

    def load(self, name: str) -> bool:
        """Make the project directory the working directory; return True on success."""
        try:
            os.chdir(project_path(name, self.home))
        except OSError:
            self.screen.log("Error changing directory.")
            return False
        self.screen.log("Project loaded and directory changed.")
        return True

    def _draw(self) -> None:
        win = self.screen.window
        win.clear()
        try:
            cwd = Path.cwd()
        except OSError:
            self.screen.log("Error getting current directory.")
            return
        _put(win, 2, 0, f"Current Directory: {cwd}")
        try:
            lines = (cwd / PROJECT_FILE).read_text(errors="replace").splitlines()
        except OSError:
            self.screen.log("Error loading project file.")
            lines = []
        for row, text in enumerate(lines, start=LISTING_TOP):
            _put(win, row, 0, text)
        self.screen.draw_guide()
        self.screen.draw_label(3, 0)
        win.refresh()
        self.screen.draw_log()

    def handle(self, rewrite: bool = False) -> None:
        """Process one key press; when rewriting, only redraw."""
        self.grid.handle_key(self.screen.read_key())
        if rewrite:
            self.grid.flag = 0
        flag = self.grid.flag
        log = self.screen.log
        if flag == ord("s"):
            name = self.screen.prompt("SAVE", "input project name", "")
            if name is None:
                log("Canceled saving project.")
            else:
                self.save(name)
        elif flag == ord("l"):
            name = self.screen.prompt("LOAD", "input project name", "")
            if name is None:
                log("Canceled loading project.")
            else:
                self.load(name)
        elif flag == 0:
            self._draw()