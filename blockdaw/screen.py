"""The terminal screen: main window, message log, hex-grid drawing and line prompts."""

from __future__ import annotations

import curses
from collections import deque
from typing import Any, Callable, Deque, Iterator, Optional, Union

from blockdaw.grid import HexGrid

MAX_LOG_MESSAGES = 10
LOG_WIDTH = 50
LOG_HEIGHT = MAX_LOG_MESSAGES + 2
INPUT_LEN = 50
PROMPT_HEIGHT = 5
GRID_TOP = 1
GRID_LEFT = 8

_ENTER = ord("\n")
_DELETE = 127

Key = Union[int, str]
WindowFactory = Callable[[int, int, int, int], Any]


def _code(key: Key) -> int:
    return ord(key) if isinstance(key, str) else int(key)


def _put(window: Any, y: int, x: int, text: str, attr: int = 0) -> None:
    """Write text at a position, ignoring writes that fall outside the window."""
    if y < 0 or x < 0:
        return
    try:
        window.addstr(y, x, text, attr)
    except curses.error:
        pass


def _cursor_visible(visible: bool) -> None:
    try:
        curses.curs_set(1 if visible else 0)
    except curses.error:
        pass


class LogBuffer:
    """The most recent log messages, oldest first, at most MAX_LOG_MESSAGES of them."""

    def __init__(self, limit: int = MAX_LOG_MESSAGES) -> None:
        if limit <= 0:
            raise ValueError(f"log limit must be positive: {limit}")
        self.messages: Deque[str] = deque(maxlen=limit)

    def add(self, message: str) -> None:
        """Append a message, dropping the oldest one when the buffer is full."""
        self.messages.append(message)

    def __iter__(self) -> Iterator[str]:
        return iter(self.messages)

    def __len__(self) -> int:
        return len(self.messages)


class LineEditor:
    """The state of a one-line text prompt fed one key at a time.

    Printable ASCII is appended up to ``max_length`` characters, backspace
    removes the last one, Enter accepts and any other key cancels.
    """

    def __init__(self, suffix: str = "", max_length: int = INPUT_LEN) -> None:
        self.suffix = suffix
        self.max_length = max_length
        self.text = ""
        self.done = False
        self.cancelled = False

    def feed(self, ch: Key) -> bool:
        """Apply one key; return True once the input is accepted or cancelled."""
        if self.done:
            return True
        code = _code(ch)
        if code == _ENTER:
            self.done = True
        elif code in (curses.KEY_BACKSPACE, _DELETE):
            self.text = self.text[:-1]
        elif 32 <= code <= 126:
            if len(self.text) < self.max_length:
                self.text += chr(code)
        else:
            self.done = True
            self.cancelled = True
        return self.done

    @property
    def value(self) -> Optional[str]:
        """The entered text with the suffix, or None unless the input was accepted."""
        if not self.done or self.cancelled:
            return None
        return self.text + self.suffix


class Screen:
    """The main window with a log panel in its top-right corner.

    Without a window the terminal is put into curses mode, and restored when
    the screen is used as a context manager and left.
    """

    def __init__(
        self, window: Any = None, new_window: Optional[WindowFactory] = None
    ) -> None:
        self._owns_terminal = window is None
        if window is None:
            window = self._start_terminal()
        self.window = window
        self._new_window: WindowFactory = new_window or curses.newwin
        self.logs = LogBuffer()
        self._pending: Deque[int] = deque()
        _rows, cols = self.window.getmaxyx()
        self.log_window = self._new_window(
            LOG_HEIGHT, LOG_WIDTH, 0, max(cols - LOG_WIDTH, 0)
        )
        self.draw_log()

    @staticmethod
    def _start_terminal() -> Any:
        stdscr = curses.initscr()
        curses.noecho()
        curses.cbreak()
        stdscr.keypad(True)
        _cursor_visible(False)
        window = curses.newwin(curses.LINES, curses.COLS, 0, 0)
        window.keypad(True)
        if curses.has_colors():
            curses.start_color()
            colours = (
                (curses.COLOR_RED, curses.COLOR_BLACK),
                (curses.COLOR_GREEN, curses.COLOR_BLACK),
                (curses.COLOR_YELLOW, curses.COLOR_BLACK),
                (curses.COLOR_BLUE, curses.COLOR_BLACK),
                (curses.COLOR_MAGENTA, curses.COLOR_BLACK),
                (curses.COLOR_CYAN, curses.COLOR_BLACK),
                (curses.COLOR_WHITE, curses.COLOR_BLACK),
                (curses.COLOR_BLACK, curses.COLOR_WHITE),
            )
            for pair, (foreground, background) in enumerate(colours, start=1):
                curses.init_pair(pair, foreground, background)
        return window

    def __enter__(self) -> "Screen":
        return self

    def __exit__(self, *exc_info: object) -> None:
        if self._owns_terminal:
            self._owns_terminal = False
            try:
                self.window.clear()
                self.window.refresh()
            finally:
                curses.endwin()

    def log(self, message: str) -> None:
        """Add a message to the log and redraw the log panel."""
        self.logs.add(message)
        self.draw_log()

    def draw_log(self) -> None:
        """Redraw the log panel at the top-right corner of the main window."""
        _rows, cols = self.window.getmaxyx()
        win = self.log_window
        try:
            win.resize(LOG_HEIGHT, LOG_WIDTH)
            win.mvwin(0, max(cols - LOG_WIDTH, 0))
        except curses.error:
            pass
        win.erase()
        win.box()
        _put(win, 0, 1, " Log ")
        for row, message in enumerate(self.logs, start=1):
            _put(win, row, 1, message)
        win.refresh()

    def draw_grid(self, grid: HexGrid) -> None:
        """Draw the grid's digits, pairs grouped together, the cursor cell reversed."""
        for i, row in enumerate(grid.matrix):
            for j, value in enumerate(row):
                at_cursor = i == grid.current_row and j == grid.current_col
                attr = curses.A_REVERSE if at_cursor else curses.A_BOLD
                _put(
                    self.window,
                    GRID_TOP + i,
                    GRID_LEFT + j + j // 2,
                    format(value & 0xFFFFFFFF, "X"),
                    attr,
                )

    def draw_guide(self) -> None:
        """Draw the key guide on the bottom two lines."""
        lines, _cols = self.window.getmaxyx()
        _put(
            self.window,
            lines - 1,
            1,
            "'o' to wave editor, 'i' to merge editor, 'u' to synth editor, 'y' to project editor",
        )
        _put(self.window, lines - 2, 0, "arrow keys to move, hex keys (0-9, a-f) to input.")

    def draw_label(self, kind: int, step: int = 0) -> None:
        """Draw the labels of an editor: 0 wave, 1 merge, 2 synth, 3 project."""
        win = self.window
        lines, _cols = win.getmaxyx()
        if kind == 0:
            _put(win, lines - 3, 0, "'p' to preview, 's' to save, 'l' to load, 't' to set time step")
            _put(win, 0, 0, "Wave Editor")
            _put(win, 0, 16, "y = sin(a1 + b1x + csin(a2 + b2x))")
            for row, name in enumerate(("a1", "b1", "c ", "a2", "b2"), start=1):
                _put(win, row, 0, f" {name} = 0x")
                _put(win, row, 10, " / 0x10 * 2pi")
            _put(win, 6, 0, "steps 0x")
            for i in range(step):
                _put(win, 7 + i, 0, f"note{i + 1} 0x")
        elif kind == 1:
            _put(win, 0, 0, "Merge Wave Block")
            _put(
                win,
                lines - 4,
                0,
                "'p' to preview, 'x' to preview current column only, 'z' to resize grid",
            )
            _put(win, lines - 3, 0, "'s' to save, 'l' to load, 'q' to export without preview")
            for i in range(16):
                _put(win, 1 + i, 0, f"ch {i + 1:2d}: ")
        elif kind == 2:
            _put(win, 0, 0, "Synth Editor")
            _put(win, lines - 3, 0, "'w' to write")
            _put(win, 1, 0, " ch = 0x")
            _put(win, 3, 0, "wave volume A D S R pan(L:0 R:1)")
            _put(
                win,
                4,
                0,
                "wave: 0=Sine, 1=Triangle, 2=Square, 3=Sawtooth, "
                "4=High Noise, 5=Medium Noise, 6=Low Noise",
            )
        elif kind == 3:
            _put(win, 0, 0, "Project Editor")
            _put(win, lines - 3, 0, "'s' to save, 'l' to load, 'q' to quit")

    def _draw_prompt(self, win: Any, editor: LineEditor, title: str, message: str) -> None:
        win.erase()
        win.box()
        _h, width = win.getmaxyx()
        _put(win, 0, max((width - len(title)) // 2, 0), title)
        _put(win, 1, 2, message)
        _put(win, 3, 2, f"> {editor.text}{editor.suffix}")
        try:
            win.move(3, 4 + len(editor.text))
        except curses.error:
            pass
        win.refresh()

    def prompt(self, title: str, message: str, suffix: str = "") -> Optional[str]:
        """Ask for a line of text in a centred box.

        Return the text with ``suffix`` appended, or None if it was cancelled.
        """
        _cursor_visible(True)
        rows, cols = self.window.getmaxyx()
        width = INPUT_LEN + 6 + len(suffix)
        start_y = max(rows // 2 - PROMPT_HEIGHT // 2, 0)
        start_x = max(cols // 2 - width // 2, 0)
        win = self._new_window(PROMPT_HEIGHT, width, start_y, start_x)
        win.keypad(True)
        editor = LineEditor(suffix)
        self._draw_prompt(win, editor, title, message)
        try:
            while True:
                key = self._pending.popleft() if self._pending else win.getch()
                if editor.feed(key):
                    break
                self._draw_prompt(win, editor, title, message)
        finally:
            _cursor_visible(False)
        return editor.value

    def read_key(self) -> int:
        """Return the next key code, taking pushed-back keys first."""
        if self._pending:
            return self._pending.popleft()
        return self.window.getch()

    def push_key(self, key: Key) -> None:
        """Queue a key so that the next read returns it."""
        self._pending.append(_code(key))