import curses
from collections import deque

import pytest

from blockdaw.grid import HexGrid
from blockdaw.screen import (
    INPUT_LEN,
    LOG_WIDTH,
    MAX_LOG_MESSAGES,
    LineEditor,
    LogBuffer,
    Screen,
)


class FakeWindow:
    def __init__(self, height, width, y=0, x=0, keys=None):
        self.size = (height, width)
        self.pos = (y, x)
        self.text = {}
        self.keys = keys if keys is not None else deque()
        self.boxed = False
        self.refreshes = 0

    def addstr(self, y, x, text, attr=0):
        self.text[(y, x)] = (text, attr)

    def erase(self):
        self.text.clear()

    clear = erase

    def box(self):
        self.boxed = True

    def refresh(self):
        self.refreshes += 1

    def resize(self, height, width):
        self.size = (height, width)

    def mvwin(self, y, x):
        self.pos = (y, x)

    def getmaxyx(self):
        return self.size

    def getch(self):
        return self.keys.popleft()

    def keypad(self, flag):
        pass

    def move(self, y, x):
        self.cursor = (y, x)


def _keys(*items):
    codes = deque()
    for item in items:
        if isinstance(item, str):
            codes.extend(ord(ch) for ch in item)
        else:
            codes.append(item)
    return codes


def make_screen(*keys, lines=40, cols=120):
    main = FakeWindow(lines, cols, keys=_keys())
    shared = _keys(*keys)
    created = []

    def factory(height, width, y, x):
        win = FakeWindow(height, width, y, x, keys=shared)
        created.append(win)
        return win

    return Screen(main, factory), main, created


def test_log_buffer_keeps_latest_messages():
    logs = LogBuffer()
    for i in range(MAX_LOG_MESSAGES + 2):
        logs.add(f"m{i}")
    assert len(logs) == MAX_LOG_MESSAGES
    assert list(logs) == [f"m{i}" for i in range(2, MAX_LOG_MESSAGES + 2)]


def test_log_buffer_rejects_bad_limit():
    with pytest.raises(ValueError):
        LogBuffer(0)


def test_line_editor_accepts_with_suffix():
    editor = LineEditor(".wblk")
    assert [editor.feed(ch) for ch in "ab"] == [False, False]
    assert editor.feed("\n") is True
    assert editor.value == "ab.wblk"


def test_line_editor_backspace_and_delete():
    editor = LineEditor()
    for ch in "abc":
        editor.feed(ch)
    editor.feed(curses.KEY_BACKSPACE)
    editor.feed(127)
    assert editor.text == "a"
    editor.feed(127)
    editor.feed(127)
    assert editor.text == ""


def test_line_editor_limits_length():
    editor = LineEditor()
    for _ in range(INPUT_LEN + 5):
        editor.feed("x")
    assert len(editor.text) == INPUT_LEN


def test_line_editor_cancels_on_control_key():
    editor = LineEditor(".mdat")
    editor.feed("a")
    assert editor.feed(27) is True
    assert editor.cancelled
    assert editor.value is None


def test_line_editor_value_none_before_done():
    editor = LineEditor()
    editor.feed("a")
    assert editor.value is None


def test_screen_creates_log_panel():
    screen, main, created = make_screen()
    log_window = created[0]
    assert screen.log_window is log_window
    assert log_window.size == (MAX_LOG_MESSAGES + 2, LOG_WIDTH)
    assert log_window.pos == (0, 120 - LOG_WIDTH)
    assert log_window.text[(0, 1)][0] == " Log "


def test_log_draws_messages_in_order():
    screen, _main, created = make_screen()
    screen.log("first")
    screen.log("second")
    log_window = created[0]
    assert log_window.text[(1, 1)][0] == "first"
    assert log_window.text[(2, 1)][0] == "second"
    assert log_window.boxed


def test_push_key_is_read_first():
    screen, main, _created = make_screen()
    main.keys.extend([ord("p")])
    screen.push_key(" ")
    assert screen.read_key() == ord(" ")
    assert screen.read_key() == ord("p")


def test_prompt_returns_text_with_suffix():
    screen, _main, created = make_screen("abc\n")
    assert screen.prompt("SAVE", "input wave block name", ".wblk") == "abc.wblk"
    prompt_window = created[-1]
    assert prompt_window.size[1] == INPUT_LEN + 6 + len(".wblk")
    assert prompt_window.text[(3, 2)][0] == "> abc.wblk"
    assert prompt_window.text[(1, 2)][0] == "input wave block name"


def test_prompt_with_backspace():
    screen, _main, _created = make_screen("ab", 127, "c\n")
    assert screen.prompt("LOAD", "name", "") == "ac"


def test_prompt_cancel_returns_none():
    screen, _main, _created = make_screen("x", 27)
    assert screen.prompt("LOAD", "name", ".wblk") is None


def test_draw_grid_positions_and_cursor():
    screen, main, _created = make_screen()
    grid = HexGrid(rows=2, cols=4, matrix=[[10, 1, 2, 15], [0, 0, 0, 0]], current_col=1)
    screen.draw_grid(grid)
    assert main.text[(1, 8)] == ("A", curses.A_BOLD)
    assert main.text[(1, 9)] == ("1", curses.A_REVERSE)
    assert main.text[(1, 11)] == ("2", curses.A_BOLD)
    assert main.text[(1, 12)] == ("F", curses.A_BOLD)
    assert main.text[(2, 8)] == ("0", curses.A_BOLD)


def test_draw_guide_on_bottom_lines():
    screen, main, _created = make_screen(lines=30)
    screen.draw_guide()
    assert main.text[(28, 0)][0] == "arrow keys to move, hex keys (0-9, a-f) to input."
    assert main.text[(29, 1)][0].startswith("'o' to wave editor")


def test_draw_wave_label_lists_notes():
    screen, main, _created = make_screen()
    screen.draw_label(0, 3)
    assert main.text[(0, 0)][0] == "Wave Editor"
    assert main.text[(7, 0)][0] == "note1 0x"
    assert main.text[(9, 0)][0] == "note3 0x"
    assert (10, 0) not in main.text


def test_draw_merge_label_lists_channels():
    screen, main, _created = make_screen()
    screen.draw_label(1)
    assert main.text[(0, 0)][0] == "Merge Wave Block"
    assert main.text[(1, 0)][0] == "ch  1: "
    assert main.text[(16, 0)][0] == "ch 16: "


def test_draw_project_label():
    screen, main, _created = make_screen(lines=30)
    screen.draw_label(3)
    assert main.text[(0, 0)][0] == "Project Editor"
    assert main.text[(27, 0)][0] == "'s' to save, 'l' to load, 'q' to quit"