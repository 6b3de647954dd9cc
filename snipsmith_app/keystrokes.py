import logging
import time

import pyperclip
from pynput.keyboard import Controller, Key

from snipsmith.surfaces import PLAIN, TextInput

logger = logging.getLogger(__name__)

PYNPUT_KEYS = {
    "enter": Key.enter,
    "tab": Key.tab,
    "escape": Key.esc,
    "backspace": Key.backspace,
    "delete": Key.delete,
    "arrowup": Key.up,
    "arrowdown": Key.down,
    "arrowleft": Key.left,
    "arrowright": Key.right,
    "home": Key.home,
    "end": Key.end,
    "pageup": Key.page_up,
    "pagedown": Key.page_down,
    "space": Key.space,
}
PYNPUT_KEYS.update({f"f{i}": getattr(Key, f"f{i}") for i in range(1, 13)})


def _common_prefix(a: str, b: str) -> int:
    limit = min(len(a), len(b))
    i = 0
    while i < limit and a[i] == b[i]:
        i += 1
    return i


def _common_suffix(a: str, b: str, prefix: int) -> int:
    limit = min(len(a), len(b)) - prefix
    i = 0
    while i < limit and a[len(a) - 1 - i] == b[len(b) - 1 - i]:
        i += 1
    return i


class KeystrokeSurface(TextInput):
    """
    The focused desktop window, seen through the text typed into it.
    read_text() returns that typed buffer; writes to value are replayed as
    caret moves, backspaces and typing (or a clipboard paste for long text).
    """

    capabilities = frozenset({PLAIN})

    def __init__(self, config_manager, controller=None):
        super().__init__("", multiline=True)
        self.config_manager = config_manager
        self.controller = controller or Controller()

    # Buffer updates coming from real keystrokes

    def feed(self, char: str):
        caret = self.selection_start
        self._value = self._value[:caret] + char + self._value[caret:]
        self.selection_start = self.selection_end = caret + len(char)

    def feed_backspace(self):
        caret = self.selection_start
        if caret > 0:
            self._value = self._value[:caret - 1] + self._value[caret:]
            self.selection_start = self.selection_end = caret - 1

    def reset(self):
        self._value = ""
        self.selection_start = self.selection_end = 0
        self.events.clear()

    # Synthetic output

    def _tap(self, key, count: int = 1):
        for _ in range(count):
            self.controller.press(key)
            self.controller.release(key)

    def _move_caret(self, position: int):
        delta = position - self.selection_start
        if delta < 0:
            self._tap(Key.left, -delta)
        elif delta > 0:
            self._tap(Key.right, delta)
        self.selection_start = self.selection_end = position

    def _emit(self, text: str):
        if not text:
            return
        config = self.config_manager.get()

        if config.paste_method == "ctrl_v" and len(text) >= config.paste_threshold:
            self._paste(text)
            return

        if config.typing_delay:
            for char in text:
                self.controller.type(char)
                time.sleep(config.typing_delay)
        else:
            self.controller.type(text)

    def _paste(self, text: str):
        previous = None
        try:
            previous = pyperclip.paste()
        except pyperclip.PyperclipException as e:
            logger.debug(f"Could not save clipboard before paste: {e}")

        try:
            pyperclip.copy(text)
        except pyperclip.PyperclipException as e:
            logger.warning(f"Clipboard copy failed, typing instead: {e}")
            self.controller.type(text)
            return

        # Give clipboard time to settle/sync (critical for Wayland)
        time.sleep(0.1)
        with self.controller.pressed(Key.ctrl):
            self._tap("v")
        time.sleep(0.1)

        if previous:
            try:
                pyperclip.copy(previous)
            except pyperclip.PyperclipException as e:
                logger.debug(f"Could not restore clipboard: {e}")

    @property
    def value(self) -> str:
        return self._value

    @value.setter
    def value(self, new_value: str):
        old_value = self._value
        prefix = _common_prefix(old_value, new_value)
        suffix = _common_suffix(old_value, new_value, prefix)

        changed_end = len(old_value) - suffix
        self._move_caret(changed_end)
        self._tap(Key.backspace, changed_end - prefix)
        self._emit(new_value[prefix:len(new_value) - suffix])

        self._value = new_value
        self.selection_start = self.selection_end = len(new_value) - suffix

    def set_selection_range(self, start: int, end=None):
        self._move_caret(max(0, min(start, len(self._value))))

    def press_key(self, key_info):
        self.events.append(("keydown", key_info.key))
        key = PYNPUT_KEYS.get(key_info.name)
        if key is None:
            logger.warning(f"No desktop key for {key_info.name}")
            return
        self._tap(key)

        # Keep the buffer in step with what the key does to the window
        caret = self.selection_start
        if key_info.name == "enter":
            self.feed("\n")
        elif key_info.name == "backspace":
            self.feed_backspace()
        elif key_info.name == "delete":
            self._value = self._value[:caret] + self._value[caret + 1:]
        elif key_info.name == "arrowleft":
            self.selection_start = self.selection_end = max(0, caret - 1)
        elif key_info.name == "arrowright":
            self.selection_start = self.selection_end = min(len(self._value), caret + 1)
        elif key_info.name == "home":
            self.selection_start = self.selection_end = 0
        elif key_info.name == "end":
            self.selection_start = self.selection_end = len(self._value)

    def focus_next(self) -> bool:
        self._tap(Key.tab)
        return True
