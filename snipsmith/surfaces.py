import asyncio
import logging
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass
from typing import List, Optional

logger = logging.getLogger(__name__)

PLAIN = "plain"
RICH = "rich"
CONTROLLED = "controlled"
DOCUMENT = "document"

# Most recent notifications and key presses kept per surface
EVENT_LOG_SIZE = 100


class EditableSurface(ABC):
    """
    Handle over something that displays and accepts typed text.
    Handlers pick a surface by capability, never by concrete type.
    """

    capabilities = frozenset()

    def __init__(self):
        self.events = deque(maxlen=EVENT_LOG_SIZE)
        self.listeners = []
        self.focused = False
        self.next_surface: Optional["EditableSurface"] = None

    def supports(self, capability: str) -> bool:
        return capability in self.capabilities

    @abstractmethod
    def read_text(self) -> str:
        pass

    @abstractmethod
    def caret_offset_or_end(self) -> int:
        pass

    def add_listener(self, callback):
        self.listeners.append(callback)

    def dispatch_change_notification(self, event: str = "input", data=None):
        self.events.append((event, data))
        for listener in list(self.listeners):
            listener(self, event, data)

    def press_key(self, key_info):
        self.events.append(("keydown", key_info.key))

    def focus(self):
        self.focused = True

    def focus_next(self) -> bool:
        if self.next_surface is None:
            return False
        self.focused = False
        self.next_surface.focus()
        return True


class TextInput(EditableSurface):
    """Single-line input or textarea with a linear value and a selection range."""

    capabilities = frozenset({PLAIN})

    def __init__(self, value: str = "", multiline: bool = False, supports_selection: bool = True,
                 readonly: bool = False):
        super().__init__()
        self._value = value
        self.multiline = multiline
        self.supports_selection = supports_selection
        self.readonly = readonly
        self.selection_start = len(value)
        self.selection_end = len(value)

    @property
    def value(self) -> str:
        return self._value

    @value.setter
    def value(self, new_value: str):
        if self.readonly:
            logger.debug("Ignoring write to read-only input")
            return
        self._value = new_value
        # Programmatic writes leave the caret at the end
        self.selection_start = self.selection_end = len(new_value)

    def set_selection_range(self, start: int, end: Optional[int] = None):
        if not self.supports_selection:
            raise ValueError("this input does not support selection")
        end = start if end is None else end
        length = len(self._value)
        self.selection_start = max(0, min(start, length))
        self.selection_end = max(0, min(end, length))

    def read_text(self) -> str:
        return self.value

    def caret_offset_or_end(self) -> int:
        if not self.supports_selection or self.selection_start is None:
            return len(self.value)
        return self.selection_start

    def press_key(self, key_info):
        super().press_key(key_info)
        if key_info.name == "enter" and not self.multiline:
            # Enter in a single-line input submits its form
            self.dispatch_change_notification("submit")


class ValueTracker:
    """Last value a reactive framework saw on its control."""

    def __init__(self, value: str = ""):
        self._value = value

    def get_value(self) -> str:
        return self._value

    def set_value(self, value: str):
        self._value = value


class ReactiveBinding:
    """
    Reactive framework state bound to one ControlledInput.
    A change is accepted only when an input notification arrives and the
    control's value differs from the tracker; otherwise the state re-renders.
    """

    def __init__(self, surface: "ControlledInput", state: str = ""):
        self.surface = surface
        self.state = state
        self.renders = 0
        surface.add_listener(self._on_event)

    def _on_event(self, surface, event, data):
        if event != "input":
            return
        current = surface.native_value
        if current != surface.value_tracker.get_value():
            surface.value_tracker.set_value(current)
            self.state = current
        self.render()

    def set_state(self, state: str):
        self.state = state
        self.render()

    def render(self):
        self.renders += 1
        if self.surface.native_value != self.state:
            self.surface.native_value_setter(self.state)
            self.surface.value_tracker.set_value(self.state)


class ControlledInput(TextInput):
    capabilities = frozenset({PLAIN, CONTROLLED})

    def __init__(self, value: str = "", **kwargs):
        super().__init__(value, **kwargs)
        self.value_tracker = ValueTracker(value)
        self.binding = ReactiveBinding(self, value)

    @property
    def value(self) -> str:
        return self._value

    @value.setter
    def value(self, new_value: str):
        # The framework's own override records every write, so a plain
        # assignment followed by an input event reads as "unchanged".
        self.value_tracker.set_value(new_value)
        TextInput.value.fset(self, new_value)

    @property
    def native_value(self) -> str:
        return TextInput.value.fget(self)

    def native_value_setter(self, new_value: str):
        TextInput.value.fset(self, new_value)


class TextNode:
    def __init__(self, text: str = ""):
        self.text = text

    def __repr__(self):
        return f"TextNode({self.text!r})"


@dataclass
class Selection:
    anchor_node: TextNode
    anchor_offset: int
    focus_node: TextNode
    focus_offset: int

    @property
    def collapsed(self) -> bool:
        return self.anchor_node is self.focus_node and self.anchor_offset == self.focus_offset


class RichTextSurface(EditableSurface):
    """
    Contenteditable-style region. Text lives in TextNodes and all mutation
    goes through exec_command, the way platform editing commands work.
    """

    capabilities = frozenset({RICH})

    def __init__(self, texts=None, editable: bool = True):
        super().__init__()
        if isinstance(texts, str):
            texts = [texts]
        self.nodes: List[TextNode] = [TextNode(t) for t in (texts or [""])]
        self.editable = editable
        last = self.nodes[-1]
        self.selection: Optional[Selection] = Selection(last, len(last.text), last, len(last.text))

    def read_text(self) -> str:
        return "".join(node.text for node in self.nodes)

    def offset_of(self, node: TextNode, offset: int) -> int:
        total = 0
        for candidate in self.nodes:
            if candidate is node:
                return total + offset
            total += len(candidate.text)
        raise ValueError("node is not part of this surface")

    def position_at(self, offset: int):
        """Maps a document offset to (node, node_offset), preferring the earlier node at a boundary."""
        start = 0
        for node in self.nodes:
            end = start + len(node.text)
            if offset <= end:
                return node, max(0, offset - start)
            start = end
        last = self.nodes[-1]
        return last, len(last.text)

    def get_selection(self) -> Optional[Selection]:
        return self.selection

    def set_selection(self, anchor_node, anchor_offset, focus_node=None, focus_offset=None):
        focus_node = anchor_node if focus_node is None else focus_node
        focus_offset = anchor_offset if focus_offset is None else focus_offset
        self.selection = Selection(anchor_node, anchor_offset, focus_node, focus_offset)

    def clear_selection(self):
        self.selection = None

    def place_caret(self, offset: int):
        node, node_offset = self.position_at(offset)
        self.set_selection(node, node_offset)

    def caret_offset_or_end(self) -> int:
        if self.selection is None:
            return len(self.read_text())
        return self.offset_of(self.selection.focus_node, self.selection.focus_offset)

    def _selected_range(self):
        sel = self.selection
        start = self.offset_of(sel.anchor_node, sel.anchor_offset)
        end = self.offset_of(sel.focus_node, sel.focus_offset)
        return min(start, end), max(start, end)

    def _delete_range(self, start: int, end: int):
        position = 0
        for node in self.nodes:
            node_start, node_end = position, position + len(node.text)
            position = node_end
            cut_start, cut_end = max(start, node_start), min(end, node_end)
            if cut_start < cut_end:
                node.text = node.text[:cut_start - node_start] + node.text[cut_end - node_start:]
        self.place_caret(start)

    def _insert_at_caret(self, text: str):
        node, node_offset = self.selection.focus_node, self.selection.focus_offset
        node.text = node.text[:node_offset] + text + node.text[node_offset:]
        self.set_selection(node, node_offset + len(text))

    def _apply(self, command: str, value=None) -> bool:
        if command == "delete":
            start, end = self._selected_range()
            if start == end:
                if start == 0:
                    return True
                start -= 1
            self._delete_range(start, end)
            return True

        if command in ("insertText", "insertLineBreak"):
            text = "\n" if command == "insertLineBreak" else (value or "")
            start, end = self._selected_range()
            if start != end:
                self._delete_range(start, end)
            self._insert_at_caret(text)
            return True

        logger.debug(f"Unsupported editing command: {command}")
        return False

    def exec_command(self, command: str, value=None) -> bool:
        if not self.editable or self.selection is None:
            return False
        return self._apply(command, value)


class AsyncDocumentSurface(RichTextSurface):
    """
    Heavyweight document editor with its own model: editing commands are
    accepted immediately but only show up in the text after a lag.
    """

    capabilities = frozenset({RICH, DOCUMENT})

    def __init__(self, texts=None, lag: float = 0.02, drop_deletes: int = 0, **kwargs):
        super().__init__(texts, **kwargs)
        self.lag = lag
        self.drop_deletes = drop_deletes
        self.pending = []
        self._flush_handle = None

    def exec_command(self, command: str, value=None) -> bool:
        if not self.editable or self.selection is None:
            return False
        if command not in ("delete", "insertText", "insertLineBreak"):
            return False
        if command == "delete" and self.drop_deletes > 0:
            # Reported as done but never reaches the model
            self.drop_deletes -= 1
            return True

        self.pending.append((command, value))
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.flush()
            return True

        if self._flush_handle is None:
            self._flush_handle = loop.call_later(self.lag, self.flush)
        return True

    def flush(self):
        self._flush_handle = None
        pending, self.pending = self.pending, []
        for command, value in pending:
            self._apply(command, value)
