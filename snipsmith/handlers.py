import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Optional, Tuple

from snipsmith.commands import KEY_TABLE, EditorAction, ResolvedExpansion, action_delay_ms, normalize_key_name
from snipsmith.errors import ExpansionError, PlatformCommandFailed, TransientMismatch, TriggerNotFound, UnknownCommand
from snipsmith.surfaces import CONTROLLED, DOCUMENT, PLAIN, RICH

logger = logging.getLogger(__name__)

# Characters of the expansion that must show up in the surface after replacement
VERIFY_PREFIX_LENGTH = 10


class BaseHandler(ABC):
    name = "Base"
    priority = 0  # Higher = try first
    verify_settle_ms = 10

    def __init__(self):
        self.debug_mode = False

    @abstractmethod
    def can_handle(self, surface) -> bool:
        pass

    @abstractmethod
    async def _replace(self, surface, trigger: str, expansion: ResolvedExpansion,
                       cursor_offset: Optional[int]) -> bool:
        pass

    async def replace(self, surface, trigger: str, expansion, cursor_offset: Optional[int] = None) -> bool:
        """
        Swaps the trigger for the expansion and reports whether the surface
        ended up in the expected state. Nothing done before a failure is undone.
        """
        if isinstance(expansion, str):
            expansion = ResolvedExpansion.single(expansion)
        if cursor_offset is None:
            cursor_offset = expansion.cursor_offset

        self.log(f"Starting replacement of {trigger!r} ({len(expansion.chunks)} chunk(s))")
        try:
            return await self._replace(surface, trigger, expansion, cursor_offset)
        except ExpansionError as e:
            self.log(f"Replacement failed: {e}")
            return False

    def set_debug_mode(self, enabled: bool):
        self.debug_mode = enabled

    def log(self, message: str):
        if self.debug_mode:
            logger.debug(f"[{self.name}] {message}")

    async def delay(self, ms: float):
        await asyncio.sleep(ms / 1000)

    def find_trigger(self, text: str, trigger: str, caret: int) -> Tuple[int, int]:
        """Looks before the caret first, then at the end of the text, then anywhere."""
        if not trigger:
            raise TriggerNotFound(trigger)

        if text[:caret].endswith(trigger):
            return caret - len(trigger), caret

        if text.endswith(trigger):
            return len(text) - len(trigger), len(text)

        last_index = text.rfind(trigger)
        if last_index != -1:
            return last_index, last_index + len(trigger)

        raise TriggerNotFound(trigger)

    def verify(self, surface, expansion_text: str, trigger: str) -> bool:
        text = surface.read_text()

        expansion_check = expansion_text[:VERIFY_PREFIX_LENGTH]
        if expansion_check not in text:
            self.log("Verification failed: expansion not found")
            return False

        if text.endswith(trigger):
            self.log("Verification failed: trigger still present")
            return False

        return True

    @staticmethod
    def wants_cursor(expansion: ResolvedExpansion, cursor_offset: Optional[int]) -> bool:
        return cursor_offset is not None and 0 <= cursor_offset < len(expansion.text)

    def cursor_stays(self, surface, target, expansion, cursor_offset) -> bool:
        if not self.wants_cursor(expansion, cursor_offset):
            return False
        if target is not surface:
            self.log("Focus moved during insertion; cursor left where it is")
            return False
        return True

    async def settle_and_verify(self, surface, expected_text: str, trigger: str) -> bool:
        await self.delay(self.verify_settle_ms)
        return self.verify(surface, expected_text, trigger)

    async def insert_chunks(self, surface, expansion: ResolvedExpansion, insert_chunk, settle_ms: float = 0):
        """
        Inserts each chunk into the focused surface, notifies, then runs the
        action paired with it. Chunks after a {tab} that moved focus go to the
        newly focused surface. Empty chunks are skipped but their action still runs.

        Returns (focused surface, text inserted into the starting surface).
        """
        target = surface
        local_chunks = []
        for chunk, action in expansion.pairs():
            if chunk:
                insert_chunk(target, chunk)
                if target is surface:
                    local_chunks.append(chunk)
                target.dispatch_change_notification("input", chunk)
                if settle_ms:
                    await self.delay(settle_ms)

            if action is not None:
                target = await self.execute_keyboard_action(target, action)

        local_text = "".join(local_chunks)
        self.log(f"Inserted {len(local_text)} of {len(expansion.text)} characters into the starting surface")
        return target, local_text

    def key_for(self, action: EditorAction):
        if not action.options:
            raise UnknownCommand("{key} command requires a key name")
        key_info = normalize_key_name(action.options)
        if key_info is None:
            raise UnknownCommand(f"Unknown key name: {action.options}")
        return key_info

    async def execute_keyboard_action(self, surface, action: EditorAction):
        """Runs one action and returns the surface that has focus afterwards."""
        if action.kind == "enter":
            self.log("Executing {enter}")
            surface.press_key(KEY_TABLE["enter"])

        elif action.kind == "tab":
            self.log("Executing {tab}")
            if not surface.focus_next():
                self.log("No next surface to focus")
            elif surface.next_surface is not None:
                return surface.next_surface

        elif action.kind == "delay":
            delay_ms = action_delay_ms(action.options)
            self.log(f"Executing {{delay}} for {delay_ms}ms")
            await self.delay(delay_ms)

        elif action.kind == "key":
            try:
                key_info = self.key_for(action)
            except UnknownCommand as e:
                logger.warning(e.message)
                return surface
            self.log(f"Executing {{key: {action.options}}} -> {key_info.code}")
            surface.press_key(key_info)

        return surface


class StandardHandler(BaseHandler):
    """Regular inputs and textareas: splice the value buffer directly."""

    name = "Standard"
    priority = 1  # Fallback

    def can_handle(self, surface) -> bool:
        return surface.supports(PLAIN)

    def write_value(self, surface, new_value: str):
        surface.value = new_value

    def set_caret(self, surface, position: int):
        try:
            surface.set_selection_range(position, position)
        except ValueError:
            # Some input types don't support selection
            pass

    def notify(self, surface, event: str, data=None):
        surface.dispatch_change_notification(event, data)

    async def _replace(self, surface, trigger, expansion, cursor_offset):
        if getattr(surface, "readonly", False):
            raise PlatformCommandFailed("write")

        value = surface.value
        start, end = self.find_trigger(value, trigger, surface.caret_offset_or_end())
        before, after = value[:start], value[end:]

        if not expansion.is_chunked:
            self.write_value(surface, before + expansion.text + after)
            caret = len(before) + len(expansion.text)
            if self.wants_cursor(expansion, cursor_offset):
                caret = len(before) + cursor_offset
            self.set_caret(surface, caret)
            self.notify(surface, "input", expansion.text)
            self.notify(surface, "change")
        else:
            self.write_value(surface, before + after)
            self.set_caret(surface, len(before))

            def insert_chunk(target, chunk):
                position = target.caret_offset_or_end()
                current = target.value
                self.write_value(target, current[:position] + chunk + current[position:])
                self.set_caret(target, position + len(chunk))

            target, local_text = await self.insert_chunks(surface, expansion, insert_chunk)

            if self.cursor_stays(surface, target, expansion, cursor_offset):
                end_of_insert = surface.caret_offset_or_end()
                self.set_caret(surface, end_of_insert - (len(expansion.text) - cursor_offset))
            self.notify(surface, "change")
            return await self.settle_and_verify(surface, local_text, trigger)

        return await self.settle_and_verify(surface, expansion.text, trigger)


class ControlledInputHandler(StandardHandler):
    """
    Inputs whose value a reactive framework owns. Writes go through the
    native setter and the framework's value tracker is cleared so the
    following input event is seen as a real change.
    """

    name = "ControlledInput"
    priority = 5

    def can_handle(self, surface) -> bool:
        return surface.supports(CONTROLLED)

    def write_value(self, surface, new_value: str):
        setter = getattr(surface, "native_value_setter", None)
        if setter is None:
            # Focus moved to an uncontrolled input
            surface.value = new_value
            return
        setter(new_value)
        tracker = getattr(surface, "value_tracker", None)
        if tracker is not None:
            tracker.set_value("")


class ContentEditableHandler(BaseHandler):
    """Rich text regions: select the trigger and use editing commands."""

    name = "ContentEditable"
    priority = 3

    def can_handle(self, surface) -> bool:
        return surface.supports(RICH)

    def select_trigger(self, surface, trigger: str) -> bool:
        selection = surface.get_selection()
        if selection is None:
            self.log("No selection available")
            return False

        node, offset = selection.focus_node, selection.focus_offset
        if not trigger or not node.text[:offset].endswith(trigger):
            self.log("Trigger not found before cursor")
            return False

        surface.set_selection(node, offset - len(trigger), node, offset)
        return True

    def insert_text(self, surface, text: str):
        if not surface.exec_command("insertText", text):
            raise PlatformCommandFailed("insertText")

    async def _replace(self, surface, trigger, expansion, cursor_offset):
        if not self.select_trigger(surface, trigger):
            raise TriggerNotFound(trigger)

        if not surface.exec_command("delete"):
            raise PlatformCommandFailed("delete")

        insertion_start = surface.caret_offset_or_end()

        if expansion.is_chunked:
            target, local_text = await self.insert_chunks(surface, expansion, self.insert_text)
            if self.cursor_stays(surface, target, expansion, cursor_offset):
                surface.place_caret(surface.caret_offset_or_end() - (len(expansion.text) - cursor_offset))
            return await self.settle_and_verify(surface, local_text, trigger)

        self.insert_text(surface, expansion.text)
        if self.wants_cursor(expansion, cursor_offset):
            surface.place_caret(insertion_start + cursor_offset)
        surface.dispatch_change_notification("input", expansion.text)
        return await self.settle_and_verify(surface, expansion.text, trigger)


class DocumentEditorHandler(ContentEditableHandler):
    """
    Document editors that reconcile edits asynchronously. Every step is
    followed by a settling pause and deletion is retried before giving up.
    """

    name = "DocumentEditor"
    priority = 10

    def __init__(self, focus_delay_ms=50, delete_settle_ms=100, insert_settle_ms=50,
                 final_settle_ms=200, max_delete_retries=3):
        super().__init__()
        self.focus_delay_ms = focus_delay_ms
        self.delete_settle_ms = delete_settle_ms
        self.insert_settle_ms = insert_settle_ms
        self.final_settle_ms = final_settle_ms
        self.max_delete_retries = max_delete_retries

    def can_handle(self, surface) -> bool:
        return surface.supports(DOCUMENT)

    async def confirm_deletion(self, surface, trigger: str):
        retries = 0
        while surface.read_text().endswith(trigger) and retries < self.max_delete_retries:
            retries += 1
            self.log(f"Deletion retry {retries}/{self.max_delete_retries}")
            if self.select_trigger(surface, trigger):
                surface.exec_command("delete")
                await self.delay(self.delete_settle_ms)

        if surface.read_text().endswith(trigger):
            raise TransientMismatch(f"trigger still present after {retries} deletion retries")

    async def _replace(self, surface, trigger, expansion, cursor_offset):
        surface.focus()
        await self.delay(self.focus_delay_ms)

        if not trigger or not surface.read_text().endswith(trigger):
            raise TriggerNotFound(trigger)

        # Character by character; the editor may only apply these later
        for _ in range(len(trigger)):
            surface.exec_command("delete")
        await self.delay(self.delete_settle_ms)

        await self.confirm_deletion(surface, trigger)
        await self.delay(self.insert_settle_ms)

        insertion_start = surface.caret_offset_or_end()
        target, inserted = surface, expansion.text
        if expansion.is_chunked:
            target, inserted = await self.insert_chunks(
                surface, expansion, self.insert_text, settle_ms=self.insert_settle_ms,
            )
        else:
            self.insert_text(surface, expansion.text)
            surface.dispatch_change_notification("input", expansion.text)

        await self.delay(self.final_settle_ms)

        # Caret moves only once the editor has caught up with the insertion
        if self.cursor_stays(surface, target, expansion, cursor_offset):
            if expansion.is_chunked:
                surface.place_caret(surface.caret_offset_or_end() - (len(expansion.text) - cursor_offset))
            else:
                surface.place_caret(insertion_start + cursor_offset)

        return self.verify(surface, inserted, trigger)
