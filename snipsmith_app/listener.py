import asyncio
import logging
import os

from pynput import keyboard

logger = logging.getLogger(__name__)

# Keys that move the caret somewhere the typed buffer can't follow
RESET_KEYS = {
    keyboard.Key.enter, keyboard.Key.tab, keyboard.Key.esc,
    keyboard.Key.up, keyboard.Key.down, keyboard.Key.left, keyboard.Key.right,
    keyboard.Key.home, keyboard.Key.end, keyboard.Key.page_up, keyboard.Key.page_down,
}


class ListenerManager:
    def __init__(self, expander, surface, loop):
        self.expander = expander
        self.surface = surface
        self.loop = loop
        self.running = False

    def start(self):
        raise NotImplementedError

    def stop(self):
        raise NotImplementedError


class WaylandListenerManager(ListenerManager):
    def start(self):
        self.running = True
        logger.warning("Wayland does not allow global key capture; typed triggers will not be seen.")
        logger.warning("Use 'snipsmith --expand' from a shortcut instead.")

    def stop(self):
        self.running = False


class X11ListenerManager(ListenerManager):
    def __init__(self, expander, surface, loop):
        super().__init__(expander, surface, loop)
        self.listener = None
        self.expanding = False

    def _on_press(self, key):
        # Our own synthetic keystrokes come back through the listener
        if self.expanding:
            return

        if key == keyboard.Key.backspace:
            self.surface.feed_backspace()
            return
        if key in RESET_KEYS:
            self.surface.reset()
            return

        char = " " if key == keyboard.Key.space else getattr(key, "char", None)
        if not char:
            return

        self.surface.feed(char)
        buffer = self.surface.read_text()[:self.surface.caret_offset_or_end()]
        match = self.expander.snippet_matcher.find_match(buffer)
        if match:
            self._schedule(buffer, *match)

    def _schedule(self, buffer, snippet, match_length):
        typed_trigger = buffer[len(buffer) - match_length:]
        logger.info(f"Trigger '{typed_trigger}' typed")

        self.expanding = True
        future = asyncio.run_coroutine_threadsafe(
            self.expander.expand_snippet(self.surface, snippet, typed_trigger),
            self.loop,
        )
        future.add_done_callback(self._on_done)

    def _on_done(self, future):
        try:
            if future.cancelled():
                logger.info("Expansion cancelled.")
            elif future.exception() is not None:
                logger.error(f"Expansion task failed: {future.exception()}")
            elif not future.result():
                logger.info("Expansion did not complete.")
        finally:
            # The buffer now mirrors expansion output, not user typing
            self.surface.reset()
            self.expanding = False

    def start(self):
        self.running = True
        logger.info("Listening for snippet triggers (X11)")
        self.listener = keyboard.Listener(on_press=self._on_press)
        self.listener.start()

    def stop(self):
        self.running = False
        if self.listener:
            self.listener.stop()
            self.listener = None


def get_manager(expander, surface, loop) -> ListenerManager:
    session_type = os.environ.get("XDG_SESSION_TYPE")
    if session_type == "wayland":
        return WaylandListenerManager(expander, surface, loop)
    else:
        return X11ListenerManager(expander, surface, loop)
