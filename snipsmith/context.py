import asyncio
import logging
import shutil
import subprocess
import sys
from dataclasses import dataclass

import pyperclip

from snipsmith.errors import ClipboardUnavailable

logger = logging.getLogger(__name__)


class ClipboardReader:
    def __init__(self, config_manager):
        self.config_manager = config_manager

    def get_clipboard(self) -> str:
        """
        Reads clipboard content.
        Respects 'allow_clipboard_access' config.
        Tries pyperclip first, then falls back to wl-paste (Wayland).
        """
        config = self.config_manager.get()
        if not getattr(config, "allow_clipboard_access", True):
            logger.info("Clipboard access denied by settings.")
            raise ClipboardUnavailable("clipboard access denied by settings")

        content = None

        # Strategy 1: pyperclip
        try:
            content = pyperclip.paste()
        except pyperclip.PyperclipException as e:
            logger.debug(f"pyperclip failed: {e}")

        # Strategy 2: wl-paste
        if not content and shutil.which("wl-paste"):
            res = subprocess.run(
                ["wl-paste", "--no-newline"],
                capture_output=True, text=True, check=False
            )
            if res.returncode == 0:
                content = res.stdout

        if content is None:
            raise ClipboardUnavailable("no clipboard mechanism available")
        return content

    async def read_text(self) -> str:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.get_clipboard)


@dataclass
class StaticSiteInfo:
    """Page metadata supplied by the embedding caller."""

    domain: str = ""
    title: str = ""
    url: str = ""
    selection: str = ""

    def get_domain(self) -> str:
        return self.domain

    def get_title(self) -> str:
        return self.title

    def get_url(self) -> str:
        return self.url

    def get_selection(self) -> str:
        return self.selection


class DesktopSiteInfo:
    """
    Page metadata for the focused desktop window.
    The window class stands in for the domain, the window title for the title.
    Desktop windows carry no URL.
    """

    def _run(self, args):
        try:
            res = subprocess.run(args, capture_output=True, text=True, check=False)
        except OSError as e:
            logger.debug(f"{args[0]} failed: {e}")
            return ""
        if res.returncode != 0:
            return ""
        return res.stdout.strip()

    def get_domain(self) -> str:
        if sys.platform == "darwin":
            script = 'tell application "System Events" to get name of first application process whose frontmost is true'
            return self._run(["osascript", "-e", script]).lower()
        if shutil.which("xdotool"):
            return self._run(["xdotool", "getwindowfocus", "getwindowclassname"]).lower()
        return ""

    def get_title(self) -> str:
        if shutil.which("xdotool"):
            return self._run(["xdotool", "getwindowfocus", "getwindowname"])
        return ""

    def get_url(self) -> str:
        return ""

    def get_selection(self) -> str:
        # Primary selection holds the currently highlighted text on Linux
        if shutil.which("wl-paste"):
            return self._run(["wl-paste", "--primary", "--no-newline"])
        if shutil.which("xsel"):
            return self._run(["xsel", "--primary", "--output"])
        return ""
