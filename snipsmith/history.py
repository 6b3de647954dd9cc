import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_SIZE = 10


@dataclass
class HistoryItem:
    timestamp: str
    text: str


class ClipboardHistory:
    """
    Clipboard values read during expansions, most recent first.
    Lives for as long as the process does; nothing is written to disk.
    """

    def __init__(self, max_items=DEFAULT_HISTORY_SIZE):
        self.max_items = max_items
        self.items: List[HistoryItem] = []

    def record(self, text: str) -> bool:
        if not text:
            return False
        if self.items and self.items[0].text == text:
            return False

        item = HistoryItem(timestamp=datetime.now().isoformat(), text=text)
        self.items.insert(0, item)
        if len(self.items) > self.max_items:
            self.items = self.items[:self.max_items]
        logger.debug(f"Clipboard history now holds {len(self.items)} item(s)")
        return True

    def get(self, index: int) -> str:
        """Slot 1 is the most recent read; a missing slot gives an empty string."""
        if index < 1 or index > len(self.items):
            return ""
        return self.items[index - 1].text

    def get_recent(self) -> List[HistoryItem]:
        return self.items

    def __len__(self):
        return len(self.items)

    def clear(self):
        self.items = []
