import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

logger = logging.getLogger(__name__)

TRIGGER_MODES = ("word", "word-both", "anywhere")

WORD_BOUNDARY_CHARS = set(" \t\n\r.,;:!?-_()[]{}\"'/\\|<>")


@dataclass
class Snippet:
    trigger: str
    expansion: str
    trigger_mode: str = "word"
    case_transform: str = "none"
    enabled: bool = True
    label: str = ""


def is_word_boundary(char: Optional[str]) -> bool:
    if not char:
        return True
    return char in WORD_BOUNDARY_CHARS


def should_trigger_match(text_before: str, trigger: str, text_after: str, trigger_mode: str) -> bool:
    """
    word: "btw" fires in " btw" or at the start, not in "xbtw".
    word-both: the trigger must also be followed by a boundary.
    """
    char_before = text_before[-1] if text_before else None
    char_after = text_after[0] if text_after else None

    if trigger_mode == "anywhere":
        return True
    if trigger_mode == "word":
        return is_word_boundary(char_before)
    if trigger_mode == "word-both":
        return is_word_boundary(char_before) and is_word_boundary(char_after)

    logger.warning(f"Unknown trigger mode: {trigger_mode}")
    return False


class SnippetMatcher:
    def __init__(self, config_manager):
        self.config_manager = config_manager

    def get_snippets(self) -> List[Snippet]:
        config = self.config_manager.get()
        snippets = []
        for trigger, entry in (config.snippets or {}).items():
            if isinstance(entry, dict):
                snippets.append(Snippet(
                    trigger=trigger,
                    expansion=entry.get("expansion", ""),
                    trigger_mode=entry.get("trigger_mode", config.trigger_mode),
                    case_transform=entry.get("case_transform", config.case_transform),
                    enabled=entry.get("enabled", True),
                    label=entry.get("label", ""),
                ))
            else:
                snippets.append(Snippet(
                    trigger=trigger,
                    expansion=str(entry),
                    trigger_mode=config.trigger_mode,
                    case_transform=config.case_transform,
                ))
        return snippets

    def find_match(self, buffer: str, text_after: str = "") -> Optional[Tuple[Snippet, int]]:
        """
        Longest enabled trigger that ends the buffer and passes its
        boundary check. Returns (snippet, match_length) or None.
        """
        if not buffer:
            return None

        case_sensitive = self.config_manager.get().case_sensitive
        haystack = buffer if case_sensitive else buffer.lower()

        # Sort triggers by length (descending)
        candidates = sorted(
            (s for s in self.get_snippets() if s.enabled and s.trigger),
            key=lambda s: len(s.trigger),
            reverse=True,
        )
        for snippet in candidates:
            trigger = snippet.trigger if case_sensitive else snippet.trigger.lower()
            if not haystack.endswith(trigger):
                continue
            text_before = buffer[:len(buffer) - len(trigger)]
            if should_trigger_match(text_before, trigger, text_after, snippet.trigger_mode):
                return snippet, len(trigger)

        return None
