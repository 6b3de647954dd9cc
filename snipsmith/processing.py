import logging
from typing import Optional

from snipsmith import case
from snipsmith.commands import CommandProcessor, ResolvedExpansion, extract_form_fields, strip_notes
from snipsmith.history import ClipboardHistory
from snipsmith.locks import get_lock_manager
from snipsmith.registry import HandlerRegistry
from snipsmith.snippets import Snippet, SnippetMatcher

logger = logging.getLogger(__name__)


class TextExpander:
    def __init__(self, config_manager, processor=None, registry=None, lock_manager=None, form_collector=None):
        self.config_manager = config_manager
        config = config_manager.get()

        self.processor = processor or CommandProcessor(history=ClipboardHistory(config.clipboard_history_size))
        self.registry = registry or HandlerRegistry()
        self.registry.set_debug_mode(config.debug)
        if lock_manager is None:
            lock_manager = get_lock_manager()
            lock_manager.failure_cooldown_ms = config.failure_cooldown_ms
        self.lock_manager = lock_manager
        self.snippet_matcher = SnippetMatcher(config_manager)

        # async callable: list[FormField] -> dict of values, or None when cancelled
        self.form_collector = form_collector

    async def collect_form_data(self, expansion: str, form_data=None) -> Optional[dict]:
        fields = extract_form_fields(strip_notes(expansion))
        if not fields:
            return form_data or {}

        if form_data is None and self.form_collector is not None:
            form_data = await self.form_collector(fields)
            if form_data is None:
                logger.info("Form cancelled, expansion aborted.")
                return None

        values = dict(form_data or {})
        for field in fields:
            if values.get(field.name) in (None, "") and field.default_value is not None:
                values[field.name] = field.default_value
            if field.required and values.get(field.name) in (None, ""):
                logger.warning(f"Required form field '{field.label}' has no value.")
                return None
        return values

    async def resolve(self, expansion: str, form_data=None, trigger: str = "",
                      case_transform: str = "none") -> Optional[ResolvedExpansion]:
        """
        Runs the text side of an expansion:
        1. Form values (asking the collector when none were passed)
        2. Value commands, cursor marker and action split
        3. Case transform on the literal chunks
        """
        values = await self.collect_form_data(expansion, form_data)
        if values is None:
            return None

        resolved = await self.processor.resolve(expansion, values)

        if case_transform and case_transform != "none":
            resolved.chunks = case.transform_chunks(resolved.chunks, case_transform, trigger)
            resolved.text = "".join(resolved.chunks)

        return resolved

    async def replace(self, surface, trigger: str, resolved: ResolvedExpansion) -> bool:
        if self.config_manager.get().use_fallback_chain:
            handlers = self.registry.get_handler_chain(surface)
        else:
            handler = self.registry.get_handler(surface)
            handlers = [handler] if handler else []

        if not handlers:
            logger.warning("No replacement handler accepts this surface.")
            return False

        for handler in handlers:
            if await handler.replace(surface, trigger, resolved, resolved.cursor_offset):
                logger.info(f"Expanded '{trigger}' with {handler.name} handler.")
                return True
            logger.info(f"{handler.name} handler could not expand '{trigger}'.")

        return False

    async def expand(self, surface, trigger: str, expansion: str, form_data=None,
                     case_transform: str = "none") -> bool:
        config = self.config_manager.get()
        try:
            resolved = await self.resolve(expansion, form_data, trigger, case_transform)
            if resolved is None:
                return False

            if not self.lock_manager.try_acquire(surface, config.lock_cooldown_ms):
                logger.info(f"Surface busy, skipping expansion of '{trigger}'.")
                return False

            success = False
            try:
                success = await self.replace(surface, trigger, resolved)
            finally:
                if success:
                    self.lock_manager.release(surface)
                else:
                    self.lock_manager.mark_failed(surface)
            return success
        except Exception as e:
            logger.error(f"Expansion of '{trigger}' failed: {e}")
            return False

    async def expand_snippet(self, surface, snippet: Snippet, typed_trigger: str = None, form_data=None) -> bool:
        return await self.expand(
            surface,
            typed_trigger or snippet.trigger,
            snippet.expansion,
            form_data=form_data,
            case_transform=snippet.case_transform,
        )

    async def check_buffer(self, surface, buffer: str, text_after: str = "") -> bool:
        """Expands the snippet whose trigger ends the buffer, if any."""
        match = self.snippet_matcher.find_match(buffer, text_after)
        if match is None:
            return False

        snippet, match_length = match
        typed_trigger = buffer[len(buffer) - match_length:]
        return await self.expand_snippet(surface, snippet, typed_trigger)
