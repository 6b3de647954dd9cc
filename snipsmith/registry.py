import logging
from typing import List, Optional

from snipsmith.handlers import (
    BaseHandler,
    ContentEditableHandler,
    ControlledInputHandler,
    DocumentEditorHandler,
    StandardHandler,
)

logger = logging.getLogger(__name__)


class HandlerRegistry:
    """
    Replacement handlers ordered by priority (highest first).

    To support a new kind of surface, subclass BaseHandler, give it a
    capability check in can_handle() and register it here.
    """

    def __init__(self, handlers=None):
        self.handlers: List[BaseHandler] = []
        self.debug_mode = False

        if handlers is None:
            handlers = [
                DocumentEditorHandler(),
                ControlledInputHandler(),
                ContentEditableHandler(),
                StandardHandler(),
            ]
        for handler in handlers:
            self.register(handler)

    def register(self, handler: BaseHandler):
        handler.set_debug_mode(self.debug_mode)
        self.handlers.append(handler)
        self.handlers.sort(key=lambda h: h.priority, reverse=True)

    def set_debug_mode(self, enabled: bool):
        self.debug_mode = enabled
        for handler in self.handlers:
            handler.set_debug_mode(enabled)

    def get_handler(self, surface) -> Optional[BaseHandler]:
        """First handler whose can_handle() accepts the surface."""
        for handler in self.handlers:
            if handler.can_handle(surface):
                if self.debug_mode:
                    logger.debug(f"Selected handler: {handler.name}")
                return handler
        return None

    def get_handler_chain(self, surface) -> List[BaseHandler]:
        """All handlers that accept the surface, for a fallback chain."""
        return [handler for handler in self.handlers if handler.can_handle(surface)]

    def list_handlers(self) -> List[str]:
        return [f"{handler.name} (priority: {handler.priority})" for handler in self.handlers]
