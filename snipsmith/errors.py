from dataclasses import dataclass


@dataclass
class ExpansionError(Exception):
    """Base error for a failed expansion step. Handlers turn these into a False result."""

    code: str
    message: str

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


class TriggerNotFound(ExpansionError):
    def __init__(self, trigger: str):
        super().__init__("not_found", f"trigger {trigger!r} not found near caret")


class PlatformCommandFailed(ExpansionError):
    def __init__(self, command: str):
        super().__init__("command_failed", f"editing command {command!r} returned failure")


class TransientMismatch(ExpansionError):
    def __init__(self, message: str):
        super().__init__("transient_mismatch", message)


class ClipboardUnavailable(ExpansionError):
    def __init__(self, message: str = "clipboard access denied or unavailable"):
        super().__init__("permission_denied", message)


class UnknownCommand(ExpansionError):
    def __init__(self, message: str):
        super().__init__("unknown_command", message)
