import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple, Union

from snipsmith.errors import ClipboardUnavailable, UnknownCommand
from snipsmith.history import ClipboardHistory

logger = logging.getLogger(__name__)

# Commands that drive the editor instead of producing text
ACTION_KINDS = ("cursor", "enter", "tab", "delay", "key")
KEYBOARD_KINDS = ("enter", "tab", "delay", "key")

# {command}, {command:options} or {command options}
COMMAND_RE = re.compile(
    r"\{(date|time|clipboardh\d+|clipboard|cursor|enter|tab|delay|key|site|note)(?:[\s:]([^}]+))?\}"
)

# {formtext: label=Name}, {formmenu: label=Status; options=Active,Inactive}
FORM_COMMAND_RE = re.compile(r"\{(formtext|formparagraph|formmenu|formdate|formtoggle):([^}]+)\}")

NOTE_BLOCK_RE = re.compile(r"\{note\}.*?\{endnote\}", re.DOTALL)
NOTE_INLINE_RE = re.compile(r"\{note[\s:][^}]*\}")

SHIFT_RE = re.compile(r"shift\s+([+-]?\d+)([dMY])")
SHIFT_STRIP_RE = re.compile(r"\s*shift\s+[+-]?\d+[dMY]\s*")
DELAY_RE = re.compile(r"\+?(\d+(?:\.\d+)?)(s|ms)?")

# Alternation order is longest-first so MMMM never falls through to M
DATE_TOKEN_RE = re.compile(r"YYYY|YY|MMMM|MMM|MM|M|Do|DD|D")
TIME_TOKEN_RE = re.compile(r"HH|H|hh|h|mm|ss|A|a")

DEFAULT_DATE_FORMAT = "YYYY-MM-DD"
DEFAULT_TIME_FORMAT = "HH:mm"
DEFAULT_ACTION_DELAY_MS = 1000

MONTH_NAMES = [
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
]


@dataclass
class FormField:
    kind: str  # text, paragraph, menu, date, toggle
    name: str
    label: str
    required: bool = False
    options: Optional[List[str]] = None
    default_value: Optional[Union[str, bool]] = None


@dataclass
class ParsedCommand:
    kind: str
    start_index: int
    end_index: int
    raw_match: str
    options: Optional[str] = None
    form_field: Optional[FormField] = None

    @property
    def is_action(self) -> bool:
        return self.kind in ACTION_KINDS


@dataclass(frozen=True)
class EditorAction:
    kind: str  # enter, tab, delay, key
    options: Optional[str] = None


@dataclass(frozen=True)
class KeyboardActionPosition:
    action: EditorAction
    position: int
    raw_match: str


@dataclass(frozen=True)
class KeyInfo:
    name: str
    key: str
    code: str
    key_code: int


@dataclass
class ResolvedExpansion:
    text: str
    chunks: List[str]
    actions: List[EditorAction]
    cursor_offset: Optional[int] = None

    @classmethod
    def single(cls, text: str, cursor_offset: Optional[int] = None) -> "ResolvedExpansion":
        return cls(text=text, chunks=[text], actions=[], cursor_offset=cursor_offset)

    @property
    def is_chunked(self) -> bool:
        return bool(self.actions)

    def pairs(self):
        """Yields (chunk, action) pairs; the trailing chunk comes with None."""
        for index, chunk in enumerate(self.chunks):
            action = self.actions[index] if index < len(self.actions) else None
            yield chunk, action


def _key(name, key, code, key_code):
    return KeyInfo(name=name, key=key, code=code, key_code=key_code)


KEY_TABLE: Dict[str, KeyInfo] = {
    "enter": _key("enter", "Enter", "Enter", 13),
    "tab": _key("tab", "Tab", "Tab", 9),
    "escape": _key("escape", "Escape", "Escape", 27),
    "backspace": _key("backspace", "Backspace", "Backspace", 8),
    "delete": _key("delete", "Delete", "Delete", 46),
    "arrowup": _key("arrowup", "ArrowUp", "ArrowUp", 38),
    "arrowdown": _key("arrowdown", "ArrowDown", "ArrowDown", 40),
    "arrowleft": _key("arrowleft", "ArrowLeft", "ArrowLeft", 37),
    "arrowright": _key("arrowright", "ArrowRight", "ArrowRight", 39),
    "home": _key("home", "Home", "Home", 36),
    "end": _key("end", "End", "End", 35),
    "pageup": _key("pageup", "PageUp", "PageUp", 33),
    "pagedown": _key("pagedown", "PageDown", "PageDown", 34),
    "space": _key("space", " ", "Space", 32),
}
KEY_TABLE.update({f"f{i}": _key(f"f{i}", f"F{i}", f"F{i}", 111 + i) for i in range(1, 13)})
KEY_ALIASES = {"esc": "escape"}


def normalize_key_name(name: Optional[str]) -> Optional[KeyInfo]:
    if not name:
        return None
    normalized = name.strip().lower()
    normalized = KEY_ALIASES.get(normalized, normalized)
    return KEY_TABLE.get(normalized)


def parse(text: str) -> List[ParsedCommand]:
    """Parses fixed-vocabulary commands in source order."""
    commands = []
    for match in COMMAND_RE.finditer(text):
        name, options = match.group(1), match.group(2)
        options = options.strip() if options else None
        if name.startswith("clipboardh"):
            # {clipboardh3} -> kind clipboardh, options "3"
            options = name[len("clipboardh"):]
            name = "clipboardh"
        commands.append(ParsedCommand(
            kind=name,
            start_index=match.start(),
            end_index=match.end(),
            raw_match=match.group(0),
            options=options or None,
        ))
    return commands


def _parse_form_field(form_type: str, options_string: str) -> FormField:
    params = {}
    for part in options_string.split(";"):
        key, sep, value = part.partition("=")
        key, value = key.strip(), value.strip()
        if not sep:
            if key == "required":
                params["required"] = "true"
            continue
        if key and value:
            params[key] = value

    label = params.get("label") or params.get("name") or "Field"
    name = params.get("name") or re.sub(r"\s+", "_", label.lower())
    field = FormField(
        kind=form_type[len("form"):],
        name=name,
        label=label,
        required=params.get("required", "").lower() == "true",
    )

    if form_type == "formmenu" and params.get("options"):
        field.options = [option.strip() for option in params["options"].split(",")]

    if "default" in params:
        if form_type == "formtoggle":
            field.default_value = params["default"].lower() == "true"
        else:
            field.default_value = params["default"]

    return field


def parse_form_commands(text: str) -> List[ParsedCommand]:
    commands = []
    for match in FORM_COMMAND_RE.finditer(text):
        form_type, options_string = match.group(1), match.group(2)
        commands.append(ParsedCommand(
            kind="form",
            start_index=match.start(),
            end_index=match.end(),
            raw_match=match.group(0),
            options=options_string,
            form_field=_parse_form_field(form_type, options_string),
        ))
    return commands


def has_form_commands(text: str) -> bool:
    return FORM_COMMAND_RE.search(text) is not None


def extract_form_fields(text: str) -> List[FormField]:
    return [cmd.form_field for cmd in parse_form_commands(text) if cmd.form_field]


def _format_form_value(value) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def substitute_form_values(text: str, form_data: Dict[str, Union[str, bool]]) -> str:
    result = text
    for cmd in reversed(parse_form_commands(text)):
        value = form_data.get(cmd.form_field.name)
        replacement = _format_form_value(value) if value is not None else ""
        result = result[:cmd.start_index] + replacement + result[cmd.end_index:]
    return result


def strip_notes(text: str) -> str:
    """Removes {note}...{endnote} blocks and {note: ...} comments."""
    text = NOTE_BLOCK_RE.sub("", text)
    return NOTE_INLINE_RE.sub("", text)


def ordinal_suffix(day: int) -> str:
    if 11 <= day <= 13:
        return "th"
    return {1: "st", 2: "nd", 3: "rd"}.get(day % 10, "th")


def _apply_date_shift(moment: datetime, value: int, unit: str) -> datetime:
    if unit == "d":
        return moment + timedelta(days=value)

    if unit == "M":
        total = moment.month - 1 + value
        year, month = moment.year + total // 12, total % 12 + 1
    else:
        year, month = moment.year + value, moment.month

    # Day overflow rolls into the next month (Jan 31 + 1M -> Mar 3)
    first = moment.replace(year=year, month=month, day=1)
    return first + timedelta(days=moment.day - 1)


def format_date(moment: datetime, options: Optional[str] = None) -> str:
    fmt = options or DEFAULT_DATE_FORMAT

    if options:
        shift = SHIFT_RE.search(options)
        if shift:
            moment = _apply_date_shift(moment, int(shift.group(1)), shift.group(2))
            fmt = SHIFT_STRIP_RE.sub(" ", options, count=1).strip() or DEFAULT_DATE_FORMAT

    day = moment.day
    month_name = MONTH_NAMES[moment.month - 1]
    values = {
        "YYYY": f"{moment.year:04d}",
        "YY": f"{moment.year:04d}"[-2:],
        "MMMM": month_name,
        "MMM": month_name[:3],
        "MM": f"{moment.month:02d}",
        "M": str(moment.month),
        "Do": f"{day}{ordinal_suffix(day)}",
        "DD": f"{day:02d}",
        "D": str(day),
    }
    return DATE_TOKEN_RE.sub(lambda token: values[token.group(0)], fmt)


def format_time(moment: datetime, options: Optional[str] = None) -> str:
    fmt = options or DEFAULT_TIME_FORMAT

    hours12 = moment.hour % 12 or 12
    minutes = f"{moment.minute:02d}"
    ampm = "PM" if moment.hour >= 12 else "AM"

    if fmt == "12h":
        return f"{hours12}:{minutes} {ampm}"
    if fmt == "24h":
        return f"{moment.hour:02d}:{minutes}"

    values = {
        "HH": f"{moment.hour:02d}",
        "H": str(moment.hour),
        "hh": f"{hours12:02d}",
        "h": str(hours12),
        "mm": minutes,
        "ss": f"{moment.second:02d}",
        "A": ampm,
        "a": ampm.lower(),
    }
    return TIME_TOKEN_RE.sub(lambda token: values[token.group(0)], fmt)


def _delay_from_options(options: Optional[str]) -> Optional[float]:
    if not options:
        return None
    match = DELAY_RE.search(options)
    if not match:
        return None
    value = float(match.group(1))
    unit = match.group(2) or "s"
    return round(value if unit == "ms" else value * 1000, 3)


def parse_delay_ms(options: Optional[str] = None) -> float:
    """Delay for a {delay} command; no or unparsable options means 0."""
    delay = _delay_from_options(options)
    return delay if delay is not None else 0


def action_delay_ms(options: Optional[str] = None) -> float:
    """Delay used when a pause action is executed; defaults to one second."""
    delay = _delay_from_options(options)
    return delay if delay is not None else DEFAULT_ACTION_DELAY_MS


def extract_keyboard_actions(text: str) -> Tuple[str, List[KeyboardActionPosition]]:
    """
    Removes enter/tab/delay/key commands from text.
    Each action keeps the position it occupied in the cleaned text.
    """
    actions = []
    result = text
    offset = 0

    for cmd in parse(text):
        if cmd.kind not in KEYBOARD_KINDS:
            continue
        position = cmd.start_index - offset
        actions.append(KeyboardActionPosition(
            action=EditorAction(cmd.kind, cmd.options),
            position=position,
            raw_match=cmd.raw_match,
        ))
        result = result[:position] + result[cmd.end_index - offset:]
        offset += len(cmd.raw_match)

    return result, actions


def split_text_by_keyboard_actions(text: str) -> Tuple[List[str], List[EditorAction]]:
    """
    "A{delay +1s}B{tab}C" -> (["A", "B", "C"], [delay(+1s), tab])
    """
    keyboard_commands = [cmd for cmd in parse(text) if cmd.kind in KEYBOARD_KINDS]
    if not keyboard_commands:
        return [text], []

    chunks = []
    actions = []
    last_index = 0
    for cmd in keyboard_commands:
        chunks.append(text[last_index:cmd.start_index])
        actions.append(EditorAction(cmd.kind, cmd.options))
        last_index = cmd.end_index
    chunks.append(text[last_index:])

    return chunks, actions


def extract_cursor(text: str) -> Tuple[str, Optional[int]]:
    """
    Removes every {cursor} marker. The offset of the first one is counted in
    literal characters, so action commands before it do not contribute.
    """
    cursors = [cmd for cmd in parse(text) if cmd.kind == "cursor"]
    if not cursors:
        return text, None

    prefix_chunks, _ = split_text_by_keyboard_actions(text[:cursors[0].start_index])
    offset = len("".join(prefix_chunks))

    result = text
    for cmd in reversed(cursors):
        result = result[:cmd.start_index] + result[cmd.end_index:]
    return result, offset


class CommandProcessor:
    def __init__(self, clipboard=None, history: Optional[ClipboardHistory] = None, site=None, now=None):
        self.clipboard = clipboard
        self.history = history if history is not None else ClipboardHistory()
        self.site = site
        self.now = now or datetime.now

    async def read_clipboard(self) -> str:
        if self.clipboard is None:
            raise ClipboardUnavailable("no clipboard reader configured")
        text = await self.clipboard.read_text()
        self.history.record(text)
        return text

    def get_site_info(self, parameter: Optional[str]) -> str:
        param = (parameter or "url").strip().lower()
        if param not in ("domain", "title", "url", "selection"):
            raise UnknownCommand(f"Unknown site parameter: {parameter}")
        if self.site is None:
            return ""

        if param == "domain":
            return self.site.get_domain() or ""
        if param == "title":
            return self.site.get_title() or ""
        if param == "url":
            return self.site.get_url() or ""
        return self.site.get_selection() or ""

    async def _resolve_command(self, cmd: ParsedCommand, now: datetime) -> str:
        if cmd.kind == "date":
            return format_date(now, cmd.options)
        if cmd.kind == "time":
            return format_time(now, cmd.options)
        if cmd.kind == "clipboard":
            try:
                return await self.read_clipboard()
            except ClipboardUnavailable as e:
                logger.warning(f"Clipboard access denied or unavailable: {e.message}")
                return cmd.raw_match
        if cmd.kind == "clipboardh":
            return self.history.get(int(cmd.options))
        if cmd.kind == "site":
            try:
                return self.get_site_info(cmd.options)
            except UnknownCommand as e:
                logger.warning(e.message)
                return ""
        if cmd.kind == "note":
            return ""
        return cmd.raw_match

    async def process_commands(self, text: str, form_data=None) -> str:
        """
        Resolves value commands. Action commands ({cursor}, {enter}, {tab},
        {delay}, {key}) are left in place for extraction.
        """
        text = strip_notes(text)
        text = substitute_form_values(text, form_data or {})

        commands = [cmd for cmd in parse(text) if not cmd.is_action]
        if not commands:
            return text

        now = self.now()

        # Values are read in source order so a {clipboardh1} written before a
        # {clipboard} sees the history as it was before that read.
        replacements = []
        for cmd in commands:
            replacements.append(await self._resolve_command(cmd, now))

        # Splice in reverse to preserve indices
        result = text
        for cmd, replacement in reversed(list(zip(commands, replacements))):
            result = result[:cmd.start_index] + replacement + result[cmd.end_index:]
        return result

    async def resolve(self, raw: str, form_data=None) -> ResolvedExpansion:
        text = await self.process_commands(raw, form_data)
        text, cursor_offset = extract_cursor(text)
        chunks, actions = split_text_by_keyboard_actions(text)
        return ResolvedExpansion(
            text="".join(chunks),
            chunks=chunks,
            actions=actions,
            cursor_offset=cursor_offset,
        )
