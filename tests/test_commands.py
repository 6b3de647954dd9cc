"""Tests for the command language: parsing, formatting, action extraction, resolution."""

from datetime import datetime

import pytest

from snipsmith import commands
from snipsmith.commands import CommandProcessor, EditorAction
from snipsmith.context import StaticSiteInfo
from snipsmith.errors import ClipboardUnavailable, UnknownCommand
from snipsmith.history import ClipboardHistory


class FakeClipboard:
    def __init__(self, *values):
        self.values = list(values)
        self.reads = 0

    async def read_text(self):
        self.reads += 1
        return self.values.pop(0)


class DeniedClipboard:
    async def read_text(self):
        raise ClipboardUnavailable()


FIXED_NOW = datetime(2024, 5, 3, 14, 5, 9)


@pytest.fixture
def processor():
    return CommandProcessor(now=lambda: FIXED_NOW)


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

class TestParse:
    def test_kinds_in_source_order(self):
        parsed = commands.parse("Hi {date:YYYY} {clipboardh2}{cursor}")
        assert [c.kind for c in parsed] == ["date", "clipboardh", "cursor"]
        assert [c.options for c in parsed] == ["YYYY", "2", None]

    def test_indices_and_raw_match(self):
        text = "ab{time:HH:mm}cd"
        cmd = commands.parse(text)[0]
        assert cmd.raw_match == "{time:HH:mm}"
        assert text[cmd.start_index:cmd.end_index] == cmd.raw_match
        assert cmd.options == "HH:mm"

    def test_space_separated_options(self):
        cmd = commands.parse("{delay +1s}")[0]
        assert cmd.kind == "delay"
        assert cmd.options == "+1s"

    def test_options_are_trimmed(self):
        cmd = commands.parse("{key:  Escape }")[0]
        assert cmd.options == "Escape"

    def test_unknown_commands_are_literal(self):
        assert commands.parse("{bogus} and {Date}") == []

    def test_sent_on_scenario(self):
        parsed = commands.parse("Sent on {date:MMMM D, YYYY} at {time:12h}")
        assert [c.kind for c in parsed] == ["date", "time"]
        assert [c.options for c in parsed] == ["MMMM D, YYYY", "12h"]

    def test_action_flag(self):
        parsed = commands.parse("{cursor}{enter}{date}")
        assert [c.is_action for c in parsed] == [True, True, False]


class TestFormCommands:
    def test_menu_field(self):
        cmd = commands.parse_form_commands("{formmenu: label=Status; options=Active, Inactive; default=Active}")[0]
        field = cmd.form_field
        assert cmd.kind == "form"
        assert field.kind == "menu"
        assert field.name == "status"
        assert field.label == "Status"
        assert field.options == ["Active", "Inactive"]
        assert field.default_value == "Active"

    def test_name_derived_from_label(self):
        field = commands.extract_form_fields("{formtext: label=First Name}")[0]
        assert field.name == "first_name"

    def test_label_falls_back_to_name(self):
        field = commands.extract_form_fields("{formtext: name=who}")[0]
        assert field.label == "who"

    def test_toggle_default_and_bare_required(self):
        field = commands.extract_form_fields("{formtoggle: name=urgent; default=true; required}")[0]
        assert field.kind == "toggle"
        assert field.required is True
        assert field.default_value is True

    def test_has_form_commands(self):
        assert commands.has_form_commands("x {formdate: name=due}")
        assert not commands.has_form_commands("x {date}")

    def test_substitute_values(self):
        text = "Hi {formtext: name=who}, urgent={formtoggle: name=urgent}"
        assert commands.substitute_form_values(text, {"who": "Ada", "urgent": False}) == "Hi Ada, urgent=false"

    def test_missing_value_becomes_empty(self):
        assert commands.substitute_form_values("Hi {formtext: name=who}!", {}) == "Hi !"


class TestNotes:
    def test_block_and_inline_notes_removed(self):
        assert commands.strip_notes("a{note}secret\nstuff{endnote}b{note: hidden}c") == "abc"


# ---------------------------------------------------------------------------
# Date and time
# ---------------------------------------------------------------------------

class TestFormatDate:
    def test_default_format(self):
        assert commands.format_date(FIXED_NOW) == "2024-05-03"

    def test_long_month_is_not_rescanned(self):
        # "May" holds an M; substitution is single-pass so it stays intact
        assert commands.format_date(FIXED_NOW, "MMMM Do, YYYY") == "May 3rd, 2024"

    def test_short_tokens(self):
        assert commands.format_date(FIXED_NOW, "D/M/YY") == "3/5/24"
        assert commands.format_date(FIXED_NOW, "MMM DD") == "May 03"

    @pytest.mark.parametrize("day,suffix", [
        (1, "st"), (2, "nd"), (3, "rd"), (4, "th"), (11, "th"),
        (12, "th"), (13, "th"), (21, "st"), (22, "nd"), (23, "rd"),
    ])
    def test_ordinal_suffix(self, day, suffix):
        assert commands.ordinal_suffix(day) == suffix

    def test_shift_days(self):
        assert commands.format_date(datetime(2024, 3, 1), "YYYY-MM-DD shift -1d") == "2024-02-29"

    def test_shift_month_overflows(self):
        assert commands.format_date(datetime(2023, 1, 31), "shift +1M YYYY-MM-DD") == "2023-03-03"

    def test_shift_year(self):
        assert commands.format_date(datetime(2024, 5, 3), "shift +2Y YYYY") == "2026"

    def test_shift_alone_uses_default_format(self):
        assert commands.format_date(datetime(2024, 5, 3), "shift +1d") == "2024-05-04"


class TestFormatTime:
    def test_default_format(self):
        assert commands.format_time(FIXED_NOW) == "14:05"

    def test_shorthands(self):
        assert commands.format_time(FIXED_NOW, "12h") == "2:05 PM"
        assert commands.format_time(FIXED_NOW, "24h") == "14:05"

    def test_tokens(self):
        assert commands.format_time(FIXED_NOW, "hh:mm:ss A") == "02:05:09 PM"
        assert commands.format_time(FIXED_NOW, "h:mm a") == "2:05 pm"

    def test_midnight_is_twelve(self):
        assert commands.format_time(datetime(2024, 1, 1, 0, 30), "12h") == "12:30 AM"


# ---------------------------------------------------------------------------
# Delays and keys
# ---------------------------------------------------------------------------

class TestDelays:
    def test_parse_delay(self):
        assert commands.parse_delay_ms(None) == 0
        assert commands.parse_delay_ms("+1s") == 1000
        assert commands.parse_delay_ms("500ms") == 500
        assert commands.parse_delay_ms("1.5s") == 1500
        assert commands.parse_delay_ms("soon") == 0

    def test_action_delay_defaults_to_one_second(self):
        assert commands.action_delay_ms(None) == 1000
        assert commands.action_delay_ms("garbage") == 1000
        assert commands.action_delay_ms("250ms") == 250


class TestKeyNames:
    def test_lookup_is_case_insensitive(self):
        info = commands.normalize_key_name("ArrowUp")
        assert info.code == "ArrowUp"
        assert info.key_code == 38

    def test_alias(self):
        assert commands.normalize_key_name("ESC").name == "escape"

    def test_function_keys(self):
        assert commands.normalize_key_name("F5").key_code == 116

    def test_unknown(self):
        assert commands.normalize_key_name("hyper") is None
        assert commands.normalize_key_name(None) is None


# ---------------------------------------------------------------------------
# Action extraction
# ---------------------------------------------------------------------------

class TestKeyboardActions:
    def test_extract_positions(self):
        text, actions = commands.extract_keyboard_actions("Hello{enter}World{tab}!")
        assert text == "HelloWorld!"
        assert [a.position for a in actions] == [5, 10]
        assert [a.action.kind for a in actions] == ["enter", "tab"]
        assert actions[0].raw_match == "{enter}"

    @pytest.mark.parametrize("text", [
        "plain",
        "Hello{enter}World{tab}!",
        "{delay +1s}{key:Escape}x{enter}",
        "a{cursor}b{tab}",
    ])
    def test_reinserting_actions_restores_text(self, text):
        cleaned, actions = commands.extract_keyboard_actions(text)
        rebuilt, shift = cleaned, 0
        for item in actions:
            at = item.position + shift
            rebuilt = rebuilt[:at] + item.raw_match + rebuilt[at:]
            shift += len(item.raw_match)
        assert rebuilt == text

    def test_cursor_is_not_a_keyboard_action(self):
        text, actions = commands.extract_keyboard_actions("a{cursor}b")
        assert text == "a{cursor}b"
        assert actions == []

    def test_split(self):
        chunks, actions = commands.split_text_by_keyboard_actions("A{delay +1s}B{tab}C")
        assert chunks == ["A", "B", "C"]
        assert actions == [EditorAction("delay", "+1s"), EditorAction("tab")]

    def test_split_without_actions(self):
        assert commands.split_text_by_keyboard_actions("plain") == (["plain"], [])

    def test_adjacent_actions_give_empty_chunks(self):
        chunks, actions = commands.split_text_by_keyboard_actions("{enter}{enter}")
        assert chunks == ["", "", ""]
        assert len(actions) == 2

    def test_chunk_count_is_actions_plus_one(self):
        chunks, actions = commands.split_text_by_keyboard_actions("a{key:F1}b{enter}{tab}c")
        assert len(chunks) == len(actions) + 1
        assert "".join(chunks) == "abc"


class TestExtractCursor:
    def test_offset(self):
        assert commands.extract_cursor("Dear {cursor},") == ("Dear ,", 5)

    def test_no_cursor(self):
        assert commands.extract_cursor("Dear,") == ("Dear,", None)

    def test_actions_before_cursor_do_not_count(self):
        text, offset = commands.extract_cursor("A{enter}B{cursor}C")
        assert text == "A{enter}BC"
        assert offset == 2

    def test_every_marker_removed(self):
        assert commands.extract_cursor("a{cursor}b{cursor}c") == ("abc", 1)


# ---------------------------------------------------------------------------
# CommandProcessor
# ---------------------------------------------------------------------------

class TestProcessCommands:
    @pytest.mark.asyncio
    async def test_date_and_time(self, processor):
        assert await processor.process_commands("{date} {time}") == "2024-05-03 14:05"

    @pytest.mark.asyncio
    async def test_actions_stay_in_place(self, processor):
        assert await processor.process_commands("{date}{enter}{cursor}") == "2024-05-03{enter}{cursor}"

    @pytest.mark.asyncio
    async def test_notes_and_forms(self, processor):
        result = await processor.process_commands("{note}private{endnote}Hi {formtext: name=who}", {"who": "Ada"})
        assert result == "Hi Ada"

    @pytest.mark.asyncio
    async def test_clipboard_read_is_recorded(self):
        proc = CommandProcessor(clipboard=FakeClipboard("copied"))
        assert await proc.process_commands("Paste: {clipboard}") == "Paste: copied"
        assert proc.history.get(1) == "copied"

    @pytest.mark.asyncio
    async def test_denied_clipboard_keeps_raw_command(self):
        proc = CommandProcessor(clipboard=DeniedClipboard())
        assert await proc.process_commands("Paste: {clipboard}") == "Paste: {clipboard}"
        assert len(proc.history) == 0

    @pytest.mark.asyncio
    async def test_missing_clipboard_reader_keeps_raw_command(self):
        proc = CommandProcessor()
        assert await proc.process_commands("{clipboard}") == "{clipboard}"

    @pytest.mark.asyncio
    async def test_history_read_before_live_read(self):
        history = ClipboardHistory()
        history.record("old")
        proc = CommandProcessor(clipboard=FakeClipboard("new"), history=history)

        assert await proc.process_commands("{clipboardh1}|{clipboard}") == "old|new"
        assert history.get(1) == "new"
        assert history.get(2) == "old"

    @pytest.mark.asyncio
    async def test_missing_history_slot(self, processor):
        assert await processor.process_commands("[{clipboardh3}]") == "[]"

    @pytest.mark.asyncio
    async def test_site_info(self):
        site = StaticSiteInfo(domain="example.com", title="Example", url="https://example.com/a", selection="sel")
        proc = CommandProcessor(site=site)
        assert await proc.process_commands("{site:domain}") == "example.com"
        assert await proc.process_commands("{site:title}") == "Example"
        assert await proc.process_commands("{site}") == "https://example.com/a"
        assert await proc.process_commands("{site:selection}") == "sel"
        assert await proc.process_commands("[{site:bogus}]") == "[]"

    def test_unknown_site_parameter_raises(self):
        proc = CommandProcessor(site=StaticSiteInfo(domain="example.com"))
        with pytest.raises(UnknownCommand) as exc_info:
            proc.get_site_info("bogus")
        assert exc_info.value.code == "unknown_command"

    @pytest.mark.asyncio
    async def test_site_without_provider(self, processor):
        assert await processor.process_commands("[{site:domain}]") == "[]"


class TestResolve:
    @pytest.mark.asyncio
    async def test_single_shot(self, processor):
        resolved = await processor.resolve("Dear {cursor},")
        assert resolved.text == "Dear ,"
        assert resolved.cursor_offset == 5
        assert not resolved.is_chunked

    @pytest.mark.asyncio
    async def test_chunked_with_cursor(self, processor):
        resolved = await processor.resolve("Hi {formtext: name=who}{enter}{cursor}bye", {"who": "Ada"})
        assert resolved.chunks == ["Hi Ada", "bye"]
        assert resolved.actions == [EditorAction("enter")]
        assert resolved.text == "Hi Adabye"
        assert resolved.cursor_offset == 6

    @pytest.mark.asyncio
    async def test_pairs(self, processor):
        resolved = await processor.resolve("A{delay +1s}B{tab}C")
        assert list(resolved.pairs()) == [
            ("A", EditorAction("delay", "+1s")),
            ("B", EditorAction("tab")),
            ("C", None),
        ]
