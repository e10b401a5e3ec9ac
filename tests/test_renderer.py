from __future__ import annotations

from quotaprobe.terminal.models import TerminalSize
from quotaprobe.terminal.renderer import TerminalRenderer, render


def test_render_resolves_cursor_forward_into_spaces() -> None:
    assert render("Hello\x1b[5CWorld") == "Hello     World"


def test_render_keeps_only_final_redraw() -> None:
    assert render("Loading...\r\x1b[2KDone") == "Done"
    assert render("old content\x1b[2J\x1b[HNew") == "New"


def test_bare_line_feed_returns_carriage() -> None:
    assert render("first\nsecond") == "first\nsecond"


def test_trailing_blank_rows_and_spaces_are_dropped() -> None:
    assert render("line   \r\n\r\n\r\n") == "line"
    assert render("") == ""


def test_render_drops_title_and_charset_sequences() -> None:
    assert render("\x1b]0;claude\x07\x1b(BText") == "Text"


def test_render_accepts_bytes_and_wide_characters() -> None:
    assert render("❯ ready\r\n".encode()) == "❯ ready"


def test_cursor_positioning_builds_table_rows() -> None:
    raw = "\x1b[1;1HModel\x1b[1;20HUsage\x1b[2;1Hgemini-2.5-pro\x1b[2;20H85.0%"

    assert render(raw) == "Model              Usage\ngemini-2.5-pro     85.0%"


def test_renderer_respects_screen_width() -> None:
    renderer = TerminalRenderer(TerminalSize(rows=5, cols=10))

    assert renderer.render("abcdefghijKLM") == "abcdefghij\nKLM"
