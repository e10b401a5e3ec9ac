from __future__ import annotations

import time

import pytest

from quotaprobe.parsers import parse_claude_usage
from quotaprobe.terminal import TerminalSize, render, strip_ansi


@pytest.mark.performance
def test_render_of_long_redraw_stream_stays_within_budget() -> None:
    frames = [f"\x1b[H\x1b[2J\x1b[1mCurrent session\x1b[0m\r\n{index % 100}% left\r\n" for index in range(2000)]
    raw = "".join(frames)

    started = time.perf_counter()
    rendered = render(raw, TerminalSize(rows=50, cols=160))
    elapsed = time.perf_counter() - started

    assert rendered == "Current session\n99% left"
    assert elapsed < 5.0, f"render exceeded budget: {elapsed:.3f}s"


@pytest.mark.performance
def test_strip_and_parse_large_capture_stays_within_budget() -> None:
    noise = "\x1b[38;5;208m█\x1b[0m" * 20000
    raw = f"{noise}\r\nCurrent session\r\n65% left\r\nResets in 2h\r\n"

    started = time.perf_counter()
    snapshot = parse_claude_usage(strip_ansi(raw))
    elapsed = time.perf_counter() - started

    assert snapshot.session_quota is not None
    assert elapsed < 2.0, f"strip+parse exceeded budget: {elapsed:.3f}s"
