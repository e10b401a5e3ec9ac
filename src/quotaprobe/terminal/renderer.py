"""Flatten raw terminal output into the final screen text with pyte."""

from __future__ import annotations

import pyte

from quotaprobe.terminal.models import TerminalSize


class TerminalRenderer:
    """Write-only virtual terminal used to resolve redraws into plain text."""

    def __init__(self, size: TerminalSize | None = None) -> None:
        self.size = size or TerminalSize()

    def render(self, raw: str | bytes) -> str:
        text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
        screen = pyte.Screen(self.size.cols, self.size.rows)
        # LNM makes a bare line feed also return the carriage.
        screen.set_mode(pyte.modes.LNM)
        stream = pyte.Stream(screen)
        stream.feed(text)
        return _screen_text(screen, self.size)


def _screen_text(screen: pyte.Screen, size: TerminalSize) -> str:
    lines: list[str] = []
    for row in range(size.rows):
        line = screen.buffer[row]
        cells = []
        for col in range(size.cols):
            char = line[col].data
            cells.append(" " if char == "\x00" else char)
        lines.append("".join(cells).rstrip())
    while lines and not lines[-1]:
        lines.pop()
    return "\n".join(lines)


def render(raw: str | bytes, size: TerminalSize | None = None) -> str:
    return TerminalRenderer(size).render(raw)
