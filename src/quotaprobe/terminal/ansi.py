"""Escape-sequence stripping and meaningful-output detection."""

from __future__ import annotations

import re

# OSC, DCS, PM and APC strings run to BEL or ST; one still open at the end of a
# read is control traffic whose terminator has not arrived yet.
_STRING_CONTROL = re.compile(r"\x1b[\]P^_].*?(?:\x07|\x1b\\|\Z)", re.DOTALL)
_CSI = re.compile(r"\x1b\[[0-?]*[ -/]*[@-~]")
_CHARSET = re.compile(r"\x1b[()*+][A-Za-z0-9]")
_TWO_BYTE = re.compile(r"\x1b[=>78@-Z\\c]")
_LEFTOVER_CONTROL = re.compile(r"[\x00-\x08\x0e-\x1f\x7f]")


def strip_ansi(text: str) -> str:
    """Remove escape sequences plus stray C0 control bytes (tabs and newlines stay)."""
    # String controls first: their payload may contain characters the CSI pattern would eat.
    stripped = _STRING_CONTROL.sub("", text)
    stripped = _CSI.sub("", stripped)
    stripped = _CHARSET.sub("", stripped)
    stripped = _TWO_BYTE.sub("", stripped)
    return _LEFTOVER_CONTROL.sub("", stripped)


def has_meaningful_content(text: str) -> bool:
    return bool(strip_ansi(text).strip())


def is_meaningful_data(data: bytes) -> bool:
    """True when ``data`` carries printable output beyond terminal control traffic.

    Cursor saves, keypad modes, cursor-shape changes and window titles are not
    output. Undecodable bytes are treated as meaningful so binary noise still
    keeps the idle clock alive.
    """
    if not data:
        return False
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError:
        return True
    return has_meaningful_content(text)
