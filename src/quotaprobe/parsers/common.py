"""Label-anchored extraction helpers shared by the provider parsers.

Rendered CLI screens are free-form, so every lookup starts at a line that
contains a known label and only scans a bounded window after it. Scanning
the whole document would happily pick up a percentage that belongs to a
different section.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Iterator, Sequence
from datetime import datetime, timedelta, timezone, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from quotaprobe.terminal.ansi import strip_ansi

PERCENT_WINDOW = 12
RESET_WINDOW = 14

_PERCENT = re.compile(r"([0-9]{1,3})\s*%\s*(used|left)", re.IGNORECASE)
_DAYS = re.compile(r"(\d+)\s*d(?:ays?)?", re.IGNORECASE)
_HOURS = re.compile(r"(\d+)\s*h(?:ours?|r)?", re.IGNORECASE)
_MINUTES = re.compile(r"(\d+)\s*m(?:in(?:utes?)?)?", re.IGNORECASE)
_MONTH_DAY = re.compile(
    r"\b(jan|feb|mar|apr|may|jun|jul|aug|sep|oct|nov|dec)[a-z]*\.?\s+(\d{1,2})(?:(?:st|nd|rd|th)\b)?(?:,?\s*(\d{4}))?",
    re.IGNORECASE,
)
_DAY_MONTH = re.compile(
    r"\b(\d{1,2})(?:st|nd|rd|th)?\s+(jan|feb|mar|apr|may|jun|jul|aug|sep|oct|nov|dec)[a-z]*\.?(?:,?\s*(\d{4}))?",
    re.IGNORECASE,
)
_CLOCK = re.compile(r"\b(\d{1,2})(?::(\d{2}))?\s*(am|pm)\b", re.IGNORECASE)
_CLOCK_24H = re.compile(r"\b([01]?\d|2[0-3]):([0-5]\d)\b")
_ZONE = re.compile(r"\(([A-Za-z_]+(?:/[A-Za-z_+\-0-9]+)+|UTC)\)")
_MONTHS = ("jan", "feb", "mar", "apr", "may", "jun", "jul", "aug", "sep", "oct", "nov", "dec")


def clean_lines(text: str) -> list[str]:
    return strip_ansi(text).splitlines()


def label_windows(lines: Sequence[str], label: str, size: int) -> Iterator[Sequence[str]]:
    """Yield ``size`` lines starting at each line that contains ``label``."""
    needle = label.lower()
    for index, line in enumerate(lines):
        if needle in line.lower():
            yield lines[index : index + size]


def percent_from_line(line: str) -> int | None:
    """Remaining percentage from ``NN% left`` or ``NN% used`` phrasing."""
    match = _PERCENT.search(line)
    if match is None:
        return None
    value = int(match.group(1))
    if match.group(2).lower() == "used":
        return max(0, 100 - value)
    return value


def extract_percent(
    lines: Sequence[str],
    labels: str | Iterable[str],
    *,
    window: int = PERCENT_WINDOW,
    pattern: re.Pattern[str] | None = None,
) -> int | None:
    candidates = [labels] if isinstance(labels, str) else list(labels)
    for label in candidates:
        for section in label_windows(lines, label, window):
            for line in section:
                value = _match_percent(line, pattern)
                if value is not None:
                    return value
    return None


def _match_percent(line: str, pattern: re.Pattern[str] | None) -> int | None:
    if pattern is None:
        return percent_from_line(line)
    match = pattern.search(line)
    return int(match.group(1)) if match else None


def extract_reset_line(lines: Sequence[str], label: str, *, window: int = RESET_WINDOW) -> str | None:
    for section in label_windows(lines, label, window):
        for line in section:
            lower = line.lower()
            if "reset" in lower or ("in" in lower and ("h" in lower or "m" in lower)):
                return line.strip()
    return None


def clean_reset_text(text: str | None) -> str | None:
    if text is None:
        return None
    trimmed = text.strip()
    if not trimmed:
        return None
    if trimmed.lower().startswith("reset"):
        return trimmed
    return f"Resets {trimmed}"


def extract_first(pattern: str | re.Pattern[str], text: str) -> str | None:
    regex = pattern if isinstance(pattern, re.Pattern) else re.compile(pattern, re.IGNORECASE)
    match = regex.search(text)
    if match is None:
        return None
    value = match.group(1).strip()
    return value or None


def parse_relative_reset(text: str, now: datetime) -> datetime | None:
    total = timedelta()
    for regex, unit in ((_DAYS, "days"), (_HOURS, "hours"), (_MINUTES, "minutes")):
        match = regex.search(text)
        if match:
            total += timedelta(**{unit: int(match.group(1))})
    if total <= timedelta(0):
        return None
    return now + total


def _zone(text: str, fallback: tzinfo) -> tzinfo:
    match = _ZONE.search(text)
    if match is None:
        return fallback
    name = match.group(1)
    if name.upper() == "UTC":
        return timezone.utc
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return fallback


def _match_date(text: str) -> tuple[int, int, int | None] | None:
    match = _MONTH_DAY.search(text)
    if match:
        month_name, day, year = match.group(1), match.group(2), match.group(3)
    else:
        match = _DAY_MONTH.search(text)
        if match is None:
            return None
        day, month_name, year = match.group(1), match.group(2), match.group(3)
    month = _MONTHS.index(month_name.lower()[:3]) + 1
    return month, int(day), int(year) if year else None


def _match_clock(text: str) -> tuple[int, int] | None:
    match = _CLOCK.search(text)
    if match:
        hour = int(match.group(1)) % 12
        if match.group(3).lower() == "pm":
            hour += 12
        return hour, int(match.group(2) or 0)
    match = _CLOCK_24H.search(text)
    if match:
        return int(match.group(1)), int(match.group(2))
    return None


def parse_absolute_reset(text: str, now: datetime) -> datetime | None:
    """Handle ``Jan 5, 2026``, ``Jan 5 at 3pm``, ``09:00 on 7 Jan`` and bare ``3:30pm (Europe/Paris)``."""
    date = _match_date(text)
    clock = _match_clock(text)
    if date is None and clock is None:
        return None

    zone = _zone(text, now.tzinfo or timezone.utc)
    local_now = now.astimezone(zone)
    hour, minute = clock or (0, 0)
    if minute > 59:
        return None

    try:
        if date:
            month, day, explicit_year = date
            year = explicit_year or local_now.year
            candidate = local_now.replace(year=year, month=month, day=day, hour=hour, minute=minute, second=0, microsecond=0)
            if explicit_year is None and candidate < local_now:
                candidate = candidate.replace(year=year + 1)
        else:
            candidate = local_now.replace(hour=hour, minute=minute, second=0, microsecond=0)
            if candidate <= local_now:
                candidate += timedelta(days=1)
    except ValueError:
        return None
    return candidate.astimezone(timezone.utc)


def parse_reset(text: str | None, now: datetime | None = None) -> datetime | None:
    """Normalise a reset phrase to an aware UTC timestamp."""
    if not text:
        return None
    reference = now or datetime.now(timezone.utc)
    absolute = parse_absolute_reset(text, reference)
    if absolute is not None:
        return absolute
    return parse_relative_reset(text, reference)
