"""Rendered CLI output to usage snapshots."""

from .claude import parse_claude_usage
from .codex import parse_codex_status
from .common import clean_reset_text, parse_reset, percent_from_line
from .gemini import parse_gemini_stats

__all__ = [
    "clean_reset_text",
    "parse_claude_usage",
    "parse_codex_status",
    "parse_gemini_stats",
    "parse_reset",
    "percent_from_line",
]
