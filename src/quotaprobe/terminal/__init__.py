"""Pseudo-terminal driving, output capture and screen rendering."""

from .ansi import has_meaningful_content, is_meaningful_data, strip_ansi
from .locator import BinaryLocator, terminal_environment
from .models import CaptureBuffer, RunOptions, RunResult, SessionConfig, SessionState, TerminalSize
from .pty_backend import PtySession
from .renderer import TerminalRenderer, render
from .runner import AutoResponder, InteractiveRunner
from .session import PersistentSession

__all__ = [
    "AutoResponder",
    "BinaryLocator",
    "CaptureBuffer",
    "has_meaningful_content",
    "InteractiveRunner",
    "is_meaningful_data",
    "PersistentSession",
    "PtySession",
    "render",
    "RunOptions",
    "RunResult",
    "SessionConfig",
    "SessionState",
    "strip_ansi",
    "terminal_environment",
    "TerminalRenderer",
    "TerminalSize",
]
