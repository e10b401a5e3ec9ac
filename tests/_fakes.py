from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable
from typing import TypeVar

from quotaprobe.terminal.models import TerminalSize

T = TypeVar("T")


class FakeLocator:
    def __init__(self, found: dict[str, str] | None = None) -> None:
        self.found = dict(found or {})
        self.lookups: list[str] = []

    def locate(self, tool: str) -> str | None:
        self.lookups.append(tool)
        return self.found.get(tool)

    def shell_path(self) -> str:
        return "/usr/bin:/bin"


class FakePty:
    """Scripted pseudo-terminal: pending chunks are handed out one per read.

    ``replies`` maps a submitted line (everything typed before ``\\r``) to the
    chunks the fake CLI prints in response.
    """

    def __init__(
        self,
        chunks: list[bytes] | None = None,
        *,
        replies: dict[str, list[bytes]] | None = None,
        exit_after_reads: int | None = None,
        alive: bool = True,
        terminate_delay: float = 0.0,
    ) -> None:
        self.pending = list(chunks or [])
        self.replies = dict(replies or {})
        self.exit_after_reads = exit_after_reads
        self.alive = alive
        self.terminate_delay = terminate_delay
        self.writes: list[str] = []
        self.reads = 0
        self.terminated = False
        self.pid = 4242
        self._typed = ""

    def write(self, payload: bytes | str) -> None:
        text = payload.decode() if isinstance(payload, bytes) else payload
        self.writes.append(text)
        self._typed += text
        while "\r" in self._typed:
            line, self._typed = self._typed.split("\r", 1)
            self.pending.extend(self.replies.get(line, []))

    def read_available(self, max_bytes: int = 65536) -> bytes:
        self.reads += 1
        if self.exit_after_reads is not None and self.reads >= self.exit_after_reads:
            self.alive = False
        return self.pending.pop(0) if self.pending else b""

    def is_running(self) -> bool:
        return self.alive and not self.terminated

    @property
    def exit_status(self) -> int | None:
        return None if self.is_running() else 0

    def terminate(self, grace: float = 2.0) -> None:
        # Blocks like a child that ignores SIGTERM for the whole grace window.
        time.sleep(self.terminate_delay)
        self.terminated = True


class RecordingOpener:
    def __init__(self, pty: FakePty | None = None, *, error: Exception | None = None) -> None:
        self.pty = pty
        self.error = error
        self.calls: list[tuple[list[str], dict[str, str] | None, str | None, TerminalSize | None]] = []

    def __call__(
        self,
        argv: list[str],
        *,
        env: dict[str, str] | None = None,
        cwd: str | None = None,
        size: TerminalSize | None = None,
    ) -> FakePty:
        self.calls.append((argv, env, cwd, size))
        if self.error is not None:
            raise self.error
        assert self.pty is not None
        return self.pty


# Cursor save/restore, keypad and cursor-shape modes, and a title whose
# terminator has not arrived yet: none of it is output.
CONTROL_ONLY_CHUNKS = [
    b"\x1b7\x1b8",
    b"\x1b[>4;2m",
    b"\x1b[2 q",
    b"\x1b=",
    b"\x1b[<u",
    b"\x1b]0;Claude Code",
]


async def max_loop_stall(work: Awaitable[T], tick: float = 0.01) -> tuple[T, float]:
    """Await ``work`` beside a ticker and report the longest gap between ticks."""
    loop = asyncio.get_running_loop()
    gaps: list[float] = []
    done = asyncio.Event()

    async def ticker() -> None:
        last = loop.time()
        while not done.is_set():
            await asyncio.sleep(tick)
            now = loop.time()
            gaps.append(now - last)
            last = now

    ticking = asyncio.create_task(ticker())
    try:
        result = await work
    finally:
        done.set()
        await ticking
    return result, max(gaps, default=0.0)
