"""ptyprocess-backed pseudo-terminal lifecycle for probed CLIs."""

from __future__ import annotations

import errno
import logging as py_logging
import os
import select
import signal
import time
from collections.abc import Callable
from contextlib import suppress

from quotaprobe.errors import ExitCode, LaunchError
from quotaprobe.terminal.models import TerminalSize

logger = py_logging.getLogger(__name__)

PtySpawn = Callable[[list[str], str | None, dict[str, str] | None, TerminalSize], object]

READ_CHUNK = 4096
MAX_READ_PER_CALL = 64 * 1024
_REAP_POLL = 0.02


def _spawn_with_ptyprocess(
    argv: list[str],
    cwd: str | None,
    env: dict[str, str] | None,
    size: TerminalSize,
) -> object:
    try:
        from ptyprocess import PtyProcess
    except ImportError as exc:
        raise LaunchError(
            "ptyprocess backend is unavailable.",
            hint="Pseudo-terminal probing requires a POSIX platform with ptyprocess installed.",
        ) from exc
    return PtyProcess.spawn(argv, cwd=cwd, env=env, dimensions=(size.rows, size.cols))


class PtySession:
    """One child process attached to one pseudo-terminal.

    The session exclusively owns the master file descriptor and the child pid.
    ``terminate`` releases both and is safe to call any number of times.
    """

    def __init__(self, process: object, argv: list[str]) -> None:
        self._process = process
        self.argv = tuple(argv)
        self._eof = False
        self._closed = False

    @classmethod
    def open(
        cls,
        argv: list[str],
        *,
        env: dict[str, str] | None = None,
        cwd: str | None = None,
        size: TerminalSize | None = None,
        spawn: PtySpawn | None = None,
    ) -> PtySession:
        if not argv or not argv[0]:
            raise LaunchError("PTY command cannot be empty.", hint="Provide an executable path.")
        spawner = spawn or _spawn_with_ptyprocess
        try:
            process = spawner(list(argv), cwd, env, size or TerminalSize())
        except LaunchError:
            raise
        except Exception as exc:
            raise LaunchError(
                f"Failed to start {argv[0]} in a pseudo-terminal.",
                hint=str(exc) or "Check that the executable and working directory exist.",
            ) from exc
        logger.debug("pty-open argv=%s pid=%s", argv, getattr(process, "pid", "?"))
        return cls(process, argv)

    @property
    def pid(self) -> int | None:
        return getattr(self._process, "pid", None)

    @property
    def closed(self) -> bool:
        return self._closed

    def write(self, payload: bytes | str) -> None:
        if self._closed:
            raise LaunchError("Cannot write to a closed pseudo-terminal.")
        data = payload.encode("utf-8") if isinstance(payload, str) else payload
        self._process.write(data)

    def read_available(self, max_bytes: int = MAX_READ_PER_CALL) -> bytes:
        """Drain whatever is pending on the master side without blocking."""
        if self._closed or self._eof:
            return b""
        fd = self._process.fd
        chunks: list[bytes] = []
        total = 0
        while total < max_bytes:
            try:
                ready, _, _ = select.select([fd], [], [], 0)
            except (OSError, ValueError):
                self._eof = True
                break
            if not ready:
                break
            try:
                chunk = os.read(fd, min(READ_CHUNK, max_bytes - total))
            except OSError as exc:
                # Linux reports EIO on the master once the slave side is gone.
                if exc.errno in (errno.EIO, errno.EBADF):
                    self._eof = True
                    break
                raise
            if not chunk:
                self._eof = True
                break
            chunks.append(chunk)
            total += len(chunk)
        return b"".join(chunks)

    def is_running(self) -> bool:
        if self._closed:
            return False
        try:
            return bool(self._process.isalive())
        except Exception:
            return False

    @property
    def exit_status(self) -> int | None:
        if self.is_running():
            return None
        status = getattr(self._process, "exitstatus", None)
        if status is not None:
            return int(status)
        signal_status = getattr(self._process, "signalstatus", None)
        if signal_status is not None:
            return -int(signal_status)
        return None

    def terminate(self, grace: float = 2.0) -> None:
        """SIGTERM, wait out ``grace`` seconds, SIGKILL, reap, close the fd."""
        if self._closed:
            return
        try:
            if self.is_running():
                self._signal(signal.SIGTERM)
                deadline = time.monotonic() + max(grace, 0.0)
                while self.is_running() and time.monotonic() < deadline:
                    time.sleep(_REAP_POLL)
                if self.is_running():
                    logger.warning("pty-kill pid=%s grace=%.1fs elapsed, sending SIGKILL", self.pid, grace)
                    self._signal(signal.SIGKILL)
                    with suppress(Exception):
                        self._process.wait()
        finally:
            self._closed = True
            with suppress(Exception):
                self._process.close(force=True)
            logger.debug("pty-close pid=%s status=%s", self.pid, self._final_status())

    def _signal(self, signum: int) -> None:
        with suppress(ProcessLookupError, OSError):
            self._process.kill(signum)

    def _final_status(self) -> int | None:
        status = getattr(self._process, "exitstatus", None)
        return int(status) if status is not None else None

    def __enter__(self) -> PtySession:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.terminate()
