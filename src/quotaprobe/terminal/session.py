"""Long-lived CLI session that answers repeated commands over one pseudo-terminal."""

from __future__ import annotations

import asyncio
import logging as py_logging
from collections.abc import Mapping

from quotaprobe.errors import LaunchError, SessionError, SessionErrorKind
from quotaprobe.terminal.ansi import is_meaningful_data, strip_ansi
from quotaprobe.terminal.locator import BinaryLocator
from quotaprobe.terminal.models import CaptureBuffer, SessionConfig, SessionState
from quotaprobe.terminal.pty_backend import PtySession
from quotaprobe.terminal.runner import AutoResponder, SessionOpener, resolve_environment

logger = py_logging.getLogger(__name__)

_TAIL_LINES = 5


def is_typed_command(command: str) -> bool:
    """Slash commands are typed key by key so the CLI's autocomplete keeps up."""
    return command.startswith("/")


class PersistentSession:
    """Start the CLI once, then reuse it for every command.

    Commands are serialised; a command issued while another is running waits
    for the first one to finish.
    """

    def __init__(
        self,
        config: SessionConfig,
        *,
        locator: BinaryLocator | None = None,
        opener: SessionOpener | None = None,
        environment: Mapping[str, str] | None = None,
    ) -> None:
        self.config = config
        self.locator = locator or BinaryLocator()
        self._open = opener or PtySession.open
        self._base_environment = environment
        self._pty: PtySession | None = None
        self._state = SessionState.NOT_STARTED
        self._lock = asyncio.Lock()

    @property
    def state(self) -> SessionState:
        return self._state

    def is_running(self) -> bool:
        return self._pty is not None and self._pty.is_running()

    async def start(self) -> None:
        async with self._lock:
            if self._state == SessionState.READY and self.is_running():
                return
            await self._teardown()
            self._state = SessionState.STARTING

            executable = await asyncio.to_thread(self.locator.locate, self.config.binary)
            if executable is None:
                self._state = SessionState.STOPPED
                raise SessionError(SessionErrorKind.BINARY_NOT_FOUND, self.config.binary)

            env = await resolve_environment(self.locator, self._base_environment)
            try:
                self._pty = self._open(
                    [executable, *self.config.arguments],
                    env=env,
                    cwd=self.config.working_directory,
                    size=self.config.size,
                )
            except LaunchError as exc:
                self._state = SessionState.STOPPED
                raise SessionError(SessionErrorKind.LAUNCH_FAILED, exc.message, hint=exc.hint) from exc

            try:
                await self._wait_for_ready(self._pty)
            except BaseException:
                await self._teardown()
                raise
            self._state = SessionState.READY
            logger.info("session-ready binary=%s pid=%s", self.config.binary, self._pty.pid)

    async def send_command(self, command: str, timeout: float | None = None) -> str:
        async with self._lock:
            pty = self._pty
            if pty is None:
                raise SessionError(SessionErrorKind.NOT_STARTED, hint="Call start() first.")
            if not pty.is_running():
                logger.warning("session-died binary=%s before command=%r", self.config.binary, command)
                await self._teardown()
                raise SessionError(SessionErrorKind.SESSION_DIED, self.config.binary)

            self._state = SessionState.BUSY
            try:
                pty.read_available()
                await self._deliver(pty, command)
                return await self._capture(pty, timeout or self.config.command_timeout)
            finally:
                if pty.is_running():
                    self._state = SessionState.READY
                else:
                    await self._teardown()

    async def stop(self) -> None:
        if self._state == SessionState.STOPPED and self._pty is None:
            return
        logger.debug("session-stop binary=%s", self.config.binary)
        await self._teardown()

    async def _teardown(self) -> None:
        pty, self._pty = self._pty, None
        if pty is not None:
            await asyncio.to_thread(pty.terminate, self.config.terminate_grace)
        if self._state != SessionState.NOT_STARTED or pty is not None:
            self._state = SessionState.STOPPED

    async def _wait_for_ready(self, pty: PtySession) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.config.startup_timeout
        buffer = CaptureBuffer()
        responder = AutoResponder(self.config.auto_responses)
        while loop.time() < deadline:
            buffer.append(pty.read_available())
            captured = buffer.text()
            for prompt, response in responder.pending(captured):
                logger.debug("session-auto-respond prompt=%r", prompt)
                pty.write(response)
            if self.config.ready_marker in strip_ansi(captured):
                return
            if not pty.is_running():
                raise SessionError(SessionErrorKind.SESSION_DIED, "exited during startup")
            await asyncio.sleep(self.config.poll_interval)
        raise SessionError(
            SessionErrorKind.TIMED_OUT,
            f"no ready marker within {self.config.startup_timeout:.0f}s",
            hint="Raise the session startup timeout for slow machines.",
        )

    async def _deliver(self, pty: PtySession, command: str) -> None:
        if not is_typed_command(command):
            pty.write(command + "\r")
            return
        for char in command:
            pty.write(char)
            await asyncio.sleep(self.config.keystroke_delay)
        await asyncio.sleep(self.config.submit_delay)
        pty.write("\r")

    async def _capture(self, pty: PtySession, timeout: float) -> str:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        buffer = CaptureBuffer()
        responder = AutoResponder(self.config.auto_responses)
        last_data = loop.time()

        while True:
            now = loop.time()
            chunk = pty.read_available()
            if chunk:
                buffer.append(chunk)
                if is_meaningful_data(chunk):
                    last_data = now
            captured = buffer.text()
            for prompt, response in responder.pending(captured):
                pty.write(response)
                last_data = now

            idle = now - last_data >= self.config.idle_timeout
            if self._is_complete(strip_ansi(captured), idle):
                break
            if len(buffer) > self.config.min_content_length and idle:
                break
            if not pty.is_running():
                if len(buffer):
                    break
                raise SessionError(SessionErrorKind.SESSION_DIED, "exited while running a command")
            if now >= deadline:
                if len(buffer):
                    logger.debug("session-deadline returning partial output bytes=%s", len(buffer))
                    break
                raise SessionError(SessionErrorKind.TIMED_OUT, f"no output within {timeout:.0f}s")
            await asyncio.sleep(self.config.poll_interval)

        return buffer.text()

    def _is_complete(self, visible: str, idle: bool) -> bool:
        markers = self.config.content_markers
        has_content = any(marker in visible for marker in markers) if markers else bool(visible.strip())
        if not has_content:
            return False
        if idle:
            return True
        tail = "\n".join(visible.splitlines()[-_TAIL_LINES:])
        if self.config.ready_marker in tail:
            return True
        lowered = tail.lower()
        return any(marker.lower() in lowered for marker in self.config.completion_markers)
