"""One-shot interactive CLI runs over a pseudo-terminal."""

from __future__ import annotations

import asyncio
import logging as py_logging
from collections.abc import Mapping
from typing import Protocol

from quotaprobe.errors import LaunchError, RunError, RunErrorKind
from quotaprobe.terminal.ansi import has_meaningful_content, is_meaningful_data, strip_ansi
from quotaprobe.terminal.locator import BinaryLocator, terminal_environment
from quotaprobe.terminal.models import CaptureBuffer, RunOptions, RunResult, TerminalSize
from quotaprobe.terminal.pty_backend import PtySession

logger = py_logging.getLogger(__name__)


class SessionOpener(Protocol):
    def __call__(
        self,
        argv: list[str],
        *,
        env: dict[str, str] | None = ...,
        cwd: str | None = ...,
        size: TerminalSize | None = ...,
    ) -> PtySession: ...


class AutoResponder:
    """Answers each configured prompt at most once per capture."""

    def __init__(self, responses: Mapping[str, str]) -> None:
        self.responses = dict(responses)
        self.answered: set[str] = set()

    def pending(self, captured: str) -> list[tuple[str, str]]:
        if len(self.answered) == len(self.responses):
            return []
        visible = strip_ansi(captured)
        matches = []
        for prompt, response in self.responses.items():
            if prompt in self.answered:
                continue
            if prompt in visible or prompt in captured:
                self.answered.add(prompt)
                matches.append((prompt, response))
        return matches


async def resolve_environment(
    locator: BinaryLocator,
    base: Mapping[str, str] | None = None,
) -> dict[str, str]:
    shell_path = await asyncio.to_thread(locator.shell_path)
    return terminal_environment(base, shell_path=shell_path)


class InteractiveRunner:
    def __init__(
        self,
        *,
        locator: BinaryLocator | None = None,
        opener: SessionOpener | None = None,
        environment: Mapping[str, str] | None = None,
    ) -> None:
        self.locator = locator or BinaryLocator()
        self._open = opener or PtySession.open
        self._base_environment = environment

    async def run(self, binary: str, input: str = "", options: RunOptions | None = None) -> RunResult:
        opts = options or RunOptions()
        executable = await asyncio.to_thread(self.locator.locate, binary)
        if executable is None:
            raise RunError(RunErrorKind.BINARY_NOT_FOUND, binary)

        env = await resolve_environment(self.locator, self._base_environment)
        argv = [executable, *opts.arguments]
        try:
            session = self._open(argv, env=env, cwd=opts.working_directory, size=opts.size)
        except LaunchError as exc:
            raise RunError(RunErrorKind.LAUNCH_FAILED, exc.message, hint=exc.hint) from exc

        logger.debug("runner-start binary=%s argv=%s timeout=%.1fs", binary, argv, opts.timeout)
        try:
            buffer, hit_deadline = await self._capture(session, input, opts)
            exit_code = -1 if session.is_running() else _exit_code(session.exit_status)
        finally:
            # terminate() sleeps through the grace window; keep the loop free for other providers.
            await asyncio.to_thread(session.terminate, opts.terminate_grace)

        output = buffer.text()
        if not output or (hit_deadline and not has_meaningful_content(output)):
            logger.info("runner-timeout binary=%s captured=%s bytes", binary, len(buffer))
            raise RunError(RunErrorKind.TIMED_OUT, binary)
        logger.debug("runner-done binary=%s bytes=%s exit_code=%s", binary, len(buffer), exit_code)
        return RunResult(output=output, exit_code=exit_code)

    async def _capture(
        self, session: PtySession, input: str, opts: RunOptions
    ) -> tuple[CaptureBuffer, bool]:
        loop = asyncio.get_running_loop()
        buffer = CaptureBuffer()
        responder = AutoResponder(opts.auto_responses)
        started = loop.time()

        await asyncio.sleep(opts.settle_delay)
        command = input.strip()
        if command:
            session.write(command + "\r")

        last_meaningful: float | None = None
        hit_deadline = False
        while True:
            now = loop.time()
            chunk = session.read_available()
            if chunk:
                buffer.append(chunk)
                if is_meaningful_data(chunk):
                    last_meaningful = now

            for prompt, response in responder.pending(buffer.text()):
                logger.debug("runner-auto-respond prompt=%r", prompt)
                session.write(response)
                last_meaningful = now

            if not session.is_running():
                break
            if last_meaningful is not None and now - last_meaningful >= opts.idle_timeout:
                break
            if now - started >= opts.timeout:
                logger.debug("runner-deadline elapsed=%.2fs meaningful=%s", now - started, last_meaningful is not None)
                hit_deadline = True
                break
            await asyncio.sleep(opts.poll_interval)

        buffer.append(session.read_available())
        return buffer, hit_deadline


def _exit_code(status: int | None) -> int:
    return -1 if status is None else status
