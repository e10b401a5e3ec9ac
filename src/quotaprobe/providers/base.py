"""Uniform probe contract and the CLI-driven implementation behind it."""

from __future__ import annotations

import asyncio
import logging as py_logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Protocol

from quotaprobe.errors import (
    ProbeError,
    RunError,
    RunErrorKind,
    SessionError,
    SessionErrorKind,
)
from quotaprobe.models import UsageSnapshot
from quotaprobe.terminal.locator import BinaryLocator
from quotaprobe.terminal.models import DEFAULT_READY_MARKER, RunOptions, SessionConfig
from quotaprobe.terminal.renderer import TerminalRenderer
from quotaprobe.terminal.runner import InteractiveRunner
from quotaprobe.terminal.session import PersistentSession

logger = py_logging.getLogger(__name__)

OutputParser = Callable[[str], UsageSnapshot]
SessionFactory = Callable[[SessionConfig], PersistentSession]


class ProbeMode(str, Enum):
    RUNNER = "runner"
    SESSION = "session"


class ProviderProbe(Protocol):
    provider_id: str

    async def is_available(self) -> bool: ...

    async def probe(self) -> UsageSnapshot: ...


@dataclass(frozen=True)
class ProbeSpec:
    """Everything provider-specific about driving one CLI."""

    provider_id: str
    display_name: str
    binary: str
    parser: OutputParser
    command: str = ""
    arguments: tuple[str, ...] = ()
    session_arguments: tuple[str, ...] = ()
    session_command: str = ""
    auto_responses: Mapping[str, str] = field(default_factory=dict)
    ready_marker: str = DEFAULT_READY_MARKER
    content_markers: tuple[str, ...] = ()
    supports_session: bool = False


def map_run_error(error: RunError) -> ProbeError:
    if error.kind == RunErrorKind.BINARY_NOT_FOUND:
        return ProbeError.cli_not_found(error.detail)
    if error.kind == RunErrorKind.TIMED_OUT:
        return ProbeError.timeout()
    return ProbeError.execution_failed(error.message)


def map_session_error(error: SessionError, binary: str) -> ProbeError:
    if error.kind == SessionErrorKind.BINARY_NOT_FOUND:
        return ProbeError.cli_not_found(error.detail or binary)
    if error.kind == SessionErrorKind.TIMED_OUT:
        return ProbeError.timeout()
    return ProbeError.execution_failed(error.message)


class CliUsageProbe:
    """Runner or session, then renderer, then parser, for one provider."""

    def __init__(
        self,
        spec: ProbeSpec,
        *,
        mode: ProbeMode = ProbeMode.RUNNER,
        options: RunOptions | None = None,
        session_config: SessionConfig | None = None,
        locator: BinaryLocator | None = None,
        runner: InteractiveRunner | None = None,
        renderer: TerminalRenderer | None = None,
        session_factory: SessionFactory | None = None,
    ) -> None:
        if mode == ProbeMode.SESSION and not spec.supports_session:
            logger.warning("probe-mode provider=%s has no session mode, using runner", spec.provider_id)
            mode = ProbeMode.RUNNER
        self.spec = spec
        self.provider_id = spec.provider_id
        self.mode = mode
        self.locator = locator or BinaryLocator()
        self.options = options or RunOptions(arguments=spec.arguments, auto_responses=spec.auto_responses)
        self.session_config = session_config or self._default_session_config()
        self._runner = runner or InteractiveRunner(locator=self.locator)
        self._renderer = renderer or TerminalRenderer(self.options.size)
        self._session_factory = session_factory or (
            lambda config: PersistentSession(config, locator=self.locator)
        )
        self._session: PersistentSession | None = None

    def _default_session_config(self) -> SessionConfig:
        return SessionConfig(
            binary=self.spec.binary,
            arguments=self.spec.session_arguments,
            working_directory=self.options.working_directory,
            auto_responses=self.spec.auto_responses,
            ready_marker=self.spec.ready_marker,
            content_markers=self.spec.content_markers,
        )

    async def is_available(self) -> bool:
        found = await asyncio.to_thread(self.locator.locate, self.spec.binary)
        if found is None:
            logger.info("probe-unavailable provider=%s binary=%s", self.provider_id, self.spec.binary)
        return found is not None

    async def probe(self) -> UsageSnapshot:
        self._ensure_working_directory()
        if self.mode == ProbeMode.SESSION:
            raw = await self._probe_session()
        else:
            raw = await self._probe_runner()
        rendered = self._renderer.render(raw)
        logger.debug("probe-output provider=%s rendered:\n%s", self.provider_id, rendered)
        snapshot = self.spec.parser(rendered)
        logger.info(
            "probe-success provider=%s quotas=%s status=%s",
            self.provider_id,
            len(snapshot.quotas),
            snapshot.overall_status.value,
        )
        return snapshot

    async def aclose(self) -> None:
        session, self._session = self._session, None
        if session is not None:
            await session.stop()

    async def _probe_runner(self) -> str:
        try:
            result = await self._runner.run(self.spec.binary, self.spec.command, self.options)
        except RunError as exc:
            logger.error("probe-failed provider=%s error=%s", self.provider_id, exc)
            raise map_run_error(exc) from exc
        return result.output

    async def _probe_session(self) -> str:
        if self._session is None:
            self._session = self._session_factory(self.session_config)
        session = self._session
        try:
            await session.start()
            return await session.send_command(self.spec.session_command or self.spec.command)
        except SessionError as exc:
            logger.error("probe-failed provider=%s mode=session error=%s", self.provider_id, exc)
            if exc.kind in (SessionErrorKind.SESSION_DIED, SessionErrorKind.TIMED_OUT):
                # Drop the session; the next probe starts a fresh one.
                self._session = None
                await session.stop()
            raise map_session_error(exc, self.spec.binary) from exc

    def _ensure_working_directory(self) -> None:
        directory = self.options.working_directory
        if directory:
            try:
                Path(directory).mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                raise ProbeError.execution_failed(f"Cannot create probe directory {directory}: {exc}") from exc
