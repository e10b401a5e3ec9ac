"""Terminal-layer value types shared by the runner and the persistent session."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType

DEFAULT_READY_MARKER = "❯"


@dataclass(frozen=True)
class TerminalSize:
    rows: int = 50
    cols: int = 160


class SessionState(str, Enum):
    NOT_STARTED = "not_started"
    STARTING = "starting"
    READY = "ready"
    BUSY = "busy"
    STOPPED = "stopped"


def _frozen_mapping(value: Mapping[str, str] | None) -> Mapping[str, str]:
    return MappingProxyType(dict(value or {}))


@dataclass(frozen=True)
class RunOptions:
    timeout: float = 20.0
    working_directory: str | None = None
    arguments: tuple[str, ...] = ()
    auto_responses: Mapping[str, str] = field(default_factory=dict)
    settle_delay: float = 0.4
    idle_timeout: float = 3.0
    poll_interval: float = 0.06
    terminate_grace: float = 2.0
    size: TerminalSize = field(default_factory=TerminalSize)

    def __post_init__(self) -> None:
        object.__setattr__(self, "arguments", tuple(self.arguments))
        object.__setattr__(self, "auto_responses", _frozen_mapping(self.auto_responses))


@dataclass(frozen=True)
class RunResult:
    output: str
    exit_code: int


@dataclass(frozen=True)
class SessionConfig:
    binary: str
    arguments: tuple[str, ...] = ()
    working_directory: str | None = None
    auto_responses: Mapping[str, str] = field(default_factory=dict)
    ready_marker: str = DEFAULT_READY_MARKER
    content_markers: tuple[str, ...] = ()
    completion_markers: tuple[str, ...] = ("escape to cancel",)
    startup_timeout: float = 30.0
    command_timeout: float = 15.0
    idle_timeout: float = 5.0
    min_content_length: int = 500
    keystroke_delay: float = 0.05
    submit_delay: float = 1.0
    poll_interval: float = 0.05
    terminate_grace: float = 2.0
    size: TerminalSize = field(default_factory=TerminalSize)

    def __post_init__(self) -> None:
        object.__setattr__(self, "arguments", tuple(self.arguments))
        object.__setattr__(self, "content_markers", tuple(self.content_markers))
        object.__setattr__(self, "completion_markers", tuple(self.completion_markers))
        object.__setattr__(self, "auto_responses", _frozen_mapping(self.auto_responses))


class CaptureBuffer:
    """Append-only byte accumulator for a single run or command."""

    def __init__(self) -> None:
        self._data = bytearray()

    def __len__(self) -> int:
        return len(self._data)

    def append(self, chunk: bytes) -> None:
        self._data.extend(chunk)

    def to_bytes(self) -> bytes:
        return bytes(self._data)

    def text(self) -> str:
        return self._data.decode("utf-8", errors="replace")
