"""Deterministic error model and exit code contract."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, IntEnum


class ExitCode(IntEnum):
    SUCCESS = 0
    INVALID_ARGS = 2
    CONFIG_ERROR = 3
    RUNTIME_ERROR = 4
    PROBE_ERROR = 5
    LAUNCH_ERROR = 6
    VALIDATION_ERROR = 7
    UNSUPPORTED_PLATFORM = 8


@dataclass
class QuotaProbeError(Exception):
    message: str
    code: ExitCode = ExitCode.RUNTIME_ERROR
    hint: str = ""

    def __str__(self) -> str:
        if self.hint:
            return f"{self.message} Hint: {self.hint}"
        return self.message


def user_facing_error(message: str, *, hint: str = "") -> str:
    if hint:
        return f"Error: {message}. Next step: {hint}"
    return f"Error: {message}."


class LaunchError(QuotaProbeError):
    """Opening the pseudo-terminal or spawning the child failed."""

    def __init__(self, message: str, *, hint: str = "") -> None:
        super().__init__(message, code=ExitCode.LAUNCH_ERROR, hint=hint)


class RunErrorKind(str, Enum):
    BINARY_NOT_FOUND = "binary_not_found"
    LAUNCH_FAILED = "launch_failed"
    TIMED_OUT = "timed_out"


class RunError(QuotaProbeError):
    def __init__(self, kind: RunErrorKind, detail: str = "", *, hint: str = "") -> None:
        super().__init__(_run_message(kind, detail), code=ExitCode.RUNTIME_ERROR, hint=hint)
        self.kind = kind
        self.detail = detail


def _run_message(kind: RunErrorKind, detail: str) -> str:
    if kind == RunErrorKind.BINARY_NOT_FOUND:
        return f"CLI binary not found: {detail}"
    if kind == RunErrorKind.LAUNCH_FAILED:
        return f"Failed to launch CLI: {detail}"
    return "CLI did not produce output before the timeout"


class SessionErrorKind(str, Enum):
    BINARY_NOT_FOUND = "binary_not_found"
    LAUNCH_FAILED = "launch_failed"
    NOT_STARTED = "not_started"
    SESSION_DIED = "session_died"
    TIMED_OUT = "timed_out"
    INVALID_OUTPUT = "invalid_output"


_SESSION_MESSAGES = {
    SessionErrorKind.BINARY_NOT_FOUND: "CLI binary not found",
    SessionErrorKind.LAUNCH_FAILED: "Failed to launch CLI session",
    SessionErrorKind.NOT_STARTED: "Session has not been started",
    SessionErrorKind.SESSION_DIED: "Session process exited unexpectedly",
    SessionErrorKind.TIMED_OUT: "Session command timed out",
    SessionErrorKind.INVALID_OUTPUT: "Session produced invalid output",
}


class SessionError(QuotaProbeError):
    def __init__(self, kind: SessionErrorKind, detail: str = "", *, hint: str = "") -> None:
        message = _SESSION_MESSAGES[kind]
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message, code=ExitCode.RUNTIME_ERROR, hint=hint)
        self.kind = kind
        self.detail = detail


class ProbeErrorKind(str, Enum):
    CLI_NOT_FOUND = "cli_not_found"
    AUTHENTICATION_REQUIRED = "authentication_required"
    FOLDER_TRUST_REQUIRED = "folder_trust_required"
    SESSION_EXPIRED = "session_expired"
    TIMEOUT = "timeout"
    PARSE_FAILED = "parse_failed"
    EXECUTION_FAILED = "execution_failed"
    UPDATE_REQUIRED = "update_required"


class ProbeError(QuotaProbeError):
    """Classified probe failure; callers branch on ``kind``."""

    def __init__(self, kind: ProbeErrorKind, detail: str = "") -> None:
        message, hint = _probe_message(kind, detail)
        super().__init__(message, code=ExitCode.PROBE_ERROR, hint=hint)
        self.kind = kind
        self.detail = detail

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ProbeError):
            return NotImplemented
        return self.kind == other.kind and self.detail == other.detail

    def __hash__(self) -> int:
        return hash((self.kind, self.detail))

    def __repr__(self) -> str:
        return f"ProbeError(kind={self.kind.value!r}, detail={self.detail!r})"

    @classmethod
    def cli_not_found(cls, binary: str) -> ProbeError:
        return cls(ProbeErrorKind.CLI_NOT_FOUND, binary)

    @classmethod
    def authentication_required(cls) -> ProbeError:
        return cls(ProbeErrorKind.AUTHENTICATION_REQUIRED)

    @classmethod
    def folder_trust_required(cls, path: str) -> ProbeError:
        return cls(ProbeErrorKind.FOLDER_TRUST_REQUIRED, path)

    @classmethod
    def session_expired(cls) -> ProbeError:
        return cls(ProbeErrorKind.SESSION_EXPIRED)

    @classmethod
    def timeout(cls) -> ProbeError:
        return cls(ProbeErrorKind.TIMEOUT)

    @classmethod
    def parse_failed(cls, reason: str) -> ProbeError:
        return cls(ProbeErrorKind.PARSE_FAILED, reason)

    @classmethod
    def execution_failed(cls, reason: str) -> ProbeError:
        return cls(ProbeErrorKind.EXECUTION_FAILED, reason)

    @classmethod
    def update_required(cls) -> ProbeError:
        return cls(ProbeErrorKind.UPDATE_REQUIRED)


def _probe_message(kind: ProbeErrorKind, detail: str) -> tuple[str, str]:
    if kind == ProbeErrorKind.CLI_NOT_FOUND:
        return f"CLI '{detail}' not found", f"Install {detail} and make sure it is on PATH."
    if kind == ProbeErrorKind.AUTHENTICATION_REQUIRED:
        return "Authentication required", "Run the CLI once and log in."
    if kind == ProbeErrorKind.FOLDER_TRUST_REQUIRED:
        return (
            f"Folder trust required for {detail or 'the probe directory'}",
            "Open the CLI in that folder once and accept the trust prompt.",
        )
    if kind == ProbeErrorKind.SESSION_EXPIRED:
        return "Session expired", "Log in again with the CLI."
    if kind == ProbeErrorKind.TIMEOUT:
        return "Probe timed out", "Retry, or raise the probe timeout in the config."
    if kind == ProbeErrorKind.PARSE_FAILED:
        return f"Failed to parse usage output: {detail}", ""
    if kind == ProbeErrorKind.UPDATE_REQUIRED:
        return "CLI update required", "Update the CLI to its latest version."
    return f"Probe execution failed: {detail}", ""
