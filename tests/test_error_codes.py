from __future__ import annotations

from quotaprobe.errors import (
    ExitCode,
    LaunchError,
    ProbeError,
    ProbeErrorKind,
    QuotaProbeError,
    RunError,
    RunErrorKind,
    SessionError,
    SessionErrorKind,
    user_facing_error,
)
from quotaprobe.logging import LOG_LEVELS, configure_logging


def test_exit_codes_are_deterministic() -> None:
    assert int(ExitCode.SUCCESS) == 0
    assert int(ExitCode.INVALID_ARGS) == 2
    assert int(ExitCode.PROBE_ERROR) == 5
    assert int(ExitCode.UNSUPPORTED_PLATFORM) == 8


def test_quotaprobe_error_string_contains_hint() -> None:
    err = QuotaProbeError("claude not found", code=ExitCode.PROBE_ERROR, hint="Install claude")
    assert "Install claude" in str(err)


def test_user_facing_error_template() -> None:
    text = user_facing_error("Probe timed out", hint="Raise the timeout")
    assert text.startswith("Error:")
    assert "Next step" in text
    assert user_facing_error("Plain failure") == "Error: Plain failure."


def test_launch_error_uses_launch_exit_code() -> None:
    err = LaunchError("spawn failed", hint="check PATH")

    assert err.code == ExitCode.LAUNCH_ERROR
    assert err.hint == "check PATH"


def test_run_and_session_errors_expose_kind_and_detail() -> None:
    run_error = RunError(RunErrorKind.BINARY_NOT_FOUND, "claude")
    session_error = SessionError(SessionErrorKind.SESSION_DIED, "exited during startup")

    assert run_error.kind == RunErrorKind.BINARY_NOT_FOUND
    assert run_error.message == "CLI binary not found: claude"
    assert session_error.detail == "exited during startup"
    assert session_error.message.startswith("Session process exited unexpectedly")


def test_probe_errors_compare_by_kind_and_detail() -> None:
    assert ProbeError.timeout() == ProbeError.timeout()
    assert ProbeError.parse_failed("a") != ProbeError.parse_failed("b")
    assert ProbeError.cli_not_found("codex").kind == ProbeErrorKind.CLI_NOT_FOUND
    assert len({ProbeError.timeout(), ProbeError.timeout()}) == 1


def test_probe_error_messages_are_human_readable() -> None:
    assert ProbeError.parse_failed("Could not find session usage").message == (
        "Failed to parse usage output: Could not find session usage"
    )
    assert "/tmp/probe" in ProbeError.folder_trust_required("/tmp/probe").message
    assert ProbeError.authentication_required().hint
    assert ProbeError.execution_failed("boom").code == ExitCode.PROBE_ERROR


def test_logging_levels() -> None:
    logger = configure_logging("WARN")
    assert logger.level == LOG_LEVELS["WARN"]
