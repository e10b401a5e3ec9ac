from __future__ import annotations

import asyncio

import pytest
from _fakes import CONTROL_ONLY_CHUNKS, FakeLocator, FakePty, RecordingOpener, max_loop_stall

from quotaprobe.errors import LaunchError, RunError, RunErrorKind
from quotaprobe.terminal.models import RunOptions, TerminalSize
from quotaprobe.terminal.runner import AutoResponder, InteractiveRunner


def _options(**overrides: object) -> RunOptions:
    values: dict[str, object] = {
        "timeout": 2.0,
        "settle_delay": 0.0,
        "idle_timeout": 0.05,
        "poll_interval": 0.005,
        "terminate_grace": 0.0,
    }
    values.update(overrides)
    return RunOptions(**values)  # type: ignore[arg-type]


def _runner(pty: FakePty, *, found: dict[str, str] | None = None) -> tuple[InteractiveRunner, RecordingOpener]:
    opener = RecordingOpener(pty)
    locator = FakeLocator({"claude": "/usr/local/bin/claude"} if found is None else found)
    return InteractiveRunner(locator=locator, opener=opener, environment={"HOME": "/home/dev"}), opener


def test_auto_responder_answers_each_prompt_once() -> None:
    responder = AutoResponder({"Esc to cancel": "\r", "Press Enter to continue": "\r"})

    assert responder.pending("Loading...") == []
    assert responder.pending("\x1b[1mEsc\x1b[0m to cancel") == [("Esc to cancel", "\r")]
    assert responder.pending("Esc to cancel\nPress Enter to continue") == [("Press Enter to continue", "\r")]
    assert responder.pending("Esc to cancel\nPress Enter to continue") == []


def test_run_sends_trimmed_input_and_returns_output() -> None:
    pty = FakePty([b"\x1b]0;claude\x07", b"Current session\r\n", b"65% left\r\n"])
    runner, opener = _runner(pty)

    result = asyncio.run(runner.run("claude", "  /usage \n", _options(arguments=("--flag",))))

    assert "65% left" in result.output
    assert result.exit_code == -1
    assert pty.writes[0] == "/usage\r"
    assert pty.terminated
    argv, env, _cwd, size = opener.calls[0]
    assert argv == ["/usr/local/bin/claude", "--flag"]
    assert env is not None and env["TERM"] == "xterm-256color"
    assert size == TerminalSize()


def test_run_skips_writing_empty_input() -> None:
    pty = FakePty([b"ready\r\n"])
    runner, _opener = _runner(pty)

    asyncio.run(runner.run("claude", "   ", _options()))

    assert pty.writes == []


def test_run_answers_prompt_once() -> None:
    pty = FakePty(
        [b"Press Enter to continue", b"...", b"Press Enter to continue again"],
        replies={"": [b"Current session 80% left\r\n"]},
    )
    runner, _opener = _runner(pty)

    result = asyncio.run(runner.run("claude", "", _options(auto_responses={"Press Enter to continue": "\r"})))

    assert pty.writes == ["\r"]
    assert "80% left" in result.output


def test_run_reports_exit_code_when_child_exits() -> None:
    pty = FakePty([b"done\r\n"], exit_after_reads=2)
    runner, _opener = _runner(pty)

    result = asyncio.run(runner.run("claude", "", _options(idle_timeout=5.0)))

    assert result.exit_code == 0
    assert result.output == "done\r\n"


def test_run_raises_when_binary_missing() -> None:
    pty = FakePty()
    runner, opener = _runner(pty, found={})

    with pytest.raises(RunError) as exc_info:
        asyncio.run(runner.run("claude", "/usage", _options()))

    assert exc_info.value.kind == RunErrorKind.BINARY_NOT_FOUND
    assert exc_info.value.detail == "claude"
    assert opener.calls == []


def test_run_wraps_launch_errors() -> None:
    opener = RecordingOpener(error=LaunchError("spawn failed", hint="check permissions"))
    runner = InteractiveRunner(locator=FakeLocator({"claude": "/bin/claude"}), opener=opener)

    with pytest.raises(RunError) as exc_info:
        asyncio.run(runner.run("claude", "", _options()))

    assert exc_info.value.kind == RunErrorKind.LAUNCH_FAILED
    assert exc_info.value.hint == "check permissions"


def test_escape_only_output_times_out() -> None:
    pty = FakePty([b"\x1b[2J\x1b[H", b"\x1b]0;busy\x07"] * 20)
    runner, _opener = _runner(pty)

    with pytest.raises(RunError) as exc_info:
        asyncio.run(runner.run("claude", "", _options(timeout=0.2)))

    assert exc_info.value.kind == RunErrorKind.TIMED_OUT
    assert pty.terminated


def test_silent_child_times_out() -> None:
    pty = FakePty()
    runner, _opener = _runner(pty)

    with pytest.raises(RunError) as exc_info:
        asyncio.run(runner.run("claude", "", _options(timeout=0.1)))

    assert exc_info.value.kind == RunErrorKind.TIMED_OUT


def test_deadline_returns_partial_meaningful_output() -> None:
    chunks = [b"Current session\r\n"] + [b"x"] * 400
    pty = FakePty(chunks)
    runner, _opener = _runner(pty)

    result = asyncio.run(runner.run("claude", "", _options(timeout=0.2, idle_timeout=10.0)))

    assert result.output.startswith("Current session")
    assert pty.terminated


def test_cancellation_still_terminates_child() -> None:
    pty = FakePty()
    runner, opener = _runner(pty)

    async def scenario() -> None:
        task = asyncio.create_task(runner.run("claude", "", _options(timeout=30.0)))
        while not opener.calls:
            await asyncio.sleep(0.01)
        await asyncio.sleep(0.02)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(scenario())

    assert pty.terminated


def test_control_traffic_after_output_does_not_hold_off_idle_exit() -> None:
    pty = FakePty([b"Current session\r\n65% left\r\n"] + CONTROL_ONLY_CHUNKS * 300)
    runner, _opener = _runner(pty)

    async def scenario() -> tuple[float, str]:
        loop = asyncio.get_running_loop()
        started = loop.time()
        result = await runner.run("claude", "", _options(timeout=3.0, idle_timeout=0.1))
        return loop.time() - started, result.output

    elapsed, output = asyncio.run(scenario())

    assert "65% left" in output
    assert elapsed < 1.0
    assert pty.pending


def test_slow_child_teardown_does_not_stall_event_loop() -> None:
    pty = FakePty([b"Current session 65% left\r\n"], terminate_delay=0.3)
    runner, _opener = _runner(pty)

    async def scenario() -> float:
        _result, stall = await max_loop_stall(runner.run("claude", "", _options()))
        return stall

    stall = asyncio.run(scenario())

    assert pty.terminated
    assert stall < 0.15
