from __future__ import annotations

import asyncio

import pytest
from _fakes import CONTROL_ONLY_CHUNKS, FakeLocator, FakePty, RecordingOpener, max_loop_stall

from quotaprobe.errors import SessionError, SessionErrorKind
from quotaprobe.terminal.models import SessionConfig, SessionState
from quotaprobe.terminal.session import PersistentSession, is_typed_command

READY = "\x1b[1m❯\x1b[0m ".encode()


def _config(**overrides: object) -> SessionConfig:
    values: dict[str, object] = {
        "binary": "claude",
        "arguments": ("--allowed-tools", ""),
        "content_markers": ("% left",),
        "startup_timeout": 1.0,
        "command_timeout": 1.0,
        "idle_timeout": 0.05,
        "keystroke_delay": 0.0,
        "submit_delay": 0.0,
        "poll_interval": 0.005,
        "terminate_grace": 0.0,
    }
    values.update(overrides)
    return SessionConfig(**values)  # type: ignore[arg-type]


def _session(pty: FakePty, **overrides: object) -> tuple[PersistentSession, RecordingOpener]:
    opener = RecordingOpener(pty)
    session = PersistentSession(
        _config(**overrides),
        locator=FakeLocator({"claude": "/usr/local/bin/claude"}),
        opener=opener,
        environment={"HOME": "/home/dev"},
    )
    return session, opener


def test_slash_commands_are_typed() -> None:
    assert is_typed_command("/usage")
    assert not is_typed_command("hello")


def test_start_waits_for_ready_marker() -> None:
    pty = FakePty([b"Welcome back\r\n", READY])
    session, opener = _session(pty)

    asyncio.run(session.start())

    assert session.state == SessionState.READY
    assert session.is_running()
    assert opener.calls[0][0] == ["/usr/local/bin/claude", "--allowed-tools", ""]


def test_start_answers_prompts_while_waiting() -> None:
    pty = FakePty([b"Do you trust this folder? Esc to cancel"], replies={"": [READY]})
    session, _opener = _session(pty, auto_responses={"Esc to cancel": "\r"})

    asyncio.run(session.start())

    assert session.state == SessionState.READY
    assert pty.writes == ["\r"]


def test_start_is_a_no_op_when_ready() -> None:
    pty = FakePty([READY])
    session, opener = _session(pty)

    async def scenario() -> None:
        await session.start()
        await session.start()

    asyncio.run(scenario())

    assert len(opener.calls) == 1


def test_start_times_out_without_ready_marker() -> None:
    pty = FakePty([b"loading..."])
    session, _opener = _session(pty, startup_timeout=0.1)

    with pytest.raises(SessionError) as exc_info:
        asyncio.run(session.start())

    assert exc_info.value.kind == SessionErrorKind.TIMED_OUT
    assert session.state == SessionState.STOPPED
    assert pty.terminated


def test_start_reports_child_exit() -> None:
    pty = FakePty([b"fatal: config missing"], exit_after_reads=1)
    session, _opener = _session(pty)

    with pytest.raises(SessionError) as exc_info:
        asyncio.run(session.start())

    assert exc_info.value.kind == SessionErrorKind.SESSION_DIED


def test_start_reports_missing_binary() -> None:
    opener = RecordingOpener(FakePty())
    session = PersistentSession(_config(), locator=FakeLocator(), opener=opener)

    with pytest.raises(SessionError) as exc_info:
        asyncio.run(session.start())

    assert exc_info.value.kind == SessionErrorKind.BINARY_NOT_FOUND
    assert opener.calls == []
    assert session.state == SessionState.STOPPED


def test_send_command_before_start_fails() -> None:
    session, _opener = _session(FakePty())

    with pytest.raises(SessionError) as exc_info:
        asyncio.run(session.send_command("/usage"))

    assert exc_info.value.kind == SessionErrorKind.NOT_STARTED
    assert session.state == SessionState.NOT_STARTED


def test_slash_command_is_typed_per_keystroke() -> None:
    pty = FakePty([READY], replies={"/usage": [b"Current session\r\n65% left\r\n", READY]})
    session, _opener = _session(pty)

    async def scenario() -> str:
        await session.start()
        return await session.send_command("/usage")

    output = asyncio.run(scenario())

    assert pty.writes == ["/", "u", "s", "a", "g", "e", "\r"]
    assert "65% left" in output
    assert session.state == SessionState.READY


def test_plain_command_is_sent_whole_and_stale_output_dropped() -> None:
    pty = FakePty([READY], replies={"hello": [b"hi there, 10% left\r\n"]})
    session, _opener = _session(pty)

    async def scenario() -> str:
        await session.start()
        pty.pending.append(b"stale-data")
        return await session.send_command("hello")

    output = asyncio.run(scenario())

    assert pty.writes == ["hello\r"]
    assert "stale-data" not in output
    assert "10% left" in output


def test_commands_are_serialised() -> None:
    pty = FakePty([READY], replies={"a": [b"A 1% left\r\n"], "b": [b"B 2% left\r\n"]})
    session, _opener = _session(pty)

    async def scenario() -> list[str]:
        await session.start()
        return list(await asyncio.gather(session.send_command("a"), session.send_command("b")))

    first, second = asyncio.run(scenario())

    assert "A 1% left" in first and "B" not in first
    assert "B 2% left" in second
    assert pty.writes == ["a\r", "b\r"]


def test_send_command_on_dead_process_tears_down() -> None:
    pty = FakePty([READY])
    session, _opener = _session(pty)

    async def scenario() -> None:
        await session.start()
        pty.alive = False
        await session.send_command("/usage")

    with pytest.raises(SessionError) as exc_info:
        asyncio.run(scenario())

    assert exc_info.value.kind == SessionErrorKind.SESSION_DIED
    assert session.state == SessionState.STOPPED
    assert pty.terminated


def test_command_without_output_times_out_but_session_survives() -> None:
    pty = FakePty([READY])
    session, _opener = _session(pty, command_timeout=0.1)

    async def scenario() -> None:
        await session.start()
        await session.send_command("/usage")

    with pytest.raises(SessionError) as exc_info:
        asyncio.run(scenario())

    assert exc_info.value.kind == SessionErrorKind.TIMED_OUT
    assert session.state == SessionState.READY


def test_exit_mid_command_returns_partial_output() -> None:
    pty = FakePty([READY], replies={"x": [b"partial output"]})
    session, _opener = _session(pty)

    async def scenario() -> str:
        await session.start()
        pty.exit_after_reads = pty.reads + 2
        return await session.send_command("x")

    output = asyncio.run(scenario())

    assert output == "partial output"
    assert session.state == SessionState.STOPPED


def test_stop_is_idempotent() -> None:
    pty = FakePty([READY])
    session, _opener = _session(pty)

    async def scenario() -> None:
        await session.start()
        await session.stop()
        await session.stop()

    asyncio.run(scenario())

    assert session.state == SessionState.STOPPED
    assert pty.terminated
    assert not session.is_running()


def test_control_traffic_after_reply_does_not_hold_off_idle_completion() -> None:
    reply = [b"Current session\r\n65% left\r\n"] + CONTROL_ONLY_CHUNKS * 300
    pty = FakePty([READY], replies={"/usage": reply})
    session, _opener = _session(pty, command_timeout=3.0, idle_timeout=0.1)

    async def scenario() -> tuple[float, str]:
        await session.start()
        loop = asyncio.get_running_loop()
        started = loop.time()
        output = await session.send_command("/usage")
        return loop.time() - started, output

    elapsed, output = asyncio.run(scenario())

    assert "65% left" in output
    assert elapsed < 1.0
    assert session.state == SessionState.READY


def test_stop_does_not_stall_event_loop() -> None:
    pty = FakePty([READY], terminate_delay=0.3)
    session, _opener = _session(pty)

    async def scenario() -> float:
        await session.start()
        _result, stall = await max_loop_stall(session.stop())
        return stall

    stall = asyncio.run(scenario())

    assert pty.terminated
    assert session.state == SessionState.STOPPED
    assert stall < 0.15
