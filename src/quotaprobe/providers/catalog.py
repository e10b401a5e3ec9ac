"""Built-in provider probe specs and their construction from config."""

from __future__ import annotations

from quotaprobe.config import AppConfig
from quotaprobe.parsers import parse_claude_usage, parse_codex_status, parse_gemini_stats
from quotaprobe.providers.base import CliUsageProbe, ProbeMode, ProbeSpec
from quotaprobe.terminal.locator import BinaryLocator
from quotaprobe.terminal.models import RunOptions, SessionConfig, TerminalSize

CLAUDE = ProbeSpec(
    provider_id="claude",
    display_name="Claude",
    binary="claude",
    parser=parse_claude_usage,
    arguments=("/usage", "--allowed-tools", ""),
    session_command="/usage",
    auto_responses={
        "Esc to cancel": "\r",
        "Ready to code here?": "\r",
        "Press Enter to continue": "\r",
        "ctrl+t to disable": "\r",
    },
    content_markers=("% used", "% left", "Current session", "Total cost"),
    supports_session=True,
)

CODEX = ProbeSpec(
    provider_id="codex",
    display_name="Codex",
    binary="codex",
    parser=parse_codex_status,
    command="/status",
    arguments=("-s", "read-only", "-a", "untrusted"),
)

GEMINI = ProbeSpec(
    provider_id="gemini",
    display_name="Gemini",
    binary="gemini",
    parser=parse_gemini_stats,
    command="/stats",
)

CATALOG: dict[str, ProbeSpec] = {spec.provider_id: spec for spec in (CLAUDE, CODEX, GEMINI)}


def binary_overrides(config: AppConfig) -> dict[str, str]:
    overrides: dict[str, str] = {}
    for provider_id, spec in CATALOG.items():
        binary = config.provider(provider_id)["binary"]
        if binary:
            overrides[spec.binary] = binary
    return overrides


def build_probe(
    provider_id: str,
    config: AppConfig,
    *,
    locator: BinaryLocator | None = None,
) -> CliUsageProbe:
    spec = CATALOG[provider_id]
    resolved_locator = locator or BinaryLocator(overrides=binary_overrides(config))
    timing = config.provider_timing(provider_id)
    size = TerminalSize(rows=config.terminal_rows, cols=config.terminal_cols)
    working_directory = str(config.resolved_probe_directory())

    options = RunOptions(
        timeout=timing.timeout,
        working_directory=working_directory,
        arguments=spec.arguments,
        auto_responses=spec.auto_responses,
        settle_delay=timing.settle_delay,
        idle_timeout=timing.idle_timeout,
        poll_interval=timing.poll_interval,
        terminate_grace=config.terminate_grace,
        size=size,
    )
    session_config = SessionConfig(
        binary=spec.binary,
        arguments=spec.session_arguments,
        working_directory=working_directory,
        auto_responses=spec.auto_responses,
        ready_marker=spec.ready_marker,
        content_markers=spec.content_markers,
        startup_timeout=config.session_startup_timeout,
        command_timeout=config.session_command_timeout,
        idle_timeout=config.session_idle_timeout,
        terminate_grace=config.terminate_grace,
        size=size,
    )
    return CliUsageProbe(
        spec,
        mode=ProbeMode(config.provider(provider_id)["mode"]),
        options=options,
        session_config=session_config,
        locator=resolved_locator,
    )


def build_probes(
    config: AppConfig,
    provider_ids: list[str] | None = None,
    *,
    locator: BinaryLocator | None = None,
) -> list[CliUsageProbe]:
    """Probes for the requested providers, or every enabled built-in provider."""
    resolved_locator = locator or BinaryLocator(overrides=binary_overrides(config))
    selected = provider_ids if provider_ids else config.enabled_providers()
    return [build_probe(provider_id, config, locator=resolved_locator) for provider_id in selected if provider_id in CATALOG]
