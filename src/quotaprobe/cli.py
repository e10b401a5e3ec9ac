"""Public CLI contract and entrypoint."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging as py_logging
import sys
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import TextIO

from .alerts import Alert, QuotaAlerter
from .config import AppConfig, get_config_path, load_config, save_config
from .errors import ExitCode, QuotaProbeError, user_facing_error
from .logging import configure_logging, default_log_path
from .models import UsageSnapshot
from .monitor import ProviderState, QuotaMonitor
from .providers import CATALOG, build_probes
from .providers.base import ProviderProbe

_VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARN", "ERROR")
_PROVIDER_CHOICES = tuple(CATALOG)

ProbeFactory = Callable[[AppConfig, list[str]], Sequence[ProviderProbe]]


def _log_level_type(value: str) -> str:
    normalized = value.upper()
    if normalized == "WARNING":
        normalized = "WARN"
    if normalized not in _VALID_LOG_LEVELS:
        accepted = ", ".join(_VALID_LOG_LEVELS)
        raise argparse.ArgumentTypeError(f"--log-level must be one of: {accepted}")
    return normalized


def _provider_type(value: str) -> str:
    normalized = value.strip().lower()
    if normalized not in _PROVIDER_CHOICES:
        accepted = ", ".join(_PROVIDER_CHOICES)
        raise argparse.ArgumentTypeError(f"unknown provider {value!r}; choose from: {accepted}")
    return normalized


def _positive_float(value: str) -> float:
    try:
        number = float(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"expected a number, got {value!r}") from exc
    if number <= 0:
        raise argparse.ArgumentTypeError("value must be greater than zero")
    return number


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"expected an integer, got {value!r}") from exc
    if number <= 0:
        raise argparse.ArgumentTypeError("value must be greater than zero")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="quotaprobe", description="Report AI coding CLI usage quotas.")
    parser.add_argument("--config", type=Path, default=None)
    parser.add_argument("--log-level", type=_log_level_type, default="WARN")
    parser.add_argument("--log-file", type=Path, default=None)
    subcommands = parser.add_subparsers(dest="command", required=True)

    probe = subcommands.add_parser("probe", help="Probe providers once and print their quotas")
    probe.add_argument("providers", nargs="*", type=_provider_type, metavar="provider")
    probe.add_argument("--json", action="store_true", dest="as_json")

    watch = subcommands.add_parser("watch", help="Probe providers continuously")
    watch.add_argument("providers", nargs="*", type=_provider_type, metavar="provider")
    watch.add_argument("--interval", type=_positive_float, default=None)
    watch.add_argument("--cycles", type=_positive_int, default=None)

    init = subcommands.add_parser("init-config", help="Write a default config file")
    init.add_argument("--force", action="store_true")
    return parser


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    return build_parser().parse_args(argv)


def format_snapshot(snapshot: UsageSnapshot) -> list[str]:
    header = f"{snapshot.provider_id}: {snapshot.overall_status.value}"
    if snapshot.account_email:
        header += f" ({snapshot.account_email})"
    lines = [header]
    for quota in snapshot.quotas:
        line = f"  {quota.quota_type.display_name}: {quota.percent_remaining:.0f}% left"
        reset = quota.reset_description()
        if reset:
            line += f" - {reset}"
        lines.append(line)
    if snapshot.cost_usage is not None:
        lines.append(f"  Extra usage: {snapshot.cost_usage.formatted()}")
    return lines


def format_state(provider_id: str, state: ProviderState) -> list[str]:
    lines: list[str] = []
    if state.last_snapshot is not None:
        lines.extend(format_snapshot(state.last_snapshot))
    if state.last_error is not None:
        prefix = "  " if lines else f"{provider_id}: "
        lines.append(prefix + user_facing_error(state.last_error.message, hint=state.last_error.hint))
    if not lines:
        lines.append(f"{provider_id}: no data")
    return lines


def state_payload(provider_id: str, state: ProviderState) -> dict[str, object]:
    error = state.last_error
    return {
        "provider": provider_id,
        "snapshot": state.last_snapshot.to_dict() if state.last_snapshot else None,
        "error": {"kind": error.kind.value, "detail": error.detail, "message": error.message} if error else None,
    }


def _print_states(monitor: QuotaMonitor, out: TextIO, *, as_json: bool) -> None:
    states = monitor.states()
    if as_json:
        payload = [state_payload(provider_id, state) for provider_id, state in states.items()]
        print(json.dumps(payload, indent=2), file=out)
        return
    for provider_id, state in states.items():
        for line in format_state(provider_id, state):
            print(line, file=out)


def _default_probe_factory(config: AppConfig, provider_ids: list[str]) -> Sequence[ProviderProbe]:
    return build_probes(config, provider_ids)


async def run_probe(monitor: QuotaMonitor, out: TextIO, *, as_json: bool) -> int:
    try:
        await monitor.refresh_all()
    finally:
        await monitor.aclose()
    _print_states(monitor, out, as_json=as_json)
    failed = any(state.last_error is not None for state in monitor.states().values())
    return int(ExitCode.PROBE_ERROR if failed else ExitCode.SUCCESS)


async def run_watch(monitor: QuotaMonitor, out: TextIO, *, interval: float, cycles: int | None) -> int:
    stream = monitor.start_monitoring(interval)
    try:
        async for event in stream:
            print(f"-- refresh #{event.cycle} at {event.at.isoformat(timespec='seconds')}", file=out)
            _print_states(monitor, out, as_json=False)
            out.flush()
            if cycles is not None and event.cycle >= cycles:
                break
    finally:
        await monitor.aclose()
    return int(ExitCode.SUCCESS)


def _stderr_alert(alert: Alert) -> None:
    print(f"[{alert.title}] {alert.body}", file=sys.stderr)


def run_cli_flow(
    namespace: argparse.Namespace,
    *,
    probe_factory: ProbeFactory | None = None,
    out: TextIO | None = None,
) -> int:
    stream = out or sys.stdout
    config_path = get_config_path(namespace.config)

    if namespace.command == "init-config":
        if config_path.exists() and not namespace.force:
            raise QuotaProbeError(
                f"Config already exists: {config_path}",
                code=ExitCode.CONFIG_ERROR,
                hint="Pass --force to overwrite it",
            )
        written = save_config(AppConfig(), config_path)
        print(f"Wrote {written}", file=stream)
        return int(ExitCode.SUCCESS)

    config = load_config(config_path)
    factory = probe_factory or _default_probe_factory
    probes = list(factory(config, list(namespace.providers)))
    if not probes:
        raise QuotaProbeError(
            "No providers to probe",
            code=ExitCode.VALIDATION_ERROR,
            hint="Enable a provider in the config or name one on the command line",
        )

    if namespace.command == "probe":
        monitor = QuotaMonitor(probes)
        return asyncio.run(run_probe(monitor, stream, as_json=namespace.as_json))

    monitor = QuotaMonitor(probes, status_listener=QuotaAlerter(_stderr_alert))
    interval = namespace.interval or config.monitor_interval
    try:
        return asyncio.run(run_watch(monitor, stream, interval=interval, cycles=namespace.cycles))
    except KeyboardInterrupt:
        return int(ExitCode.SUCCESS)


def main(
    argv: Sequence[str] | None = None,
    *,
    probe_factory: ProbeFactory | None = None,
    out: TextIO | None = None,
) -> int:
    log_path = default_log_path()
    logger = configure_logging("WARN", log_file=log_path)
    parser = build_parser()
    try:
        namespace = parser.parse_args(argv)
    except SystemExit as exc:
        if exc.code not in (None, 0):
            logger.warning("Argument parsing failed with exit code %s", exc.code)
        return int(exc.code or 0)

    if namespace.log_file is not None:
        log_path = namespace.log_file.expanduser()
    logger = configure_logging(level=namespace.log_level, log_file=log_path)

    try:
        logger.debug("Starting command=%s", namespace.command)
        return run_cli_flow(namespace, probe_factory=probe_factory, out=out)
    except QuotaProbeError as exc:
        logger.error(
            "Handled QuotaProbeError (code=%s): %s",
            int(exc.code),
            exc.message,
            exc_info=logger.isEnabledFor(py_logging.DEBUG),
        )
        print(user_facing_error(exc.message, hint=exc.hint), file=sys.stderr)
        return int(exc.code)
    except Exception:
        logger.exception("Unhandled exception in CLI entrypoint")
        print(user_facing_error("Unexpected runtime failure", hint=f"Inspect logs: {log_path}"), file=sys.stderr)
        return int(ExitCode.RUNTIME_ERROR)


def run(argv: Sequence[str] | None = None) -> int:
    return main(argv)
