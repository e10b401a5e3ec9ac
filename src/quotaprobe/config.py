"""XDG config loading/saving for probe timings and provider settings."""

from __future__ import annotations

import os
import sys
from contextlib import suppress
from dataclasses import dataclass
from pathlib import Path
from typing import cast

from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing_extensions import TypedDict

if sys.version_info >= (3, 11):
    import tomllib
else:  # pragma: no cover
    import tomli as tomllib

DEFAULT_CONFIG_PATH = Path("~/.config/quotaprobe/config.toml").expanduser()
DEFAULT_PROBE_DIRECTORY = "~/.local/share/quotaprobe/probe"
CONFIG_PATH_ENV = "QUOTAPROBE_CONFIG"
KNOWN_PROVIDERS = ("claude", "codex", "gemini")

DEFAULT_PROBE_TIMEOUT = 20.0
DEFAULT_SETTLE_DELAY = 0.4
DEFAULT_IDLE_TIMEOUT = 3.0
DEFAULT_POLL_INTERVAL = 0.06
DEFAULT_TERMINATE_GRACE = 2.0
DEFAULT_TERMINAL_ROWS = 50
DEFAULT_TERMINAL_COLS = 160
DEFAULT_STARTUP_TIMEOUT = 30.0
DEFAULT_COMMAND_TIMEOUT = 15.0
DEFAULT_SESSION_IDLE_TIMEOUT = 5.0
DEFAULT_MONITOR_INTERVAL = 60.0

_VALID_MODES = {"runner", "session"}

# name -> (minimum, maximum)
_FLOAT_BOUNDS: dict[str, tuple[float, float]] = {
    "probe_timeout": (1.0, 600.0),
    "settle_delay": (0.0, 10.0),
    "idle_timeout": (0.1, 60.0),
    "poll_interval": (0.01, 1.0),
    "terminate_grace": (0.0, 30.0),
    "session_startup_timeout": (1.0, 600.0),
    "session_command_timeout": (1.0, 600.0),
    "session_idle_timeout": (0.1, 60.0),
    "monitor_interval": (0.1, 86400.0),
}
_INT_BOUNDS: dict[str, tuple[int, int]] = {
    "terminal_rows": (10, 500),
    "terminal_cols": (40, 1000),
}


class ProviderSettings(TypedDict):
    enabled: bool
    binary: str
    mode: str
    # Zero means "inherit the global value".
    timeout: float
    idle_timeout: float
    settle_delay: float


def default_provider_settings() -> ProviderSettings:
    return ProviderSettings(
        enabled=True,
        binary="",
        mode="runner",
        timeout=0.0,
        idle_timeout=0.0,
        settle_delay=0.0,
    )


@dataclass(frozen=True)
class ProviderTiming:
    timeout: float
    idle_timeout: float
    settle_delay: float
    poll_interval: float


class AppConfig(BaseModel):
    model_config = ConfigDict(validate_assignment=True)

    probe_timeout: float = Field(default=DEFAULT_PROBE_TIMEOUT, ge=1.0, le=600.0)
    settle_delay: float = Field(default=DEFAULT_SETTLE_DELAY, ge=0.0, le=10.0)
    idle_timeout: float = Field(default=DEFAULT_IDLE_TIMEOUT, ge=0.1, le=60.0)
    poll_interval: float = Field(default=DEFAULT_POLL_INTERVAL, ge=0.01, le=1.0)
    terminate_grace: float = Field(default=DEFAULT_TERMINATE_GRACE, ge=0.0, le=30.0)
    terminal_rows: int = Field(default=DEFAULT_TERMINAL_ROWS, ge=10, le=500)
    terminal_cols: int = Field(default=DEFAULT_TERMINAL_COLS, ge=40, le=1000)
    session_startup_timeout: float = Field(default=DEFAULT_STARTUP_TIMEOUT, ge=1.0, le=600.0)
    session_command_timeout: float = Field(default=DEFAULT_COMMAND_TIMEOUT, ge=1.0, le=600.0)
    session_idle_timeout: float = Field(default=DEFAULT_SESSION_IDLE_TIMEOUT, ge=0.1, le=60.0)
    monitor_interval: float = Field(default=DEFAULT_MONITOR_INTERVAL, ge=0.1, le=86400.0)
    probe_directory: str = DEFAULT_PROBE_DIRECTORY
    providers: dict[str, ProviderSettings] = Field(
        default_factory=lambda: {name: default_provider_settings() for name in KNOWN_PROVIDERS}
    )

    @field_validator("providers")
    @classmethod
    def _validate_providers(cls, value: dict[str, ProviderSettings]) -> dict[str, ProviderSettings]:
        for name, settings in value.items():
            if settings.get("mode", "runner") not in _VALID_MODES:
                raise ValueError(f"Invalid mode for provider {name}: {settings.get('mode')}")
        return value

    def provider(self, provider_id: str) -> ProviderSettings:
        return self.providers.get(provider_id) or default_provider_settings()

    def enabled_providers(self) -> list[str]:
        return [name for name in KNOWN_PROVIDERS if self.provider(name)["enabled"]]

    def provider_timing(self, provider_id: str) -> ProviderTiming:
        settings = self.provider(provider_id)
        return ProviderTiming(
            timeout=settings["timeout"] or self.probe_timeout,
            idle_timeout=settings["idle_timeout"] or self.idle_timeout,
            settle_delay=settings["settle_delay"] or self.settle_delay,
            poll_interval=self.poll_interval,
        )

    def resolved_probe_directory(self) -> Path:
        return Path(self.probe_directory or DEFAULT_PROBE_DIRECTORY).expanduser()


def get_config_path(path: str | Path | None = None) -> Path:
    if path is not None:
        return Path(path).expanduser()
    env_path = os.getenv(CONFIG_PATH_ENV, "").strip()
    if env_path:
        return Path(env_path).expanduser()
    return DEFAULT_CONFIG_PATH


def _escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def _toml_scalar(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return repr(value)
    if isinstance(value, str):
        return f'"{_escape(value)}"'
    raise TypeError(f"Unsupported TOML scalar type: {type(value)!r}")


def _number(value: object) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def _normalize_provider(value: object) -> ProviderSettings:
    settings = default_provider_settings()
    if not isinstance(value, dict):
        return settings

    enabled = value.get("enabled")
    if isinstance(enabled, bool):
        settings["enabled"] = enabled
    binary = value.get("binary")
    if isinstance(binary, str):
        settings["binary"] = binary.strip()
    mode = value.get("mode")
    if isinstance(mode, str) and mode in _VALID_MODES:
        settings["mode"] = mode
    for key in ("timeout", "idle_timeout", "settle_delay"):
        number = _number(value.get(key))
        if number is not None and number >= 0:
            settings[key] = number  # type: ignore[literal-required]
    return settings


def _sanitize(raw: dict[str, object]) -> AppConfig:
    cfg = AppConfig()

    for name, (low, high) in _FLOAT_BOUNDS.items():
        number = _number(raw.get(name))
        if number is not None and low <= number <= high:
            setattr(cfg, name, number)

    for name, (low, high) in _INT_BOUNDS.items():
        value = raw.get(name)
        if isinstance(value, int) and not isinstance(value, bool) and low <= value <= high:
            setattr(cfg, name, value)

    probe_directory = raw.get("probe_directory")
    if isinstance(probe_directory, str) and probe_directory.strip():
        cfg.probe_directory = probe_directory.strip()

    raw_providers = raw.get("providers", {})
    providers = dict(cfg.providers)
    if isinstance(raw_providers, dict):
        for name, payload in raw_providers.items():
            if isinstance(name, str) and name.strip():
                providers[name.strip()] = _normalize_provider(payload)
    cfg.providers = providers

    return cfg


def load_config(path: str | Path | None = None) -> AppConfig:
    resolved = get_config_path(path)
    if not resolved.exists():
        return AppConfig()
    try:
        with resolved.open("rb") as handle:
            raw = tomllib.load(handle)
    except (tomllib.TOMLDecodeError, OSError):
        return AppConfig()
    if not isinstance(raw, dict):
        return AppConfig()
    return _sanitize(cast(dict[str, object], raw))


def save_config(config: AppConfig, path: str | Path | None = None) -> Path:
    resolved = get_config_path(path)
    resolved.parent.mkdir(parents=True, exist_ok=True)

    lines = [f"{name} = {_toml_scalar(getattr(config, name))}" for name in _FLOAT_BOUNDS]
    lines.extend(f"{name} = {_toml_scalar(getattr(config, name))}" for name in _INT_BOUNDS)
    lines.append(f"probe_directory = {_toml_scalar(config.probe_directory)}")

    for name, payload in sorted(config.providers.items()):
        settings = _normalize_provider(payload)
        lines.extend(["", f'[providers."{_escape(name)}"]'])
        lines.extend(f"{key} = {_toml_scalar(value)}" for key, value in settings.items())

    resolved.write_text("\n".join(lines) + "\n", encoding="utf-8")
    with suppress(OSError):
        resolved.chmod(0o600)
    return resolved

