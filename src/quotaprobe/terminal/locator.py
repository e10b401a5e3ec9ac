"""Binary lookup and child environment for probed CLIs."""

from __future__ import annotations

import logging as py_logging
import os
import re
import shutil
import subprocess
from collections.abc import Callable, Mapping
from pathlib import Path

logger = py_logging.getLogger(__name__)

_SAFE_TOOL_NAME = re.compile(r"^[A-Za-z0-9._-]+$")
_FALLBACK_PATH = "/usr/bin:/bin"
_EXTRA_PATH_DIRS = ("/opt/homebrew/bin", "/opt/homebrew/sbin", "/usr/local/bin", "/usr/local/sbin")
_HOME_BIN_DIRS = (".local/bin", ".cargo/bin", "bin", ".nix-profile/bin", ".npm-global/bin")
_SYSTEM_BIN_DIRS = (
    "/opt/homebrew/bin",
    "/usr/local/bin",
    "/run/current-system/sw/bin",
    "/nix/var/nix/profiles/default/bin",
)
_TERMINAL_DEFAULTS = {
    "TERM": "xterm-256color",
    "COLORTERM": "truecolor",
    "LANG": "en_US.UTF-8",
    "CI": "0",
}


def _is_executable(path: Path) -> bool:
    return path.is_file() and os.access(path, os.X_OK)


class BinaryLocator:
    """Resolve CLI binaries the way the user's login shell would.

    Falls back to well-known install directories when the shell lookup fails,
    since GUI or service launches often inherit a minimal PATH.
    """

    def __init__(
        self,
        *,
        runner: Callable[..., subprocess.CompletedProcess] = subprocess.run,
        environ: Mapping[str, str] | None = None,
        overrides: Mapping[str, str] | None = None,
        timeout_seconds: float = 5.0,
    ) -> None:
        self.runner = runner
        self.environ = dict(os.environ if environ is None else environ)
        self.overrides = {key: value for key, value in (overrides or {}).items() if value}
        self.timeout_seconds = timeout_seconds
        self._shell_path: str | None = None

    @property
    def home(self) -> Path:
        return Path(self.environ.get("HOME") or Path.home())

    @property
    def shell(self) -> str:
        return self.environ.get("SHELL") or "/bin/zsh"

    def locate(self, tool: str) -> str | None:
        override = self.overrides.get(tool)
        if override:
            candidate = Path(override).expanduser()
            if _is_executable(candidate):
                return str(candidate)
            logger.warning("locator-override tool=%s path=%s is not executable", tool, candidate)

        if not _SAFE_TOOL_NAME.match(tool):
            logger.warning("locator-reject tool=%r", tool)
            return None

        found = self._which_via_login_shell(tool)
        if found:
            return found

        found = shutil.which(tool, path=self.environ.get("PATH"))
        if found:
            return found

        for directory in self.common_directories():
            candidate = directory / tool
            if _is_executable(candidate):
                return str(candidate)
        logger.debug("locator-miss tool=%s", tool)
        return None

    def common_directories(self) -> list[Path]:
        home = self.home
        directories = [home / relative for relative in _HOME_BIN_DIRS]
        directories.extend(Path(item) for item in _SYSTEM_BIN_DIRS)
        nvm_versions = home / ".nvm" / "versions" / "node"
        if nvm_versions.is_dir():
            directories.extend(sorted((entry / "bin" for entry in nvm_versions.iterdir()), reverse=True))
        return directories

    def shell_path(self) -> str:
        if self._shell_path is None:
            resolved = self._run_login_shell("echo $PATH")
            self._shell_path = resolved or self.environ.get("PATH") or _FALLBACK_PATH
        return self._shell_path

    def _which_via_login_shell(self, tool: str) -> str | None:
        prefix = "^which" if Path(self.shell).name == "nu" else "which"
        output = self._run_login_shell(f"{prefix} {tool}")
        if not output:
            return None
        for line in reversed(output.splitlines()):
            candidate = Path(line.strip())
            if candidate.is_absolute() and _is_executable(candidate):
                return str(candidate)
        return None

    def _run_login_shell(self, command: str) -> str:
        try:
            completed = self.runner(
                [self.shell, "-l", "-c", command],
                capture_output=True,
                text=True,
                check=False,
                timeout=self.timeout_seconds,
                env=self.environ,
            )
        except (OSError, subprocess.TimeoutExpired) as exc:
            logger.debug("locator-shell-failed shell=%s command=%s error=%s", self.shell, command, exc)
            return ""
        if completed.returncode != 0:
            return ""
        return (completed.stdout or "").strip()


def terminal_environment(
    base: Mapping[str, str] | None = None,
    *,
    shell_path: str | None = None,
) -> dict[str, str]:
    """Build the child environment: resolved PATH, HOME and terminal/locale defaults."""
    env = dict(os.environ if base is None else base)
    path_entries = [entry for entry in (shell_path or env.get("PATH") or _FALLBACK_PATH).split(":") if entry]
    for directory in _EXTRA_PATH_DIRS:
        if directory not in path_entries and Path(directory).is_dir():
            path_entries.append(directory)
    env["PATH"] = ":".join(path_entries)
    if not env.get("HOME"):
        env["HOME"] = str(Path.home())
    for key, value in _TERMINAL_DEFAULTS.items():
        env.setdefault(key, value)
    return env
