"""Provider probes: invocation details per CLI behind one contract."""

from .base import CliUsageProbe, ProbeMode, ProbeSpec, ProviderProbe, map_run_error, map_session_error
from .catalog import CATALOG, CLAUDE, CODEX, GEMINI, build_probe, build_probes

__all__ = [
    "build_probe",
    "build_probes",
    "CATALOG",
    "CLAUDE",
    "CliUsageProbe",
    "CODEX",
    "GEMINI",
    "map_run_error",
    "map_session_error",
    "ProbeMode",
    "ProbeSpec",
    "ProviderProbe",
]
