"""Parser for the Gemini CLI ``/stats`` model usage table."""

from __future__ import annotations

import logging as py_logging
import re
from datetime import datetime, timezone

from quotaprobe.errors import ProbeError
from quotaprobe.models import Quota, QuotaType, UsageSnapshot
from quotaprobe.parsers.common import clean_lines, clean_reset_text, parse_reset

logger = py_logging.getLogger(__name__)

PROVIDER_ID = "gemini"

_AUTH_MARKERS = ("login with google", "use gemini api key", "waiting for auth")
# gemini-2.5-pro   -   100.0% (Resets in 24h)
_MODEL_ROW = re.compile(r"(gemini[-\w.]+)\s+.*?([0-9]+(?:\.[0-9]+)?)\s*%\s*\(([^)]+)\)", re.IGNORECASE)


def parse_gemini_stats(text: str, now: datetime | None = None) -> UsageSnapshot:
    reference = now or datetime.now(timezone.utc)
    lines = clean_lines(text)
    lower = "\n".join(lines).lower()

    if any(marker in lower for marker in _AUTH_MARKERS):
        raise ProbeError.authentication_required()

    quotas: list[Quota] = []
    for line in lines:
        match = _MODEL_ROW.search(line.replace("│", " "))
        if match is None:
            continue
        reset = match.group(3).strip()
        quotas.append(
            Quota(
                percent_remaining=float(match.group(2)),
                quota_type=QuotaType.model_specific(match.group(1)),
                provider_id=PROVIDER_ID,
                resets_at=parse_reset(reset, reference),
                reset_text=clean_reset_text(reset),
            )
        )

    if not quotas:
        logger.error("gemini-parse failed: no model usage rows")
        raise ProbeError.parse_failed("No usage data found in output")

    return UsageSnapshot(provider_id=PROVIDER_ID, quotas=tuple(quotas), captured_at=reference)
