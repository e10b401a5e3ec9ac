"""Parser for the Codex CLI ``/status`` panel."""

from __future__ import annotations

import logging as py_logging
import re
from datetime import datetime, timezone

from quotaprobe.errors import ProbeError
from quotaprobe.models import Quota, QuotaType, UsageSnapshot
from quotaprobe.parsers.common import (
    clean_lines,
    clean_reset_text,
    extract_first,
    extract_percent,
    parse_reset,
)

logger = py_logging.getLogger(__name__)

PROVIDER_ID = "codex"

SESSION_LABEL = "5h limit"
WEEKLY_LABEL = "Weekly limit"

_LEFT = re.compile(r"([0-9]{1,3})%\s+left", re.IGNORECASE)
_RESET = re.compile(r"\((resets?[^)]*)\)", re.IGNORECASE)
_ACCOUNT = re.compile(r"Account:\s*([^\s@]+@[^\s@()]+)", re.IGNORECASE)
_PLAN = re.compile(r"\(\s*(Plus|Pro|Team|Business|Enterprise|Free)\s*\)", re.IGNORECASE)


def detect_error(text: str) -> ProbeError | None:
    lower = text.lower()
    if "data not available yet" in lower:
        return ProbeError.parse_failed("Data not available yet")
    if "update available" in lower and "codex" in lower:
        return ProbeError.update_required()
    if "not logged in" in lower or "please log in" in lower:
        return ProbeError.authentication_required()
    return None


def _reset_for(lines: list[str], label: str) -> str | None:
    needle = label.lower()
    for line in lines:
        if needle in line.lower():
            return extract_first(_RESET, line)
    return None


def parse_codex_status(text: str, now: datetime | None = None) -> UsageSnapshot:
    reference = now or datetime.now(timezone.utc)
    lines = clean_lines(text)
    clean = "\n".join(lines)

    error = detect_error(clean)
    if error is not None:
        logger.error("codex-parse blocked kind=%s", error.kind.value)
        raise error

    quotas: list[Quota] = []
    for label, quota_type in ((SESSION_LABEL, QuotaType.session()), (WEEKLY_LABEL, QuotaType.weekly())):
        percent = extract_percent(lines, label, pattern=_LEFT)
        if percent is None:
            continue
        reset = _reset_for(lines, label)
        quotas.append(
            Quota(
                percent_remaining=percent,
                quota_type=quota_type,
                provider_id=PROVIDER_ID,
                resets_at=parse_reset(reset, reference),
                reset_text=clean_reset_text(reset),
            )
        )

    if not quotas:
        logger.error("codex-parse failed: no usage limits in output")
        logger.debug("codex-parse cleaned output:\n%s", clean)
        raise ProbeError.parse_failed("Could not find usage limits in Codex output")

    return UsageSnapshot(
        provider_id=PROVIDER_ID,
        quotas=tuple(quotas),
        captured_at=reference,
        account_email=extract_first(_ACCOUNT, clean),
        login_method=extract_first(_PLAN, clean),
    )
