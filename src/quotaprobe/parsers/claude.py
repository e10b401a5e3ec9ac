"""Parser for the Claude CLI ``/usage`` screen."""

from __future__ import annotations

import logging as py_logging
import re
from collections.abc import Sequence
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation

from quotaprobe.errors import ProbeError
from quotaprobe.models import AccountTier, CostUsage, Quota, QuotaType, UsageSnapshot
from quotaprobe.parsers.common import (
    clean_lines,
    clean_reset_text,
    extract_first,
    extract_percent,
    extract_reset_line,
    parse_reset,
)

logger = py_logging.getLogger(__name__)

PROVIDER_ID = "claude"

SESSION_LABEL = "Current session"
WEEKLY_LABEL = "Current week (all models)"
WEEKLY_RESET_LABEL = "Current week"
MODEL_LABELS = {
    "Current week (Opus)": "opus",
    "Current week (Sonnet only)": "sonnet",
    "Current week (Sonnet)": "sonnet",
}
EXTRA_USAGE_LABEL = "Extra usage"
EXTRA_USAGE_WINDOW = 10

_TRUST_PROMPT = "do you trust the files in this folder?"
_TRUST_FOLDER = re.compile(r"Do you trust the files in this folder\?\s*(?:\r?\n)+\s*([^\r\n]+)", re.IGNORECASE)
_SESSION_EXPIRED_MARKERS = ("session expired", "session has expired")
_AUTH_MARKERS = (
    "token_expired",
    "token has expired",
    "authentication_error",
    "not logged in",
    "please log in",
)
_UPDATE_MARKERS = ("update required", "please update")
_RATE_LIMIT_MARKERS = ("rate limited", "rate limit exceeded", "too many requests")

_EMAIL_FIELD = re.compile(r"(?:Account|Email):\s*([^\s@]+@[^\s@]+)", re.IGNORECASE)
_EMAIL_HEADER = re.compile(r"·\s*Claude\s+(?:Max|Pro)\s*·\s*([^\s@]+@[^\s@']+)", re.IGNORECASE)
_ORG_FIELD = re.compile(r"(?:Org|Organization):\s*(.+)", re.IGNORECASE)
_ORG_HEADER = re.compile(r"·\s*Claude\s+(?:Max|Pro)\s*·\s*(.+?)\s*$", re.IGNORECASE | re.MULTILINE)
_LOGIN_METHOD = re.compile(r"login\s+method:\s*(.+)", re.IGNORECASE)
_COST_LINE = re.compile(r"\$?([\d,]+\.?\d*)\s*/\s*\$?([\d,]+\.?\d*)\s*spent", re.IGNORECASE)


def detect_error(text: str) -> ProbeError | None:
    """Classify known blocking screens before any quota extraction happens."""
    lower = text.lower()
    if _TRUST_PROMPT in lower and "current session" not in lower:
        folder = extract_first(_TRUST_FOLDER, text) or ""
        logger.error("claude-probe blocked: folder trust required folder=%s", folder)
        return ProbeError.folder_trust_required(folder)
    if any(marker in lower for marker in _SESSION_EXPIRED_MARKERS):
        return ProbeError.session_expired()
    if any(marker in lower for marker in _AUTH_MARKERS):
        logger.error("claude-probe failed: authentication required")
        return ProbeError.authentication_required()
    if any(marker in lower for marker in _UPDATE_MARKERS):
        return ProbeError.update_required()
    if any(marker in lower for marker in _RATE_LIMIT_MARKERS) and "rate limits are" not in lower:
        # "rate limits are 2x higher" is promotional copy, not an error.
        logger.warning("claude-probe hit rate limit")
        return ProbeError.execution_failed("Rate limited - too many requests")
    return None


def detect_account_tier(text: str) -> AccountTier:
    lower = text.lower()
    if "· claude pro" in lower or "·claude pro" in lower:
        return AccountTier.PRO
    if "· claude max" in lower or "·claude max" in lower:
        return AccountTier.MAX
    if "· claude api" in lower or "·claude api" in lower or "api account" in lower:
        return AccountTier.API
    return AccountTier.MAX


def extract_email(text: str) -> str | None:
    return extract_first(_EMAIL_FIELD, text) or extract_first(_EMAIL_HEADER, text)


def extract_organization(text: str) -> str | None:
    return extract_first(_ORG_FIELD, text) or extract_first(_ORG_HEADER, text)


def parse_cost_line(line: str) -> tuple[Decimal, Decimal] | None:
    match = _COST_LINE.search(line)
    if match is None:
        return None
    try:
        spent = Decimal(match.group(1).replace(",", ""))
        budget = Decimal(match.group(2).replace(",", ""))
    except InvalidOperation:
        return None
    return spent, budget


def extract_extra_usage(lines: Sequence[str], now: datetime) -> CostUsage | None:
    lowered = [line.lower() for line in lines]
    if any("extra usage not enabled" in line for line in lowered):
        return None
    start = next((index for index, line in enumerate(lowered) if "extra usage" in line), None)
    if start is None:
        return None
    for line in lines[start : start + EXTRA_USAGE_WINDOW]:
        cost = parse_cost_line(line)
        if cost is None:
            continue
        reset_line = extract_reset_line(lines, EXTRA_USAGE_LABEL)
        if reset_line and "reset" in reset_line.lower():
            # The reset phrase often trails the spend figures on the same line.
            reset_line = reset_line[reset_line.lower().index("reset") :]
        return CostUsage(
            spent=cost[0],
            budget=cost[1],
            resets_at=parse_reset(reset_line, now),
            reset_text=clean_reset_text(reset_line),
        )
    return None


def parse_claude_usage(text: str, now: datetime | None = None) -> UsageSnapshot:
    reference = now or datetime.now(timezone.utc)
    lines = clean_lines(text)
    clean = "\n".join(lines)

    error = detect_error(clean)
    if error is not None:
        raise error

    session_percent = extract_percent(lines, SESSION_LABEL)
    if session_percent is None:
        logger.error("claude-parse failed: no '%s' percentage", SESSION_LABEL)
        logger.debug("claude-parse cleaned output:\n%s", clean)
        raise ProbeError.parse_failed("Could not find session usage")

    session_reset = extract_reset_line(lines, SESSION_LABEL)
    weekly_reset = extract_reset_line(lines, WEEKLY_RESET_LABEL)

    quotas = [
        Quota(
            percent_remaining=session_percent,
            quota_type=QuotaType.session(),
            provider_id=PROVIDER_ID,
            resets_at=parse_reset(session_reset, reference),
            reset_text=clean_reset_text(session_reset),
        )
    ]

    weekly_percent = extract_percent(lines, WEEKLY_LABEL)
    if weekly_percent is not None:
        quotas.append(
            Quota(
                percent_remaining=weekly_percent,
                quota_type=QuotaType.weekly(),
                provider_id=PROVIDER_ID,
                resets_at=parse_reset(weekly_reset, reference),
                reset_text=clean_reset_text(weekly_reset),
            )
        )

    for label, model in MODEL_LABELS.items():
        model_percent = extract_percent(lines, label)
        if model_percent is None or any(quota.quota_type.model == model for quota in quotas):
            continue
        # Per-model weekly caps share the weekly reset.
        quotas.append(
            Quota(
                percent_remaining=model_percent,
                quota_type=QuotaType.model_specific(model),
                provider_id=PROVIDER_ID,
                resets_at=parse_reset(weekly_reset, reference),
                reset_text=clean_reset_text(weekly_reset),
            )
        )

    return UsageSnapshot(
        provider_id=PROVIDER_ID,
        quotas=tuple(quotas),
        captured_at=reference,
        account_email=extract_email(clean),
        account_organization=extract_organization(clean),
        login_method=extract_first(_LOGIN_METHOD, clean),
        account_tier=detect_account_tier(clean),
        cost_usage=extract_extra_usage(lines, reference),
    )
