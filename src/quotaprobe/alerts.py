"""Status-change listener that raises alerts when a quota degrades."""

from __future__ import annotations

import inspect
import logging as py_logging
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from quotaprobe.models import QuotaStatus

logger = py_logging.getLogger(__name__)

AlertSender = Callable[["Alert"], Awaitable[None] | None]

SENT_HISTORY = 50

_DISPLAY_NAMES = {
    "claude": "Claude",
    "codex": "Codex",
    "gemini": "Gemini",
}
_BODIES = {
    QuotaStatus.WARNING: "Your {name} quota is running low. Consider pacing your usage.",
    QuotaStatus.CRITICAL: "Your {name} quota is critically low! Save important work.",
    QuotaStatus.DEPLETED: "Your {name} quota is depleted. Usage may be blocked.",
}


@dataclass(frozen=True)
class Alert:
    provider_id: str
    status: QuotaStatus
    title: str
    body: str


def provider_display_name(provider_id: str) -> str:
    return _DISPLAY_NAMES.get(provider_id, provider_id.capitalize())


def build_alert(provider_id: str, previous: QuotaStatus, current: QuotaStatus) -> Alert | None:
    """Only a move to a more severe, attention-worthy status produces an alert."""
    if current.severity <= previous.severity or current not in _BODIES:
        return None
    name = provider_display_name(provider_id)
    return Alert(
        provider_id=provider_id,
        status=current,
        title=f"{name} Quota Alert",
        body=_BODIES[current].format(name=name),
    )


def log_alert(alert: Alert) -> None:
    logger.warning("quota-alert provider=%s status=%s %s", alert.provider_id, alert.status.value, alert.body)


class QuotaAlerter:
    def __init__(self, sender: AlertSender | None = None, *, history: int = SENT_HISTORY) -> None:
        self.sender = sender or log_alert
        # Most recent deliveries only; a long watch run must not grow this.
        self.sent: deque[Alert] = deque(maxlen=history)

    async def __call__(self, provider_id: str, previous: QuotaStatus, current: QuotaStatus) -> None:
        alert = build_alert(provider_id, previous, current)
        if alert is None:
            logger.debug("quota-alert skipped provider=%s %s -> %s", provider_id, previous.value, current.value)
            return
        try:
            result = self.sender(alert)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("quota-alert delivery failed provider=%s", provider_id)
            return
        self.sent.append(alert)
