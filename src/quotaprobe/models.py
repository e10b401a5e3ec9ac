"""Quota domain models produced by the parsers and consumed by the monitor."""

from __future__ import annotations

import math
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum

STALE_AFTER = timedelta(minutes=5)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class QuotaStatus(str, Enum):
    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"
    DEPLETED = "depleted"

    @classmethod
    def from_percent(cls, percent_remaining: float) -> QuotaStatus:
        if percent_remaining <= 0:
            return cls.DEPLETED
        if percent_remaining < 20:
            return cls.CRITICAL
        if percent_remaining < 50:
            return cls.WARNING
        return cls.HEALTHY

    @property
    def severity(self) -> int:
        return _SEVERITY[self]

    @property
    def needs_attention(self) -> bool:
        return self != QuotaStatus.HEALTHY


_SEVERITY = {
    QuotaStatus.HEALTHY: 0,
    QuotaStatus.WARNING: 1,
    QuotaStatus.CRITICAL: 2,
    QuotaStatus.DEPLETED: 3,
}


def worst_status(statuses: Iterable[QuotaStatus]) -> QuotaStatus:
    return max(statuses, key=lambda status: status.severity, default=QuotaStatus.HEALTHY)


class QuotaKind(str, Enum):
    SESSION = "session"
    WEEKLY = "weekly"
    MODEL_SPECIFIC = "model_specific"
    TIME_LIMIT = "time_limit"


_WINDOWS = {
    QuotaKind.SESSION: timedelta(hours=5),
    QuotaKind.WEEKLY: timedelta(days=7),
    QuotaKind.MODEL_SPECIFIC: timedelta(days=7),
    QuotaKind.TIME_LIMIT: timedelta(days=30),
}


@dataclass(frozen=True)
class QuotaType:
    kind: QuotaKind
    model: str = ""

    @classmethod
    def session(cls) -> QuotaType:
        return cls(QuotaKind.SESSION)

    @classmethod
    def weekly(cls) -> QuotaType:
        return cls(QuotaKind.WEEKLY)

    @classmethod
    def model_specific(cls, model: str) -> QuotaType:
        return cls(QuotaKind.MODEL_SPECIFIC, model)

    @classmethod
    def time_limit(cls) -> QuotaType:
        return cls(QuotaKind.TIME_LIMIT)

    @property
    def display_name(self) -> str:
        if self.kind == QuotaKind.SESSION:
            return "Current Session"
        if self.kind == QuotaKind.WEEKLY:
            return "Weekly"
        if self.kind == QuotaKind.TIME_LIMIT:
            return "Time Limit"
        return self.model.capitalize()

    @property
    def window(self) -> timedelta:
        return _WINDOWS[self.kind]

    def __str__(self) -> str:
        if self.kind == QuotaKind.MODEL_SPECIFIC:
            return f"{self.kind.value}:{self.model}"
        return self.kind.value


def describe_reset(remaining: timedelta) -> str:
    seconds = max(int(remaining.total_seconds()), 0)
    hours, rest = divmod(seconds, 3600)
    minutes = rest // 60
    if hours > 24:
        return f"Resets in {hours // 24}d {hours % 24}h"
    if hours > 0:
        return f"Resets in {hours}h {minutes}m"
    if minutes > 0:
        return f"Resets in {minutes}m"
    return "Resets soon"


@dataclass(frozen=True)
class Quota:
    """One usage-limit measurement. ``percent_remaining`` is clamped to 0..100."""

    percent_remaining: float
    quota_type: QuotaType
    provider_id: str = ""
    resets_at: datetime | None = None
    reset_text: str | None = None

    def __post_init__(self) -> None:
        value = float(self.percent_remaining)
        if math.isnan(value):
            value = 0.0
        object.__setattr__(self, "percent_remaining", max(0.0, min(100.0, value)))

    @property
    def status(self) -> QuotaStatus:
        return QuotaStatus.from_percent(self.percent_remaining)

    @property
    def percent_used(self) -> float:
        return 100.0 - self.percent_remaining

    @property
    def is_depleted(self) -> bool:
        return self.percent_remaining <= 0

    @property
    def needs_attention(self) -> bool:
        return self.status.needs_attention

    def time_until_reset(self, now: datetime | None = None) -> timedelta | None:
        if self.resets_at is None:
            return None
        return max(self.resets_at - (now or utcnow()), timedelta(0))

    def reset_description(self, now: datetime | None = None) -> str | None:
        remaining = self.time_until_reset(now)
        if remaining is None:
            return self.reset_text
        return describe_reset(remaining)

    def to_dict(self) -> dict[str, object]:
        return {
            "type": str(self.quota_type),
            "display_name": self.quota_type.display_name,
            "percent_remaining": self.percent_remaining,
            "status": self.status.value,
            "resets_at": self.resets_at.isoformat() if self.resets_at else None,
            "reset_text": self.reset_text,
        }


@dataclass(frozen=True)
class CostUsage:
    """Pay-as-you-go spend reported next to the subscription quotas."""

    spent: Decimal
    budget: Decimal | None = None
    resets_at: datetime | None = None
    reset_text: str | None = None

    @property
    def percent_of_budget(self) -> float | None:
        if not self.budget:
            return None
        return float(self.spent / self.budget * 100)

    def formatted(self) -> str:
        if self.budget is None:
            return f"${self.spent:,.2f} spent"
        return f"${self.spent:,.2f} / ${self.budget:,.2f} spent"

    def to_dict(self) -> dict[str, object]:
        return {
            "spent": str(self.spent),
            "budget": str(self.budget) if self.budget is not None else None,
            "resets_at": self.resets_at.isoformat() if self.resets_at else None,
            "reset_text": self.reset_text,
        }


class AccountTier(str, Enum):
    MAX = "max"
    PRO = "pro"
    API = "api"


@dataclass(frozen=True)
class UsageSnapshot:
    provider_id: str
    quotas: tuple[Quota, ...] = ()
    captured_at: datetime = field(default_factory=utcnow)
    account_email: str | None = None
    account_organization: str | None = None
    login_method: str | None = None
    account_tier: AccountTier | None = None
    cost_usage: CostUsage | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "quotas", tuple(self.quotas))

    @classmethod
    def empty(cls, provider_id: str) -> UsageSnapshot:
        return cls(provider_id=provider_id)

    @property
    def overall_status(self) -> QuotaStatus:
        return worst_status(quota.status for quota in self.quotas)

    def quota_for(self, quota_type: QuotaType) -> Quota | None:
        return next((quota for quota in self.quotas if quota.quota_type == quota_type), None)

    @property
    def session_quota(self) -> Quota | None:
        return self.quota_for(QuotaType.session())

    @property
    def weekly_quota(self) -> Quota | None:
        return self.quota_for(QuotaType.weekly())

    @property
    def model_specific_quotas(self) -> list[Quota]:
        return [quota for quota in self.quotas if quota.quota_type.kind == QuotaKind.MODEL_SPECIFIC]

    @property
    def lowest_quota(self) -> Quota | None:
        return min(self.quotas, key=lambda quota: quota.percent_remaining, default=None)

    def age(self, now: datetime | None = None) -> timedelta:
        return (now or utcnow()) - self.captured_at

    def is_stale(self, now: datetime | None = None) -> bool:
        return self.age(now) > STALE_AFTER

    def age_description(self, now: datetime | None = None) -> str:
        seconds = int(self.age(now).total_seconds())
        if seconds < 60:
            return "Just now"
        if seconds < 3600:
            minutes = seconds // 60
            return f"{minutes} min ago"
        hours = seconds // 3600
        return f"{hours}h ago"

    def to_dict(self) -> dict[str, object]:
        return {
            "provider": self.provider_id,
            "status": self.overall_status.value,
            "captured_at": self.captured_at.isoformat(),
            "account_email": self.account_email,
            "account_organization": self.account_organization,
            "login_method": self.login_method,
            "account_tier": self.account_tier.value if self.account_tier else None,
            "cost_usage": self.cost_usage.to_dict() if self.cost_usage else None,
            "quotas": [quota.to_dict() for quota in self.quotas],
        }
