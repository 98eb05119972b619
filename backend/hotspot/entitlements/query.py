from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from django.conf import settings
from django.db.models import Count, Q, Sum
from django.utils import timezone

from ..models import Entitlement, PaymentAttempt, Plan
from . import store
from .engine import GATEWAY_TIMEOUT


@dataclass(frozen=True)
class TimeRemaining:
    total_seconds: int

    @classmethod
    def until(cls, expires_at: datetime, now: datetime) -> "TimeRemaining":
        return cls(total_seconds=max(0, int((expires_at - now).total_seconds())))

    @property
    def hours(self) -> int:
        return self.total_seconds // 3600

    @property
    def minutes(self) -> int:
        return (self.total_seconds % 3600) // 60

    @property
    def display(self) -> str:
        if self.hours > 24:
            return f"{self.hours // 24}d {self.hours % 24}h"
        if self.hours > 0:
            return f"{self.hours}h {self.minutes}m"
        return f"{self.minutes}m"


@dataclass(frozen=True)
class DeviceStatus:
    device_id: str
    connected: bool
    entitlement: Entitlement | None = None
    time_remaining: TimeRemaining | None = None
    expiring_soon: bool = False

    @property
    def plan(self) -> Plan | None:
        return self.entitlement.plan if self.entitlement else None

    @property
    def expires_at(self) -> datetime | None:
        return self.entitlement.expires_at if self.entitlement else None


def _warning_window() -> timedelta:
    return timedelta(minutes=int(getattr(settings, "ENTITLEMENT_EXPIRY_WARNING_MINUTES", 120)))


def status(device_id: str, now: datetime | None = None) -> DeviceStatus:
    """Resolve whether ``device_id`` may use the network right now.

    Read-only: nothing is written, even when a stale ``active`` row is found
    past its window. That row is simply not current.
    """
    now = now or timezone.now()
    current = store.get(device_id, now)
    if current is None:
        return DeviceStatus(device_id=device_id, connected=False)

    remaining = TimeRemaining.until(current.expires_at, now)
    return DeviceStatus(
        device_id=device_id,
        connected=True,
        entitlement=current,
        time_remaining=remaining,
        expiring_soon=current.expires_at - now <= _warning_window(),
    )


def list_active_plans():
    return Plan.objects.active().order_by("price", "duration_hours")


@dataclass(frozen=True)
class OperatorStats:
    connected_devices: int
    active_entitlements: int
    revenue_today: int
    revenue_total: int
    pending_payments: int
    unresolved_payments: int


def operator_stats(now: datetime | None = None) -> OperatorStats:
    """Headline numbers for the operator dashboard, derived from the ledger and the live windows."""
    now = now or timezone.now()
    start_of_day = timezone.localtime(now).replace(hour=0, minute=0, second=0, microsecond=0)

    current = Entitlement.objects.current(now).order_by()
    completed = Q(status=PaymentAttempt.Status.COMPLETED)
    totals = PaymentAttempt.objects.aggregate(
        revenue_total=Sum("amount", filter=completed),
        revenue_today=Sum("amount", filter=completed & Q(created_at__gte=start_of_day)),
        pending=Count("pk", filter=Q(status=PaymentAttempt.Status.PENDING)),
        unresolved=Count(
            "pk",
            filter=Q(status=PaymentAttempt.Status.PENDING, failure_reason=GATEWAY_TIMEOUT),
        ),
    )
    return OperatorStats(
        connected_devices=current.values("device_id").distinct().count(),
        active_entitlements=current.count(),
        revenue_today=totals["revenue_today"] or 0,
        revenue_total=totals["revenue_total"] or 0,
        pending_payments=totals["pending"],
        unresolved_payments=totals["unresolved"],
    )
