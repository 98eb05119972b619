from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime

from django.conf import settings
from django.db import DatabaseError, close_old_connections
from django.utils import timezone

from ..models import Entitlement
from ..tools.actuator import grant_access, revoke_access
from . import store
from .errors import InvalidTransition

logger = logging.getLogger(__name__)

_sweep_lock = threading.Lock()


@dataclass
class SweepStats:
    started_at: str
    completed_at: str | None = None
    examined: int = 0
    expired: int = 0
    revoked: int = 0
    regranted: int = 0
    actuator_failures: int = 0
    errors: int = 0
    skipped: bool = False


def _notify(device_id: str, expires_at: datetime | None) -> tuple[str, bool]:
    if expires_at is not None:
        # An overlapping grant is still running; restate it instead of cutting the device off.
        return "regranted", grant_access(device_id, expires_at)
    return "revoked", revoke_access(device_id)


def _notify_devices(expired_devices: set[str], now: datetime, workers: int, stats: SweepStats) -> None:
    remaining: dict[str, datetime] = {}
    for device_id, expires_at in (
        Entitlement.objects.filter(device_id__in=expired_devices)
        .current(now)
        .values_list("device_id", "expires_at")
    ):
        remaining.setdefault(device_id, expires_at)

    devices = sorted(expired_devices)
    with ThreadPoolExecutor(max_workers=max(1, workers), thread_name_prefix="entitlement-sweep") as executor:
        outcomes = list(executor.map(lambda device: _notify(device, remaining.get(device)), devices))

    for device_id, (action, delivered) in zip(devices, outcomes):
        setattr(stats, action, getattr(stats, action) + 1)
        if not delivered:
            stats.actuator_failures += 1
            logger.warning("Network actuator did not confirm %s for device %s.", action, device_id)


def sweep_expired(now: datetime | None = None, *, max_workers: int | None = None) -> SweepStats:
    """Mark elapsed ``active`` entitlements ``expired`` and tell the actuator.

    Only rows this pass actually transitions trigger an actuator call, so
    re-running over already expired rows does nothing. Devices whose rows were
    expired are notified even if a later row in the same pass fails. Overlapping
    passes in the same process are skipped.
    """
    now = now or timezone.now()
    stats = SweepStats(started_at=timezone.now().isoformat())

    if not _sweep_lock.acquire(blocking=False):
        logger.info("Entitlement sweep already running; skipping this pass.")
        stats.skipped = True
        stats.completed_at = timezone.now().isoformat()
        return stats

    expired_devices: set[str] = set()
    try:
        candidates = list(store.list_active_expiring_before(now).values_list("pk", "device_id"))
        stats.examined = len(candidates)

        for entitlement_id, device_id in candidates:
            try:
                changed = store.set_status(
                    entitlement_id,
                    Entitlement.Status.EXPIRED,
                    expected=Entitlement.Status.ACTIVE,
                )
            except Entitlement.DoesNotExist:
                logger.warning("Entitlement %s disappeared before it could be expired.", entitlement_id)
                stats.errors += 1
                continue
            except (DatabaseError, InvalidTransition):
                logger.exception("Could not expire entitlement %s.", entitlement_id)
                stats.errors += 1
                continue
            if changed:
                stats.expired += 1
                expired_devices.add(device_id)
    finally:
        try:
            if expired_devices:
                workers = max_workers or int(getattr(settings, "ENTITLEMENT_SWEEP_MAX_WORKERS", 4))
                _notify_devices(expired_devices, now, workers, stats)
        finally:
            _sweep_lock.release()

    stats.completed_at = timezone.now().isoformat()
    logger.info(
        "Entitlement sweep finished: examined=%s expired=%s revoked=%s regranted=%s actuator_failures=%s errors=%s",
        stats.examined,
        stats.expired,
        stats.revoked,
        stats.regranted,
        stats.actuator_failures,
        stats.errors,
    )
    return stats


def run_forever(interval_seconds: int | None = None) -> None:
    interval = interval_seconds or int(getattr(settings, "ENTITLEMENT_SWEEP_INTERVAL_SECONDS", 60))
    logger.info("Starting entitlement sweeper every %ss.", interval)
    while True:
        close_old_connections()
        try:
            sweep_expired()
        except Exception:
            logger.exception("Entitlement sweep pass failed.")
        time.sleep(interval)
