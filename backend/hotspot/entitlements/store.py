"""Data access for entitlements.

"Current entitlement" for a device is always derived from the stored window:
the ``active`` row with the latest ``expires_at`` that is still in the
future. The ``status`` column may lag behind the clock until the sweeper runs,
but connectivity decisions never depend on it alone.

Status changes are single conditional ``UPDATE`` statements, so a reader
never sees a row with a new status and a stale ``updated_at``, and two
writers racing on the same row cannot both win.
"""

from __future__ import annotations

from datetime import datetime

from django.utils import timezone

from ..models import Entitlement, PaymentAttempt, Plan
from .errors import InvalidTransition

ALLOWED_TRANSITIONS = {
    Entitlement.Status.PENDING: {Entitlement.Status.ACTIVE, Entitlement.Status.CANCELLED},
    Entitlement.Status.ACTIVE: {Entitlement.Status.EXPIRED, Entitlement.Status.CANCELLED},
    Entitlement.Status.CANCELLED: set(),
    Entitlement.Status.EXPIRED: set(),
}


def create(
    *,
    device_id: str,
    plan: Plan,
    payment: PaymentAttempt | None = None,
    starts_at: datetime | None = None,
) -> Entitlement:
    # The window is fixed from the plan as resolved now; later catalog edits do not move it.
    starts_at = starts_at or timezone.now()
    return Entitlement.objects.create(
        device_id=device_id,
        plan=plan,
        payment=payment,
        status=Entitlement.Status.ACTIVE,
        starts_at=starts_at,
        expires_at=starts_at + plan.duration,
    )


def get(device_id: str, now: datetime | None = None) -> Entitlement | None:
    return Entitlement.objects.for_device(device_id).current(now).select_related("plan").first()


def get_by_id(entitlement_id) -> Entitlement | None:
    return Entitlement.objects.select_related("plan").filter(pk=entitlement_id).first()


def set_status(entitlement_id, status: str, *, expected: str | None = None) -> bool:
    """Move an entitlement to ``status``.

    Returns ``True`` when this call performed the transition and ``False``
    when the row was already in ``status``. Any other starting state that
    does not allow the move raises ``InvalidTransition``.
    """
    current = Entitlement.objects.filter(pk=entitlement_id).values_list("status", flat=True).first()
    if current is None:
        raise Entitlement.DoesNotExist(entitlement_id)
    if current == status:
        return False

    source = expected or current
    if status not in ALLOWED_TRANSITIONS.get(source, set()):
        raise InvalidTransition(Entitlement(pk=entitlement_id), current, status)

    updated = Entitlement.objects.filter(pk=entitlement_id, status=source).update(
        status=status,
        updated_at=timezone.now(),
    )
    return bool(updated)


def list_active_expiring_before(moment: datetime):
    return Entitlement.objects.elapsed(moment).order_by("expires_at")
