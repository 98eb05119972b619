from __future__ import annotations

import logging
from typing import Any

from django.conf import settings
from django.utils import timezone

from ..models import PaymentAttempt, Plan
from .errors import InvalidTransition

logger = logging.getLogger(__name__)


def record_attempt(
    *,
    device_id: str,
    plan: Plan,
    amount: int,
    method: str,
    metadata: dict[str, Any] | None = None,
) -> PaymentAttempt:
    payment = PaymentAttempt.objects.create(
        device_id=device_id,
        plan=plan,
        amount=amount,
        currency=getattr(settings, "HOTSPOT_CURRENCY", "UGX"),
        method=method,
        status=PaymentAttempt.Status.PENDING,
        metadata={**(metadata or {}), "plan_id": str(plan.pk)},
    )
    logger.info(
        "Recorded pending payment %s for device %s (plan=%s, method=%s, amount=%s).",
        payment.pk,
        device_id,
        plan.pk,
        method,
        amount,
    )
    return payment


def _transition(payment: PaymentAttempt, target: str, **fields: Any) -> PaymentAttempt:
    now = timezone.now()
    updated = PaymentAttempt.objects.filter(
        pk=payment.pk,
        status=PaymentAttempt.Status.PENDING,
    ).update(status=target, updated_at=now, **fields)
    if not updated:
        current = PaymentAttempt.objects.filter(pk=payment.pk).values_list("status", flat=True).first()
        raise InvalidTransition(payment, current or "missing", target)

    payment.status = target
    payment.updated_at = now
    for name, value in fields.items():
        setattr(payment, name, value)
    return payment


def mark_completed(payment: PaymentAttempt, reference: str | None, **fields: Any) -> PaymentAttempt:
    return _transition(
        payment,
        PaymentAttempt.Status.COMPLETED,
        provider_reference=(reference or "").strip() or None,
        **fields,
    )


def mark_failed(payment: PaymentAttempt, reason: str, reference: str | None = None) -> PaymentAttempt:
    return _transition(
        payment,
        PaymentAttempt.Status.FAILED,
        failure_reason=(reason or "declined")[:64],
        provider_reference=(reference or "").strip() or None,
    )


def note_unresolved(payment: PaymentAttempt, reason: str) -> PaymentAttempt:
    """Annotate a payment that stays ``pending`` because the provider outcome is unknown."""
    updated = PaymentAttempt.objects.filter(pk=payment.pk, status=PaymentAttempt.Status.PENDING).update(
        failure_reason=reason[:64],
        updated_at=timezone.now(),
    )
    if updated:
        payment.failure_reason = reason[:64]
    return payment


def history_for_device(device_id: str):
    return PaymentAttempt.objects.filter(device_id=device_id).select_related("plan").order_by("-created_at")
