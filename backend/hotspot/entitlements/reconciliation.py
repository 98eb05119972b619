"""Manual resolution of payments that did not end in a clean grant.

Two cases reach an operator: a charge that succeeded but never produced an
entitlement (``completed``, no linked row), and a charge whose gateway call
timed out (``pending`` with ``failure_reason="gateway_timeout"``). The first is
granted or flagged for refund; the second is confirmed against the provider's
records or failed.
"""

from __future__ import annotations

import logging

from django.db import transaction
from django.utils import timezone

from ..models import Entitlement, PaymentAttempt
from . import ledger, store
from .engine import GATEWAY_TIMEOUT, sync_actuator
from .errors import InvalidTransition

logger = logging.getLogger(__name__)

ACTION_GRANT = "grant"
ACTION_FLAG = "flag"
ACTION_CONFIRM = "confirm"
ACTION_FAIL = "fail"
UNLINKED_ACTIONS = (ACTION_GRANT, ACTION_FLAG)
UNRESOLVED_ACTIONS = (ACTION_CONFIRM, ACTION_FAIL)
REFUND_REQUESTED = "refund_requested"


def find_unlinked_payments() -> list[PaymentAttempt]:
    """Completed payments with no entitlement that nobody has dealt with yet."""
    payments = (
        PaymentAttempt.objects.filter(status=PaymentAttempt.Status.COMPLETED, entitlement__isnull=True)
        .select_related("plan")
        .order_by("created_at")
    )
    return [
        payment
        for payment in payments
        if not isinstance(payment.metadata, dict) or payment.metadata.get("reconciliation") != REFUND_REQUESTED
    ]


def find_unresolved_payments():
    """Pending payments whose gateway call timed out."""
    return (
        PaymentAttempt.objects.filter(status=PaymentAttempt.Status.PENDING, failure_reason=GATEWAY_TIMEOUT)
        .select_related("plan")
        .order_by("created_at")
    )


def _stamp(payment: PaymentAttempt, outcome: str) -> None:
    metadata = payment.metadata if isinstance(payment.metadata, dict) else {}
    metadata.pop("entitlement_missing", None)
    payment.metadata = {**metadata, "reconciliation": outcome, "reconciled_at": timezone.now().isoformat()}
    payment.save(update_fields=["metadata", "updated_at"])


def _grant(payment: PaymentAttempt, *, reference: str | None = None, confirm: bool = False) -> Entitlement:
    with transaction.atomic():
        if confirm:
            ledger.mark_completed(payment, reference or payment.provider_reference, failure_reason="")
        entitlement = store.create(device_id=payment.device_id, plan=payment.plan, payment=payment)
        _stamp(payment, "confirmed" if confirm else "granted")

    logger.info(
        "Retroactively granted device %s access until %s for payment %s.",
        payment.device_id,
        entitlement.expires_at.isoformat(),
        payment.pk,
    )
    if not sync_actuator(payment.device_id):
        logger.warning("Network actuator did not confirm grant for device %s.", payment.device_id)
    return entitlement


def reconcile_payment(payment: PaymentAttempt, action: str, *, reference: str | None = None) -> Entitlement | None:
    """Resolve a payment that never produced access.

    ``grant`` issues the entitlement now for a completed payment, for the
    plan captured on it. ``flag`` marks it for a refund and grants nothing.
    ``confirm`` completes a timed-out payment (the provider did collect) and
    grants access; ``fail`` closes it as failed.
    """
    if action not in UNLINKED_ACTIONS + UNRESOLVED_ACTIONS:
        raise ValueError(f"Unknown reconciliation action: {action}")

    if action in UNRESOLVED_ACTIONS:
        if payment.status != PaymentAttempt.Status.PENDING or payment.failure_reason != GATEWAY_TIMEOUT:
            raise InvalidTransition(payment, payment.status, f"reconciled:{action}")
        if action == ACTION_FAIL:
            ledger.mark_failed(payment, GATEWAY_TIMEOUT, reference=reference or payment.provider_reference)
            _stamp(payment, "failed")
            logger.warning("Timed-out payment %s for device %s closed as failed.", payment.pk, payment.device_id)
            return None
        return _grant(payment, reference=reference, confirm=True)

    if payment.status != PaymentAttempt.Status.COMPLETED:
        raise InvalidTransition(payment, payment.status, f"reconciled:{action}")
    if Entitlement.objects.filter(payment=payment).exists():
        return payment.entitlement

    if action == ACTION_FLAG:
        _stamp(payment, REFUND_REQUESTED)
        logger.warning("Payment %s for device %s flagged for refund.", payment.pk, payment.device_id)
        return None

    return _grant(payment)
