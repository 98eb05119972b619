"""Purchase and administrative lifecycle for device entitlements.

Every ``purchase`` call writes its own payment attempt before the gateway is
touched, so each charge attempt is auditable even if the process dies
mid-call. Duplicate submissions are not de-duplicated: each one is an
independent attempt and, on success, an independent entitlement. The access
query resolves overlapping grants by reporting the longest-lived one.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import DatabaseError, transaction
from django.utils import timezone

from ..models import Entitlement, PaymentAttempt, Plan
from ..tools.actuator import grant_access, revoke_access
from ..tools.gateway import GatewayError, GatewayTimeout, charge, mask_account
from . import ledger, store
from .devices import normalize_device_id, normalize_phone_number
from .errors import (
    AmountMismatch,
    EntitlementNotFound,
    InvalidTransition,
    PlanInactive,
    PlanNotFound,
    StorageFailure,
    UnsupportedMethod,
)

logger = logging.getLogger(__name__)

GATEWAY_DECLINED = "gateway_declined"
GATEWAY_TIMEOUT = "gateway_timeout"


@dataclass(frozen=True)
class PurchaseResult:
    success: bool
    payment: PaymentAttempt
    entitlement: Entitlement | None = None
    reason: str = ""

    @property
    def expires_at(self) -> datetime | None:
        return self.entitlement.expires_at if self.entitlement else None


def supported_methods() -> list[str]:
    configured = [str(item).strip().lower() for item in getattr(settings, "HOTSPOT_CHARGE_METHODS", [])]
    known = set(PaymentAttempt.Method.values)
    return [method for method in configured if method in known]


def requires_originating_account(method: str) -> bool:
    mobile_money = getattr(settings, "HOTSPOT_MOBILE_MONEY_METHODS", ["mtn", "airtel"])
    return method in {str(item).strip().lower() for item in mobile_money}


def _resolve_plan(plan_id: Any) -> Plan:
    try:
        plan = Plan.objects.filter(pk=plan_id).first()
    except (DjangoValidationError, ValueError, TypeError):
        plan = None
    if plan is None:
        raise PlanNotFound(f"Plan {plan_id} does not exist.", field="plan_id")
    if not plan.is_active:
        raise PlanInactive(f"Plan {plan.name} is not available for purchase.", field="plan_id")
    return plan


def _validate_method(method: Any) -> str:
    normalized = str(method or "").strip().lower()
    if normalized not in supported_methods():
        raise UnsupportedMethod(f"Unsupported payment method: {method}", field="method")
    return normalized


def _validate_amount(amount: Any, plan: Plan) -> int:
    # Never correct the amount silently; a mismatch means stale or tampered input.
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise AmountMismatch("Amount must be a whole number in the minor currency unit.", field="amount")
    if amount != plan.price:
        raise AmountMismatch(f"Amount {amount} does not match the plan price {plan.price}.", field="amount")
    return amount


def _clean_metadata(method: str, metadata: dict[str, Any] | None) -> dict[str, Any]:
    cleaned = dict(metadata) if isinstance(metadata, dict) else {}
    phone_number = cleaned.get("phone_number")
    if requires_originating_account(method):
        cleaned["phone_number"] = normalize_phone_number(phone_number)
    elif phone_number:
        cleaned["phone_number"] = str(phone_number).strip()
    return cleaned


def sync_actuator(device_id: str) -> bool:
    """Restate the device's current grant to the actuator, or revoke it when there is none."""
    current = store.get(device_id)
    if current is not None:
        return grant_access(device_id, current.expires_at)
    return revoke_access(device_id)


def _record_orphaned_charge(payment: PaymentAttempt, reference: str | None) -> None:
    metadata = payment.metadata if isinstance(payment.metadata, dict) else {}
    try:
        PaymentAttempt.objects.filter(pk=payment.pk, status=PaymentAttempt.Status.PENDING).update(
            status=PaymentAttempt.Status.COMPLETED,
            provider_reference=(reference or "").strip() or None,
            metadata={**metadata, "entitlement_missing": True},
            updated_at=timezone.now(),
        )
    except DatabaseError:
        logger.exception(
            "Could not record charged payment %s (reference=%s); reconcile against the provider.",
            payment.pk,
            reference,
        )


def purchase(
    device_id: Any,
    plan_id: Any,
    method: Any,
    amount: Any,
    metadata: dict[str, Any] | None = None,
) -> PurchaseResult:
    """Charge for ``plan_id`` and grant ``device_id`` a fresh access window.

    Raises:
        PurchaseValidationError: Input rejected; nothing was written.
        StorageFailure: The charge succeeded but no entitlement could be stored.
    """
    device_id = normalize_device_id(device_id)
    method = _validate_method(method)
    plan = _resolve_plan(plan_id)
    amount = _validate_amount(amount, plan)
    metadata = _clean_metadata(method, metadata)

    payment = ledger.record_attempt(
        device_id=device_id,
        plan=plan,
        amount=amount,
        method=method,
        metadata=metadata,
    )
    account = metadata.get("phone_number") or str(metadata.get("account") or "") or device_id

    try:
        result = charge(method, account, amount, attempt_id=str(payment.pk))
    except GatewayTimeout:
        # The provider may still settle; leave it pending for manual reconciliation.
        ledger.note_unresolved(payment, GATEWAY_TIMEOUT)
        logger.warning("Payment %s for device %s timed out at the gateway.", payment.pk, device_id)
        return PurchaseResult(success=False, payment=payment, reason=GATEWAY_TIMEOUT)
    except GatewayError as exc:
        ledger.mark_failed(payment, "gateway_error")
        logger.warning("Payment %s for device %s failed at the gateway: %s", payment.pk, device_id, exc)
        return PurchaseResult(success=False, payment=payment, reason=GATEWAY_DECLINED)

    if not result.success:
        ledger.mark_failed(payment, result.reason or "declined", reference=result.reference)
        logger.info(
            "Payment %s declined for device %s via %s (payer=%s, reason=%s).",
            payment.pk,
            device_id,
            method,
            mask_account(account),
            result.reason,
        )
        return PurchaseResult(success=False, payment=payment, reason=GATEWAY_DECLINED)

    try:
        with transaction.atomic():
            ledger.mark_completed(payment, result.reference)
            entitlement = store.create(device_id=device_id, plan=plan, payment=payment)
    except (DatabaseError, DjangoValidationError, InvalidTransition) as exc:
        logger.exception(
            "Charged payment %s (reference=%s) but could not store an entitlement for device %s.",
            payment.pk,
            result.reference,
            device_id,
        )
        _record_orphaned_charge(payment, result.reference)
        raise StorageFailure(payment.pk) from exc

    logger.info(
        "Granted device %s access until %s (entitlement=%s, payment=%s).",
        device_id,
        entitlement.expires_at.isoformat(),
        entitlement.pk,
        payment.pk,
    )
    if not sync_actuator(device_id):
        logger.warning("Network actuator did not confirm grant for device %s.", device_id)

    return PurchaseResult(success=True, payment=payment, entitlement=entitlement)


def disconnect(entitlement_id: Any) -> tuple[Entitlement, bool]:
    """Cancel an active entitlement. Calling it again on a non-active row is a no-op."""
    try:
        entitlement = store.get_by_id(entitlement_id)
    except (DjangoValidationError, ValueError, TypeError):
        entitlement = None
    if entitlement is None:
        raise EntitlementNotFound(f"Entitlement {entitlement_id} does not exist.")

    changed = store.set_status(entitlement.pk, Entitlement.Status.CANCELLED, expected=Entitlement.Status.ACTIVE)
    entitlement.refresh_from_db()
    if changed:
        logger.info("Cancelled entitlement %s for device %s.", entitlement.pk, entitlement.device_id)
        sync_actuator(entitlement.device_id)
    else:
        logger.info("Disconnect for entitlement %s ignored (status=%s).", entitlement.pk, entitlement.status)
    return entitlement, changed
