from __future__ import annotations

import secrets
from typing import Any

from django.conf import settings
from rest_framework.permissions import BasePermission

from ..entitlements import DeviceStatus, PurchaseValidationError
from ..serializers import PlanSerializer

ADMIN_SECRET_HEADER = "X-Hotspot-Admin-Secret"


def _safe_str(value: Any) -> str:
    return str(value).strip() if value else ""


def admin_secret_valid(request) -> bool:
    expected_secret = _safe_str(getattr(settings, "HOTSPOT_ADMIN_API_SECRET", ""))
    if not expected_secret:
        return False

    provided_secret = _safe_str(request.headers.get(ADMIN_SECRET_HEADER, ""))
    return bool(provided_secret) and secrets.compare_digest(provided_secret, expected_secret)


class HasAdminSecret(BasePermission):
    message = f"Administrative access requires a valid {ADMIN_SECRET_HEADER} header."

    def has_permission(self, request, view) -> bool:
        return admin_secret_valid(request)


def validation_error_payload(exc: PurchaseValidationError) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "success": False,
        "reason": "validation_error",
        "code": exc.code,
        "detail": exc.detail,
    }
    if exc.field:
        payload["field"] = exc.field
    return payload


def build_status_payload(device_status: DeviceStatus) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "device_id": device_status.device_id,
        "connected": device_status.connected,
        "plan": None,
        "entitlement_id": None,
        "expires_at": None,
        "time_remaining": None,
        "expiring_soon": False,
    }
    if not device_status.connected:
        return payload

    remaining = device_status.time_remaining
    payload.update(
        {
            "plan": PlanSerializer(device_status.plan).data,
            "entitlement_id": str(device_status.entitlement.pk),
            "expires_at": device_status.expires_at.isoformat(),
            "time_remaining": {
                "hours": remaining.hours,
                "minutes": remaining.minutes,
                "total_seconds": remaining.total_seconds,
                "display": remaining.display,
            },
            "expiring_soon": device_status.expiring_soon,
        }
    )
    return payload
