from __future__ import annotations


class EntitlementError(Exception):
    """Base class for hotspot access lifecycle errors."""


class PurchaseValidationError(EntitlementError):
    """Rejected before any payment attempt is written. Safe to retry with corrected input."""

    code = "invalid_request"

    def __init__(self, detail: str, *, field: str | None = None):
        super().__init__(detail)
        self.detail = detail
        self.field = field


class InvalidDevice(PurchaseValidationError):
    code = "invalid_device"


class PlanNotFound(PurchaseValidationError):
    code = "plan_not_found"


class PlanInactive(PurchaseValidationError):
    code = "plan_inactive"


class AmountMismatch(PurchaseValidationError):
    code = "amount_mismatch"


class UnsupportedMethod(PurchaseValidationError):
    code = "unsupported_method"


class MissingPaymentMetadata(PurchaseValidationError):
    code = "missing_metadata"


class StorageFailure(EntitlementError):
    """The charge went through but the entitlement could not be persisted.

    The payment attempt is left ``completed`` without an entitlement so the
    reconciliation pass can grant access or flag a refund.
    """

    def __init__(self, payment_id, detail: str = "Entitlement could not be stored after a successful charge."):
        super().__init__(detail)
        self.payment_id = payment_id
        self.detail = detail


class InvalidTransition(EntitlementError):
    def __init__(self, obj, current: str, target: str):
        super().__init__(f"{type(obj).__name__} {obj.pk} cannot move from {current} to {target}.")
        self.current = current
        self.target = target


class EntitlementNotFound(EntitlementError):
    pass
