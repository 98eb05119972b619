from .engine import GATEWAY_DECLINED, GATEWAY_TIMEOUT, PurchaseResult, disconnect, purchase, sync_actuator
from .errors import (
    AmountMismatch,
    EntitlementError,
    EntitlementNotFound,
    InvalidDevice,
    InvalidTransition,
    MissingPaymentMetadata,
    PlanInactive,
    PlanNotFound,
    PurchaseValidationError,
    StorageFailure,
    UnsupportedMethod,
)
from .query import DeviceStatus, OperatorStats, TimeRemaining, list_active_plans, operator_stats, status
from .reconciliation import find_unlinked_payments, find_unresolved_payments, reconcile_payment
from .sweeper import SweepStats, run_forever, sweep_expired

__all__ = [
    "GATEWAY_DECLINED",
    "GATEWAY_TIMEOUT",
    "PurchaseResult",
    "purchase",
    "disconnect",
    "sync_actuator",
    "DeviceStatus",
    "TimeRemaining",
    "status",
    "list_active_plans",
    "OperatorStats",
    "operator_stats",
    "find_unlinked_payments",
    "find_unresolved_payments",
    "reconcile_payment",
    "SweepStats",
    "sweep_expired",
    "run_forever",
    "EntitlementError",
    "EntitlementNotFound",
    "PurchaseValidationError",
    "InvalidDevice",
    "PlanNotFound",
    "PlanInactive",
    "AmountMismatch",
    "UnsupportedMethod",
    "MissingPaymentMetadata",
    "StorageFailure",
    "InvalidTransition",
]
