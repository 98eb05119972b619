from .access import (
    DisconnectResultSerializer,
    EntitlementSerializer,
    PaymentAttemptSerializer,
    PurchaseRequestSerializer,
    ReconcileRequestSerializer,
)
from .catalog import PlanSerializer

__all__ = [
    "PlanSerializer",
    "PurchaseRequestSerializer",
    "PaymentAttemptSerializer",
    "EntitlementSerializer",
    "DisconnectResultSerializer",
    "ReconcileRequestSerializer",
]
