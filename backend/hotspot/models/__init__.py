from .access import Entitlement
from .catalog import Plan
from .ledger import PaymentAttempt

__all__ = [
    "Plan",
    "PaymentAttempt",
    "Entitlement",
]
