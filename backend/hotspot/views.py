from .views_modules.common import HealthView
from .views_modules.operator import (
    AdminDisconnectView,
    AdminStatsView,
    AdminSweepView,
    ReconciliationListView,
    ReconciliationResolveView,
)
from .views_modules.portal import (
    DeviceIssueView,
    DevicePaymentListView,
    DeviceStatusView,
    PlanListView,
    PurchaseView,
)

__all__ = [
    "HealthView",
    "PlanListView",
    "DeviceIssueView",
    "PurchaseView",
    "DeviceStatusView",
    "DevicePaymentListView",
    "AdminDisconnectView",
    "ReconciliationListView",
    "ReconciliationResolveView",
    "AdminSweepView",
    "AdminStatsView",
]
