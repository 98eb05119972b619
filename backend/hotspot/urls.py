from django.urls import path

from .views import (
    AdminDisconnectView,
    AdminStatsView,
    AdminSweepView,
    DeviceIssueView,
    DevicePaymentListView,
    DeviceStatusView,
    HealthView,
    PlanListView,
    PurchaseView,
    ReconciliationListView,
    ReconciliationResolveView,
)

urlpatterns = [
    path("health/", HealthView.as_view(), name="health"),
    path("plans/", PlanListView.as_view(), name="plan-list"),
    path("devices/", DeviceIssueView.as_view(), name="device-issue"),
    path("devices/<str:device_id>/status/", DeviceStatusView.as_view(), name="device-status"),
    path("devices/<str:device_id>/payments/", DevicePaymentListView.as_view(), name="device-payments"),
    path("purchase/", PurchaseView.as_view(), name="purchase"),
    path(
        "admin/entitlements/<uuid:entitlement_id>/disconnect/",
        AdminDisconnectView.as_view(),
        name="admin-entitlement-disconnect",
    ),
    path("admin/reconciliation/", ReconciliationListView.as_view(), name="admin-reconciliation"),
    path(
        "admin/reconciliation/<uuid:payment_id>/",
        ReconciliationResolveView.as_view(),
        name="admin-reconciliation-resolve",
    ),
    path("admin/sweep/", AdminSweepView.as_view(), name="admin-sweep"),
    path("admin/stats/", AdminStatsView.as_view(), name="admin-stats"),
]
