from django.contrib import admin, messages

from .entitlements import EntitlementNotFound, disconnect
from .models import Entitlement, PaymentAttempt, Plan


@admin.register(Plan)
class PlanAdmin(admin.ModelAdmin):
    list_display = ("name", "duration_hours", "price", "is_active", "updated_at")
    search_fields = ("name",)
    list_filter = ("is_active",)


@admin.register(PaymentAttempt)
class PaymentAttemptAdmin(admin.ModelAdmin):
    list_display = ("id", "device_id", "plan", "amount", "currency", "method", "status", "created_at")
    search_fields = ("id", "device_id", "provider_reference")
    list_filter = ("status", "method", "currency")
    # Payments change only through purchase and reconciliation.
    readonly_fields = (
        "id",
        "device_id",
        "plan",
        "amount",
        "currency",
        "method",
        "status",
        "provider_reference",
        "failure_reason",
        "metadata",
        "created_at",
        "updated_at",
    )

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(Entitlement)
class EntitlementAdmin(admin.ModelAdmin):
    list_display = ("id", "device_id", "plan", "status", "starts_at", "expires_at")
    search_fields = ("id", "device_id", "payment__id", "payment__provider_reference")
    list_filter = ("status", "plan")
    # Windows and statuses move only through purchase, disconnect, the sweeper and reconciliation.
    readonly_fields = (
        "id",
        "device_id",
        "plan",
        "payment",
        "status",
        "starts_at",
        "expires_at",
        "created_at",
        "updated_at",
    )
    actions = ["disconnect_selected"]

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False

    @admin.action(description="Disconnect selected entitlements")
    def disconnect_selected(self, request, queryset):
        cancelled = 0
        for entitlement_id in queryset.values_list("pk", flat=True):
            try:
                _, changed = disconnect(entitlement_id)
            except EntitlementNotFound:
                continue
            if changed:
                cancelled += 1
        self.message_user(request, f"Disconnected {cancelled} entitlement(s).", messages.SUCCESS)
