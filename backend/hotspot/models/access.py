from __future__ import annotations

from datetime import datetime
from uuid import uuid4

from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import Q
from django.utils import timezone


class EntitlementQuerySet(models.QuerySet):
    def for_device(self, device_id: str):
        return self.filter(device_id=device_id)

    def current(self, now: datetime | None = None):
        """Active rows whose window has not elapsed, longest-lived first."""
        now = now or timezone.now()
        return self.filter(status=Entitlement.Status.ACTIVE, expires_at__gt=now).order_by("-expires_at")

    def elapsed(self, now: datetime | None = None):
        now = now or timezone.now()
        return self.filter(status=Entitlement.Status.ACTIVE, expires_at__lte=now)


class Entitlement(models.Model):
    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        ACTIVE = "active", "Active"
        CANCELLED = "cancelled", "Cancelled"
        EXPIRED = "expired", "Expired"

    id = models.UUIDField(primary_key=True, default=uuid4, editable=False)
    device_id = models.CharField(max_length=128, db_index=True)
    plan = models.ForeignKey("Plan", on_delete=models.PROTECT, related_name="entitlements")
    payment = models.OneToOneField(
        "PaymentAttempt",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="entitlement",
    )
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.PENDING)
    starts_at = models.DateTimeField()
    expires_at = models.DateTimeField()
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = EntitlementQuerySet.as_manager()

    class Meta:
        ordering = ("-expires_at",)
        indexes = [
            models.Index(fields=("device_id", "status", "expires_at"), name="ent_device_status_exp_idx"),
            models.Index(fields=("status", "expires_at"), name="ent_status_expires_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(status__in=("pending", "active", "cancelled", "expired")),
                name="entitlement_status_valid",
            ),
            models.CheckConstraint(condition=Q(expires_at__gt=models.F("starts_at")), name="ent_window_ordered"),
            models.CheckConstraint(condition=~Q(device_id=""), name="ent_device_not_empty"),
        ]

    def clean(self) -> None:
        self.device_id = (self.device_id or "").strip()
        if not self.device_id:
            raise ValidationError({"device_id": "Device id is required."})
        if self.starts_at and self.expires_at and self.expires_at <= self.starts_at:
            raise ValidationError({"expires_at": "expires_at must be after starts_at."})

    def save(self, *args, **kwargs):
        self.full_clean()
        return super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"{self.device_id}:{self.status}:{self.expires_at:%Y-%m-%d %H:%M}"
