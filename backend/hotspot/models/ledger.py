from __future__ import annotations

from uuid import uuid4

from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import Q


class PaymentAttempt(models.Model):
    class Method(models.TextChoices):
        MTN = "mtn", "MTN Mobile Money"
        AIRTEL = "airtel", "Airtel Money"
        VISA = "visa", "Visa/Mastercard"
        WALLET = "wallet", "Mobile Wallet"

    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        COMPLETED = "completed", "Completed"
        FAILED = "failed", "Failed"

    id = models.UUIDField(primary_key=True, default=uuid4, editable=False)
    device_id = models.CharField(max_length=128, db_index=True)
    plan = models.ForeignKey("Plan", on_delete=models.PROTECT, related_name="payment_attempts")
    amount = models.PositiveIntegerField()
    currency = models.CharField(max_length=3, default="UGX")
    method = models.CharField(max_length=24, choices=Method.choices)
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.PENDING)
    provider_reference = models.CharField(max_length=255, null=True, blank=True)
    failure_reason = models.CharField(max_length=64, blank=True)
    metadata = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ("-created_at",)
        indexes = [
            models.Index(fields=("device_id", "created_at"), name="payment_device_created_idx"),
            models.Index(fields=("status", "updated_at"), name="payment_status_updated_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(status__in=("pending", "completed", "failed")),
                name="payment_status_valid",
            ),
            models.CheckConstraint(condition=~Q(device_id=""), name="payment_device_not_empty"),
        ]

    def clean(self) -> None:
        self.device_id = (self.device_id or "").strip()
        self.currency = (self.currency or "UGX").strip().upper()
        self.provider_reference = (self.provider_reference or "").strip() or None
        self.failure_reason = (self.failure_reason or "").strip()

        if not self.device_id:
            raise ValidationError({"device_id": "Device id is required."})
        if len(self.currency) != 3:
            raise ValidationError({"currency": "Currency must be a 3-letter code."})
        if not isinstance(self.metadata, dict):
            raise ValidationError({"metadata": "Metadata must be an object."})

    def save(self, *args, **kwargs):
        self.full_clean()
        return super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"{self.device_id}:{self.method}:{self.status}"
