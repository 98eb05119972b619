from __future__ import annotations

from datetime import timedelta
from uuid import uuid4

from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import Q

# Fields that feed an entitlement window or a charged amount.
PRICED_FIELDS = ("duration_hours", "price")


class PlanQuerySet(models.QuerySet):
    def active(self):
        return self.filter(is_active=True)


class Plan(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid4, editable=False)
    name = models.CharField(max_length=50)
    duration_hours = models.PositiveIntegerField()
    price = models.PositiveIntegerField(help_text="Amount in the minor currency unit.")
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = PlanQuerySet.as_manager()

    class Meta:
        ordering = ("price", "duration_hours")
        indexes = [
            models.Index(fields=("is_active", "price"), name="plan_active_price_idx"),
        ]
        constraints = [
            models.CheckConstraint(condition=~Q(name=""), name="plan_name_not_empty"),
            models.CheckConstraint(condition=Q(duration_hours__gt=0), name="plan_duration_positive"),
            models.CheckConstraint(condition=Q(price__gt=0), name="plan_price_positive"),
        ]

    @property
    def duration(self) -> timedelta:
        return timedelta(hours=self.duration_hours)

    def clean(self) -> None:
        self.name = (self.name or "").strip()
        if not self.name:
            raise ValidationError({"name": "Plan name cannot be empty."})
        if not self.duration_hours or self.duration_hours < 1:
            raise ValidationError({"duration_hours": "Duration must be at least one hour."})
        if not self.price or self.price < 1:
            raise ValidationError({"price": "Price must be a positive amount."})

        if self._state.adding:
            return

        stored = Plan.objects.filter(pk=self.pk).values(*PRICED_FIELDS).first()
        if stored is None:
            return
        changed = [field for field in PRICED_FIELDS if stored[field] != getattr(self, field)]
        if changed and self.payment_attempts.exists():
            raise ValidationError(
                {field: "Cannot change a plan that has already been charged for." for field in changed}
            )

    def save(self, *args, **kwargs):
        self.full_clean()
        return super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"{self.name} ({self.duration_hours}h, {self.price})"
