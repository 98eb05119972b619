from __future__ import annotations

from rest_framework import serializers

from ..models import Entitlement, PaymentAttempt
from .catalog import PlanSerializer


class PurchaseRequestSerializer(serializers.Serializer):
    device_id = serializers.CharField(max_length=128, trim_whitespace=True)
    plan_id = serializers.CharField(max_length=64)
    method = serializers.CharField(max_length=24)
    amount = serializers.IntegerField(min_value=0)
    phone_number = serializers.CharField(required=False, allow_blank=True, max_length=32)
    metadata = serializers.DictField(required=False, default=dict)

    def validate(self, attrs):
        attrs = super().validate(attrs)
        metadata = dict(attrs.get("metadata") or {})
        phone_number = (attrs.pop("phone_number", "") or "").strip()
        if phone_number and not metadata.get("phone_number"):
            metadata["phone_number"] = phone_number
        attrs["metadata"] = metadata
        return attrs


class PaymentAttemptSerializer(serializers.ModelSerializer):
    plan_name = serializers.CharField(source="plan.name", read_only=True)

    class Meta:
        model = PaymentAttempt
        fields = (
            "id",
            "device_id",
            "plan",
            "plan_name",
            "amount",
            "currency",
            "method",
            "status",
            "provider_reference",
            "failure_reason",
            "created_at",
            "updated_at",
        )
        read_only_fields = fields


class EntitlementSerializer(serializers.ModelSerializer):
    plan = PlanSerializer(read_only=True)

    class Meta:
        model = Entitlement
        fields = (
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
        read_only_fields = fields


class DisconnectResultSerializer(serializers.Serializer):
    entitlement = EntitlementSerializer(read_only=True)
    changed = serializers.BooleanField(read_only=True)


class ReconcileRequestSerializer(serializers.Serializer):
    action = serializers.ChoiceField(choices=["grant", "flag", "confirm", "fail"])
    reference = serializers.CharField(required=False, allow_blank=True, max_length=255)
