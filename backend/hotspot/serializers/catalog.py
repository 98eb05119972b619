from __future__ import annotations

from django.conf import settings
from rest_framework import serializers

from ..models import Plan


class PlanSerializer(serializers.ModelSerializer):
    currency = serializers.SerializerMethodField()

    class Meta:
        model = Plan
        fields = (
            "id",
            "name",
            "duration_hours",
            "price",
            "currency",
            "is_active",
        )
        read_only_fields = fields

    def get_currency(self, obj: Plan) -> str:
        return getattr(settings, "HOTSPOT_CURRENCY", "UGX")
