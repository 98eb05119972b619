from __future__ import annotations

import logging
from dataclasses import asdict

from django.conf import settings
from django.shortcuts import get_object_or_404
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from ..entitlements import (
    EntitlementNotFound,
    InvalidTransition,
    disconnect,
    find_unlinked_payments,
    find_unresolved_payments,
    operator_stats,
    reconcile_payment,
    sweep_expired,
)
from ..models import PaymentAttempt
from ..serializers import (
    DisconnectResultSerializer,
    EntitlementSerializer,
    PaymentAttemptSerializer,
    ReconcileRequestSerializer,
)
from .helpers import HasAdminSecret

logger = logging.getLogger(__name__)


class AdminDisconnectView(APIView):
    permission_classes = [HasAdminSecret]

    def post(self, request, entitlement_id):
        try:
            entitlement, changed = disconnect(entitlement_id)
        except EntitlementNotFound as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_404_NOT_FOUND)
        return Response(DisconnectResultSerializer({"entitlement": entitlement, "changed": changed}).data)


class ReconciliationListView(APIView):
    permission_classes = [HasAdminSecret]

    def get(self, request):
        payments = find_unlinked_payments()
        unresolved = list(find_unresolved_payments())
        return Response(
            {
                "count": len(payments),
                "payments": PaymentAttemptSerializer(payments, many=True).data,
                "unresolved_count": len(unresolved),
                "unresolved": PaymentAttemptSerializer(unresolved, many=True).data,
            }
        )


class ReconciliationResolveView(APIView):
    permission_classes = [HasAdminSecret]

    def post(self, request, payment_id):
        payment = get_object_or_404(PaymentAttempt.objects.select_related("plan"), pk=payment_id)
        serializer = ReconcileRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            entitlement = reconcile_payment(
                payment,
                serializer.validated_data["action"],
                reference=serializer.validated_data.get("reference") or None,
            )
        except InvalidTransition as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_409_CONFLICT)

        logger.info("Reconciled payment %s with action %s.", payment.pk, serializer.validated_data["action"])
        return Response(
            {
                "payment": PaymentAttemptSerializer(payment).data,
                "entitlement": EntitlementSerializer(entitlement).data if entitlement else None,
            }
        )


class AdminSweepView(APIView):
    permission_classes = [HasAdminSecret]

    def post(self, request):
        return Response(asdict(sweep_expired()))


class AdminStatsView(APIView):
    permission_classes = [HasAdminSecret]

    def get(self, request):
        return Response(
            {
                **asdict(operator_stats()),
                "currency": getattr(settings, "HOTSPOT_CURRENCY", "UGX"),
            }
        )
