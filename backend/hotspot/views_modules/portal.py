from __future__ import annotations

import logging

from rest_framework import generics, status
from rest_framework.response import Response
from rest_framework.views import APIView

from ..entitlements import (
    GATEWAY_TIMEOUT,
    PurchaseValidationError,
    StorageFailure,
    list_active_plans,
    purchase,
)
from ..entitlements import status as device_status
from ..entitlements.devices import issue_device_id, normalize_device_id
from ..entitlements.ledger import history_for_device
from ..serializers import PaymentAttemptSerializer, PlanSerializer, PurchaseRequestSerializer
from .helpers import build_status_payload, validation_error_payload

logger = logging.getLogger(__name__)


class PlanListView(generics.ListAPIView):
    serializer_class = PlanSerializer
    pagination_class = None

    def get_queryset(self):
        return list_active_plans()


class DeviceIssueView(APIView):
    throttle_scope = "device_issue"

    def post(self, request):
        device_id = issue_device_id()
        logger.info("Issued device id %s.", device_id)
        return Response({"device_id": device_id}, status=status.HTTP_201_CREATED)


class PurchaseView(APIView):
    """Charge for a plan and grant the device a new access window.

    Not wrapped in a request transaction: the pending payment row must be
    committed before the gateway is called.
    """

    throttle_scope = "purchase"

    def post(self, request):
        serializer = PurchaseRequestSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(
                {
                    "success": False,
                    "reason": "validation_error",
                    "code": "invalid_request",
                    "detail": serializer.errors,
                },
                status=status.HTTP_400_BAD_REQUEST,
            )

        data = serializer.validated_data
        try:
            result = purchase(
                data["device_id"],
                data["plan_id"],
                data["method"],
                data["amount"],
                data.get("metadata"),
            )
        except PurchaseValidationError as exc:
            logger.info("Rejected purchase for device %s: %s", data.get("device_id"), exc.detail)
            return Response(validation_error_payload(exc), status=status.HTTP_400_BAD_REQUEST)
        except StorageFailure as exc:
            return Response(
                {
                    "success": False,
                    "reason": "storage_failure",
                    "payment_id": str(exc.payment_id),
                    "detail": "Payment was received but access could not be activated. Support has been notified.",
                },
                status=status.HTTP_500_INTERNAL_SERVER_ERROR,
            )

        if not result.success:
            http_status = (
                status.HTTP_504_GATEWAY_TIMEOUT
                if result.reason == GATEWAY_TIMEOUT
                else status.HTTP_402_PAYMENT_REQUIRED
            )
            return Response(
                {
                    "success": False,
                    "reason": result.reason,
                    "payment_id": str(result.payment.pk),
                },
                status=http_status,
            )

        return Response(
            {
                "success": True,
                "payment_id": str(result.payment.pk),
                "entitlement_id": str(result.entitlement.pk),
                "expires_at": result.expires_at.isoformat(),
            },
            status=status.HTTP_201_CREATED,
        )


class DeviceStatusView(APIView):
    throttle_scope = "device_status"

    def get(self, request, device_id):
        try:
            device_id = normalize_device_id(device_id)
        except PurchaseValidationError as exc:
            return Response(validation_error_payload(exc), status=status.HTTP_400_BAD_REQUEST)
        return Response(build_status_payload(device_status(device_id)))


class DevicePaymentListView(generics.ListAPIView):
    serializer_class = PaymentAttemptSerializer
    pagination_class = None

    def get_queryset(self):
        return history_for_device(str(self.kwargs["device_id"]).strip())[:50]
