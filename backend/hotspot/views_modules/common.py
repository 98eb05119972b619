from __future__ import annotations

import logging
from datetime import datetime, timezone

from django.db import DatabaseError, connection
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from ..tools.actuator import actuator_is_configured

logger = logging.getLogger(__name__)


class HealthView(APIView):
    def get(self, request):
        database_ok = True
        try:
            with connection.cursor() as cursor:
                cursor.execute("SELECT 1")
        except DatabaseError:
            logger.exception("Health check could not reach the database.")
            database_ok = False

        return Response(
            {
                "status": "ok" if database_ok else "degraded",
                "timestamp": datetime.now(tz=timezone.utc).isoformat(),
                "database": database_ok,
                "actuator_configured": actuator_is_configured(),
            },
            status=status.HTTP_200_OK if database_ok else status.HTTP_503_SERVICE_UNAVAILABLE,
        )
