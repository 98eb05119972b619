from __future__ import annotations

import json
import logging
from datetime import datetime
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from django.conf import settings

logger = logging.getLogger(__name__)


def _normalize_text(value: object) -> str:
    return str(value or "").strip()


def actuator_is_configured() -> bool:
    return bool(_normalize_text(getattr(settings, "NETWORK_ACTUATOR_URL", "")))


def _send_actuator_command(action: str, payload: dict[str, object]) -> bool:
    """POST one command to the router hook.

    The hook is expected to be idempotent, so callers may repeat grants and
    revokes. Failures are logged and reported as ``False``; nothing is retried
    here.
    """
    base_url = _normalize_text(getattr(settings, "NETWORK_ACTUATOR_URL", "")).rstrip("/")
    if not base_url:
        logger.info("Network actuator not configured; %s for %s logged only.", action, payload.get("device_id"))
        return True

    headers = {"Content-Type": "application/json"}
    token = _normalize_text(getattr(settings, "NETWORK_ACTUATOR_TOKEN", ""))
    if token:
        headers["Authorization"] = f"Bearer {token}"

    timeout_seconds = int(getattr(settings, "NETWORK_ACTUATOR_TIMEOUT_SECONDS", 5))
    request = Request(
        f"{base_url}/{action}",
        data=json.dumps(payload).encode("utf-8"),
        headers=headers,
        method="POST",
    )

    try:
        with urlopen(request, timeout=timeout_seconds) as response:  # noqa: S310 - endpoint from settings
            status = int(getattr(response, "status", 200))
            body = response.read().decode("utf-8", errors="ignore")
    except HTTPError as exc:
        error_body = exc.read().decode("utf-8", errors="ignore")
        logger.warning("Network actuator %s failed with status %s: %s", action, exc.code, error_body[:400])
        return False
    except URLError as exc:
        logger.warning("Network actuator %s failed: %s", action, exc.reason)
        return False
    except Exception:
        logger.exception("Unexpected error while calling network actuator %s.", action)
        return False

    if status < 200 or status >= 300:
        logger.warning("Network actuator %s returned unexpected status %s: %s", action, status, body[:400])
        return False

    logger.info("Network actuator accepted %s for %s.", action, payload.get("device_id"))
    return True


def grant_access(device_id: str, expires_at: datetime) -> bool:
    return _send_actuator_command(
        "grant",
        {"device_id": device_id, "expires_at": expires_at.isoformat()},
    )


def revoke_access(device_id: str) -> bool:
    return _send_actuator_command("revoke", {"device_id": device_id})
