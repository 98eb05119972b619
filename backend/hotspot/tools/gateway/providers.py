from __future__ import annotations

import json
import logging
import socket
import time
from dataclasses import dataclass, field
from typing import Any
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from django.conf import settings

logger = logging.getLogger(__name__)


class GatewayError(RuntimeError):
    pass


class GatewayConfigurationError(GatewayError):
    pass


class GatewayTimeout(GatewayError):
    pass


@dataclass(frozen=True)
class ChargeResult:
    success: bool
    reference: str | None = None
    reason: str = ""
    raw_response: dict[str, Any] = field(default_factory=dict)


def mask_account(account: str) -> str:
    digits = str(account or "").strip()
    if len(digits) <= 4:
        return "*" * len(digits)
    return f"{'*' * (len(digits) - 4)}{digits[-4:]}"


def _simulated_reference(method: str) -> str:
    return f"{method}_{int(time.time() * 1000)}"


def _http_post_json(
    url: str,
    payload: dict[str, Any],
    *,
    api_key: str = "",
    timeout_seconds: int,
) -> dict[str, Any]:
    headers = {"Content-Type": "application/json"}
    if api_key:
        headers["Authorization"] = f"Bearer {api_key}"
    request = Request(url=url, data=json.dumps(payload).encode("utf-8"), headers=headers, method="POST")

    try:
        with urlopen(request, timeout=timeout_seconds) as response:  # noqa: S310 - endpoint from settings
            body = response.read().decode("utf-8")
            data = json.loads(body) if body else {}
            return data if isinstance(data, dict) else {"raw": data}
    except HTTPError as exc:
        body = exc.read().decode("utf-8", errors="ignore")
        raise GatewayError(f"Provider request failed with HTTP {exc.code}. {body[:400]}".strip()) from exc
    except (socket.timeout, TimeoutError) as exc:
        raise GatewayTimeout("Provider did not answer in time.") from exc
    except URLError as exc:
        if isinstance(exc.reason, (socket.timeout, TimeoutError)):
            raise GatewayTimeout("Provider did not answer in time.") from exc
        raise GatewayError(f"Provider request failed: {exc.reason}") from exc
    except json.JSONDecodeError as exc:
        raise GatewayError("Provider returned non-JSON response.") from exc


class ChargeProvider:
    """One external payment rail. Subclasses name the settings that point at it."""

    method = ""
    url_setting = ""
    key_setting = ""

    @property
    def endpoint(self) -> str:
        return str(getattr(settings, self.url_setting, "") or "").strip()

    @property
    def api_key(self) -> str:
        return str(getattr(settings, self.key_setting, "") or "").strip()

    @property
    def simulated(self) -> bool:
        return not self.endpoint

    def build_payload(self, account: str, amount: int, attempt_id: str) -> dict[str, Any]:
        return {
            "amount": amount,
            "currency": getattr(settings, "HOTSPOT_CURRENCY", "UGX"),
            "external_id": attempt_id,
            "payer": account,
        }

    def parse_response(self, data: dict[str, Any]) -> ChargeResult:
        status = str(data.get("status") or "").strip().lower()
        reference = str(data.get("reference") or data.get("transaction_id") or "").strip() or None
        if status in {"success", "successful", "succeeded", "completed"} and reference:
            return ChargeResult(success=True, reference=reference, raw_response=data)
        reason = str(data.get("reason") or data.get("message") or status or "declined").strip()
        return ChargeResult(success=False, reference=reference, reason=reason, raw_response=data)

    def charge(self, account: str, amount: int, attempt_id: str, timeout_seconds: int) -> ChargeResult:
        if self.simulated:
            logger.info(
                "Simulated %s charge of %s for %s (attempt=%s).",
                self.method,
                amount,
                mask_account(account),
                attempt_id,
            )
            return ChargeResult(success=True, reference=_simulated_reference(self.method))

        data = _http_post_json(
            self.endpoint,
            self.build_payload(account, amount, attempt_id),
            api_key=self.api_key,
            timeout_seconds=timeout_seconds,
        )
        return self.parse_response(data)


class MtnMobileMoneyProvider(ChargeProvider):
    method = "mtn"
    url_setting = "MTN_MOMO_API_URL"
    key_setting = "MTN_MOMO_API_KEY"

    def build_payload(self, account: str, amount: int, attempt_id: str) -> dict[str, Any]:
        payload = super().build_payload(account, amount, attempt_id)
        payload["payer"] = {"partyIdType": "MSISDN", "partyId": account}
        payload["payerMessage"] = "Internet access"
        return payload


class AirtelMoneyProvider(ChargeProvider):
    method = "airtel"
    url_setting = "AIRTEL_MONEY_API_URL"
    key_setting = "AIRTEL_MONEY_API_KEY"

    def build_payload(self, account: str, amount: int, attempt_id: str) -> dict[str, Any]:
        return {
            "reference": "Internet access",
            "subscriber": {"msisdn": account},
            "transaction": {
                "amount": amount,
                "currency": getattr(settings, "HOTSPOT_CURRENCY", "UGX"),
                "id": attempt_id,
            },
        }


class CardProvider(ChargeProvider):
    method = "visa"
    url_setting = "CARD_GATEWAY_API_URL"
    key_setting = "CARD_GATEWAY_API_KEY"


class WalletProvider(ChargeProvider):
    # Wallet charges are settled by the portal operator; there is no remote rail.
    method = "wallet"

    @property
    def endpoint(self) -> str:
        return ""


PROVIDERS: dict[str, ChargeProvider] = {
    provider.method: provider
    for provider in (MtnMobileMoneyProvider(), AirtelMoneyProvider(), CardProvider(), WalletProvider())
}


def get_provider(method: str) -> ChargeProvider:
    provider = PROVIDERS.get(str(method or "").strip().lower())
    if provider is None:
        raise GatewayConfigurationError(f"Unsupported charge method: {method}")
    return provider
