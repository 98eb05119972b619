from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError

from django.conf import settings

from .providers import ChargeResult, GatewayError, GatewayTimeout, get_provider, mask_account

logger = logging.getLogger(__name__)

_executor = ThreadPoolExecutor(max_workers=8, thread_name_prefix="charge-gateway")


def _timeout_seconds(timeout: float | None) -> float:
    if timeout is not None:
        return timeout
    return float(getattr(settings, "CHARGE_GATEWAY_TIMEOUT_SECONDS", 30))


def charge(
    method: str,
    account: str,
    amount: int,
    *,
    attempt_id: str,
    timeout: float | None = None,
) -> ChargeResult:
    """Run a single charge against the provider for ``method``.

    The call is bounded by ``timeout`` (``CHARGE_GATEWAY_TIMEOUT_SECONDS`` by
    default). There is no retry here: a mobile-money prompt cannot be safely
    re-issued without the payer starting over.

    Raises:
        GatewayTimeout: The provider did not answer within the deadline.
        GatewayError: Transport or configuration failure.
    """
    provider = get_provider(method)
    deadline = _timeout_seconds(timeout)

    future = _executor.submit(provider.charge, account, amount, attempt_id, max(int(deadline), 1))
    try:
        result = future.result(timeout=deadline)
    except FutureTimeoutError as exc:
        future.cancel()
        logger.warning(
            "Charge gateway timed out after %ss for %s payer %s (attempt=%s).",
            deadline,
            method,
            mask_account(account),
            attempt_id,
        )
        raise GatewayTimeout(f"{method} charge timed out after {deadline}s.") from exc

    if not isinstance(result, ChargeResult):
        raise GatewayError(f"{method} provider returned an unexpected result.")
    return result
