from .client import charge
from .providers import (
    PROVIDERS,
    ChargeProvider,
    ChargeResult,
    GatewayConfigurationError,
    GatewayError,
    GatewayTimeout,
    get_provider,
    mask_account,
)

__all__ = [
    "PROVIDERS",
    "ChargeProvider",
    "ChargeResult",
    "GatewayConfigurationError",
    "GatewayError",
    "GatewayTimeout",
    "charge",
    "get_provider",
    "mask_account",
]
