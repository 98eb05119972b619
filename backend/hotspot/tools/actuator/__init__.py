from .router import actuator_is_configured, grant_access, revoke_access

__all__ = [
    "actuator_is_configured",
    "grant_access",
    "revoke_access",
]
