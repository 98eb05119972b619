from __future__ import annotations

import re
import secrets
import string
import time

from .errors import InvalidDevice, MissingPaymentMetadata

DEVICE_ID_MAX_LENGTH = 128
_BASE36 = string.digits + string.ascii_lowercase
_PHONE_PATTERN = re.compile(r"^\+?\d{7,15}$")


def issue_device_id() -> str:
    suffix = "".join(secrets.choice(_BASE36) for _ in range(9))
    return f"device_{int(time.time() * 1000)}_{suffix}"


def normalize_device_id(value: object) -> str:
    device_id = str(value or "").strip()
    if not device_id:
        raise InvalidDevice("Device id is required.", field="device_id")
    if len(device_id) > DEVICE_ID_MAX_LENGTH:
        raise InvalidDevice(
            f"Device id must be at most {DEVICE_ID_MAX_LENGTH} characters.",
            field="device_id",
        )
    return device_id


def normalize_phone_number(value: object) -> str:
    raw = str(value or "").strip()
    cleaned = re.sub(r"[\s\-()]", "", raw)
    if not _PHONE_PATTERN.match(cleaned):
        raise MissingPaymentMetadata("A valid phone number is required for mobile money.", field="phone_number")
    return cleaned
