"""
Payment specific codes and provider status mapping.
"""
from __future__ import annotations

from enum import IntEnum


class PaymentCode(IntEnum):
    # Generic success
    SUCCESS = 0

    # Provider/Network errors (6xxxx)
    PROVIDER_ERROR = 60000
    PROVIDER_TRANSIENT = 60001
    TIMEOUT = 60003
    RATE_LIMITED = 60004

    # Session errors (61xxx)
    SESSION_CONFLICT = 61000
    SESSION_STATE = 61001
    SESSION_NOT_FOUND = 61002
    CANCELLATION_FAILED = 61003

    # Rendering (62xxx)
    QR_ENCODING = 62000


# Provider-native status -> outcome used by the session reducer.
# Backend transaction statuses are listed under "backend".
PROVIDER_STATUS_TO_OUTCOME = {
    "payos": {
        "PENDING": "pending",
        "PROCESSING": "pending",
        "PAID": "paid",
        "CANCELLED": "cancelled",
        "EXPIRED": "failed",
        "FAILED": "failed",
    },
    "backend": {
        "PENDING": "pending",
        "PROCESSING": "pending",
        "COMPLETED": "paid",
        "CANCELLED": "cancelled",
        "FAILED": "failed",
    },
}
