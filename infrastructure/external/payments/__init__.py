"""
Factory for payment status clients.
"""
from __future__ import annotations

from typing import Optional

from core.settings import PaymentSettings
from application.ports.payment_gateway import PaymentStatusClient


def get_payment_status_client(settings: Optional[PaymentSettings] = None) -> PaymentStatusClient:
    from .payos_client import PayOSPaymentClient
    return PayOSPaymentClient(settings)
