"""
Payment status client port (application/ports) exposing a replaceable protocol.

Application depends on this Protocol; infrastructure implements adapters.
"""
from __future__ import annotations

from typing import Protocol, runtime_checkable

from application.dtos.payments import CancelAck, Transaction, TransactionPage, TransactionQuery
from domain.payment.entity import CustomerContact, PaymentIntent, PaymentStatus


@runtime_checkable
class PaymentStatusClient(Protocol):
    """Backend/provider calls used by the payment session workflow.

    Every call is bounded by a timeout and raises TransientError for
    timeouts/network failures and ProviderError for definitive rejections.
    """

    async def create_payment(self, order_id: str, customer: CustomerContact) -> PaymentIntent: ...

    async def verify_payment(self, order_code: int) -> PaymentStatus: ...

    async def cancel_payment(self, order_code: int, reason: str) -> CancelAck: ...

    async def list_transactions(self, query: TransactionQuery) -> TransactionPage: ...

    async def get_transaction(self, transaction_id: str) -> Transaction: ...

    async def aclose(self) -> None: ...
