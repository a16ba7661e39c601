"""Pytest bootstrap configuration.

Shared fakes for the payment session tests. Environment variables are set
before any module that reads settings is imported.
"""
import os

os.environ.setdefault("PAYMENT__BACKEND__AUTH_TOKEN", "test-token")

import asyncio
from typing import Optional

import pytest

from application.dtos.payments import CancelAck, Transaction, TransactionPage, TransactionQuery
from core.settings import SessionTiming
from domain.payment.entity import CustomerContact, PaymentIntent, PaymentStatus
from domain.payment.exceptions import ProviderError, TransientError


def pending() -> PaymentStatus:
    return PaymentStatus(status="PENDING", payos_status="PENDING")


def paid() -> PaymentStatus:
    return PaymentStatus(status="COMPLETED", payos_status="PAID", transaction_id="txn_1", amount=150000)


def cancelled() -> PaymentStatus:
    return PaymentStatus(status="CANCELLED", payos_status="CANCELLED")


def failed() -> PaymentStatus:
    return PaymentStatus(status="FAILED", payos_status="EXPIRED")


def transient_error() -> TransientError:
    return TransientError("Network error: connection reset", operation="verify_payment")


class FakeStatusClient:
    """Scripted PaymentStatusClient.

    `script` items are PaymentStatus objects or exceptions, consumed one per
    verify call; the last item repeats once the script runs out.
    """

    def __init__(self, script=None, *, amount: int = 150000, first_code: int = 1001):
        self.script = list(script or [pending()])
        self.amount = amount
        self.next_code = first_code
        self.verify_calls: list[int] = []
        self.cancel_calls: list[tuple[int, str]] = []
        self.created: list[PaymentIntent] = []
        self.cancel_error: Optional[Exception] = None
        self.create_error: Optional[Exception] = None
        self.verify_gate: Optional[asyncio.Event] = None
        self.closed = False

    async def create_payment(self, order_id: str, customer: CustomerContact) -> PaymentIntent:
        if self.create_error is not None:
            raise self.create_error
        code = self.next_code
        self.next_code += 1
        intent = PaymentIntent(
            order_id=order_id,
            provider_order_code=code,
            amount=self.amount,
            payment_link=f"https://pay.payos.vn/web/{code}",
            qr_payload=f"00020101021238570010A000000727{code}",
        )
        self.created.append(intent)
        return intent

    async def verify_payment(self, order_code: int) -> PaymentStatus:
        self.verify_calls.append(order_code)
        if self.verify_gate is not None:
            await self.verify_gate.wait()
        item = self.script.pop(0) if len(self.script) > 1 else self.script[0]
        if isinstance(item, Exception):
            raise item
        return item

    async def cancel_payment(self, order_code: int, reason: str) -> CancelAck:
        self.cancel_calls.append((order_code, reason))
        if self.cancel_error is not None:
            raise self.cancel_error
        return CancelAck(cancellation_reason=reason)

    async def list_transactions(self, query: TransactionQuery) -> TransactionPage:
        return TransactionPage.model_validate({
            "transactions": [
                {"transaction_id": "TXN_1", "order_id": "order-1", "amount": 150000, "status": "COMPLETED"},
            ],
            "pagination": {"page": query.page, "limit": query.limit, "total": 1, "totalPages": 1},
        })

    async def get_transaction(self, transaction_id: str) -> Transaction:
        if transaction_id == "missing":
            raise ProviderError("Transaction not found", operation="get_transaction", status_code=404)
        return Transaction(transaction_id=transaction_id, order_id="order-1", amount=150000, status="PENDING")

    async def aclose(self) -> None:
        self.closed = True


class Recorder:
    """Collects every user callback invocation."""

    def __init__(self):
        self.successes: list[int] = []
        self.timeouts = 0
        self.cancellations = 0
        self.errors: list[str] = []
        self.phases: list = []

    def on_success(self, order_code):
        self.successes.append(order_code)

    def on_timeout(self):
        self.timeouts += 1

    def on_cancelled(self):
        self.cancellations += 1

    def on_error(self, message):
        self.errors.append(message)

    def on_phase(self, phase):
        self.phases.append(phase)

    def callbacks(self) -> dict:
        return {
            "on_success": self.on_success,
            "on_timeout": self.on_timeout,
            "on_cancelled": self.on_cancelled,
            "on_error": self.on_error,
            "on_phase": self.on_phase,
        }

    @property
    def total(self) -> int:
        return len(self.successes) + self.timeouts + self.cancellations + len(self.errors)


def fast_timing(**overrides) -> SessionTiming:
    values = {
        "poll_interval_seconds": 0.01,
        "payment_window_seconds": 900,
        "countdown_tick_seconds": 0.01,
        "success_display_delay_seconds": 0,
    }
    values.update(overrides)
    return SessionTiming(**values)


async def wait_until(predicate, timeout: float = 2.0, step: float = 0.005):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(step)


@pytest.fixture
def recorder():
    return Recorder()


@pytest.fixture
def fake_client():
    return FakeStatusClient()
