"""
Payment domain entities - intent, polled status snapshot and the session aggregate.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from domain.common.exceptions import DomainValidationException
from shared.codes.payment_codes import PROVIDER_STATUS_TO_OUTCOME


class TransactionStatus(str, Enum):
    """Backend transaction status."""
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    FAILED = "FAILED"


class PayOSStatus(str, Enum):
    """Provider-native payment link status."""
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    PAID = "PAID"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"
    FAILED = "FAILED"


class PaymentOutcome(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    CANCELLED = "cancelled"
    FAILED = "failed"


class SessionPhase(str, Enum):
    """Payment session lifecycle phase."""
    IDLE = "IDLE"
    OPEN = "OPEN"
    POLLING = "POLLING"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"
    FAILED = "FAILED"
    EXPIRED = "EXPIRED"
    CLOSED = "CLOSED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_PHASES

    @property
    def is_active(self) -> bool:
        return self in (SessionPhase.OPEN, SessionPhase.POLLING)


TERMINAL_PHASES = frozenset({
    SessionPhase.CONFIRMED,
    SessionPhase.CANCELLED,
    SessionPhase.FAILED,
    SessionPhase.EXPIRED,
})


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Normalize a timestamp to UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@dataclass(frozen=True)
class CustomerContact:
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None


@dataclass(frozen=True)
class PaymentIntent:
    """
    Provider-issued record for one payment attempt.

    Business rules:
    1. amount is an integral amount in the smallest currency unit and > 0
    2. provider_order_code is the correlation key for polling and must be > 0
    3. payment_link / qr_payload are opaque and never parsed
    """

    order_id: str
    provider_order_code: int
    amount: int
    payment_link: str
    qr_payload: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    transaction_id: Optional[str] = None

    def __post_init__(self):
        if not self.order_id:
            raise DomainValidationException("order_id is required", field="order_id")
        if self.provider_order_code <= 0:
            raise DomainValidationException(
                f"Invalid provider order code: {self.provider_order_code}",
                field="provider_order_code",
            )
        if self.amount <= 0:
            raise DomainValidationException(f"Payment amount must be greater than 0: {self.amount}", field="amount")
        object.__setattr__(self, "created_at", _ensure_utc(self.created_at))


@dataclass(frozen=True)
class BankTransaction:
    """Bank transfer record reported by the provider."""
    reference: str
    amount: int
    account_number: Optional[str] = None
    description: Optional[str] = None
    transaction_datetime: Optional[str] = None
    counter_account_bank_id: Optional[str] = None
    counter_account_bank_name: Optional[str] = None
    counter_account_name: Optional[str] = None
    counter_account_number: Optional[str] = None
    virtual_account_name: Optional[str] = None
    virtual_account_number: Optional[str] = None


@dataclass(frozen=True)
class PaymentReconciliation:
    """Provider-native payment info carried by a verify response."""
    order_code: int
    amount: int
    amount_paid: int
    amount_remaining: int
    status: str
    transactions: tuple[BankTransaction, ...] = ()
    description: Optional[str] = None
    created_at: Optional[str] = None
    cancellation_reason: Optional[str] = None


@dataclass(frozen=True)
class PaymentStatus:
    """Snapshot returned by one verify call. Not owned by this system."""

    status: str
    payos_status: Optional[str] = None
    transaction_id: Optional[str] = None
    amount: Optional[int] = None
    order_id: Optional[str] = None
    completed_at: Optional[datetime] = None
    payment_info: Optional[PaymentReconciliation] = None

    @property
    def outcome(self) -> PaymentOutcome:
        backend = PROVIDER_STATUS_TO_OUTCOME["backend"].get((self.status or "").upper(), "pending")
        provider = None
        if self.payos_status:
            provider = PROVIDER_STATUS_TO_OUTCOME["payos"].get(self.payos_status.upper(), "pending")

        # Paid only once the backend has reconciled the provider result
        if backend == "paid" and provider in (None, "paid"):
            return PaymentOutcome.PAID
        if backend == "cancelled" or provider == "cancelled":
            return PaymentOutcome.CANCELLED
        if backend == "failed" or provider == "failed":
            return PaymentOutcome.FAILED
        return PaymentOutcome.PENDING

    @property
    def is_terminal(self) -> bool:
        return self.outcome is not PaymentOutcome.PENDING

    @property
    def cancellation_reason(self) -> Optional[str]:
        if self.payment_info is None:
            return None
        return self.payment_info.cancellation_reason


@dataclass(frozen=True)
class PaymentSession:
    """
    In-memory state of one open payment attempt.

    Instances are immutable; the reducer in `state_machine` returns a new
    session for every accepted event.
    """

    intent: Optional[PaymentIntent] = None
    phase: SessionPhase = SessionPhase.IDLE
    remaining_seconds: int = 0
    last_status: Optional[PaymentStatus] = None
    error: Optional[str] = None

    @property
    def order_id(self) -> Optional[str]:
        return self.intent.order_id if self.intent else None

    @property
    def provider_order_code(self) -> Optional[int]:
        return self.intent.provider_order_code if self.intent else None

    @property
    def countdown_display(self) -> str:
        """Remaining time formatted as m:ss."""
        seconds = max(0, self.remaining_seconds)
        return f"{seconds // 60}:{seconds % 60:02d}"

    def is_low_time(self, threshold_seconds: int) -> bool:
        return self.phase.is_active and 0 < self.remaining_seconds < threshold_seconds
