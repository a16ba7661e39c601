"""
Payment DTOs (Pydantic v2) used at application boundaries.

Wire models mirror the backend payment endpoints; `to_intent()` /
`to_status()` convert them into domain objects.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from domain.payment.entity import (
    BankTransaction,
    PaymentIntent,
    PaymentReconciliation,
    PaymentSession,
    PaymentStatus,
)


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class CreatePaymentRequest(_WireModel):
    order_id: str = Field(min_length=1)
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None


class CreatePaymentData(_WireModel):
    payos_order_code: int
    amount: int
    qr_code: str
    payment_link: str
    order_id: str
    transaction_id: Optional[str] = None
    status: Optional[str] = None
    created_at: Optional[datetime] = None

    def to_intent(self) -> PaymentIntent:
        kwargs: dict[str, Any] = {}
        if self.created_at is not None:
            kwargs["created_at"] = self.created_at
        return PaymentIntent(
            order_id=self.order_id,
            provider_order_code=self.payos_order_code,
            amount=self.amount,
            payment_link=self.payment_link,
            qr_payload=self.qr_code,
            transaction_id=self.transaction_id,
            **kwargs,
        )


class PayOSTransaction(_WireModel):
    reference: str
    amount: int
    account_number: Optional[str] = Field(default=None, alias="accountNumber")
    description: Optional[str] = None
    transaction_date_time: Optional[str] = Field(default=None, alias="transactionDateTime")
    counter_account_bank_id: Optional[str] = Field(default=None, alias="counterAccountBankId")
    counter_account_bank_name: Optional[str] = Field(default=None, alias="counterAccountBankName")
    counter_account_name: Optional[str] = Field(default=None, alias="counterAccountName")
    counter_account_number: Optional[str] = Field(default=None, alias="counterAccountNumber")
    virtual_account_name: Optional[str] = Field(default=None, alias="virtualAccountName")
    virtual_account_number: Optional[str] = Field(default=None, alias="virtualAccountNumber")

    def to_domain(self) -> BankTransaction:
        return BankTransaction(
            reference=self.reference,
            amount=self.amount,
            account_number=self.account_number,
            description=self.description,
            transaction_datetime=self.transaction_date_time,
            counter_account_bank_id=self.counter_account_bank_id,
            counter_account_bank_name=self.counter_account_bank_name,
            counter_account_name=self.counter_account_name,
            counter_account_number=self.counter_account_number,
            virtual_account_name=self.virtual_account_name,
            virtual_account_number=self.virtual_account_number,
        )


class PayOSPaymentInfo(_WireModel):
    order_code: int = Field(alias="orderCode")
    amount: int
    amount_paid: int = Field(default=0, alias="amountPaid")
    amount_remaining: int = Field(default=0, alias="amountRemaining")
    status: str
    description: Optional[str] = None
    transactions: list[PayOSTransaction] = Field(default_factory=list)
    created_at: Optional[str] = Field(default=None, alias="createdAt")
    cancellation_reason: Optional[str] = Field(default=None, alias="cancellationReason")

    def to_domain(self) -> PaymentReconciliation:
        return PaymentReconciliation(
            order_code=self.order_code,
            amount=self.amount,
            amount_paid=self.amount_paid,
            amount_remaining=self.amount_remaining,
            status=self.status,
            transactions=tuple(t.to_domain() for t in self.transactions),
            description=self.description,
            created_at=self.created_at,
            cancellation_reason=self.cancellation_reason,
        )


class VerifyPaymentData(_WireModel):
    status: str
    payos_status: Optional[str] = None
    transaction_id: Optional[str] = None
    amount: Optional[int] = None
    order_id: Optional[str] = None
    completed_at: Optional[datetime] = None
    payment_info: Optional[PayOSPaymentInfo] = None

    def to_status(self) -> PaymentStatus:
        return PaymentStatus(
            status=self.status.upper(),
            payos_status=self.payos_status.upper() if self.payos_status else None,
            transaction_id=self.transaction_id,
            amount=self.amount,
            order_id=self.order_id,
            completed_at=self.completed_at,
            payment_info=self.payment_info.to_domain() if self.payment_info else None,
        )


class CancelPaymentRequest(_WireModel):
    cancellation_reason: str = Field(default="Customer cancelled payment", alias="cancellationReason")


class CancelAck(_WireModel):
    transaction_id: Optional[str] = None
    status: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None


class TransactionQuery(_WireModel):
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=10, ge=1, le=100)
    status: Optional[str] = None
    start_date: Optional[str] = Field(default=None, alias="startDate")
    end_date: Optional[str] = Field(default=None, alias="endDate")

    def to_params(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class Transaction(_WireModel):
    """Backend transaction record. Referenced entities may arrive populated."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: Optional[str] = Field(default=None, alias="_id")
    transaction_id: str
    order_id: Union[str, dict[str, Any]]
    customer_id: Optional[str] = None
    payment_method_id: Optional[Union[str, dict[str, Any]]] = None
    amount: int
    currency: str = "VND"
    status: str
    payos_order_code: Optional[int] = None
    payos_payment_link_id: Optional[str] = None
    description: Optional[str] = None
    payment_link_url: Optional[str] = None
    qr_code_url: Optional[str] = None
    error_message: Optional[str] = None
    cancellation_reason: Optional[str] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def order_ref(self) -> Optional[str]:
        if isinstance(self.order_id, dict):
            return self.order_id.get("_id") or self.order_id.get("order_id")
        return self.order_id


class Pagination(_WireModel):
    page: int
    limit: int
    total: int
    total_pages: int = Field(alias="totalPages")


class TransactionPage(_WireModel):
    transactions: list[Transaction] = Field(default_factory=list)
    pagination: Pagination


class SessionSnapshot(BaseModel):
    """Read model of a PaymentSession for API responses."""

    order_id: Optional[str]
    provider_order_code: Optional[int]
    amount: Optional[int]
    payment_link: Optional[str]
    phase: str
    remaining_seconds: int
    countdown_display: str
    low_time: bool
    status: Optional[str] = None
    payos_status: Optional[str] = None
    error: Optional[str] = None
    qr_available: bool = False

    @classmethod
    def from_session(
        cls,
        session: PaymentSession,
        *,
        low_time_threshold: int,
        qr_available: bool = False,
    ) -> "SessionSnapshot":
        intent = session.intent
        last = session.last_status
        return cls(
            order_id=session.order_id,
            provider_order_code=session.provider_order_code,
            amount=intent.amount if intent else None,
            payment_link=intent.payment_link if intent else None,
            phase=session.phase.value,
            remaining_seconds=session.remaining_seconds,
            countdown_display=session.countdown_display,
            low_time=session.is_low_time(low_time_threshold),
            status=last.status if last else None,
            payos_status=last.payos_status if last else None,
            error=session.error,
            qr_available=qr_available,
        )
