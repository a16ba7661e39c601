"""
Payment error taxonomy.

TransientError and ProviderError come from the status client, EncodingError
from the QR renderer, CancellationError from a failed best-effort cancel.
Session misuse is reported with SessionConflictError / SessionStateError.
"""
from __future__ import annotations

from typing import Optional

from domain.common.exceptions import BusinessException
from shared.codes.payment_codes import PaymentCode


class PaymentError(BusinessException):
    """Base class for payment workflow errors."""


class TransientError(PaymentError):
    """Network failure, timeout or retry-exhausted 429/5xx. Safe to retry."""

    def __init__(self, message: str, *, operation: str, details: Optional[dict] = None):
        full_details = {"operation": operation}
        if details:
            full_details.update(details)
        super().__init__(
            code=PaymentCode.PROVIDER_TRANSIENT,
            message=message,
            error_type="TransientError",
            details=full_details,
        )


class ProviderError(PaymentError):
    """Definitive rejection from the backend or payment provider."""

    def __init__(
        self,
        message: str,
        *,
        operation: str,
        status_code: int | None = None,
        details: Optional[dict] = None,
    ):
        full_details = {"operation": operation, "status_code": status_code}
        if details:
            full_details.update(details)
        super().__init__(
            code=PaymentCode.PROVIDER_ERROR,
            message=message,
            error_type="ProviderError",
            details=full_details,
        )
        self.status_code = status_code


class EncodingError(PaymentError):
    def __init__(
        self,
        message: str = "QR code could not be generated, use the payment link instead",
        *,
        payload_length: int | None = None,
        payment_link: str | None = None,
    ):
        details: dict = {"payload_length": payload_length}
        if payment_link:
            details["payment_link"] = payment_link
        super().__init__(
            code=PaymentCode.QR_ENCODING,
            message=message,
            error_type="EncodingError",
            details=details,
        )


class CancellationError(PaymentError):
    def __init__(self, message: str, *, order_code: int):
        super().__init__(
            code=PaymentCode.CANCELLATION_FAILED,
            message=message,
            error_type="CancellationError",
            details={"order_code": order_code},
        )
        self.order_code = order_code


class SessionConflictError(PaymentError):
    def __init__(self, order_id: str, *, order_code: int | None = None):
        super().__init__(
            code=PaymentCode.SESSION_CONFLICT,
            message=f"A payment session is already open for order {order_id}",
            error_type="SessionConflict",
            details={"order_id": order_id, "order_code": order_code},
        )


class SessionStateError(PaymentError):
    def __init__(self, operation: str, phase: str):
        super().__init__(
            code=PaymentCode.SESSION_STATE,
            message=f"Cannot {operation} a payment session in phase {phase}",
            error_type="SessionStateError",
            details={"operation": operation, "phase": phase},
            field="phase",
        )


class SessionNotFoundError(PaymentError):
    def __init__(self, order_id: str):
        super().__init__(
            code=PaymentCode.SESSION_NOT_FOUND,
            message="Payment session not found",
            error_type="SessionNotFound",
            details={"order_id": order_id},
        )
