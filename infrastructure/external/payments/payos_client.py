"""
PayOS payment status client talking to the order backend's payment endpoints.

The backend owns the PayOS credentials; this client only creates payment
links, verifies them by provider order code and requests cancellation.
Responses may be bare objects or wrapped as ``{success, message, data}``.
"""
from __future__ import annotations

from typing import Any, Optional

import httpx
from pydantic import BaseModel, ValidationError

from application.dtos.payments import (
    CancelAck,
    CancelPaymentRequest,
    CreatePaymentData,
    CreatePaymentRequest,
    Transaction,
    TransactionPage,
    TransactionQuery,
    VerifyPaymentData,
)
from core.logging_config import get_logger
from core.settings import PaymentSettings, payment_settings
from domain.payment.entity import CustomerContact, PaymentIntent, PaymentStatus
from domain.payment.exceptions import ProviderError
from infrastructure.external.api_clients.base import APIResponse, BaseAPIClient


logger = get_logger(__name__)


class PayOSPaymentClient(BaseAPIClient):
    provider = "payos"

    def __init__(
        self,
        settings: Optional[PaymentSettings] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        cfg = settings or payment_settings
        super().__init__(
            base_url=cfg.backend.base_url,
            timeout=httpx.Timeout(
                connect=cfg.timeouts.connect,
                read=cfg.timeouts.read,
                write=cfg.timeouts.write,
                timeout=cfg.timeouts.total,
            ),
            max_retries=cfg.retry.max,
            retry_delay=cfg.retry.base_backoff,
            auth_token=cfg.backend.auth_token,
            verify_ssl=cfg.backend.verify_ssl,
            transport=transport,
        )
        if not cfg.backend.auth_token:
            logger.warning("payment_client_no_auth_token", base_url=cfg.backend.base_url)

    @staticmethod
    def _unwrap(response: APIResponse) -> Any:
        body = response.json()
        if isinstance(body, dict) and "data" in body and ("success" in body or "message" in body):
            return body["data"]
        return body

    def _parse(self, model: type[BaseModel], response: APIResponse, *, operation: str):
        try:
            return model.model_validate(self._unwrap(response))
        except (ValidationError, ValueError) as exc:
            raise ProviderError(
                f"Malformed {operation} response",
                operation=operation,
                status_code=response.status_code,
                details={"error": str(exc)},
            ) from exc

    async def create_payment(self, order_id: str, customer: CustomerContact) -> PaymentIntent:
        payload = CreatePaymentRequest(
            order_id=order_id,
            customer_name=customer.name,
            customer_email=customer.email,
            customer_phone=customer.phone,
        )
        logger.info("payment_create_request", provider=self.provider, order_id=order_id)
        # each call may mint a new provider order code, so never retry
        response = await self.post("/payments", operation="create_payment", json_data=payload, retries=0)
        data = self._parse(CreatePaymentData, response, operation="create_payment")
        intent = data.to_intent()
        logger.info(
            "payment_create_response",
            provider=self.provider,
            order_id=intent.order_id,
            order_code=intent.provider_order_code,
            amount=intent.amount,
        )
        return intent

    async def verify_payment(self, order_code: int) -> PaymentStatus:
        response = await self.get(f"/payments/verify/{order_code}", operation="verify_payment")
        data = self._parse(VerifyPaymentData, response, operation="verify_payment")
        status = data.to_status()
        logger.debug(
            "payment_verify_response",
            provider=self.provider,
            order_code=order_code,
            status=status.status,
            payos_status=status.payos_status,
        )
        return status

    async def cancel_payment(self, order_code: int, reason: str) -> CancelAck:
        logger.info("payment_cancel_request", provider=self.provider, order_code=order_code)
        response = await self.post(
            f"/payments/{order_code}/cancel",
            operation="cancel_payment",
            json_data=CancelPaymentRequest(cancellation_reason=reason),
        )
        if not response.raw_content:
            return CancelAck(cancellation_reason=reason)
        return self._parse(CancelAck, response, operation="cancel_payment")

    async def list_transactions(self, query: TransactionQuery) -> TransactionPage:
        response = await self.get("/payments/transactions", operation="list_transactions", params=query.to_params())
        return self._parse(TransactionPage, response, operation="list_transactions")

    async def get_transaction(self, transaction_id: str) -> Transaction:
        response = await self.get(f"/payments/transactions/{transaction_id}", operation="get_transaction")
        return self._parse(Transaction, response, operation="get_transaction")
