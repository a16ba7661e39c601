"""
Payments API routes.

Thin HTTP surface over payment sessions and backend transaction history.
Session lifecycle is owned by PaymentSessionController; this module only
looks controllers up in the registry and renders snapshots.
"""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response as RawResponse
from pydantic import BaseModel, Field

from api.dependencies import (
    ControllerFactory,
    get_controller_factory,
    get_payment_client,
    get_session_registry,
)
from application.dtos.payments import SessionSnapshot, TransactionQuery
from application.ports.payment_gateway import PaymentStatusClient
from application.services.payment_session import PaymentSessionController
from application.services.session_registry import SessionRegistry
from core.logging_config import get_logger
from core.response import success_response
from domain.payment.entity import CustomerContact
from domain.payment.exceptions import EncodingError, SessionNotFoundError


router = APIRouter(prefix="/payments", tags=["Payments"])
logger = get_logger(__name__)


class StartSessionRequest(BaseModel):
    order_id: str = Field(min_length=1)
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None

    def customer(self) -> CustomerContact:
        return CustomerContact(
            name=self.customer_name,
            email=self.customer_email,
            phone=self.customer_phone,
        )


class CancelSessionRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=255)


def _snapshot(controller: PaymentSessionController) -> SessionSnapshot:
    return SessionSnapshot.from_session(
        controller.session,
        low_time_threshold=controller.timing.low_time_threshold_seconds,
        qr_available=controller.qr_image is not None,
    )


def _lookup(registry: SessionRegistry, order_id: str) -> PaymentSessionController:
    controller = registry.get(order_id)
    if controller is None:
        raise SessionNotFoundError(order_id)
    return controller


@router.post("/sessions")
async def start_session(
    payload: StartSessionRequest,
    registry: SessionRegistry = Depends(get_session_registry),
    factory: ControllerFactory = Depends(get_controller_factory),
):
    await registry.evict(payload.order_id)
    controller = factory(payload.order_id)
    await controller.begin(payload.order_id, payload.customer())
    return success_response(data=_snapshot(controller), message="Payment session opened")


@router.get("/sessions/{order_id}")
async def get_session(order_id: str, registry: SessionRegistry = Depends(get_session_registry)):
    return success_response(data=_snapshot(_lookup(registry, order_id)))


@router.get("/sessions/{order_id}/qr")
async def get_session_qr(order_id: str, registry: SessionRegistry = Depends(get_session_registry)):
    controller = _lookup(registry, order_id)
    image = controller.qr_image
    if image is None:
        intent = controller.intent
        raise EncodingError(payment_link=intent.payment_link if intent else None)
    return RawResponse(content=image.png, media_type=image.media_type)


@router.post("/sessions/{order_id}/cancel")
async def cancel_session(
    order_id: str,
    payload: Optional[CancelSessionRequest] = None,
    registry: SessionRegistry = Depends(get_session_registry),
):
    controller = _lookup(registry, order_id)
    await controller.cancel(payload.reason if payload else None)
    return success_response(data=_snapshot(controller), message="Payment session cancelled")


@router.post("/sessions/{order_id}/retry")
async def retry_session(
    order_id: str,
    registry: SessionRegistry = Depends(get_session_registry),
):
    controller = _lookup(registry, order_id)
    await controller.retry()
    return success_response(data=_snapshot(controller), message="Payment session reopened")


@router.post("/sessions/{order_id}/refresh")
async def refresh_session(order_id: str, registry: SessionRegistry = Depends(get_session_registry)):
    controller = _lookup(registry, order_id)
    await controller.refresh()
    return success_response(data=_snapshot(controller))


@router.delete("/sessions/{order_id}")
async def close_session(order_id: str, registry: SessionRegistry = Depends(get_session_registry)):
    controller = _lookup(registry, order_id)
    await controller.close()
    registry.detach(order_id)
    return success_response(data=_snapshot(controller), message="Payment session closed")


@router.get("/transactions")
async def list_transactions(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[str] = Query(None),
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    client: PaymentStatusClient = Depends(get_payment_client),
):
    query = TransactionQuery(page=page, limit=limit, status=status, start_date=start_date, end_date=end_date)
    result = await client.list_transactions(query)
    return success_response(data=result.model_dump(mode="json"))


@router.get("/transactions/{transaction_id}")
async def get_transaction(transaction_id: str, client: PaymentStatusClient = Depends(get_payment_client)):
    result = await client.get_transaction(transaction_id)
    return success_response(data=result.model_dump(mode="json"))
