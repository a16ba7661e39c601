"""
API dependencies: payment client, session registry and controller factory.

The client and registry are created once in the application lifespan and
kept on `app.state`.
"""
from typing import Callable

from fastapi import Depends, Request

from application.ports.payment_gateway import PaymentStatusClient
from application.services.payment_session import PaymentSessionController
from application.services.session_registry import SessionRegistry
from core.logging_config import get_logger
from core.settings import payment_settings
from domain.payment.entity import SessionPhase
from infrastructure.external.qr import render


logger = get_logger(__name__)

ControllerFactory = Callable[[str], PaymentSessionController]


async def get_payment_client(request: Request) -> PaymentStatusClient:
    return request.app.state.payment_client


async def get_session_registry(request: Request) -> SessionRegistry:
    return request.app.state.payment_registry


def build_session_controller(
    client: PaymentStatusClient,
    registry: SessionRegistry,
    order_id: str,
) -> PaymentSessionController:
    """Server-side controller: callbacks only record the outcome in the log."""

    def on_success(order_code: int) -> None:
        logger.info("payment_session_succeeded", order_id=order_id, order_code=order_code)

    def on_timeout() -> None:
        logger.info("payment_session_timed_out", order_id=order_id)

    def on_cancelled() -> None:
        logger.info("payment_session_cancelled", order_id=order_id)

    def on_error(message: str) -> None:
        logger.warning("payment_session_error", order_id=order_id, error=message)

    def on_phase(phase: SessionPhase) -> None:
        logger.debug("payment_session_phase", order_id=order_id, phase=phase.value)

    return PaymentSessionController(
        client,
        qr_renderer=render,
        on_success=on_success,
        on_timeout=on_timeout,
        on_cancelled=on_cancelled,
        on_error=on_error,
        on_phase=on_phase,
        registry=registry,
        timing=payment_settings.session,
    )


async def get_controller_factory(
    client: PaymentStatusClient = Depends(get_payment_client),
    registry: SessionRegistry = Depends(get_session_registry),
) -> ControllerFactory:
    return lambda order_id: build_session_controller(client, registry, order_id)
