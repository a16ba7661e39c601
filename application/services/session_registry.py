"""
In-process registry of payment session controllers.

Enforces one OPEN/POLLING session per order and per provider order code, and
keeps controllers addressable by order id for the API layer.
"""
from __future__ import annotations

from typing import TYPE_CHECKING, Dict, Optional

from core.logging_config import get_logger
from domain.payment.entity import PaymentIntent
from domain.payment.exceptions import SessionConflictError

if TYPE_CHECKING:
    from application.services.payment_session import PaymentSessionController


logger = get_logger(__name__)


class SessionRegistry:
    def __init__(self) -> None:
        # order_id -> controller holding an active session
        self._active: Dict[str, "PaymentSessionController"] = {}
        # provider order code -> order_id
        self._codes: Dict[int, str] = {}
        # order_id -> most recent controller (any phase)
        self._controllers: Dict[str, "PaymentSessionController"] = {}

    def claim(self, intent: PaymentIntent, controller: "PaymentSessionController") -> None:
        holder = self._active.get(intent.order_id)
        if holder is not None and holder is not controller:
            raise SessionConflictError(intent.order_id, order_code=intent.provider_order_code)
        owner = self._codes.get(intent.provider_order_code)
        if owner is not None and owner != intent.order_id:
            raise SessionConflictError(owner, order_code=intent.provider_order_code)
        self._active[intent.order_id] = controller
        self._codes[intent.provider_order_code] = intent.order_id
        self._controllers[intent.order_id] = controller
        logger.debug("payment_session_claimed", order_id=intent.order_id, order_code=intent.provider_order_code)

    def release(self, intent: PaymentIntent, controller: "PaymentSessionController") -> None:
        if self._active.get(intent.order_id) is controller:
            del self._active[intent.order_id]
        if self._codes.get(intent.provider_order_code) == intent.order_id:
            del self._codes[intent.provider_order_code]

    def is_active(self, order_id: str) -> bool:
        return order_id in self._active

    def get(self, order_id: str) -> Optional["PaymentSessionController"]:
        return self._controllers.get(order_id)

    async def evict(self, order_id: str) -> None:
        """Close and forget a finished controller so a new session can take the order."""
        if order_id in self._active:
            raise SessionConflictError(order_id)
        controller = self._controllers.pop(order_id, None)
        if controller is not None:
            await controller.close()
            logger.debug("payment_session_evicted", order_id=order_id)

    def detach(self, order_id: str) -> None:
        self._controllers.pop(order_id, None)

    def __len__(self) -> int:
        return len(self._active)

    async def close_all(self) -> None:
        for order_id, controller in list(self._controllers.items()):
            try:
                await controller.close()
            finally:
                self._controllers.pop(order_id, None)
        logger.info("payment_sessions_closed")
