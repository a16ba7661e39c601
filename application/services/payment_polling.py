"""
Polling controller: one verify loop per open payment session.

Each tick issues a single `verify_payment` call. Transient failures skip the
tick, terminal statuses end the loop after delivery. `stop()` takes effect
before the next tick; a request already in flight is allowed to finish and
its result is discarded.
"""
from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional

from application.ports.payment_gateway import PaymentStatusClient
from core.logging_config import get_logger
from domain.payment.entity import PaymentStatus
from domain.payment.exceptions import ProviderError, TransientError


logger = get_logger(__name__)

UpdateCallback = Callable[[PaymentStatus], None]
RejectCallback = Callable[[ProviderError], None]
SleepFn = Callable[[float], Awaitable[None]]


class PollHandle:
    """Identity of one polling loop. Gates delivery once stopped."""

    def __init__(self, order_code: int) -> None:
        self.order_code = order_code
        self.ticks = 0
        self._stopped = False
        self._task: Optional[asyncio.Task] = None
        self._idle = asyncio.Event()
        self._idle.set()

    @property
    def stopped(self) -> bool:
        return self._stopped

    @property
    def in_flight(self) -> bool:
        return not self._idle.is_set()

    @property
    def done(self) -> bool:
        return self._task is None or self._task.done()


class PollingController:
    def __init__(
        self,
        client: PaymentStatusClient,
        *,
        interval: float = 3.0,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self.client = client
        self.interval = interval
        self._sleep = sleep

    def start(
        self,
        order_code: int,
        on_update: UpdateCallback,
        on_reject: Optional[RejectCallback] = None,
    ) -> PollHandle:
        handle = PollHandle(order_code)
        handle._task = asyncio.create_task(
            self._run(handle, on_update, on_reject),
            name=f"payment-poll-{order_code}",
        )
        logger.info("payment_polling_started", order_code=order_code, interval=self.interval)
        return handle

    def stop(self, handle: Optional[PollHandle]) -> None:
        """Stop a loop. Idempotent and safe from inside `on_update`."""
        if handle is None or handle._stopped:
            return
        handle._stopped = True
        task = handle._task
        # cancel only while sleeping; an in-flight request completes and is discarded
        if task is not None and not task.done() and not handle.in_flight and task is not asyncio.current_task():
            task.cancel()
        logger.info("payment_polling_stopped", order_code=handle.order_code, ticks=handle.ticks)

    async def settle(self, handle: Optional[PollHandle], timeout: float) -> None:
        """Wait for an in-flight verify call to finish and deliver its result."""
        if handle is None or not handle.in_flight:
            return
        try:
            await asyncio.wait_for(handle._idle.wait(), timeout)
        except asyncio.TimeoutError:
            logger.warning("payment_polling_settle_timeout", order_code=handle.order_code, timeout=timeout)

    async def _run(
        self,
        handle: PollHandle,
        on_update: UpdateCallback,
        on_reject: Optional[RejectCallback],
    ) -> None:
        code = handle.order_code
        while not handle._stopped:
            handle.ticks += 1
            status: Optional[PaymentStatus] = None
            rejection: Optional[ProviderError] = None
            handle._idle.clear()
            try:
                status = await self.client.verify_payment(code)
            except TransientError as exc:
                logger.warning("payment_poll_transient_error", order_code=code, tick=handle.ticks, error=exc.message)
            except ProviderError as exc:
                logger.error("payment_poll_rejected", order_code=code, tick=handle.ticks, error=exc.message)
                rejection = exc
            except Exception as exc:
                logger.error("payment_poll_unexpected_error", order_code=code, tick=handle.ticks, error=str(exc), exc_info=True)
            finally:
                handle._idle.set()

            if handle._stopped:
                logger.debug("payment_poll_result_discarded", order_code=code, tick=handle.ticks)
                return

            if rejection is not None and on_reject is not None:
                on_reject(rejection)
            if status is not None:
                on_update(status)
                if status.is_terminal:
                    handle._stopped = True
                    logger.info(
                        "payment_poll_terminal_status",
                        order_code=code,
                        status=status.status,
                        payos_status=status.payos_status,
                    )
                    return
            if handle._stopped:
                return
            await self._sleep(self.interval)
