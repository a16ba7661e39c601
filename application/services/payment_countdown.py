"""
Countdown governor: fixed payment window counted down one tick at a time.
"""
from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional

from core.logging_config import get_logger


logger = get_logger(__name__)

TickCallback = Callable[[int], None]
ExpireCallback = Callable[[], None]
SleepFn = Callable[[float], Awaitable[None]]


class CountdownHandle:
    def __init__(self, duration_seconds: int) -> None:
        self.duration_seconds = duration_seconds
        self.remaining_seconds = duration_seconds
        self.expired = False
        self._stopped = False
        self._task: Optional[asyncio.Task] = None

    @property
    def stopped(self) -> bool:
        return self._stopped

    @property
    def done(self) -> bool:
        return self._task is None or self._task.done()


class CountdownGovernor:
    """Ticks every `tick_seconds`; `on_expire` fires exactly once at zero."""

    def __init__(self, *, tick_seconds: float = 1.0, sleep: SleepFn = asyncio.sleep) -> None:
        self.tick_seconds = tick_seconds
        self._sleep = sleep

    def start(self, duration_seconds: int, on_tick: TickCallback, on_expire: ExpireCallback) -> CountdownHandle:
        handle = CountdownHandle(max(0, int(duration_seconds)))
        handle._task = asyncio.create_task(self._run(handle, on_tick, on_expire), name="payment-countdown")
        logger.debug("payment_countdown_started", duration_seconds=handle.duration_seconds)
        return handle

    def stop(self, handle: Optional[CountdownHandle]) -> None:
        """Idempotent; may be called from `on_tick` / `on_expire`."""
        if handle is None or handle._stopped:
            return
        handle._stopped = True
        task = handle._task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
        logger.debug("payment_countdown_stopped", remaining_seconds=handle.remaining_seconds)

    async def _run(self, handle: CountdownHandle, on_tick: TickCallback, on_expire: ExpireCallback) -> None:
        while handle.remaining_seconds > 0:
            await self._sleep(self.tick_seconds)
            if handle._stopped:
                return
            handle.remaining_seconds -= 1
            if handle.remaining_seconds > 0:
                if handle.remaining_seconds % 60 == 0:
                    logger.debug("payment_countdown_minutes_left", minutes=handle.remaining_seconds // 60)
                on_tick(handle.remaining_seconds)
                if handle._stopped:
                    return

        if handle._stopped:
            return
        handle._stopped = True
        handle.expired = True
        logger.info("payment_countdown_expired", duration_seconds=handle.duration_seconds)
        on_expire()
