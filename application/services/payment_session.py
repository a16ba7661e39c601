"""
Payment session controller.

Composes the polling controller, the countdown governor and the QR renderer
around one PaymentSession. Both timer sources, and the caller-facing
operations once the session is running, deliver events into a single
asyncio queue drained by one dispatcher task; the pure reducer in
`domain.payment.state_machine` decides transitions and the controller
executes the resulting effects.

Callbacks may be plain functions or coroutines:

    on_success(order_code)   payment confirmed (after the display delay)
    on_timeout()             payment window expired, persist the order for later
    on_cancelled()           session ended as cancelled
    on_error(message)        user-visible error
    on_phase(phase)          lifecycle/status transitions (not countdown ticks)
"""
from __future__ import annotations

import asyncio
import inspect
from dataclasses import dataclass
from typing import Any, Callable, Optional

from application.ports.payment_gateway import PaymentStatusClient
from application.services.payment_countdown import CountdownGovernor, CountdownHandle
from application.services.payment_polling import PollHandle, PollingController
from application.services.session_registry import SessionRegistry
from core.logging_config import get_logger
from core.settings import SessionTiming, payment_settings
from domain.payment.entity import (
    CustomerContact,
    PaymentIntent,
    PaymentSession,
    PaymentStatus,
    SessionPhase,
)
from domain.payment.events import (
    CancelRequested,
    CountdownExpired,
    CountdownTicked,
    PollingStarted,
    QRUnavailable,
    SessionClosed,
    SessionEvent,
    SessionOpened,
    StatusReceived,
    VerifyRejected,
)
from domain.payment.exceptions import (
    CancellationError,
    EncodingError,
    ProviderError,
    SessionStateError,
    TransientError,
)
from domain.payment.state_machine import Effect, Transition, reduce


logger = get_logger(__name__)

Callback = Callable[..., Any]
QRRenderer = Callable[[str], Any]

# events reported through on_phase
_PHASE_EVENTS = (SessionOpened, PollingStarted, StatusReceived, CountdownExpired, CancelRequested, SessionClosed)
_NOTIFY_EFFECTS = frozenset({
    Effect.NOTIFY_SUCCESS,
    Effect.NOTIFY_CANCELLED,
    Effect.NOTIFY_TIMEOUT,
    Effect.NOTIFY_ERROR,
})


@dataclass
class _Envelope:
    event: SessionEvent
    generation: int
    done: Optional[asyncio.Future] = None


def _is_terminal_status(envelope: _Envelope) -> bool:
    return isinstance(envelope.event, StatusReceived) and envelope.event.status.is_terminal


def _has_ended(phase: SessionPhase) -> bool:
    return phase.is_terminal or phase is SessionPhase.CLOSED


class PaymentSessionController:
    def __init__(
        self,
        client: PaymentStatusClient,
        *,
        qr_renderer: Optional[QRRenderer] = None,
        on_success: Optional[Callback] = None,
        on_timeout: Optional[Callback] = None,
        on_cancelled: Optional[Callback] = None,
        on_error: Optional[Callback] = None,
        on_phase: Optional[Callback] = None,
        registry: Optional[SessionRegistry] = None,
        timing: Optional[SessionTiming] = None,
        polling: Optional[PollingController] = None,
        countdown: Optional[CountdownGovernor] = None,
        settle_timeout: Optional[float] = None,
    ) -> None:
        self._client = client
        self._qr_renderer = qr_renderer
        self._on_success = on_success
        self._on_timeout = on_timeout
        self._on_cancelled = on_cancelled
        self._on_error = on_error
        self._on_phase = on_phase
        self._registry = registry
        self._timing = timing or payment_settings.session
        self._polling = polling or PollingController(client, interval=self._timing.poll_interval_seconds)
        self._countdown = countdown or CountdownGovernor(tick_seconds=self._timing.countdown_tick_seconds)
        self._settle_timeout = (
            payment_settings.verify_budget_seconds() if settle_timeout is None else settle_timeout
        )

        self._session = PaymentSession()
        self._customer = CustomerContact()
        self._order_id: Optional[str] = None
        self._generation = 0
        self._queue: Optional[asyncio.Queue] = None
        self._dispatcher: Optional[asyncio.Task] = None
        self._poll_handle: Optional[PollHandle] = None
        self._countdown_handle: Optional[CountdownHandle] = None
        self._success_task: Optional[asyncio.Task] = None
        self._terminal = asyncio.Event()
        self._cancel_reason = self._timing.default_cancellation_reason
        self.qr_image: Any = None

    # ------------------------------------------------------------------ state

    @property
    def session(self) -> PaymentSession:
        return self._session

    @property
    def phase(self) -> SessionPhase:
        return self._session.phase

    @property
    def intent(self) -> Optional[PaymentIntent]:
        return self._session.intent

    @property
    def timing(self) -> SessionTiming:
        return self._timing

    # ------------------------------------------------------------- operations

    async def begin(self, order_id: str, customer: Optional[CustomerContact] = None) -> PaymentSession:
        """Create a payment intent for `order_id` and open a session on it."""
        if self._session.phase is not SessionPhase.IDLE:
            raise SessionStateError("begin", self._session.phase.value)
        if customer is not None:
            self._customer = customer
        self._order_id = order_id
        intent = await self._create_intent(order_id)
        return await self.open(intent)

    async def open(self, intent: PaymentIntent) -> PaymentSession:
        """IDLE -> OPEN -> POLLING; starts polling and the countdown."""
        if self._session.phase is not SessionPhase.IDLE:
            raise SessionStateError("open", self._session.phase.value)
        if self._registry is not None:
            self._registry.claim(intent, self)
        self._order_id = intent.order_id

        self._generation += 1
        self._queue = asyncio.Queue()
        self._terminal = asyncio.Event()
        logger.info(
            "payment_session_opened",
            order_id=intent.order_id,
            order_code=intent.provider_order_code,
            amount=intent.amount,
        )

        await self._process(SessionOpened(intent=intent, window_seconds=self._timing.payment_window_seconds))
        await self._render_qr(intent)
        await self._process(PollingStarted())
        self._dispatcher = asyncio.create_task(
            self._dispatch_loop(self._queue, self._generation),
            name=f"payment-session-{intent.provider_order_code}",
        )
        return self._session

    async def cancel(self, reason: Optional[str] = None) -> PaymentSession:
        """User cancel. Local phase becomes CANCELLED even if the remote cancel fails."""
        if not self._session.phase.is_active:
            raise SessionStateError("cancel", self._session.phase.value)
        self._cancel_reason = reason or self._timing.default_cancellation_reason
        await self._submit(CancelRequested(reason=self._cancel_reason))
        return self._session

    async def close(self) -> None:
        """Tear down timers and move to CLOSED. Idempotent."""
        phase = self._session.phase
        if phase is SessionPhase.CLOSED:
            return
        if phase is SessionPhase.IDLE:
            self._session = PaymentSession(phase=SessionPhase.CLOSED)
            return

        await self._flush_success()
        await self._submit(SessionClosed())

        dispatcher = self._dispatcher
        if dispatcher is not None and not dispatcher.done() and dispatcher is not asyncio.current_task():
            await dispatcher
        self._drain_queue()
        # double stop: both are no-ops when already stopped
        self._polling.stop(self._poll_handle)
        self._countdown.stop(self._countdown_handle)
        self._release()
        logger.info("payment_session_closed", order_id=self._session.order_id, order_code=self._session.provider_order_code)

    async def retry(self, customer: Optional[CustomerContact] = None) -> PaymentSession:
        """Start a brand new intent/session for the same order."""
        phase = self._session.phase
        if phase.is_terminal:
            await self.close()
        elif phase not in (SessionPhase.CLOSED, SessionPhase.IDLE):
            raise SessionStateError("retry", phase.value)

        order_id = self._order_id
        if order_id is None:
            raise SessionStateError("retry", phase.value)
        if customer is not None:
            self._customer = customer

        previous_code = self._session.provider_order_code
        self._reset()
        intent = await self._create_intent(order_id)
        logger.info(
            "payment_session_retry",
            order_id=order_id,
            previous_order_code=previous_code,
            order_code=intent.provider_order_code,
        )
        return await self.open(intent)

    async def refresh(self) -> PaymentStatus:
        """One-shot verify outside the polling cadence; applied like a poll result."""
        intent = self._session.intent
        if intent is None:
            raise SessionStateError("refresh", self._session.phase.value)
        status = await self._client.verify_payment(intent.provider_order_code)
        if self._session.phase.is_active:
            await self._submit(StatusReceived(status=status))
        return status

    async def wait_terminal(self, timeout: Optional[float] = None) -> SessionPhase:
        await asyncio.wait_for(self._terminal.wait(), timeout)
        return self._session.phase

    # --------------------------------------------------------------- plumbing

    async def _create_intent(self, order_id: str) -> PaymentIntent:
        try:
            return await self._client.create_payment(order_id, self._customer)
        except (ProviderError, TransientError) as exc:
            logger.error("payment_session_create_failed", order_id=order_id, error=exc.message)
            self._session = PaymentSession(error=exc.message)
            await self._invoke("on_error", self._on_error, exc.message)
            raise

    async def _render_qr(self, intent: PaymentIntent) -> None:
        self.qr_image = None
        if self._qr_renderer is None:
            return
        try:
            self.qr_image = self._qr_renderer(intent.qr_payload)
        except EncodingError as exc:
            logger.warning("payment_qr_render_failed", order_code=intent.provider_order_code, error=exc.message)
            await self._process(QRUnavailable(message=exc.message))

    def _deliver(self, generation: int, event: SessionEvent) -> None:
        """Entry point for timer sources. Drops deliveries for stale or closed sessions."""
        if generation != self._generation or self._queue is None:
            return
        if _has_ended(self._session.phase):
            return
        self._queue.put_nowait(_Envelope(event=event, generation=generation))

    async def _submit(self, event: SessionEvent) -> Optional[Transition]:
        dispatcher = self._dispatcher
        if (
            dispatcher is None
            or dispatcher.done()
            or dispatcher is asyncio.current_task()
            or self._queue is None
        ):
            return await self._process(event)
        future = asyncio.get_running_loop().create_future()
        self._queue.put_nowait(_Envelope(event=event, generation=self._generation, done=future))
        return await future

    async def _dispatch_loop(self, queue: asyncio.Queue, generation: int) -> None:
        while generation == self._generation and not _has_ended(self._session.phase):
            first = await queue.get()
            batch = [first]
            if isinstance(first.event, CountdownExpired):
                # a verify result racing the expiry wins over the timeout
                await self._polling.settle(self._poll_handle, self._settle_timeout)
                while not queue.empty():
                    batch.append(queue.get_nowait())
                terminal = [env for env in batch if _is_terminal_status(env)]
                batch = terminal + [env for env in batch if not _is_terminal_status(env)]
            for envelope in batch:
                await self._dispatch(envelope, generation)

        # submissions queued behind the final transition still get an answer
        while not queue.empty():
            envelope = queue.get_nowait()
            if envelope.done is not None:
                await self._dispatch(envelope, generation)

    async def _dispatch(self, envelope: _Envelope, generation: int) -> None:
        try:
            result = None
            if envelope.generation == generation == self._generation:
                result = await self._process(envelope.event)
        except Exception as exc:
            if envelope.done is not None and not envelope.done.done():
                envelope.done.set_exception(exc)
                return
            raise
        if envelope.done is not None and not envelope.done.done():
            envelope.done.set_result(result)

    async def _process(self, event: SessionEvent) -> Transition:
        before = self._session
        transition = reduce(before, event)
        if not transition.accepted:
            if not isinstance(event, CountdownTicked):
                logger.debug(
                    "payment_session_event_ignored",
                    event_type=type(event).__name__,
                    phase=before.phase.value,
                )
            return transition

        generation = self._generation
        terminal = self._terminal
        self._session = transition.session
        if transition.phase is not before.phase:
            logger.info(
                "payment_session_transition",
                order_code=self._session.provider_order_code,
                event_type=type(event).__name__,
                from_phase=before.phase.value,
                to_phase=transition.phase.value,
            )

        notify = [effect for effect in transition.effects if effect in _NOTIFY_EFFECTS]
        for effect in transition.effects:
            if effect not in _NOTIFY_EFFECTS:
                await self._run_effect(effect, event, transition.session)
        if isinstance(event, _PHASE_EVENTS):
            await self._invoke("on_phase", self._on_phase, transition.phase)
        for effect in notify:
            await self._run_effect(effect, event, transition.session)

        # a callback that closed or reopened the session already did the bookkeeping
        if generation != self._generation or terminal.is_set():
            return transition
        if _has_ended(transition.phase):
            self._release()
            terminal.set()
        return transition

    async def _run_effect(self, effect: Effect, event: SessionEvent, session: PaymentSession) -> None:
        intent = session.intent
        generation = self._generation

        if effect is Effect.START_POLLING:
            self._poll_handle = self._polling.start(
                intent.provider_order_code,
                on_update=lambda status: self._deliver(generation, StatusReceived(status=status)),
                on_reject=lambda exc: self._deliver(generation, VerifyRejected(message=exc.message)),
            )
        elif effect is Effect.START_COUNTDOWN:
            self._countdown_handle = self._countdown.start(
                session.remaining_seconds,
                on_tick=lambda remaining: self._deliver(generation, CountdownTicked(remaining_seconds=remaining)),
                on_expire=lambda: self._deliver(generation, CountdownExpired()),
            )
        elif effect is Effect.STOP_POLLING:
            self._polling.stop(self._poll_handle)
        elif effect is Effect.STOP_COUNTDOWN:
            self._countdown.stop(self._countdown_handle)
        elif effect is Effect.CANCEL_REMOTE:
            await self._cancel_remote(intent, getattr(event, "reason", self._cancel_reason))
        elif effect is Effect.NOTIFY_SUCCESS:
            self._success_task = asyncio.create_task(self._emit_success(intent.provider_order_code))
        elif effect is Effect.NOTIFY_CANCELLED:
            await self._invoke("on_cancelled", self._on_cancelled)
        elif effect is Effect.NOTIFY_TIMEOUT:
            await self._invoke("on_timeout", self._on_timeout)
        elif effect is Effect.NOTIFY_ERROR:
            await self._invoke("on_error", self._on_error, session.error)

    async def _cancel_remote(self, intent: PaymentIntent, reason: str) -> None:
        try:
            await self._client.cancel_payment(intent.provider_order_code, reason)
        except (TransientError, ProviderError) as exc:
            error = CancellationError(exc.message, order_code=intent.provider_order_code)
            logger.warning(
                "payment_cancel_failed",
                order_code=error.order_code,
                error=error.message,
                error_type=exc.error_type,
            )

    async def _emit_success(self, order_code: int) -> None:
        await asyncio.sleep(self._timing.success_display_delay_seconds)
        self._success_task = None
        await self._invoke("on_success", self._on_success, order_code)

    async def _flush_success(self) -> None:
        """Fire a pending success callback now instead of dropping it on close."""
        task = self._success_task
        if task is None or task.done():
            return
        task.cancel()
        self._success_task = None
        await self._invoke("on_success", self._on_success, self._session.provider_order_code)

    async def _invoke(self, name: str, callback: Optional[Callback], *args: Any) -> None:
        if callback is None:
            return
        try:
            result = callback(*args)
            if inspect.isawaitable(result):
                await result
        except Exception as exc:
            logger.error("payment_session_callback_failed", callback=name, error=str(exc), exc_info=True)

    def _drain_queue(self) -> None:
        queue = self._queue
        while queue is not None and not queue.empty():
            envelope = queue.get_nowait()
            if envelope.done is not None and not envelope.done.done():
                envelope.done.set_result(None)

    def _release(self) -> None:
        intent = self._session.intent
        if self._registry is not None and intent is not None:
            self._registry.release(intent, self)

    def _reset(self) -> None:
        self._session = PaymentSession(intent=None)
        self._poll_handle = None
        self._countdown_handle = None
        self._dispatcher = None
        self._queue = None
        self._success_task = None
