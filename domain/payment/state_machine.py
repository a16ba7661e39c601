"""
Payment session state machine.

`reduce` is a pure function: it takes the current session and one event and
returns the next session plus the side effects the controller must execute.
Events that do not apply to the current phase are ignored (``accepted`` is
False) instead of raising, since late timer deliveries are expected.

    IDLE -> OPEN -> POLLING -> {CONFIRMED | CANCELLED | FAILED | EXPIRED} -> CLOSED
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum

from domain.payment.entity import PaymentOutcome, PaymentSession, SessionPhase
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


class Effect(str, Enum):
    START_POLLING = "start_polling"
    START_COUNTDOWN = "start_countdown"
    STOP_POLLING = "stop_polling"
    STOP_COUNTDOWN = "stop_countdown"
    CANCEL_REMOTE = "cancel_remote"
    NOTIFY_SUCCESS = "notify_success"
    NOTIFY_CANCELLED = "notify_cancelled"
    NOTIFY_TIMEOUT = "notify_timeout"
    NOTIFY_ERROR = "notify_error"


TEARDOWN = (Effect.STOP_POLLING, Effect.STOP_COUNTDOWN)

MSG_CANCELLED = "Payment was cancelled"
MSG_FAILED = "Payment failed"
MSG_EXPIRED = "Payment window expired. The order was saved and can be paid later from your orders"


@dataclass(frozen=True)
class Transition:
    session: PaymentSession
    effects: tuple[Effect, ...] = ()
    accepted: bool = True

    @property
    def phase(self) -> SessionPhase:
        return self.session.phase


def _ignore(session: PaymentSession) -> Transition:
    return Transition(session=session, accepted=False)


def _on_status(session: PaymentSession, event: StatusReceived) -> Transition:
    status = event.status
    outcome = status.outcome
    if outcome is PaymentOutcome.PAID:
        return Transition(
            replace(session, phase=SessionPhase.CONFIRMED, last_status=status, error=None),
            (*TEARDOWN, Effect.NOTIFY_SUCCESS),
        )
    if outcome is PaymentOutcome.CANCELLED:
        reason = status.cancellation_reason
        message = f"{MSG_CANCELLED}: {reason}" if reason else MSG_CANCELLED
        return Transition(
            replace(session, phase=SessionPhase.CANCELLED, last_status=status, error=message),
            (*TEARDOWN, Effect.NOTIFY_ERROR, Effect.NOTIFY_CANCELLED),
        )
    if outcome is PaymentOutcome.FAILED:
        return Transition(
            replace(session, phase=SessionPhase.FAILED, last_status=status, error=MSG_FAILED),
            (*TEARDOWN, Effect.NOTIFY_ERROR),
        )
    return Transition(replace(session, last_status=status))


def reduce(session: PaymentSession, event: SessionEvent) -> Transition:
    """Apply one event to a session."""
    phase = session.phase

    if isinstance(event, SessionOpened):
        if phase is not SessionPhase.IDLE:
            return _ignore(session)
        return Transition(
            PaymentSession(
                intent=event.intent,
                phase=SessionPhase.OPEN,
                remaining_seconds=max(0, event.window_seconds),
            )
        )

    if isinstance(event, PollingStarted):
        if phase is not SessionPhase.OPEN:
            return _ignore(session)
        return Transition(
            replace(session, phase=SessionPhase.POLLING),
            (Effect.START_POLLING, Effect.START_COUNTDOWN),
        )

    if isinstance(event, StatusReceived):
        if phase is not SessionPhase.POLLING:
            return _ignore(session)
        return _on_status(session, event)

    if isinstance(event, VerifyRejected):
        if phase is not SessionPhase.POLLING:
            return _ignore(session)
        return Transition(replace(session, error=event.message), (Effect.NOTIFY_ERROR,))

    if isinstance(event, CountdownTicked):
        if phase is not SessionPhase.POLLING:
            return _ignore(session)
        # never count back up
        remaining = min(session.remaining_seconds, max(0, event.remaining_seconds))
        return Transition(replace(session, remaining_seconds=remaining))

    if isinstance(event, CountdownExpired):
        if phase is not SessionPhase.POLLING:
            return _ignore(session)
        return Transition(
            replace(session, phase=SessionPhase.EXPIRED, remaining_seconds=0, error=MSG_EXPIRED),
            (*TEARDOWN, Effect.NOTIFY_TIMEOUT),
        )

    if isinstance(event, CancelRequested):
        if not phase.is_active:
            return _ignore(session)
        return Transition(
            replace(session, phase=SessionPhase.CANCELLED, error=None),
            (Effect.CANCEL_REMOTE, *TEARDOWN, Effect.NOTIFY_CANCELLED),
        )

    if isinstance(event, QRUnavailable):
        if not phase.is_active:
            return _ignore(session)
        return Transition(replace(session, error=event.message), (Effect.NOTIFY_ERROR,))

    if isinstance(event, SessionClosed):
        if phase is SessionPhase.CLOSED:
            return _ignore(session)
        return Transition(replace(session, phase=SessionPhase.CLOSED), TEARDOWN)

    return _ignore(session)
