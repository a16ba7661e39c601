import pytest

from conftest import cancelled, failed, paid, pending
from domain.payment.entity import (
    PaymentIntent,
    PaymentReconciliation,
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
    SessionOpened,
    StatusReceived,
    VerifyRejected,
)
from domain.payment.state_machine import (
    MSG_EXPIRED,
    TEARDOWN,
    Effect,
    reduce,
)


def _intent(code: int = 1001) -> PaymentIntent:
    return PaymentIntent(
        order_id="order-1",
        provider_order_code=code,
        amount=150000,
        payment_link="https://pay.payos.vn/web/x",
        qr_payload="000201",
    )


def _polling(remaining: int = 900) -> PaymentSession:
    return PaymentSession(intent=_intent(), phase=SessionPhase.POLLING, remaining_seconds=remaining)


def test_open_then_start_polling():
    opened = reduce(PaymentSession(), SessionOpened(intent=_intent(), window_seconds=900))
    assert opened.phase is SessionPhase.OPEN
    assert opened.session.remaining_seconds == 900
    assert opened.effects == ()

    started = reduce(opened.session, PollingStarted())
    assert started.phase is SessionPhase.POLLING
    assert started.effects == (Effect.START_POLLING, Effect.START_COUNTDOWN)


def test_open_is_rejected_outside_idle():
    result = reduce(_polling(), SessionOpened(intent=_intent(2002), window_seconds=900))
    assert not result.accepted
    assert result.session.provider_order_code == 1001


def test_paid_status_confirms_and_tears_down():
    result = reduce(_polling(), StatusReceived(status=paid()))
    assert result.phase is SessionPhase.CONFIRMED
    assert result.effects == (*TEARDOWN, Effect.NOTIFY_SUCCESS)
    assert result.session.last_status == paid()


def test_pending_status_keeps_polling():
    result = reduce(_polling(), StatusReceived(status=pending()))
    assert result.accepted
    assert result.phase is SessionPhase.POLLING
    assert result.effects == ()


def test_backend_completed_with_unpaid_provider_is_not_success():
    status = PaymentStatus(status="COMPLETED", payos_status="PENDING")
    result = reduce(_polling(), StatusReceived(status=status))
    assert result.phase is SessionPhase.POLLING


def test_provider_cancel_reports_reason():
    info = PaymentReconciliation(
        order_code=1001,
        amount=150000,
        amount_paid=0,
        amount_remaining=150000,
        status="CANCELLED",
        cancellation_reason="Changed my mind",
    )
    status = PaymentStatus(status="PENDING", payos_status="CANCELLED", payment_info=info)
    result = reduce(_polling(), StatusReceived(status=status))
    assert result.phase is SessionPhase.CANCELLED
    assert "Changed my mind" in result.session.error
    assert result.effects == (*TEARDOWN, Effect.NOTIFY_ERROR, Effect.NOTIFY_CANCELLED)


@pytest.mark.parametrize("status", [failed(), PaymentStatus(status="FAILED")])
def test_failed_statuses(status):
    result = reduce(_polling(), StatusReceived(status=status))
    assert result.phase is SessionPhase.FAILED
    assert Effect.NOTIFY_ERROR in result.effects


def test_countdown_never_counts_up():
    session = _polling(remaining=120)
    assert reduce(session, CountdownTicked(remaining_seconds=119)).session.remaining_seconds == 119
    assert reduce(session, CountdownTicked(remaining_seconds=600)).session.remaining_seconds == 120


def test_expiry_from_polling():
    result = reduce(_polling(remaining=1), CountdownExpired())
    assert result.phase is SessionPhase.EXPIRED
    assert result.session.remaining_seconds == 0
    assert result.session.error == MSG_EXPIRED
    assert result.effects == (*TEARDOWN, Effect.NOTIFY_TIMEOUT)


def test_terminal_phase_ignores_late_events():
    confirmed = reduce(_polling(), StatusReceived(status=paid())).session
    for event in (
        CountdownExpired(),
        StatusReceived(status=cancelled()),
        CountdownTicked(remaining_seconds=10),
        VerifyRejected(message="boom"),
        CancelRequested(reason="late"),
    ):
        result = reduce(confirmed, event)
        assert not result.accepted
        assert result.phase is SessionPhase.CONFIRMED


def test_user_cancel_requests_remote_cancel_first():
    result = reduce(_polling(), CancelRequested(reason="Customer cancelled payment"))
    assert result.phase is SessionPhase.CANCELLED
    assert result.effects[0] is Effect.CANCEL_REMOTE
    assert result.effects[-1] is Effect.NOTIFY_CANCELLED
    assert Effect.NOTIFY_ERROR not in result.effects


def test_verify_rejection_keeps_polling_and_reports():
    result = reduce(_polling(), VerifyRejected(message="Payment not found"))
    assert result.phase is SessionPhase.POLLING
    assert result.session.error == "Payment not found"
    assert result.effects == (Effect.NOTIFY_ERROR,)


def test_qr_unavailable_does_not_change_phase():
    opened = PaymentSession(intent=_intent(), phase=SessionPhase.OPEN, remaining_seconds=900)
    result = reduce(opened, QRUnavailable(message="QR code could not be generated"))
    assert result.phase is SessionPhase.OPEN
    assert result.effects == (Effect.NOTIFY_ERROR,)


def test_close_from_any_phase_is_idempotent():
    closed = reduce(_polling(), SessionClosed())
    assert closed.phase is SessionPhase.CLOSED
    assert closed.effects == TEARDOWN
    assert not reduce(closed.session, SessionClosed()).accepted


def test_countdown_display_and_low_time():
    session = _polling(remaining=299)
    assert session.countdown_display == "4:59"
    assert session.is_low_time(300)
    assert not _polling(remaining=900).is_low_time(300)
    assert PaymentSession(phase=SessionPhase.EXPIRED).countdown_display == "0:00"
