import asyncio

import pytest

from conftest import FakeStatusClient, paid, pending, transient_error, wait_until
from application.services.payment_countdown import CountdownGovernor
from application.services.payment_polling import PollingController
from domain.payment.exceptions import ProviderError


@pytest.mark.asyncio
async def test_polling_delivers_until_terminal_status():
    client = FakeStatusClient([pending(), pending(), paid()])
    updates = []
    polling = PollingController(client, interval=0.01)

    handle = polling.start(1001, on_update=updates.append)
    await wait_until(lambda: handle.done)

    assert [s.status for s in updates] == ["PENDING", "PENDING", "COMPLETED"]
    assert client.verify_calls == [1001, 1001, 1001]
    assert handle.stopped


@pytest.mark.asyncio
async def test_polling_skips_transient_errors():
    client = FakeStatusClient([transient_error(), transient_error(), transient_error(), paid()])
    updates = []
    polling = PollingController(client, interval=0.01)

    handle = polling.start(1001, on_update=updates.append)
    await wait_until(lambda: handle.done)

    assert len(client.verify_calls) == 4
    assert len(updates) == 1
    assert updates[0].is_terminal


@pytest.mark.asyncio
async def test_polling_reports_provider_rejection_and_continues():
    rejection = ProviderError("Payment not found", operation="verify_payment", status_code=404)
    client = FakeStatusClient([rejection, paid()])
    rejected, updates = [], []
    polling = PollingController(client, interval=0.01)

    handle = polling.start(1001, on_update=updates.append, on_reject=rejected.append)
    await wait_until(lambda: handle.done)

    assert rejected == [rejection]
    assert len(updates) == 1


@pytest.mark.asyncio
async def test_stop_discards_in_flight_result():
    client = FakeStatusClient([paid()])
    client.verify_gate = asyncio.Event()
    updates = []
    polling = PollingController(client, interval=0.01)

    handle = polling.start(1001, on_update=updates.append)
    await wait_until(lambda: handle.in_flight)
    polling.stop(handle)
    polling.stop(handle)
    client.verify_gate.set()
    await wait_until(lambda: handle.done)

    assert updates == []
    assert client.verify_calls == [1001]


@pytest.mark.asyncio
async def test_settle_waits_for_in_flight_request():
    client = FakeStatusClient([paid()])
    client.verify_gate = asyncio.Event()
    updates = []
    polling = PollingController(client, interval=0.01)

    handle = polling.start(1001, on_update=updates.append)
    await wait_until(lambda: handle.in_flight)
    asyncio.get_running_loop().call_later(0.02, client.verify_gate.set)
    await polling.settle(handle, timeout=1.0)

    assert not handle.in_flight
    await wait_until(lambda: handle.done)
    assert len(updates) == 1


@pytest.mark.asyncio
async def test_countdown_ticks_then_expires_once():
    ticks, expirations = [], []
    countdown = CountdownGovernor(tick_seconds=0.005)

    handle = countdown.start(3, on_tick=ticks.append, on_expire=lambda: expirations.append(True))
    await wait_until(lambda: handle.done)

    assert ticks == [2, 1]
    assert expirations == [True]
    assert handle.expired
    assert handle.remaining_seconds == 0


@pytest.mark.asyncio
async def test_countdown_stop_prevents_expiry():
    expirations = []
    countdown = CountdownGovernor(tick_seconds=0.01)

    handle = countdown.start(100, on_tick=lambda _: None, on_expire=lambda: expirations.append(True))
    await asyncio.sleep(0.03)
    countdown.stop(handle)
    countdown.stop(handle)
    await wait_until(lambda: handle.done)

    assert expirations == []
    assert not handle.expired
    assert handle.remaining_seconds > 0


@pytest.mark.asyncio
async def test_zero_window_expires_immediately():
    expirations = []
    countdown = CountdownGovernor(tick_seconds=0.01)

    handle = countdown.start(0, on_tick=lambda _: None, on_expire=lambda: expirations.append(True))
    await wait_until(lambda: handle.done)

    assert expirations == [True]
