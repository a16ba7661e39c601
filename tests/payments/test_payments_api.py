import pytest
from fastapi.testclient import TestClient

from conftest import FakeStatusClient, fast_timing, pending
from api.dependencies import get_controller_factory
from application.services.payment_session import PaymentSessionController
from application.services.session_registry import SessionRegistry
from infrastructure.external.qr import render


@pytest.fixture
def api():
    from main import app

    client = FakeStatusClient([pending()])
    registry = SessionRegistry()

    async def _factory():
        return lambda order_id: PaymentSessionController(
            client,
            qr_renderer=render,
            registry=registry,
            timing=fast_timing(poll_interval_seconds=30, countdown_tick_seconds=1.0),
        )

    app.dependency_overrides[get_controller_factory] = _factory
    with TestClient(app) as http:
        # lifespan closes whatever is on app.state at shutdown
        app.state.payment_client = client
        app.state.payment_registry = registry
        yield http, client, registry
    app.dependency_overrides.clear()


def test_routes_registered():
    from main import app

    routes = app.openapi()["paths"]
    assert "/api/v1/payments/sessions" in routes
    assert "/api/v1/payments/sessions/{order_id}/qr" in routes
    assert "/api/v1/payments/transactions/{transaction_id}" in routes


def test_session_lifecycle(api):
    http, client, registry = api

    resp = http.post("/api/v1/payments/sessions", json={"order_id": "order-1", "customer_name": "An"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["code"] == 0
    assert body["data"]["phase"] == "POLLING"
    assert body["data"]["provider_order_code"] == 1001
    assert body["data"]["countdown_display"] == "15:00"
    assert body["data"]["qr_available"] is True
    assert "X-Request-ID" in resp.headers

    qr = http.get("/api/v1/payments/sessions/order-1/qr")
    assert qr.status_code == 200
    assert qr.headers["content-type"] == "image/png"

    conflict = http.post("/api/v1/payments/sessions", json={"order_id": "order-1"})
    assert conflict.status_code == 409
    assert conflict.json()["error"]["type"] == "SessionConflict"

    cancel = http.post("/api/v1/payments/sessions/order-1/cancel", json={"reason": "Wrong amount"})
    assert cancel.status_code == 200
    assert cancel.json()["data"]["phase"] == "CANCELLED"
    assert client.cancel_calls == [(1001, "Wrong amount")]

    retry = http.post("/api/v1/payments/sessions/order-1/retry")
    assert retry.status_code == 200
    assert retry.json()["data"]["provider_order_code"] == 1002

    closed = http.delete("/api/v1/payments/sessions/order-1")
    assert closed.json()["data"]["phase"] == "CLOSED"
    assert http.get("/api/v1/payments/sessions/order-1").status_code == 404
    assert len(registry) == 0


def test_cancel_closed_session_is_conflict(api):
    http, _, _ = api
    http.post("/api/v1/payments/sessions", json={"order_id": "order-2"})
    http.post("/api/v1/payments/sessions/order-2/cancel")

    resp = http.post("/api/v1/payments/sessions/order-2/cancel")
    assert resp.status_code == 409
    assert resp.json()["error"]["type"] == "SessionStateError"


def test_start_session_validation(api):
    http, _, _ = api
    resp = http.post("/api/v1/payments/sessions", json={"order_id": ""})
    assert resp.status_code == 422
    assert resp.json()["error"]["field"] == "order_id"


def test_transactions(api):
    http, _, _ = api

    listing = http.get("/api/v1/payments/transactions", params={"page": 1, "limit": 5})
    assert listing.status_code == 200
    assert listing.json()["data"]["pagination"]["limit"] == 5

    txn = http.get("/api/v1/payments/transactions/TXN_1")
    assert txn.json()["data"]["transaction_id"] == "TXN_1"

    missing = http.get("/api/v1/payments/transactions/missing")
    assert missing.status_code == 502
    assert missing.json()["error"]["type"] == "ProviderError"


def test_health(api):
    http, _, _ = api
    resp = http.get("/health")
    assert resp.json()["data"]["status"] == "healthy"


def test_new_session_replaces_finished_one(api):
    http, client, registry = api
    http.post("/api/v1/payments/sessions", json={"order_id": "order-3"})
    http.post("/api/v1/payments/sessions/order-3/cancel")
    finished = registry.get("order-3")

    resp = http.post("/api/v1/payments/sessions", json={"order_id": "order-3"})
    assert resp.status_code == 200
    assert resp.json()["data"]["phase"] == "POLLING"
    assert resp.json()["data"]["provider_order_code"] == 1002
    assert finished.phase.value == "CLOSED"
    assert registry.get("order-3") is not finished
