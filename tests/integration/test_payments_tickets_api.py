import asyncio

from eventpass.config import PAYMENT_STATUS_PATH, TICKET_EMAIL_PATH, TICKETS_BY_ORDER_PATH, VERIFY_TOKEN_PATH
from eventpass.payments.recovery import PendingPaymentLedger
from eventpass.session.store import TOKEN_KEY

AUTH_U1 = {"Authorization": "Bearer tok-u1", "X-User-Id": "u1"}


def _seed_user(app, user_id, token="tok-u1", secret=None, charged=False):
    """Jeton et entrée de reprise dans le store de l'utilisateur (hors boucle du TestClient)."""
    store = app.state.purchases.store_for(user_id)
    ledger = PendingPaymentLedger(store)

    async def _write():
        await store.set(TOKEN_KEY, token)
        if secret:
            await ledger.record_intent(secret, "ord-7")
            if charged:
                await ledger.mark_charged(secret)

    asyncio.run(_write())
    return ledger


def test_reconcile_requires_user(client):
    r = client.post("/api/v1/payments/reconcile")
    assert r.status_code == 400
    assert r.json()["detail"] == "X-User-Id manquant"


def test_reconcile_requires_bearer(app, client, ticketing_api):
    _seed_user(app, "u1", secret="pi_7_secret_x", charged=True)

    r = client.post("/api/v1/payments/reconcile", headers={"X-User-Id": "u1"})

    assert r.status_code == 401
    assert ticketing_api.calls == []


def test_reconcile_rejects_token_of_another_user(app, client, ticketing_api):
    ledger = _seed_user(app, "u1", secret="pi_7_secret_x", charged=True)
    _seed_user(app, "u2", token="tok-u2")

    r = client.post("/api/v1/payments/reconcile", headers={"Authorization": "Bearer tok-u2", "X-User-Id": "u1"})

    assert r.status_code == 401
    assert ticketing_api.calls == []
    assert "pi_7_secret_x" in asyncio.run(ledger.entries())


def test_reconcile_unknown_user_leaves_no_store(app, client):
    r = client.post("/api/v1/payments/reconcile", headers={"Authorization": "Bearer tok", "X-User-Id": "ghost"})

    assert r.status_code == 401
    assert "ghost" not in app.state.purchases._memory_stores


def test_reconcile_rejects_expired_session(app, client, ticketing_api):
    _seed_user(app, "u1", secret="pi_7_secret_x", charged=True)
    ticketing_api.responses[VERIFY_TOKEN_PATH] = (401, {"message": "expired"})

    r = client.post("/api/v1/payments/reconcile", headers=AUTH_U1)

    assert r.status_code == 401
    assert ticketing_api.paths() == [VERIFY_TOKEN_PATH]


def test_reconcile_nothing_pending(app, client, ticketing_api):
    _seed_user(app, "u1")

    r = client.post("/api/v1/payments/reconcile", headers=AUTH_U1)

    assert r.json() == {"status": "ok", "reported": 0, "failed": 0, "pending": 0}
    assert ticketing_api.paths() == [VERIFY_TOKEN_PATH]


def test_reconcile_replays_missing_ack(app, client, ticketing_api):
    _seed_user(app, "u1", secret="pi_7_secret_x", charged=True)

    r = client.post("/api/v1/payments/reconcile", headers=AUTH_U1)

    assert r.json() == {"status": "ok", "reported": 1, "failed": 0, "pending": 0}
    assert ticketing_api.bodies(PAYMENT_STATUS_PATH) == [
        {"clientSecret": "pi_7_secret_x", "status": "success", "isPaid": True}
    ]
    assert ticketing_api.bodies(TICKET_EMAIL_PATH) == [{"orderId": "ord-1"}]


def test_order_tickets_with_qr(client, ticketing_api):
    r = client.get("/api/v1/tickets/orders/ord-1", headers={"Authorization": "Bearer tok"})

    assert r.status_code == 200
    data = r.json()
    assert data["order_id"] == "ord-1"
    assert data["tickets"][0]["qr_code"].startswith("data:image/png;base64,")
    path, body, headers = ticketing_api.calls[0]
    assert path == TICKETS_BY_ORDER_PATH
    assert body == {"orderId": "ord-1"}
    assert headers["authorization"] == "Bearer tok"


def test_order_tickets_backend_failure(client, ticketing_api):
    ticketing_api.responses[TICKETS_BY_ORDER_PATH] = (500, {"message": "boom"})
    r = client.get("/api/v1/tickets/orders/ord-1")
    assert r.status_code == 502
    assert r.json()["detail"] == "boom"


def test_health(client):
    assert client.get("/health").json() == {"ok": True}
    details = client.get("/health/details").json()
    assert details["rate_limit"]["enabled"] is False
