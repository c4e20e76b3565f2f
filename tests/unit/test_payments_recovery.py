import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from fakeredis.aioredis import FakeRedis

from eventpass.payments.models import Err, ErrorKind, Ok, StatusUpdateReceipt, TicketEmailReceipt
from eventpass.payments.recovery import CHARGED, INTENT_CREATED, LEDGER_KEY, PendingPaymentLedger, reconcile
from eventpass.payments.redirects import RedirectHandlers, build_return_url, purchase_id_from_url
from eventpass.session.store import MemorySessionStore, RedisSessionStore


def test_build_return_url():
    assert build_return_url("https://svc.test/redirect", "p1") == "https://svc.test/redirect?purchase_id=p1"
    assert build_return_url("https://svc.test/redirect?x=1", "p1") == "https://svc.test/redirect?x=1&purchase_id=p1"


def test_purchase_id_from_url():
    assert purchase_id_from_url("https://svc.test/r?purchase_id=p1&payment_intent=pi_1") == "p1"
    assert purchase_id_from_url("https://svc.test/r") is None


@pytest.mark.asyncio
async def test_dispatch_routes_to_registered_handler():
    redirects = RedirectHandlers()
    handler = AsyncMock(return_value=True)
    redirects.register("p1", handler)

    url = "https://svc.test/r?purchase_id=p1&payment_intent=pi_1"
    assert await redirects.dispatch(url) is True
    handler.assert_awaited_once_with(url)

    redirects.unregister("p1")
    assert await redirects.dispatch(url) is False


@pytest.mark.asyncio
async def test_dispatch_unknown_purchase():
    redirects = RedirectHandlers()
    redirects.register("p1", AsyncMock(return_value=True))
    assert await redirects.dispatch("https://svc.test/r?purchase_id=other") is False
    assert await redirects.dispatch("https://svc.test/r") is False


@pytest.mark.asyncio
async def test_ledger_lifecycle():
    store = MemorySessionStore()
    ledger = PendingPaymentLedger(store)

    await ledger.record_intent("pi_1_secret_a", "ord-1")
    assert (await ledger.entries())["pi_1_secret_a"] == {"state": INTENT_CREATED, "order_id": "ord-1"}

    await ledger.mark_charged("pi_1_secret_a")
    assert (await ledger.entries())["pi_1_secret_a"]["state"] == CHARGED

    await ledger.resolve("pi_1_secret_a")
    assert await ledger.entries() == {}
    assert await store.hgetall(LEDGER_KEY) == {}
    assert store.has_hashes() is False


@pytest.mark.asyncio
async def test_ledger_skips_corrupted_entry():
    store = MemorySessionStore()
    await store.hset(LEDGER_KEY, "pi_bad_secret", "{not json")
    ledger = PendingPaymentLedger(store)
    await ledger.record_intent("pi_1_secret_a", "ord-1")

    assert list(await ledger.entries()) == ["pi_1_secret_a"]


@pytest.mark.asyncio
async def test_concurrent_purchases_keep_every_entry():
    redis = FakeRedis(decode_responses=True)
    first = PendingPaymentLedger(RedisSessionStore(redis, "u1"))
    second = PendingPaymentLedger(RedisSessionStore(redis, "u1"))

    await asyncio.gather(
        first.record_intent("pi_1_secret_a", "ord-1"),
        second.record_intent("pi_2_secret_b", "ord-2"),
    )
    await asyncio.gather(first.mark_charged("pi_1_secret_a"), second.resolve("pi_2_secret_b"))

    entries = await first.entries()
    assert entries == {"pi_1_secret_a": {"state": CHARGED, "order_id": "ord-1"}}
    assert await redis.hkeys("eventpass:u1:pending_payments") == ["pi_1_secret_a"]


def _backend(update=None):
    backend = MagicMock()
    backend.update_payment_status = AsyncMock(return_value=update or Ok(StatusUpdateReceipt("ord-1")))
    backend.send_ticket_email = AsyncMock(return_value=Ok(TicketEmailReceipt(True)))
    return backend


def _processor(status):
    processor = MagicMock()
    processor.fetch_status = AsyncMock(return_value=status)
    return processor


@pytest.mark.asyncio
async def test_reconcile_charged_entry_is_reported():
    ledger = PendingPaymentLedger(MemorySessionStore())
    await ledger.record_intent("pi_1_secret_a", "ord-1")
    await ledger.mark_charged("pi_1_secret_a")
    backend = _backend()
    processor = _processor(Ok("succeeded"))

    summary = await reconcile(ledger, backend, processor)

    assert summary == {"reported": 1, "failed": 0, "pending": 0}
    backend.update_payment_status.assert_awaited_once_with("pi_1_secret_a", "success", True)
    backend.send_ticket_email.assert_awaited_once_with("ord-1")
    processor.fetch_status.assert_not_awaited()
    assert await ledger.entries() == {}


@pytest.mark.asyncio
async def test_reconcile_intent_succeeded_at_processor():
    ledger = PendingPaymentLedger(MemorySessionStore())
    await ledger.record_intent("pi_1_secret_a", "ord-1")
    backend = _backend()

    summary = await reconcile(ledger, backend, _processor(Ok("succeeded")))

    assert summary["reported"] == 1
    backend.update_payment_status.assert_awaited_once_with("pi_1_secret_a", "success", True)


@pytest.mark.asyncio
async def test_reconcile_intent_never_paid():
    ledger = PendingPaymentLedger(MemorySessionStore())
    await ledger.record_intent("pi_1_secret_a", "ord-1")
    backend = _backend()

    summary = await reconcile(ledger, backend, _processor(Ok("canceled")))

    assert summary == {"reported": 0, "failed": 1, "pending": 0}
    backend.update_payment_status.assert_awaited_once_with("pi_1_secret_a", "canceled", False)
    backend.send_ticket_email.assert_not_awaited()
    assert await ledger.entries() == {}


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [Ok("requires_action"), Err(ErrorKind.PROCESSOR, "down")])
async def test_reconcile_undetermined_stays_pending(status):
    ledger = PendingPaymentLedger(MemorySessionStore())
    await ledger.record_intent("pi_1_secret_a", "ord-1")
    backend = _backend()

    summary = await reconcile(ledger, backend, _processor(status))

    assert summary["pending"] == 1
    backend.update_payment_status.assert_not_awaited()
    assert "pi_1_secret_a" in await ledger.entries()


@pytest.mark.asyncio
async def test_reconcile_ack_failure_keeps_entry():
    ledger = PendingPaymentLedger(MemorySessionStore())
    await ledger.mark_charged("pi_1_secret_a")
    backend = _backend(update=Err(ErrorKind.REPORTING, "db down"))

    summary = await reconcile(ledger, backend, _processor(Ok("succeeded")))

    assert summary["pending"] == 1
    assert (await ledger.entries())["pi_1_secret_a"]["state"] == CHARGED
