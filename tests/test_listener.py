"""Tests for the gateway confirmation listener."""

from __future__ import annotations

import asyncio

from fakes import DummyGateway, make_action, make_transaction
from xchain_dispatch.listener import ConfirmationListener
from xchain_dispatch.types import (
    GatewayBatch,
    GatewayBatchState,
    Notification,
    NotificationType,
    TransactionStatus,
)

PENDING = TransactionStatus.PENDING
BATCH_UPDATED = NotificationType.GATEWAY_BATCH_UPDATED


def _pending_action(action_id: str = "a", batch_hash: str = "0xb"):
    return make_action(
        action_id,
        make_transaction(f"{action_id}1", PENDING, batch_hash=batch_hash),
        batch_hash=batch_hash,
    )


def _listener(gateway):
    received = []

    async def _on_resolution(resolution):
        received.append(resolution)

    return ConfirmationListener({1: gateway}, _on_resolution, clock=lambda: 9), received


def test_sync_follows_pending_batches_only() -> None:
    gateway = DummyGateway()
    listener, _ = _listener(gateway)
    unsent = make_action("u", make_transaction("u1"), batch_hash="0xu")
    no_batch = make_action("n", make_transaction("n1", PENDING, transaction_hash="0xt"))

    async def _run():
        await listener.sync([_pending_action(), unsent, no_batch])
        opened = len(listener.registry)
        await listener.sync([_pending_action()])
        return opened

    assert asyncio.run(_run()) == 1
    assert len(gateway.subscriptions) == 1
    assert (1, "0xb") in listener.registry


def test_sync_closes_stale_subscriptions() -> None:
    gateway = DummyGateway()
    listener, _ = _listener(gateway)

    async def _run():
        await listener.sync([_pending_action()])
        subscription = gateway.subscriptions[0]
        await listener.sync([])
        return subscription

    subscription = asyncio.run(_run())

    assert subscription.closed
    assert len(listener.registry) == 0


def test_sent_batch_resolves_action() -> None:
    gateway = DummyGateway()
    gateway.batches["0xb"] = GatewayBatch(
        hash="0xb", state=GatewayBatchState.SENT, transaction_hash="0xmined"
    )
    listener, received = _listener(gateway)

    async def _run():
        await listener.sync([_pending_action()])
        await gateway.notify(Notification(BATCH_UPDATED, {"hash": "0xB"}))

    asyncio.run(_run())

    (resolution,) = received
    assert resolution.action_id == "a"
    assert resolution.status == TransactionStatus.CONFIRMED
    assert resolution.transaction_hash == "0xmined"
    assert resolution.finish_timestamp == 9
    assert resolution.transaction_ids is None


def test_reverted_batch_fails_action() -> None:
    gateway = DummyGateway()
    gateway.batches["0xb"] = GatewayBatch(hash="0xb", state=GatewayBatchState.REVERTED)
    listener, received = _listener(gateway)

    async def _run():
        await listener.sync([_pending_action()])
        await gateway.notify(Notification(BATCH_UPDATED))

    asyncio.run(_run())

    assert [resolution.status for resolution in received] == [TransactionStatus.FAILED]


def test_irrelevant_notifications_ignored() -> None:
    gateway = DummyGateway()
    gateway.batches["0xb"] = GatewayBatch(hash="0xb", state=GatewayBatchState.SENT)
    listener, received = _listener(gateway)

    async def _run():
        await listener.sync([_pending_action()])
        await gateway.notify(Notification(NotificationType.ACCOUNT_UPDATED, {"hash": "0xb"}))
        await gateway.notify(Notification(BATCH_UPDATED, {"hash": "0xother"}))

    asyncio.run(_run())

    assert received == []


def test_in_flight_batch_produces_nothing() -> None:
    gateway = DummyGateway()
    listener, received = _listener(gateway)

    async def _run():
        await listener.sync([_pending_action()])
        await gateway.notify(Notification(BATCH_UPDATED, {"hash": "0xb"}))

    asyncio.run(_run())

    assert received == []


def test_failures_are_swallowed() -> None:
    gateway = DummyGateway()
    gateway.subscribe_error = RuntimeError("socket closed")
    listener, _ = _listener(gateway)

    asyncio.run(listener.sync([_pending_action()]))
    assert len(listener.registry) == 0

    gateway.subscribe_error = None
    gateway.query_error = RuntimeError("timeout")

    async def _run():
        await listener.sync([_pending_action()])
        await gateway.notify(Notification(BATCH_UPDATED, {"hash": "0xb"}))

    asyncio.run(_run())


def test_callback_errors_are_swallowed() -> None:
    gateway = DummyGateway()
    gateway.batches["0xb"] = GatewayBatch(hash="0xb", state=GatewayBatchState.SENT)

    async def _explode(resolution):
        raise RuntimeError("state closed")

    listener = ConfirmationListener({1: gateway}, _explode)

    async def _run():
        await listener.sync([_pending_action()])
        await gateway.notify(Notification(BATCH_UPDATED, {"hash": "0xb"}))
        await listener.close()

    asyncio.run(_run())

    assert gateway.subscriptions == []
