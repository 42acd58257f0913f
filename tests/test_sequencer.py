"""Tests for head-of-line sequencing of dispatch submissions."""

from __future__ import annotations

import asyncio
import json

from fakes import (
    CountingStore,
    DummyGateway,
    DummySigner,
    TOKEN,
    make_action,
    make_transaction,
)
from xchain_dispatch.config import DispatcherConfig
from xchain_dispatch.constants import MSG_SEND_FAILED, MSG_SENT
from xchain_dispatch.dispatcher import TransactionsDispatcher
from xchain_dispatch.sequencer import select_head
from xchain_dispatch.types import Estimate, TransactionRequest, TransactionStatus

PENDING = TransactionStatus.PENDING
UNSENT = TransactionStatus.UNSENT


def _dispatcher(gateway=None, **kwargs):
    alerts: list[str] = []
    dispatcher = TransactionsDispatcher(
        {1: gateway or DummyGateway()},
        kwargs.pop("store", CountingStore()),
        alert_handler=alerts.append,
        clock=lambda: 5_000,
        **kwargs,
    )
    return dispatcher, alerts


async def _activate(dispatcher, dispatch_id, actions, processing=None):
    def _set(state):
        state.dispatch_id = dispatch_id
        state.actions = list(actions)
        state.processing_action_id = processing

    await dispatcher.mutate(_set)


def test_select_head_follows_group_order() -> None:
    first = make_action("a", make_transaction("a1", PENDING))
    member = make_action("m", make_transaction("m1"))
    second = make_action("b", make_transaction("b1"))
    third = make_action("c", make_transaction("c1"))

    assert select_head([first, second, third]) is second

    first.batch_transactions.append(member)
    assert select_head([first, second, third]) is first
    assert select_head([make_action("done", make_transaction("d1", PENDING))]) is None


def test_advance_submits_head_only() -> None:
    gateway = DummyGateway(batch_hashes=["0xbatchA"])
    dispatcher, alerts = _dispatcher(gateway)
    first = make_action("a", make_transaction("a1"), make_transaction("a2", value=3))
    second = make_action("b", make_transaction("b1"))

    async def _run():
        await _activate(dispatcher, "100-0", [first, second])
        return await dispatcher.sequencer.advance(dispatcher)

    assert asyncio.run(_run())

    [(requests, fee_token)] = gateway.submitted
    assert requests == [
        TransactionRequest(to=first.transactions[0].to),
        TransactionRequest(to=first.transactions[1].to, value=3),
    ]
    assert fee_token is None
    for transaction in first.transactions:
        assert transaction.status == PENDING
        assert transaction.batch_hash == "0xbatchA"
        assert transaction.submit_timestamp == 5_000
    assert first.batch_hash == "0xbatchA"
    assert second.transactions[0].status == UNSENT
    assert dispatcher.snapshot().processing_action_id is None
    assert alerts == [MSG_SENT]


def test_advance_includes_batch_members_and_fee_token() -> None:
    gateway = DummyGateway()
    dispatcher, _ = _dispatcher(gateway)
    head = make_action("a", make_transaction("a1"))
    head.batch_transactions.append(make_action("m", make_transaction("m1")))
    head.gas_token_address = TOKEN

    async def _run():
        await _activate(dispatcher, "100-0", [head])
        await dispatcher.sequencer.advance(dispatcher)

    asyncio.run(_run())

    requests, fee_token = gateway.submitted[0]
    assert len(requests) == 2
    assert fee_token == TOKEN
    assert all(t.status == PENDING for t in head.all_transactions())


def test_advance_waits_while_processing() -> None:
    gateway = DummyGateway()
    dispatcher, _ = _dispatcher(gateway)

    async def _run():
        await _activate(dispatcher, "100-0", [make_action("a", make_transaction("a1"))], "a")
        return await dispatcher.sequencer.advance(dispatcher)

    assert not asyncio.run(_run())
    assert gateway.submitted == []


def test_advance_waits_for_unaffordable_head() -> None:
    gateway = DummyGateway()
    dispatcher, _ = _dispatcher(gateway)
    action = make_action(
        "a", make_transaction("a1"), estimated=Estimate(error_message="Not enough gas!")
    )

    async def _run():
        await _activate(dispatcher, "100-0", [action])
        return await dispatcher.sequencer.advance(dispatcher)

    assert not asyncio.run(_run())
    assert gateway.submitted == []


def test_empty_hash_resets_and_keeps_ledger() -> None:
    gateway = DummyGateway(batch_hashes=[None])
    dispatcher, alerts = _dispatcher(gateway)
    action = make_action("a", make_transaction("a1"))

    async def _run():
        await _activate(dispatcher, "100-0", [action])
        await dispatcher.sequencer.advance(dispatcher)
        return await dispatcher.ledger.load()

    groups = asyncio.run(_run())

    assert alerts == [MSG_SEND_FAILED]
    assert dispatcher.snapshot().dispatch_id is None
    assert list(groups) == ["100-0"]
    assert groups["100-0"][0].transactions[0].status == UNSENT


def test_submission_error_alerts_parsed_message() -> None:
    gateway = DummyGateway()
    gateway.submit_error = Exception(json.dumps([{"constraints": {"x": "Batch rejected"}}]))
    dispatcher, alerts = _dispatcher(gateway)

    async def _run():
        await _activate(dispatcher, "100-0", [make_action("a", make_transaction("a1"))])
        await dispatcher.sequencer.advance(dispatcher)

    asyncio.run(_run())

    assert alerts == ["Batch rejected"]
    assert dispatcher.snapshot().dispatch_id is None


def test_success_alert_can_be_disabled() -> None:
    dispatcher, alerts = _dispatcher(config=DispatcherConfig(alert_on_success=False))

    async def _run():
        await _activate(dispatcher, "100-0", [make_action("a", make_transaction("a1"))])
        await dispatcher.sequencer.advance(dispatcher)

    asyncio.run(_run())

    assert alerts == []


def test_external_signer_sends_one_transaction_at_a_time() -> None:
    signer = DummySigner(hashes=["0xfirst"])
    dispatcher, _ = _dispatcher(signer=signer)
    action = make_action(
        "a", make_transaction("a1"), make_transaction("a2"), uses_external_signer=True
    )

    async def _run():
        await _activate(dispatcher, "100-0", [action])
        first_pass = await dispatcher.sequencer.advance(dispatcher)
        second_pass = await dispatcher.sequencer.advance(dispatcher)
        return first_pass, second_pass

    assert asyncio.run(_run()) == (True, False)

    assert len(signer.submitted) == 1
    first, second = action.transactions
    assert first.status == PENDING
    assert first.transaction_hash == "0xfirst"
    assert first.batch_hash is None
    assert second.status == UNSENT


def test_submission_racing_a_clear_is_persisted() -> None:
    class ClearingGateway(DummyGateway):
        dispatcher = None

        async def submit_batch(self, transactions, fee_token=None):
            await self.dispatcher.reset()
            return await super().submit_batch(transactions, fee_token)

    gateway = ClearingGateway()
    dispatcher, _ = _dispatcher(gateway)
    gateway.dispatcher = dispatcher

    async def _run():
        await _activate(dispatcher, "100-0", [make_action("a", make_transaction("a1"))])
        await dispatcher.sequencer.advance(dispatcher)
        return await dispatcher.ledger.load()

    groups = asyncio.run(_run())

    assert dispatcher.snapshot().dispatch_id is None
    (stored,) = groups["100-0"][0].transactions
    assert stored.status == PENDING
    assert stored.batch_hash == "0xbatch1"
