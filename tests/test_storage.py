"""Tests for key/value stores, the dispatch ledger and its lease."""

from __future__ import annotations

import asyncio
import json

import pytest

from fakes import CountingStore, make_action, make_transaction
from xchain_dispatch.exceptions import LeaseError, StorageError
from xchain_dispatch.storage import GroupLedger, InMemoryStore, JsonFileStore, LedgerLease
from xchain_dispatch.types import TransactionStatus

KEY = "@xchainDispatch:storedGroupedCrossChainActions"


def _group(status: TransactionStatus = TransactionStatus.UNSENT, prefix: str = "a"):
    return [make_action(prefix, make_transaction(f"{prefix}1", status))]


class TestGroupLedger:
    """Test the grouped ledger document."""

    def test_save_group_round_trip(self):
        ledger = GroupLedger(InMemoryStore(), KEY)

        async def _run():
            await ledger.save_group("100-0", _group(TransactionStatus.PENDING))
            return await ledger.load()

        groups = asyncio.run(_run())

        assert list(groups) == ["100-0"]
        assert groups["100-0"][0].transactions[0].status == TransactionStatus.PENDING

    def test_finished_group_is_removed(self):
        store = CountingStore()
        ledger = GroupLedger(store, KEY)

        async def _run():
            await ledger.save_group("100-0", _group())
            await ledger.save_group("100-0", _group(TransactionStatus.CONFIRMED))
            await ledger.save_group("100-0", _group(TransactionStatus.CONFIRMED))
            return await store.get_item(KEY)

        assert asyncio.run(_run()) is None
        assert [write[0] for write in store.writes_for(KEY)] == ["set", "remove"]

    def test_other_groups_survive_removal(self):
        ledger = GroupLedger(InMemoryStore(), KEY)

        async def _run():
            await ledger.save_group("100-0", _group())
            await ledger.save_group("200-0", _group(prefix="b"))
            await ledger.delete_group("100-0")
            return await ledger.load()

        assert list(asyncio.run(_run())) == ["200-0"]

    def test_corrupt_document_is_never_overwritten(self):
        store = CountingStore({KEY: "{not json"})
        ledger = GroupLedger(store, KEY)

        with pytest.raises(StorageError):
            asyncio.run(ledger.load())
        with pytest.raises(StorageError):
            asyncio.run(ledger.save_group("200-0", _group()))
        with pytest.raises(StorageError):
            asyncio.run(ledger.delete_group("100-0"))

        assert store.writes_for(KEY) == []
        assert asyncio.run(store.get_item(KEY)) == "{not json"

    def test_history_newest_first(self):
        ledger = GroupLedger(InMemoryStore(), KEY)

        async def _run():
            for dispatch_id in ("9-0", "10-0", "9-1"):
                await ledger.save_group(dispatch_id, _group(prefix=dispatch_id))
            return await ledger.history()

        history = asyncio.run(_run())

        assert [dispatch_id for dispatch_id, _ in history] == ["10-0", "9-1", "9-0"]


class TestJsonFileStore:
    """Test the file-backed store."""

    def test_set_get_remove(self, tmp_path):
        path = tmp_path / "state" / "store.json"
        store = JsonFileStore(path)

        async def _run():
            await store.set_item("a", "1")
            await store.set_item("b", "2")
            await store.remove_item("a")
            await store.remove_item("missing")
            return await store.get_item("a"), await store.get_item("b")

        assert asyncio.run(_run()) == (None, "2")
        assert json.loads(path.read_text()) == {"b": "2"}

    def test_missing_file_reads_empty(self, tmp_path):
        store = JsonFileStore(tmp_path / "absent.json")

        assert asyncio.run(store.get_item("a")) is None

    def test_invalid_file_raises(self, tmp_path):
        path = tmp_path / "store.json"
        path.write_text("[1, 2]")

        with pytest.raises(StorageError):
            asyncio.run(JsonFileStore(path).get_item("a"))

    def test_ledger_on_file_store(self, tmp_path):
        ledger = GroupLedger(JsonFileStore(tmp_path / "store.json"), KEY)

        async def _run():
            await ledger.save_group("100-0", _group(TransactionStatus.PENDING))
            return await GroupLedger(JsonFileStore(tmp_path / "store.json"), KEY).load()

        assert list(asyncio.run(_run())) == ["100-0"]


class TestLedgerLease:
    """Test single-owner leasing."""

    def test_acquire_and_conflict(self):
        store = InMemoryStore()
        now = {"ms": 1_000}
        first = LedgerLease(store, "lease", "one", ttl=10, clock=lambda: now["ms"])
        second = LedgerLease(store, "lease", "two", ttl=10, clock=lambda: now["ms"])

        async def _run():
            await first.acquire()
            with pytest.raises(LeaseError) as exc_info:
                await second.acquire()
            assert exc_info.value.owner == "one"
            await first.refresh()
            now["ms"] = 20_000
            await second.acquire()
            return await second.holder()

        holder = asyncio.run(_run())

        assert holder.owner == "two"
        assert holder.expires_at == 30_000

    def test_release_only_by_owner(self):
        store = InMemoryStore()
        owner = LedgerLease(store, "lease", "one", ttl=10, clock=lambda: 0)
        other = LedgerLease(store, "lease", "two", ttl=10, clock=lambda: 0)

        async def _run():
            await owner.acquire()
            await other.release()
            still_held = await owner.holder()
            await owner.release()
            return still_held, await owner.holder()

        still_held, after = asyncio.run(_run())

        assert still_held is not None and still_held.owner == "one"
        assert after is None

    def test_unreadable_lease_is_ignored(self):
        lease = LedgerLease(InMemoryStore({"lease": "garbage"}), "lease", "one", ttl=1)

        assert asyncio.run(lease.holder()) is None
