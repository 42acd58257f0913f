"""Key/value stores, the grouped dispatch ledger and its lease."""

from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path

from .base import KeyValueStore
from .constants import STORED_GROUPED_CROSS_CHAIN_ACTIONS
from .exceptions import LeaseError, StorageError
from .types import CrossChainAction
from .utils import is_group_finished, now_ms, sort_group_ids

logger = logging.getLogger(__name__)

Groups = dict[str, list[CrossChainAction]]


class InMemoryStore(KeyValueStore):
    """Process-local store, mostly useful for tests and dry runs."""

    def __init__(self, initial: Mapping[str, str] | None = None) -> None:
        self._items: dict[str, str] = dict(initial or {})

    async def get_item(self, key: str) -> str | None:
        return self._items.get(key)

    async def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    async def remove_item(self, key: str) -> None:
        self._items.pop(key, None)


class JsonFileStore(KeyValueStore):
    """Store every key in one JSON object on disk, replaced atomically on write."""

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self.path = Path(path)

    async def get_item(self, key: str) -> str | None:
        items = await asyncio.to_thread(self._read)
        return items.get(key)

    async def set_item(self, key: str, value: str) -> None:
        await asyncio.to_thread(self._update, key, value)

    async def remove_item(self, key: str) -> None:
        await asyncio.to_thread(self._update, key, None)

    def _read(self) -> dict[str, str]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        try:
            items = json.loads(raw) if raw.strip() else {}
        except ValueError as exc:
            raise StorageError(
                f"Store file {self.path} is not valid JSON", details={"error": str(exc)}
            ) from exc
        if not isinstance(items, dict):
            raise StorageError(f"Store file {self.path} must hold a JSON object")
        return items

    def _update(self, key: str, value: str | None) -> None:
        items = self._read()
        if value is None:
            if key not in items:
                return
            items.pop(key)
        else:
            items[key] = value

        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(items, handle)
            os.replace(tmp_path, self.path)
        except BaseException:
            Path(tmp_path).unlink(missing_ok=True)
            raise


def encode_groups(groups: Mapping[str, Sequence[CrossChainAction]]) -> str:
    return json.dumps(
        {
            dispatch_id: [action.to_dict() for action in actions]
            for dispatch_id, actions in groups.items()
        }
    )


def decode_groups(raw: str, key: str | None = None) -> Groups:
    """Decode a ledger document; raises ``StorageError`` when it is malformed."""

    try:
        document = json.loads(raw)
        if not isinstance(document, dict):
            raise TypeError("ledger document must be an object")
        return {
            str(dispatch_id): [CrossChainAction.from_dict(item) for item in actions]
            for dispatch_id, actions in document.items()
        }
    except (ValueError, KeyError, TypeError) as exc:
        raise StorageError(
            "Unable to decode dispatch ledger", key=key, details={"error": str(exc)}
        ) from exc


class GroupLedger:
    """All dispatch groups, persisted together as one JSON document under one key."""

    def __init__(self, store: KeyValueStore, key: str = STORED_GROUPED_CROSS_CHAIN_ACTIONS) -> None:
        self.store = store
        self.key = key

    async def load(self) -> Groups:
        """Decode every stored group.

        Raises:
            StorageError: The stored document does not decode. Writers go
                through ``load`` first, so they never replace such a document.
        """
        raw = await self.store.get_item(self.key)
        if not raw:
            return {}
        return decode_groups(raw, self.key)

    async def save(self, groups: Mapping[str, Sequence[CrossChainAction]]) -> None:
        if not groups:
            await self.store.remove_item(self.key)
            return
        await self.store.set_item(self.key, encode_groups(groups))

    async def save_group(self, dispatch_id: str, actions: Sequence[CrossChainAction]) -> None:
        """Write one group, or delete it once every transaction is terminal."""

        groups = await self.load()
        if is_group_finished(actions):
            if dispatch_id not in groups:
                return
            groups.pop(dispatch_id)
            logger.info("Dispatch group %s finished, removing it from the ledger", dispatch_id)
        else:
            groups[dispatch_id] = list(actions)
        await self.save(groups)

    async def delete_group(self, dispatch_id: str) -> None:
        groups = await self.load()
        if groups.pop(dispatch_id, None) is not None:
            await self.save(groups)

    async def history(self) -> list[tuple[str, list[CrossChainAction]]]:
        groups = await self.load()
        return [
            (dispatch_id, groups[dispatch_id])
            for dispatch_id in sort_group_ids(groups, newest_first=True)
        ]


@dataclass(frozen=True)
class LeaseHolder:
    owner: str
    expires_at: int


class LedgerLease:
    """Best-effort single-owner lease over a ledger.

    The store has no compare-and-swap, so two owners racing on an expired
    lease can both win; the lease only narrows that window.
    """

    def __init__(
        self,
        store: KeyValueStore,
        key: str,
        owner: str,
        ttl: float,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.store = store
        self.key = key
        self.owner = owner
        self.ttl = ttl
        self._clock = clock

    async def holder(self) -> LeaseHolder | None:
        raw = await self.store.get_item(self.key)
        if not raw:
            return None
        try:
            payload = json.loads(raw)
            return LeaseHolder(owner=str(payload["owner"]), expires_at=int(payload["expiresAt"]))
        except (ValueError, KeyError, TypeError):
            logger.warning("Ignoring unreadable lease under %s", self.key)
            return None

    async def acquire(self) -> None:
        """Take or refresh the lease; raises ``LeaseError`` while another owner holds it."""

        now = self._clock()
        current = await self.holder()
        if current is not None and current.owner != self.owner and current.expires_at > now:
            raise LeaseError(
                f"Ledger {self.key} is leased by another dispatcher",
                owner=current.owner,
                details={"expires_at": current.expires_at},
            )
        expires_at = now + int(self.ttl * 1000)
        await self.store.set_item(
            self.key, json.dumps({"owner": self.owner, "expiresAt": expires_at})
        )
        logger.debug("Stage lease [%s]: held by %s until %s", self.key, self.owner, expires_at)

    refresh = acquire

    async def release(self) -> None:
        current = await self.holder()
        if current is not None and current.owner == self.owner:
            await self.store.remove_item(self.key)
