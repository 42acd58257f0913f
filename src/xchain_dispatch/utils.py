"""Utility functions for the cross-chain dispatch core."""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable, Iterable, Sequence

from hexbytes import HexBytes
from web3 import Web3

from .constants import EXPLORER_URLS, NATIVE_PLACEHOLDER_ADDRESS, ZERO_ADDRESS
from .exceptions import ValidationError
from .types import (
    ChainTransactionStatus,
    CrossChainAction,
    GatewayBatchState,
    StatusResolution,
    TimeOrderedId,
    TransactionStatus,
)

logger = logging.getLogger(__name__)


def now_ms() -> int:
    """Current wall-clock time in integer milliseconds."""
    return int(time.time() * 1000)


class TimeOrderedIdFactory:
    """Issue ``TimeOrderedId`` values that never repeat within one process."""

    def __init__(self, clock: Callable[[], int] = now_ms) -> None:
        self._clock = clock
        self._last_timestamp = -1
        self._sequence = 0

    def __call__(self) -> TimeOrderedId:
        timestamp = self._clock()
        if timestamp <= self._last_timestamp:
            # same millisecond, or the clock stepped back
            timestamp = self._last_timestamp
            self._sequence += 1
        else:
            self._last_timestamp = timestamp
            self._sequence = 0
        return TimeOrderedId(timestamp=timestamp, sequence=self._sequence)

    def new(self) -> str:
        return str(self())


def function_selector(signature: str) -> str:
    """Return the 4-byte selector of a Solidity function signature as 0x-hex."""
    return HexBytes(Web3.keccak(text=signature)[:4]).to_0x_hex()


ERC20_APPROVE_SELECTOR = function_selector("approve(address,uint256)")


def addresses_equal(first: str | None, second: str | None) -> bool:
    if not first or not second:
        return False
    return first.lower() == second.lower()


def is_zero_address(address: str | None) -> bool:
    return addresses_equal(address, ZERO_ADDRESS)


def is_native_asset(address: str | None) -> bool:
    """True for the zero address, the aggregator placeholder, or no address at all."""
    if not address:
        return True
    return is_zero_address(address) or addresses_equal(address, NATIVE_PLACEHOLDER_ADDRESS)


def require_address(address: str | None, field: str) -> str:
    """Validate and checksum an address, raising ``ValidationError`` otherwise."""
    if not address or not Web3.is_address(address):
        raise ValidationError(f"Invalid address for {field}", field=field, value=address)
    return Web3.to_checksum_address(address)


def is_erc20_approval_data(data: str | None) -> bool:
    if not data:
        return False
    return data.lower().startswith(ERC20_APPROVE_SELECTOR)


def explorer_link(chain_id: int, transaction_hash: str | None) -> str | None:
    """Block explorer URL for a transaction, or ``None`` when unknown."""
    explorer_url = EXPLORER_URLS.get(chain_id)
    if not explorer_url or not transaction_hash:
        return None
    return f"{explorer_url}{transaction_hash}"


def parse_error_message(error: BaseException) -> str | None:
    """Extract a readable message from a collaborator error.

    Gateways report validation problems as a JSON list of objects with a
    ``constraints`` mapping; the first constraint message is returned. Any
    other error falls back to its string form, or ``None`` when that is empty.
    """
    text = str(getattr(error, "message", None) or error).strip()
    try:
        payload = json.loads(text)
        constraints = payload[0]["constraints"]
        return str(next(iter(constraints.values())))
    except (ValueError, TypeError, KeyError, IndexError, StopIteration, AttributeError):
        pass
    return text or None


def update_actions_status(actions: Iterable[CrossChainAction], status: TransactionStatus) -> bool:
    """Rewrite the status of every transaction, never leaving a terminal state.

    Returns ``True`` when at least one transaction changed.
    """
    changed = False
    for action in actions:
        for transaction in action.all_transactions():
            changed = transaction.transition(status) or changed
    return changed


def reject_unsent(actions: Iterable[CrossChainAction]) -> bool:
    """Mark every UNSENT transaction as rejected by the user."""
    changed = False
    for action in actions:
        for transaction in action.transactions_with_status(TransactionStatus.UNSENT):
            changed = transaction.transition(TransactionStatus.REJECTED_BY_USER) or changed
    return changed


def find_action(actions: Iterable[CrossChainAction], action_id: str) -> CrossChainAction | None:
    """Find an action by id, searching merged batch members as well."""
    for action in actions:
        for member in action.members():
            if member.id == action_id:
                return member
    return None


def apply_resolution(actions: Sequence[CrossChainAction], resolution: StatusResolution) -> bool:
    """Apply a terminal resolution to the matching action's transactions.

    Every transaction that actually transitions gets the finish timestamp and,
    when known, the resolved transaction hash. Returns ``True`` on any change.
    """
    action = find_action(actions, resolution.action_id)
    if action is None:
        return False

    targets = action.all_transactions()
    if resolution.transaction_ids is not None:
        wanted = set(resolution.transaction_ids)
        targets = [transaction for transaction in targets if transaction.id in wanted]

    changed = False
    for transaction in targets:
        if not transaction.transition(resolution.status):
            continue
        transaction.finish_timestamp = resolution.finish_timestamp
        if resolution.transaction_hash:
            transaction.transaction_hash = resolution.transaction_hash
        changed = True
    return changed


def status_from_batch_state(state: GatewayBatchState | None) -> TransactionStatus | None:
    """Terminal status for a gateway batch state, ``None`` while still in flight."""
    if state is None:
        return None
    if state.is_failure:
        return TransactionStatus.FAILED
    if state == GatewayBatchState.SENT:
        return TransactionStatus.CONFIRMED
    return None


def status_from_chain_status(status: ChainTransactionStatus | None) -> TransactionStatus | None:
    if status == ChainTransactionStatus.COMPLETED:
        return TransactionStatus.CONFIRMED
    if status == ChainTransactionStatus.REVERTED:
        return TransactionStatus.FAILED
    return None


def is_group_finished(actions: Iterable[CrossChainAction]) -> bool:
    return all(action.is_finished() for action in actions)


def has_pending(actions: Iterable[CrossChainAction]) -> bool:
    return any(action.has_status(TransactionStatus.PENDING) for action in actions)


def group_order_key(group_id: str) -> TimeOrderedId:
    try:
        return TimeOrderedId.parse(group_id)
    except ValidationError:
        logger.warning("Unordered dispatch id %s sorts first", group_id)
        return TimeOrderedId(timestamp=-1)


def sort_group_ids(group_ids: Iterable[str], *, newest_first: bool = False) -> list[str]:
    """Order dispatch ids by their parsed time-ordered key."""
    return sorted(group_ids, key=group_order_key, reverse=newest_first)
