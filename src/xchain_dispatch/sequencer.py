"""Head-of-line sequencing of a dispatch group's submissions."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping, Sequence
from typing import TYPE_CHECKING

from .base import ChainGateway, ExternalSigner
from .constants import MSG_SEND_FAILED, MSG_SENT
from .exceptions import SubmissionError
from .types import CrossChainAction, Transaction, TransactionStatus
from .utils import is_native_asset, now_ms, parse_error_message

if TYPE_CHECKING:
    from .dispatcher import DispatchState, TransactionsDispatcher

logger = logging.getLogger(__name__)


def select_head(actions: Sequence[CrossChainAction]) -> CrossChainAction | None:
    """First action, in group order, still holding an UNSENT transaction."""
    for action in actions:
        if action.has_status(TransactionStatus.UNSENT):
            return action
    return None


class DispatchSequencer:
    """Submit one action at a time, strictly in group order.

    ``advance`` is a single pass; the dispatcher re-runs it after every state
    change, so a pass that decides to wait simply returns.
    """

    def __init__(
        self,
        gateways: Mapping[int, ChainGateway],
        *,
        signer: ExternalSigner | None = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.gateways = gateways
        self.signer = signer
        self._clock = clock

    async def advance(self, dispatcher: TransactionsDispatcher) -> bool:
        """Run one pass; returns ``True`` when a submission was attempted."""

        state = dispatcher.snapshot()
        dispatch_id = state.dispatch_id
        if dispatch_id is None:
            return False

        head = select_head(state.actions)
        if head is None:
            return False

        if head.uses_external_signer and head.has_status(TransactionStatus.PENDING):
            logger.debug(
                "Stage dispatch [%s]: %s awaits its pending transaction", dispatch_id, head.id
            )
            return False
        if state.processing_action_id is not None:
            logger.debug(
                "Stage dispatch [%s]: %s still processing", dispatch_id, state.processing_action_id
            )
            return False
        if head.is_estimating or (head.estimated is not None and not head.estimated.is_affordable):
            logger.debug("Stage dispatch [%s]: %s is not affordable yet", dispatch_id, head.id)
            return False

        def _mark(live: DispatchState) -> None:
            live.processing_action_id = head.id

        await dispatcher.mutate(_mark)

        transactions = head.transactions_with_status(TransactionStatus.UNSENT)
        if head.uses_external_signer:
            transactions = transactions[:1]

        try:
            transaction_hash, batch_hash = await self._submit(head, transactions)
        except Exception as exc:
            logger.warning(
                "Stage dispatch [%s]: submission of %s failed: %s", dispatch_id, head.id, exc
            )
            await self._abort(dispatcher, parse_error_message(exc))
            return True

        if not transaction_hash and not batch_hash:
            logger.warning(
                "Stage dispatch [%s]: submission of %s returned no hash", dispatch_id, head.id
            )
            await self._abort(dispatcher, None)
            return True

        submit_timestamp = self._clock()

        def _stamp() -> None:
            for transaction in transactions:
                transaction.transition(TransactionStatus.PENDING)
                transaction.submit_timestamp = submit_timestamp
                transaction.transaction_hash = transaction_hash
                transaction.batch_hash = batch_hash
            if batch_hash:
                head.batch_hash = batch_hash

        def _record(live: DispatchState) -> None:
            _stamp()
            live.processing_action_id = None

        if dispatcher.snapshot().dispatch_id == dispatch_id:
            await dispatcher.mutate(_record)
        else:
            # the group was cleared while the submission was in flight
            _stamp()
            await dispatcher.persist_group(dispatch_id, state.actions)

        logger.info(
            "Submitted action %s of group %s (tx=%s batch=%s)",
            head.id,
            dispatch_id,
            transaction_hash,
            batch_hash,
        )
        if dispatcher.config.alert_on_success:
            dispatcher.alert(MSG_SENT)
        return True

    async def _submit(
        self, head: CrossChainAction, transactions: Sequence[Transaction]
    ) -> tuple[str | None, str | None]:
        if not transactions:
            raise SubmissionError("Nothing to submit", chain_id=head.chain_id)

        requests = [transaction.as_request() for transaction in transactions]

        if head.uses_external_signer:
            if self.signer is None:
                raise SubmissionError("No external signer configured", chain_id=head.chain_id)
            chain_id = transactions[0].chain_id or head.chain_id
            return await self.signer.submit(requests[0], chain_id), None

        gateway = self.gateways.get(head.chain_id)
        if gateway is None:
            raise SubmissionError(f"No gateway for chain {head.chain_id}", chain_id=head.chain_id)
        fee_token = None if is_native_asset(head.gas_token_address) else head.gas_token_address
        return None, await gateway.submit_batch(requests, fee_token)

    async def _abort(self, dispatcher: TransactionsDispatcher, message: str | None) -> None:
        await dispatcher.reset()
        dispatcher.alert(message or MSG_SEND_FAILED)
