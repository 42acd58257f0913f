"""Reconcile persisted in-flight transactions against the chain."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping, Sequence

from .base import ChainGateway
from .exceptions import ReconciliationError
from .types import CrossChainAction, StatusResolution, TransactionStatus
from .utils import now_ms, sort_group_ids, status_from_batch_state, status_from_chain_status

logger = logging.getLogger(__name__)


class Reconciler:
    """Query the chain for every action's first PENDING transaction."""

    def __init__(
        self, gateways: Mapping[int, ChainGateway], clock: Callable[[], int] = now_ms
    ) -> None:
        self.gateways = gateways
        self._clock = clock

    async def collect(
        self, groups: Mapping[str, Sequence[CrossChainAction]]
    ) -> list[StatusResolution]:
        """Resolutions for every group, most recent group first.

        Chain query failures are logged and skipped; the next poll retries them.
        """

        resolutions: list[StatusResolution] = []
        for dispatch_id in sort_group_ids(groups, newest_first=True):
            for action in groups[dispatch_id]:
                try:
                    resolution = await self.resolve(action)
                except ReconciliationError as exc:
                    logger.warning(
                        "Reconciliation skipped for action %s in %s: %s",
                        action.id,
                        dispatch_id,
                        exc.message,
                    )
                    continue
                if resolution is not None:
                    resolutions.append(resolution)

        logger.debug(
            "Stage recovery: %d resolution(s) from %d group(s)", len(resolutions), len(groups)
        )
        return resolutions

    async def resolve(self, action: CrossChainAction) -> StatusResolution | None:
        pending = action.first_with_status(TransactionStatus.PENDING)
        if pending is None:
            return None

        gateway = self.gateways.get(action.chain_id)
        if gateway is None:
            raise ReconciliationError(
                f"No gateway for chain {action.chain_id}", chain_id=action.chain_id
            )

        resolved_hash: str | None
        if pending.transaction_hash:
            query_hash = pending.transaction_hash
            try:
                status = status_from_chain_status(await gateway.get_transaction(query_hash))
            except Exception as exc:
                raise ReconciliationError(
                    "Failed to query transaction",
                    chain_id=action.chain_id,
                    hash=query_hash,
                    details={"error": str(exc)},
                ) from exc
            resolved_hash = query_hash
        else:
            query_hash = pending.batch_hash or action.batch_hash
            if not query_hash:
                return None
            try:
                batch = await gateway.get_batch(query_hash)
            except Exception as exc:
                raise ReconciliationError(
                    "Failed to query batch",
                    chain_id=action.chain_id,
                    hash=query_hash,
                    details={"error": str(exc)},
                ) from exc
            status = status_from_batch_state(batch.state)
            resolved_hash = batch.transaction_hash

        if status is None:
            return None

        logger.info("Action %s resolved to %s via %s", action.id, status.value, query_hash)
        return StatusResolution(
            action_id=action.id,
            status=status,
            finish_timestamp=self._clock(),
            transaction_hash=resolved_hash,
            transaction_ids=(pending.id,) if action.uses_external_signer else None,
        )
