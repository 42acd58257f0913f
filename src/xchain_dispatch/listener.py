"""Gateway notification listener promoting in-flight batches to terminal states."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable, Mapping

from .base import ChainGateway, Subscription
from .types import (
    CrossChainAction,
    Notification,
    NotificationType,
    StatusResolution,
    TransactionStatus,
)
from .utils import now_ms, status_from_batch_state

logger = logging.getLogger(__name__)

SubscriptionKey = tuple[int, str]
ResolutionCallback = Callable[[StatusResolution], Awaitable[None]]


class SubscriptionRegistry:
    """Open subscriptions keyed by ``(chain_id, batch_hash)``."""

    def __init__(self) -> None:
        self._subscriptions: dict[SubscriptionKey, Subscription] = {}

    def __contains__(self, key: object) -> bool:
        return key in self._subscriptions

    def __len__(self) -> int:
        return len(self._subscriptions)

    def keys(self) -> set[SubscriptionKey]:
        return set(self._subscriptions)

    def add(self, key: SubscriptionKey, subscription: Subscription) -> None:
        self._subscriptions[key] = subscription

    async def close(self, key: SubscriptionKey) -> None:
        subscription = self._subscriptions.pop(key, None)
        if subscription is None:
            return
        try:
            await subscription.close()
        except Exception as exc:
            logger.warning("Failed to close subscription %s: %s", key, exc)

    async def close_all(self) -> None:
        for key in list(self._subscriptions):
            await self.close(key)


class ConfirmationListener:
    """Follow batch-update notifications for every PENDING batched action.

    Failures are logged and swallowed; the recovery poll resolves anything
    this listener misses.
    """

    def __init__(
        self,
        gateways: Mapping[int, ChainGateway],
        on_resolution: ResolutionCallback,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.gateways = gateways
        self.on_resolution = on_resolution
        self.registry = SubscriptionRegistry()
        self._clock = clock

    async def sync(self, actions: Iterable[CrossChainAction]) -> None:
        """Re-derive subscriptions from the monitored action set."""

        wanted: dict[SubscriptionKey, str] = {}
        for action in actions:
            if action.batch_hash and action.has_status(TransactionStatus.PENDING):
                wanted[(action.chain_id, action.batch_hash)] = action.id

        for key in self.registry.keys() - wanted.keys():
            logger.debug("Stage listener [%s]: closing subscription", key[1])
            await self.registry.close(key)

        for key, action_id in wanted.items():
            if key not in self.registry:
                await self._open(key, action_id)

    async def close(self) -> None:
        await self.registry.close_all()

    async def _open(self, key: SubscriptionKey, action_id: str) -> None:
        chain_id, batch_hash = key
        gateway = self.gateways.get(chain_id)
        if gateway is None:
            logger.warning("No gateway to follow batch %s on chain %s", batch_hash, chain_id)
            return

        async def _callback(notification: Notification) -> None:
            await self._on_notification(gateway, batch_hash, action_id, notification)

        try:
            subscription = await gateway.subscribe(_callback)
        except Exception as exc:
            logger.warning(
                "Failed to subscribe to batch %s on chain %s: %s", batch_hash, chain_id, exc
            )
            return
        self.registry.add(key, subscription)
        logger.debug("Stage listener [%s]: subscribed for action %s", batch_hash, action_id)

    async def _on_notification(
        self,
        gateway: ChainGateway,
        batch_hash: str,
        action_id: str,
        notification: Notification,
    ) -> None:
        if notification.type != NotificationType.GATEWAY_BATCH_UPDATED:
            return
        notified_hash = notification.payload.get("hash")
        if notified_hash and str(notified_hash).lower() != batch_hash.lower():
            return

        try:
            batch = await gateway.get_batch(batch_hash)
        except Exception as exc:
            logger.warning("Failed to fetch batch %s: %s", batch_hash, exc)
            return

        status = status_from_batch_state(batch.state)
        if status is None:
            return

        logger.info("Batch %s of action %s resolved to %s", batch_hash, action_id, status.value)
        try:
            await self.on_resolution(
                StatusResolution(
                    action_id=action_id,
                    status=status,
                    finish_timestamp=self._clock(),
                    transaction_hash=batch.transaction_hash,
                )
            )
        except Exception:
            logger.exception("Failed to apply resolution for batch %s", batch_hash)
