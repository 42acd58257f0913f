"""Service object owning dispatch state, persistence and the sequencing loop."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field, replace

from .base import ChainGateway, ExternalSigner, KeyValueStore, PriceService
from .config import DispatcherConfig
from .constants import MSG_ESTIMATE_FAILED
from .estimator import Estimator
from .exceptions import DispatchError, LeaseError, StorageError, ValidationError
from .listener import ConfirmationListener
from .recovery import Reconciler
from .sequencer import DispatchSequencer, select_head
from .storage import GroupLedger, Groups, LedgerLease
from .types import CrossChainAction, StatusResolution
from .utils import (
    TimeOrderedIdFactory,
    apply_resolution,
    find_action,
    has_pending,
    is_group_finished,
    now_ms,
    reject_unsent,
    sort_group_ids,
)

logger = logging.getLogger(__name__)

AlertHandler = Callable[[str], None]
StateSubscriber = Callable[["DispatchState"], None]


@dataclass
class DispatchState:
    """The active dispatch group and the action currently being submitted."""

    dispatch_id: str | None = None
    actions: list[CrossChainAction] = field(default_factory=list)
    processing_action_id: str | None = None

    @property
    def is_active(self) -> bool:
        return self.dispatch_id is not None and not is_group_finished(self.actions)


class TransactionsDispatcher:
    """Single owner of dispatch state.

    Reads go through ``snapshot()``; every change goes through ``mutate()``,
    which persists the group, notifies subscribers and queues a sequencer pass.
    Passes run one at a time on a single consumer task.
    """

    def __init__(
        self,
        gateways: Mapping[int, ChainGateway],
        store: KeyValueStore,
        *,
        signer: ExternalSigner | None = None,
        price_service: PriceService | None = None,
        config: DispatcherConfig | None = None,
        alert_handler: AlertHandler | None = None,
        clock: Callable[[], int] = now_ms,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self.config = config or DispatcherConfig()
        self.gateways = gateways
        self.signer = signer
        self.ledger = GroupLedger(store, self.config.storage_key)
        self.lease = LedgerLease(
            store, self.config.lease_key, self.config.owner_id, self.config.lease_ttl, clock
        )
        self.estimator = Estimator(price_service)
        self.sequencer = DispatchSequencer(gateways, signer=signer, clock=clock)
        self.reconciler = Reconciler(gateways, clock)
        self.listener = ConfirmationListener(gateways, self.apply_resolution, clock)

        self._alert_handler = alert_handler
        self._new_id = id_factory or TimeOrderedIdFactory(clock).new
        self._state = DispatchState()
        self._lock = asyncio.Lock()
        self._subscribers: list[StateSubscriber] = []
        self._queue: asyncio.Queue[None] | None = None
        self._consumer: asyncio.Task[None] | None = None
        self._poll_task: asyncio.Task[None] | None = None
        self._running = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    async def start(self, *, recover: bool = True) -> None:
        """Take the ledger lease, start the sequencing loop and optionally recover."""

        if self._running:
            return
        await self.lease.acquire()
        self._queue = asyncio.Queue()
        self._consumer = asyncio.create_task(self._consume())
        self._running = True
        logger.info("Dispatcher %s started on %s", self.config.owner_id, self.config.storage_key)
        if recover:
            await self.recover()

    async def stop(self) -> None:
        self._running = False
        for task in (self._poll_task, self._consumer):
            if task is not None and not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
        self._poll_task = None
        self._consumer = None
        self._queue = None
        await self.listener.close()
        await self.lease.release()
        logger.info("Dispatcher %s stopped", self.config.owner_id)

    async def __aenter__(self) -> TransactionsDispatcher:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()

    async def wait_idle(self) -> None:
        """Wait until every queued sequencer pass has run."""
        if self._queue is not None:
            await self._queue.join()

    # ------------------------------------------------------------------
    # State access
    # ------------------------------------------------------------------
    def snapshot(self) -> DispatchState:
        return replace(self._state, actions=list(self._state.actions))

    def subscribe(self, subscriber: StateSubscriber) -> Callable[[], None]:
        self._subscribers.append(subscriber)

        def _unsubscribe() -> None:
            if subscriber in self._subscribers:
                self._subscribers.remove(subscriber)

        return _unsubscribe

    async def mutate(self, change: Callable[[DispatchState], object]) -> DispatchState:
        """Apply ``change`` to the live state, persist it and schedule a sequencer pass."""

        async with self._lock:
            change(self._state)
            await self._persist_active()
            state = self.snapshot()
        await self._publish(state)
        return state

    async def reset(self) -> None:
        """Drop the in-memory group; the ledger keeps whatever it holds."""

        async with self._lock:
            self._state = DispatchState()
            state = self.snapshot()
        await self._publish(state)

    async def persist_group(self, dispatch_id: str, actions: Sequence[CrossChainAction]) -> None:
        async with self._lock:
            await self.ledger.save_group(dispatch_id, actions)
        if has_pending(actions):
            self._ensure_polling()

    def alert(self, message: str) -> None:
        logger.info("Alert: %s", message)
        if self._alert_handler is not None:
            self._alert_handler(message)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------
    async def dispatch(self, actions: Sequence[CrossChainAction]) -> str | None:
        """Start dispatching ``actions`` as a new group.

        Unestimated actions are estimated first; if any action is not
        affordable its error is alerted and nothing is dispatched.

        Returns:
            The new dispatch id, or ``None`` when the group was not affordable
        """

        if not actions:
            raise ValidationError("Nothing to dispatch", field="actions")
        if self._state.is_active:
            raise ValidationError(
                "Another dispatch group is still active",
                field="dispatch_id",
                value=self._state.dispatch_id,
            )
        # never write a new group over a ledger that does not decode
        await self.ledger.load()

        await self.estimator.estimate_all(actions, self.gateways, signer=self.signer)
        for action in actions:
            estimated = action.estimated
            if estimated is None or not estimated.is_affordable:
                message = (estimated.error_message if estimated else None) or MSG_ESTIMATE_FAILED
                logger.warning("Refusing to dispatch: action %s: %s", action.id, message)
                self.alert(message)
                return None

        dispatch_id = self._new_id()

        def _activate(state: DispatchState) -> None:
            state.dispatch_id = dispatch_id
            state.actions = list(actions)
            state.processing_action_id = None

        await self.mutate(_activate)
        logger.info("Dispatching group %s with %d action(s)", dispatch_id, len(actions))
        return dispatch_id

    async def reject_unsent(self) -> bool:
        """User cancellation: reject every UNSENT transaction of the active group."""

        async with self._lock:
            dispatch_id = self._state.dispatch_id
            if dispatch_id is None:
                return False
            changed = reject_unsent(self._state.actions)
            if has_pending(self._state.actions):
                # submitted transactions stay recoverable until they resolve
                await self.ledger.save_group(dispatch_id, self._state.actions)
            else:
                await self.ledger.delete_group(dispatch_id)
            self._state = DispatchState()
            state = self.snapshot()

        logger.info("Rejected unsent transactions of group %s", dispatch_id)
        await self._publish(state)
        return changed

    async def apply_resolution(self, resolution: StatusResolution) -> None:
        await self.apply_resolutions([resolution])

    async def apply_resolutions(self, resolutions: Sequence[StatusResolution]) -> None:
        def _apply(state: DispatchState) -> None:
            for resolution in resolutions:
                apply_resolution(state.actions, resolution)

        await self.mutate(_apply)

    async def set_gas_token(self, action_id: str, token: str | None) -> None:
        """Pay for one action with ``token`` (native when ``None``) and re-estimate it."""

        action = find_action(self._state.actions, action_id)
        if action is None:
            raise ValidationError("Unknown action", field="action_id", value=action_id)

        def _override(_: DispatchState) -> None:
            action.gas_token_address = token
            action.estimated = None

        await self.mutate(_override)
        await self.estimate_actions([action])

    async def estimate_actions(
        self, actions: Sequence[CrossChainAction] | None = None, *, force: bool = False
    ) -> int:
        """Estimate every action lacking an estimate; returns how many were estimated."""

        targets = self._state.actions if actions is None else actions
        count = await self.estimator.estimate_all(
            targets, self.gateways, signer=self.signer, force=force
        )
        if count and any(action in self._state.actions for action in targets):
            await self.mutate(lambda state: None)
        return count

    async def history(self) -> list[tuple[str, list[CrossChainAction]]]:
        return await self.ledger.history()

    async def recover(self) -> list[StatusResolution]:
        """Reconcile the whole ledger and resume the oldest unfinished group.

        An unreadable ledger is left untouched and the pass is skipped.
        """

        try:
            await self.lease.refresh()
        except LeaseError as exc:
            logger.warning("Recovery skipped: %s (owner=%s)", exc.message, exc.owner)
            return []

        stored = await self._load_for_recovery()
        if stored is None:
            return []
        resolutions = await self.reconciler.collect(stored)

        async with self._lock:
            # submissions may have been persisted while the chain was queried
            groups = await self._load_for_recovery()
            if groups is None:
                return []
            live_id = self._state.dispatch_id
            if live_id is not None and live_id in groups:
                groups[live_id] = self._state.actions

            changed = False
            for resolution in resolutions:
                for actions in groups.values():
                    changed = apply_resolution(actions, resolution) or changed
                if live_id not in groups:
                    apply_resolution(self._state.actions, resolution)

            finished = [gid for gid, actions in groups.items() if is_group_finished(actions)]
            for dispatch_id in finished:
                logger.info("Dispatch group %s finished, pruning it", dispatch_id)
                groups.pop(dispatch_id)
                changed = True

            if changed:
                await self.ledger.save(groups)

            activated: str | None = None
            if not self._state.is_active:
                for dispatch_id in sort_group_ids(groups):
                    if select_head(groups[dispatch_id]) is not None:
                        self._state = DispatchState(
                            dispatch_id=dispatch_id, actions=groups[dispatch_id]
                        )
                        activated = dispatch_id
                        break
            state = self.snapshot()

        if activated is not None:
            logger.info("Resuming dispatch group %s", activated)
            await self.estimate_actions(state.actions)
            state = self.snapshot()
        await self._publish(state)

        if has_pending(state.actions) or any(has_pending(actions) for actions in groups.values()):
            self._schedule_recovery(self.config.reconcile_interval)
        return resolutions

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    async def _load_for_recovery(self) -> Groups | None:
        try:
            return await self.ledger.load()
        except StorageError as exc:
            logger.error("Recovery skipped: %s under %s: %s", exc.message, exc.key, exc.details)
            return None

    async def _persist_active(self) -> None:
        dispatch_id = self._state.dispatch_id
        if dispatch_id is None:
            return
        await self.ledger.save_group(dispatch_id, self._state.actions)

    async def _publish(self, state: DispatchState) -> None:
        for subscriber in list(self._subscribers):
            try:
                subscriber(state)
            except Exception:
                logger.exception("State subscriber failed")
        self._reconsider()
        if self._running:
            await self.listener.sync(state.actions)
            if has_pending(state.actions):
                self._ensure_polling()

    def _reconsider(self) -> None:
        if self._queue is not None:
            self._queue.put_nowait(None)

    async def _consume(self) -> None:
        queue = self._queue
        if queue is None:
            raise DispatchError("Dispatcher is not started")
        while True:
            await queue.get()
            try:
                while not queue.empty():
                    queue.get_nowait()
                    queue.task_done()
                await self.sequencer.advance(self)
            except Exception:
                logger.exception("Sequencer pass failed")
            finally:
                queue.task_done()

    def _schedule_recovery(self, delay: float) -> None:
        if not self._running:
            return
        previous = self._poll_task
        if previous is not None and not previous.done() and previous is not asyncio.current_task():
            previous.cancel()
        self._poll_task = asyncio.create_task(self._recover_later(delay))

    def _ensure_polling(self) -> None:
        if self._poll_task is None or self._poll_task.done():
            self._schedule_recovery(self.config.reconcile_interval)

    async def _recover_later(self, delay: float) -> None:
        await asyncio.sleep(delay)
        try:
            await self.recover()
        except Exception:
            logger.exception("Recovery pass failed")
