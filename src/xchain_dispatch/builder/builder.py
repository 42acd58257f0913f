"""Turn ordered action blocks into submittable cross-chain actions."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from ..constants import MSG_BUILD_FAILED, MSG_NOTHING_TO_BUILD
from ..exceptions import DispatchError
from ..types import ActionBlock, BuildResult, CrossChainAction
from .registry import StrategyRegistry
from .strategies import BuildContext

logger = logging.getLogger(__name__)


class ActionBuilder:
    """Build every block or nothing.

    Blocks sharing a multi-call id are joined under the chain's first action;
    combinable same-chain actions outside any chain are merged into the first
    action of that chain and type.
    """

    def __init__(self, registry: StrategyRegistry | None = None) -> None:
        self.registry = registry or StrategyRegistry.default()

    def build(
        self, blocks: Sequence[ActionBlock], context: BuildContext | None = None
    ) -> BuildResult:
        if not blocks:
            return BuildResult(error_message=MSG_NOTHING_TO_BUILD)

        context = context or BuildContext()
        actions: list[CrossChainAction] = []
        chains: dict[str, CrossChainAction] = {}

        for block in blocks:
            try:
                action = self.registry.get(block.type).build(block, context)
            except DispatchError as exc:
                logger.warning(
                    "Build aborted at block %s (%s): %s", block.id, block.type.value, exc.message
                )
                return BuildResult(error_message=exc.message or MSG_BUILD_FAILED)
            except Exception:  # pragma: no cover - defensive
                logger.exception("Unexpected failure building block %s", block.id)
                return BuildResult(error_message=MSG_BUILD_FAILED)

            link = block.multi_call_data
            if link is not None:
                if action.chain_id != link.chain_id:
                    logger.warning("Build aborted: block %s left chain %s", block.id, link.chain_id)
                    return BuildResult(error_message=MSG_BUILD_FAILED)
                head = chains.get(link.id)
                if head is None:
                    chains[link.id] = action
                    actions.append(action)
                else:
                    head.batch_transactions.append(action)
                continue

            target = self._merge_target(actions, action)
            if target is None:
                actions.append(action)
            else:
                logger.debug("Stage build [%s]: merged into %s", action.id, target.id)
                target.batch_transactions.append(action)

        logger.info("Built %d cross chain action(s) from %d block(s)", len(actions), len(blocks))
        return BuildResult(actions=actions)

    @staticmethod
    def _merge_target(
        actions: Sequence[CrossChainAction], action: CrossChainAction
    ) -> CrossChainAction | None:
        if not action.type.is_combinable:
            return None
        for existing in actions:
            if existing.multi_call_data is not None:
                continue
            if existing.chain_id == action.chain_id and existing.type == action.type:
                return existing
        return None
