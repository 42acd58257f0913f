"""Action builder: strategies, multi-call chaining and same-chain merging."""

from .builder import ActionBuilder
from .multicall import ensure_editable, extend_chain, remove_chain_tail, update_block_values
from .registry import StrategyRegistry
from .strategies import (
    ActionStrategy,
    BridgeAssetStrategy,
    BuildContext,
    SendAssetStrategy,
    StakeStrategy,
    SwapAssetStrategy,
)

__all__ = [
    "ActionBuilder",
    "ActionStrategy",
    "BridgeAssetStrategy",
    "BuildContext",
    "SendAssetStrategy",
    "StakeStrategy",
    "StrategyRegistry",
    "SwapAssetStrategy",
    "ensure_editable",
    "extend_chain",
    "remove_chain_tail",
    "update_block_values",
]
