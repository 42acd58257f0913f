"""Lookup of action strategies by action type."""

from __future__ import annotations

from collections.abc import Iterable

from ..exceptions import BuildError
from ..types import ActionType
from .strategies import DEFAULT_STRATEGIES, ActionStrategy


class StrategyRegistry:
    """Map each ``ActionType`` to the strategy that builds it."""

    def __init__(self, strategies: Iterable[ActionStrategy] = ()) -> None:
        self._strategies: dict[ActionType, ActionStrategy] = {}
        for strategy in strategies:
            self.register(strategy)

    @classmethod
    def default(cls) -> StrategyRegistry:
        return cls(strategy_cls() for strategy_cls in DEFAULT_STRATEGIES)

    def register(self, strategy: ActionStrategy) -> None:
        self._strategies[strategy.action_type] = strategy

    def get(self, action_type: ActionType) -> ActionStrategy:
        try:
            return self._strategies[action_type]
        except KeyError as exc:
            raise BuildError(
                f"No strategy registered for {action_type.value}", block_type=action_type.value
            ) from exc

    def __contains__(self, action_type: object) -> bool:
        return action_type in self._strategies
