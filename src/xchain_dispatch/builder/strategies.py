"""Per-type strategies turning an action block into a cross-chain action."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field, replace
from typing import Any, ClassVar

from ..exceptions import BuildError, ValidationError
from ..types import (
    ActionBlock,
    ActionType,
    AssetTransfer,
    BridgePreview,
    CrossChainAction,
    Quote,
    QuoteStep,
    SendPreview,
    StakePreview,
    SwapPreview,
    Transaction,
)
from ..utils import (
    TimeOrderedIdFactory,
    addresses_equal,
    is_erc20_approval_data,
    is_native_asset,
    now_ms,
    require_address,
)
from .encoding import encode_erc20_approve, encode_erc20_transfer, encode_stake

logger = logging.getLogger(__name__)


@dataclass
class BuildContext:
    """Ambient inputs shared by every strategy during one build."""

    new_id: Callable[[], str] = field(default_factory=lambda: TimeOrderedIdFactory().new)
    clock: Callable[[], int] = now_ms
    account_address: str | None = None
    uses_external_signer: bool = False


class ActionStrategy(ABC):
    """Build one ``CrossChainAction`` from one ``ActionBlock``."""

    action_type: ClassVar[ActionType]

    @abstractmethod
    def build(self, block: ActionBlock, context: BuildContext) -> CrossChainAction:
        pass

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _fail(self, block: ActionBlock, message: str) -> BuildError:
        logger.debug("Stage build [%s]: %s (%s)", block.id, message, describe_values(block.values))
        return BuildError(message, block_id=block.id, block_type=block.type.value)

    def _require(self, block: ActionBlock, key: str) -> Any:
        value = block.values.get(key)
        if value is None:
            raise self._fail(block, f"Missing {key.replace('_', ' ')}")
        return value

    def _amount(self, block: ActionBlock, asset: AssetTransfer | None = None) -> int:
        amount = block.values.get("amount")
        if amount is None and asset is not None:
            amount = asset.amount
        if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0:
            raise self._fail(block, "Amount must be positive")
        return amount

    def _address(self, block: ActionBlock, value: str | None, name: str) -> str:
        try:
            return require_address(value, name)
        except ValidationError as exc:
            raise self._fail(block, exc.message) from exc

    def _quote(self, block: ActionBlock, key: str) -> Quote:
        quote = block.values.get(key)
        if not isinstance(quote, Quote) or not quote.steps:
            raise self._fail(block, f"No {key} selected")
        return quote

    def _transaction(
        self,
        context: BuildContext,
        chain_id: int,
        to: str,
        value: int = 0,
        data: str = "0x",
    ) -> Transaction:
        return Transaction(
            id=context.new_id(),
            to=to,
            value=value,
            data=data or "0x",
            chain_id=chain_id,
            create_timestamp=context.clock(),
        )

    def _quote_transactions(
        self, context: BuildContext, chain_id: int, steps: Iterable[QuoteStep]
    ) -> list[Transaction]:
        return [
            self._transaction(context, step.chain_id or chain_id, step.to, step.value, step.data)
            for step in steps
        ]

    def _with_approval(
        self,
        block: ActionBlock,
        context: BuildContext,
        chain_id: int,
        asset: AssetTransfer,
        amount: int,
        quote: Quote,
    ) -> list[Transaction]:
        """Quote transactions, prefixed with an ERC20 approval when the quote lacks one."""

        transactions = self._quote_transactions(context, chain_id, quote.steps)
        if is_native_asset(asset.address):
            return transactions
        if any(is_erc20_approval_data(step.data) for step in quote.steps):
            return transactions

        spender = self._address(block, quote.approval_address or quote.steps[0].to, "spender")
        approval = self._transaction(
            context, chain_id, asset.address, data=encode_erc20_approve(spender, amount)
        )
        return [approval, *transactions]

    def _action(
        self,
        block: ActionBlock,
        context: BuildContext,
        chain_id: int,
        preview: Any,
        transactions: list[Transaction],
        receive_amount: int | None = None,
    ) -> CrossChainAction:
        return CrossChainAction(
            id=context.new_id(),
            related_block_id=block.id,
            chain_id=chain_id,
            type=self.action_type,
            preview=preview,
            transactions=transactions,
            uses_external_signer=context.uses_external_signer,
            multi_call_data=block.multi_call_data,
            receive_amount=receive_amount,
            gas_token_address=block.values.get("gas_token_address"),
        )


class SendAssetStrategy(ActionStrategy):
    action_type = ActionType.SEND_ASSET

    def build(self, block: ActionBlock, context: BuildContext) -> CrossChainAction:
        chain_id = int(self._require(block, "chain_id"))
        asset: AssetTransfer = self._require(block, "asset")
        amount = self._amount(block, asset)
        receiver = self._address(block, block.values.get("receiver_address"), "receiver_address")

        if is_native_asset(asset.address):
            transaction = self._transaction(context, chain_id, receiver, value=amount)
        else:
            token = self._address(block, asset.address, "asset")
            transaction = self._transaction(
                context, chain_id, token, data=encode_erc20_transfer(receiver, amount)
            )

        preview = SendPreview(
            chain_id=chain_id,
            asset=replace(asset, amount=amount),
            receiver_address=receiver,
            from_address=block.values.get("from_address") or context.account_address,
            is_from_smart_wallet=not context.uses_external_signer,
        )
        return self._action(block, context, chain_id, preview, [transaction])


class SwapAssetStrategy(ActionStrategy):
    action_type = ActionType.ASSET_SWAP

    def build(self, block: ActionBlock, context: BuildContext) -> CrossChainAction:
        chain_id = int(self._require(block, "chain_id"))
        from_asset: AssetTransfer = self._require(block, "from_asset")
        to_asset: AssetTransfer = self._require(block, "to_asset")
        amount = self._amount(block, from_asset)
        offer = self._quote(block, "offer")

        transactions = self._with_approval(block, context, chain_id, from_asset, amount, offer)

        receiver = block.values.get("receiver_address")
        if receiver and not addresses_equal(receiver, context.account_address):
            receiver = self._address(block, receiver, "receiver_address")
            if is_native_asset(to_asset.address):
                transactions.append(
                    self._transaction(context, chain_id, receiver, value=offer.receive_amount)
                )
            else:
                transactions.append(
                    self._transaction(
                        context,
                        chain_id,
                        to_asset.address,
                        data=encode_erc20_transfer(receiver, offer.receive_amount),
                    )
                )

        preview = SwapPreview(
            chain_id=chain_id,
            from_asset=replace(from_asset, amount=amount),
            to_asset=replace(to_asset, amount=offer.receive_amount),
            provider_name=offer.provider_name,
            provider_icon_url=offer.provider_icon_url,
            receiver_address=receiver or None,
        )
        return self._action(
            block, context, chain_id, preview, transactions, receive_amount=offer.receive_amount
        )


class BridgeAssetStrategy(ActionStrategy):
    action_type = ActionType.ASSET_BRIDGE

    def build(self, block: ActionBlock, context: BuildContext) -> CrossChainAction:
        from_chain_id = int(self._require(block, "from_chain_id"))
        to_chain_id = int(self._require(block, "to_chain_id"))
        if from_chain_id == to_chain_id:
            raise self._fail(block, "Bridge source and destination chains must differ")
        from_asset: AssetTransfer = self._require(block, "from_asset")
        to_asset: AssetTransfer = self._require(block, "to_asset")
        amount = self._amount(block, from_asset)
        route = self._quote(block, "route")

        transactions = self._with_approval(block, context, from_chain_id, from_asset, amount, route)

        preview = BridgePreview(
            from_chain_id=from_chain_id,
            to_chain_id=to_chain_id,
            from_asset=replace(from_asset, amount=amount),
            to_asset=replace(to_asset, amount=route.receive_amount),
            provider_name=route.provider_name,
            provider_icon_url=route.provider_icon_url,
            receiver_address=block.values.get("receiver_address"),
        )
        return self._action(
            block,
            context,
            from_chain_id,
            preview,
            transactions,
            receive_amount=route.receive_amount,
        )


class StakeStrategy(ActionStrategy):
    """Approve and stake, optionally swapping into the staking token first."""

    action_type = ActionType.ASSET_STAKE

    def build(self, block: ActionBlock, context: BuildContext) -> CrossChainAction:
        chain_id = int(self._require(block, "chain_id"))
        from_asset: AssetTransfer = self._require(block, "from_asset")
        amount = self._amount(block, from_asset)
        staking_contract = self._address(
            block, block.values.get("staking_contract"), "staking_contract"
        )

        transactions: list[Transaction] = []
        stake_token = from_asset.address
        stake_amount = amount
        to_asset: AssetTransfer | None = block.values.get("to_asset")

        if block.values.get("offer") is not None:
            offer = self._quote(block, "offer")
            if to_asset is None:
                raise self._fail(block, "Missing staking token")
            transactions.extend(
                self._with_approval(block, context, chain_id, from_asset, amount, offer)
            )
            stake_token = to_asset.address
            stake_amount = offer.receive_amount
            to_asset = replace(to_asset, amount=stake_amount)

        if is_native_asset(stake_token):
            raise self._fail(block, "Staking token must be an ERC20 asset")
        stake_token = self._address(block, stake_token, "staking_token")

        transactions.append(
            self._transaction(
                context,
                chain_id,
                stake_token,
                data=encode_erc20_approve(staking_contract, stake_amount),
            )
        )
        transactions.append(
            self._transaction(context, chain_id, staking_contract, data=encode_stake(stake_amount))
        )

        preview = StakePreview(
            chain_id=chain_id,
            from_asset=replace(from_asset, amount=amount),
            staking_contract=staking_contract,
            to_asset=to_asset,
            provider_name=block.values.get("provider_name"),
            receiver_address=context.account_address,
        )
        return self._action(block, context, chain_id, preview, transactions)


DEFAULT_STRATEGIES: tuple[type[ActionStrategy], ...] = (
    SendAssetStrategy,
    SwapAssetStrategy,
    BridgeAssetStrategy,
    StakeStrategy,
)


def describe_values(values: Mapping[str, Any]) -> str:
    """Compact, log-friendly rendering of block values."""
    return ", ".join(f"{key}={type(value).__name__}" for key, value in sorted(values.items()))
