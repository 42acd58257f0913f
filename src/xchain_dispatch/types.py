"""Type definitions and data models for the cross-chain dispatch core."""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar

from .exceptions import ValidationError


class TransactionStatus(str, Enum):
    """Lifecycle of a single dispatched transaction."""

    UNSENT = "UNSENT"
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    FAILED = "FAILED"
    REJECTED_BY_USER = "REJECTED_BY_USER"

    @property
    def rank(self) -> int:
        return _STATUS_RANK[self]

    @property
    def is_terminal(self) -> bool:
        return self.rank == _TERMINAL_RANK


_TERMINAL_RANK = 2

_STATUS_RANK = {
    TransactionStatus.UNSENT: 0,
    TransactionStatus.PENDING: 1,
    TransactionStatus.CONFIRMED: _TERMINAL_RANK,
    TransactionStatus.FAILED: _TERMINAL_RANK,
    TransactionStatus.REJECTED_BY_USER: _TERMINAL_RANK,
}


class ActionType(str, Enum):
    """Kinds of action block the builder understands."""

    ASSET_BRIDGE = "ASSET_BRIDGE"
    SEND_ASSET = "SEND_ASSET"
    ASSET_SWAP = "ASSET_SWAP"
    ASSET_STAKE = "ASSET_STAKE"

    @property
    def is_combinable(self) -> bool:
        return self in (ActionType.SEND_ASSET, ActionType.ASSET_SWAP)


class GatewayBatchState(str, Enum):
    """Gateway-side states of a submitted batch."""

    QUEUED = "Queued"
    SENDING = "Sending"
    SENT = "Sent"
    RESENDING = "Resending"
    CANCELING = "Canceling"
    CANCELED = "Canceled"
    REVERTED = "Reverted"

    @property
    def is_failure(self) -> bool:
        return self in (
            GatewayBatchState.CANCELING,
            GatewayBatchState.CANCELED,
            GatewayBatchState.REVERTED,
        )


class ChainTransactionStatus(str, Enum):
    """On-chain status of a mined (or not yet mined) transaction."""

    PENDING = "Pending"
    COMPLETED = "Completed"
    REVERTED = "Reverted"


class NotificationType(str, Enum):
    """Gateway notification channel event types."""

    GATEWAY_BATCH_UPDATED = "GatewayBatchUpdated"
    ACCOUNT_UPDATED = "AccountUpdated"


@dataclass(frozen=True, order=True)
class TimeOrderedId:
    """Composite identifier ordered by creation time, then by local sequence."""

    timestamp: int
    sequence: int = 0

    def __str__(self) -> str:
        return f"{self.timestamp}-{self.sequence}"

    @classmethod
    def parse(cls, value: str) -> TimeOrderedId:
        head, sep, tail = str(value).partition("-")
        try:
            timestamp = int(head)
            sequence = int(tail) if sep else 0
        except ValueError as exc:
            raise ValidationError("Malformed time-ordered id", field="id", value=value) from exc
        return cls(timestamp=timestamp, sequence=sequence)


@dataclass(frozen=True)
class TransactionRequest:
    """Bare payload handed to a signer or gateway."""

    to: str
    value: int = 0
    data: str = "0x"


@dataclass
class Transaction:
    """A single payload within a cross-chain action."""

    to: str
    value: int = 0
    data: str = "0x"
    chain_id: int | None = None
    status: TransactionStatus = TransactionStatus.UNSENT
    create_timestamp: int = 0
    id: str = ""
    submit_timestamp: int | None = None
    finish_timestamp: int | None = None
    transaction_hash: str | None = None
    batch_hash: str | None = None

    def transition(self, status: TransactionStatus) -> bool:
        """Move to ``status`` if it advances the lifecycle; terminal states never change."""

        if status.rank <= self.status.rank:
            return False
        self.status = status
        return True

    def as_request(self) -> TransactionRequest:
        return TransactionRequest(to=self.to, value=self.value, data=self.data or "0x")

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "to": self.to,
            "value": str(self.value),
            "data": self.data,
            "chainId": self.chain_id,
            "status": self.status.value,
            "createTimestamp": self.create_timestamp,
            "submitTimestamp": self.submit_timestamp,
            "finishTimestamp": self.finish_timestamp,
            "transactionHash": self.transaction_hash,
            "batchHash": self.batch_hash,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Transaction:
        return cls(
            id=str(data.get("id") or ""),
            to=str(data["to"]),
            value=_coerce_int(data.get("value")) or 0,
            data=data.get("data") or "0x",
            chain_id=_coerce_int(data.get("chainId")),
            status=TransactionStatus(data.get("status") or TransactionStatus.UNSENT.value),
            create_timestamp=_coerce_int(data.get("createTimestamp")) or 0,
            submit_timestamp=_coerce_int(data.get("submitTimestamp")),
            finish_timestamp=_coerce_int(data.get("finishTimestamp")),
            transaction_hash=data.get("transactionHash"),
            batch_hash=data.get("batchHash"),
        )


@dataclass
class AssetTransfer:
    """Asset movement shown in an action preview."""

    address: str
    decimals: int
    symbol: str
    amount: int
    icon_url: str | None = None
    usd_price: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "address": self.address,
            "decimals": self.decimals,
            "symbol": self.symbol,
            "amount": str(self.amount),
            "iconUrl": self.icon_url,
            "usdPrice": self.usd_price,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> AssetTransfer:
        return cls(
            address=str(data["address"]),
            decimals=int(data.get("decimals") or 0),
            symbol=str(data.get("symbol") or ""),
            amount=_coerce_int(data.get("amount")) or 0,
            icon_url=data.get("iconUrl"),
            usd_price=data.get("usdPrice"),
        )


@dataclass
class ActionPreview:
    """Display payload attached to an action; subclasses define the variant."""

    action_type: ClassVar[ActionType]

    @property
    def outgoing_asset(self) -> AssetTransfer | None:
        return None

    def to_dict(self) -> dict[str, Any]:
        raise NotImplementedError

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ActionPreview:
        raise NotImplementedError


@dataclass
class BridgePreview(ActionPreview):
    action_type: ClassVar[ActionType] = ActionType.ASSET_BRIDGE

    from_chain_id: int
    to_chain_id: int
    from_asset: AssetTransfer
    to_asset: AssetTransfer
    provider_name: str
    provider_icon_url: str | None = None
    receiver_address: str | None = None

    @property
    def outgoing_asset(self) -> AssetTransfer:
        return self.from_asset

    def to_dict(self) -> dict[str, Any]:
        return {
            "fromChainId": self.from_chain_id,
            "toChainId": self.to_chain_id,
            "fromAsset": self.from_asset.to_dict(),
            "toAsset": self.to_asset.to_dict(),
            "providerName": self.provider_name,
            "providerIconUrl": self.provider_icon_url,
            "receiverAddress": self.receiver_address,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> BridgePreview:
        return cls(
            from_chain_id=int(data["fromChainId"]),
            to_chain_id=int(data["toChainId"]),
            from_asset=AssetTransfer.from_dict(data["fromAsset"]),
            to_asset=AssetTransfer.from_dict(data["toAsset"]),
            provider_name=str(data.get("providerName") or ""),
            provider_icon_url=data.get("providerIconUrl"),
            receiver_address=data.get("receiverAddress"),
        )


@dataclass
class SendPreview(ActionPreview):
    action_type: ClassVar[ActionType] = ActionType.SEND_ASSET

    chain_id: int
    asset: AssetTransfer
    receiver_address: str
    from_address: str | None = None
    is_from_smart_wallet: bool = True

    @property
    def outgoing_asset(self) -> AssetTransfer:
        return self.asset

    def to_dict(self) -> dict[str, Any]:
        return {
            "chainId": self.chain_id,
            "asset": self.asset.to_dict(),
            "receiverAddress": self.receiver_address,
            "fromAddress": self.from_address,
            "isFromSmartWallet": self.is_from_smart_wallet,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> SendPreview:
        return cls(
            chain_id=int(data["chainId"]),
            asset=AssetTransfer.from_dict(data["asset"]),
            receiver_address=str(data["receiverAddress"]),
            from_address=data.get("fromAddress"),
            is_from_smart_wallet=bool(data.get("isFromSmartWallet", True)),
        )


@dataclass
class SwapPreview(ActionPreview):
    action_type: ClassVar[ActionType] = ActionType.ASSET_SWAP

    chain_id: int
    from_asset: AssetTransfer
    to_asset: AssetTransfer
    provider_name: str
    provider_icon_url: str | None = None
    receiver_address: str | None = None

    @property
    def outgoing_asset(self) -> AssetTransfer:
        return self.from_asset

    def to_dict(self) -> dict[str, Any]:
        return {
            "chainId": self.chain_id,
            "fromAsset": self.from_asset.to_dict(),
            "toAsset": self.to_asset.to_dict(),
            "providerName": self.provider_name,
            "providerIconUrl": self.provider_icon_url,
            "receiverAddress": self.receiver_address,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> SwapPreview:
        return cls(
            chain_id=int(data["chainId"]),
            from_asset=AssetTransfer.from_dict(data["fromAsset"]),
            to_asset=AssetTransfer.from_dict(data["toAsset"]),
            provider_name=str(data.get("providerName") or ""),
            provider_icon_url=data.get("providerIconUrl"),
            receiver_address=data.get("receiverAddress"),
        )


@dataclass
class StakePreview(ActionPreview):
    action_type: ClassVar[ActionType] = ActionType.ASSET_STAKE

    chain_id: int
    from_asset: AssetTransfer
    staking_contract: str
    to_asset: AssetTransfer | None = None
    provider_name: str | None = None
    receiver_address: str | None = None

    @property
    def outgoing_asset(self) -> AssetTransfer:
        return self.from_asset

    def to_dict(self) -> dict[str, Any]:
        return {
            "chainId": self.chain_id,
            "fromAsset": self.from_asset.to_dict(),
            "stakingContract": self.staking_contract,
            "toAsset": self.to_asset.to_dict() if self.to_asset else None,
            "providerName": self.provider_name,
            "receiverAddress": self.receiver_address,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> StakePreview:
        to_asset = data.get("toAsset")
        return cls(
            chain_id=int(data["chainId"]),
            from_asset=AssetTransfer.from_dict(data["fromAsset"]),
            staking_contract=str(data["stakingContract"]),
            to_asset=AssetTransfer.from_dict(to_asset) if to_asset else None,
            provider_name=data.get("providerName"),
            receiver_address=data.get("receiverAddress"),
        )


PREVIEW_TYPES: dict[ActionType, type[ActionPreview]] = {
    ActionType.ASSET_BRIDGE: BridgePreview,
    ActionType.SEND_ASSET: SendPreview,
    ActionType.ASSET_SWAP: SwapPreview,
    ActionType.ASSET_STAKE: StakePreview,
}


@dataclass
class Estimate:
    """Outcome of an affordability check for one action."""

    gas_cost: int | None = None
    fee_amount: int | None = None
    usd_price: float | None = None
    error_message: str | None = None

    @property
    def is_affordable(self) -> bool:
        return self.error_message is None and (
            self.gas_cost is not None or self.fee_amount is not None
        )

    @property
    def cost(self) -> int | None:
        """Amount of the fee asset the action will consume."""

        return self.fee_amount if self.fee_amount is not None else self.gas_cost

    def to_dict(self) -> dict[str, Any]:
        return {
            "gasCost": None if self.gas_cost is None else str(self.gas_cost),
            "feeAmount": None if self.fee_amount is None else str(self.fee_amount),
            "usdPrice": self.usd_price,
            "errorMessage": self.error_message,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Estimate:
        return cls(
            gas_cost=_coerce_int(data.get("gasCost")),
            fee_amount=_coerce_int(data.get("feeAmount")),
            usd_price=data.get("usdPrice"),
            error_message=data.get("errorMessage"),
        )


@dataclass
class MultiCallData:
    """Link metadata joining several builder blocks into one execution chain."""

    id: str
    chain_id: int
    last_call_id: str | None = None
    index: int = 0
    token: str | None = None
    value: int | None = None
    fixed: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "chainId": self.chain_id,
            "lastCallId": self.last_call_id,
            "index": self.index,
            "token": self.token,
            "value": None if self.value is None else str(self.value),
            "fixed": self.fixed,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> MultiCallData:
        return cls(
            id=str(data["id"]),
            chain_id=int(data["chainId"]),
            last_call_id=data.get("lastCallId"),
            index=int(data.get("index") or 0),
            token=data.get("token"),
            value=_coerce_int(data.get("value")),
            fixed=bool(data.get("fixed", False)),
        )


@dataclass(frozen=True)
class QuoteStep:
    """One transaction of a provider quote; ``chain_id`` overrides the block's chain."""

    to: str
    value: int = 0
    data: str = "0x"
    chain_id: int | None = None


@dataclass(frozen=True)
class Quote:
    """Provider offer (swap) or route (bridge) selected for a block."""

    provider_name: str
    steps: tuple[QuoteStep, ...]
    receive_amount: int
    approval_address: str | None = None
    provider_icon_url: str | None = None


@dataclass
class ActionBlock:
    """User-specified builder input: an action type plus its values."""

    id: str
    type: ActionType
    values: dict[str, Any] = field(default_factory=dict)
    multi_call_data: MultiCallData | None = None


@dataclass
class CrossChainAction:
    """One submittable unit of on-chain work tied to one chain."""

    id: str
    related_block_id: str
    chain_id: int
    type: ActionType
    preview: ActionPreview
    transactions: list[Transaction] = field(default_factory=list)
    is_estimating: bool = False
    estimated: Estimate | None = None
    gas_token_address: str | None = None
    uses_external_signer: bool = False
    batch_transactions: list[CrossChainAction] = field(default_factory=list)
    batch_hash: str | None = None
    multi_call_data: MultiCallData | None = None
    receive_amount: int | None = None

    def members(self) -> Iterator[CrossChainAction]:
        """Yield this action followed by merged batch members, in append order."""

        yield self
        for member in self.batch_transactions:
            yield from member.members()

    def all_transactions(self) -> list[Transaction]:
        return [transaction for member in self.members() for transaction in member.transactions]

    def has_status(self, status: TransactionStatus) -> bool:
        return any(transaction.status == status for transaction in self.all_transactions())

    def transactions_with_status(self, status: TransactionStatus) -> list[Transaction]:
        return [
            transaction for transaction in self.all_transactions() if transaction.status == status
        ]

    def first_with_status(self, status: TransactionStatus) -> Transaction | None:
        return next(iter(self.transactions_with_status(status)), None)

    def is_finished(self) -> bool:
        return all(transaction.status.is_terminal for transaction in self.all_transactions())

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "relatedBuilderBlockId": self.related_block_id,
            "chainId": self.chain_id,
            "type": self.type.value,
            "preview": self.preview.to_dict(),
            "transactions": [transaction.to_dict() for transaction in self.transactions],
            "isEstimating": self.is_estimating,
            "estimated": self.estimated.to_dict() if self.estimated else None,
            "gasTokenAddress": self.gas_token_address,
            "usesExternalSigner": self.uses_external_signer,
            "batchTransactions": [member.to_dict() for member in self.batch_transactions],
            "batchHash": self.batch_hash,
            "multiCallData": self.multi_call_data.to_dict() if self.multi_call_data else None,
            "receiveAmount": None if self.receive_amount is None else str(self.receive_amount),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> CrossChainAction:
        action_type = ActionType(data["type"])
        estimated = data.get("estimated")
        multi_call_data = data.get("multiCallData")
        return cls(
            id=str(data["id"]),
            related_block_id=str(data.get("relatedBuilderBlockId") or ""),
            chain_id=int(data["chainId"]),
            type=action_type,
            preview=PREVIEW_TYPES[action_type].from_dict(data["preview"]),
            transactions=[Transaction.from_dict(item) for item in data.get("transactions") or []],
            # estimation never survives a restart half-way through
            is_estimating=False,
            estimated=Estimate.from_dict(estimated) if estimated else None,
            gas_token_address=data.get("gasTokenAddress"),
            uses_external_signer=bool(data.get("usesExternalSigner", False)),
            batch_transactions=[
                CrossChainAction.from_dict(item) for item in data.get("batchTransactions") or []
            ],
            batch_hash=data.get("batchHash"),
            multi_call_data=MultiCallData.from_dict(multi_call_data) if multi_call_data else None,
            receive_amount=_coerce_int(data.get("receiveAmount")),
        )


@dataclass(frozen=True)
class BuildResult:
    """Builder output: either actions or a human-readable error."""

    actions: list[CrossChainAction] = field(default_factory=list)
    error_message: str | None = None

    @property
    def success(self) -> bool:
        return self.error_message is None


@dataclass(frozen=True)
class AccountBalance:
    """Balance entry; ``token`` is ``None`` for the native asset."""

    token: str | None
    balance: int


@dataclass(frozen=True)
class GatewayEstimate:
    gas_price: int
    gas_limit: int
    fee_amount: int | None = None


@dataclass(frozen=True)
class GatewayBatch:
    """Gateway view of a submitted batch."""

    hash: str
    state: GatewayBatchState | None = None
    transaction_hash: str | None = None


@dataclass(frozen=True)
class Notification:
    type: NotificationType
    payload: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class StatusResolution:
    """Terminal outcome for (some of) an action's transactions.

    Produced by both the confirmation listener and the recovery pass and
    applied through the same function so both converge on one state shape.
    ``transaction_ids`` of ``None`` targets every transaction of the action.
    """

    action_id: str
    status: TransactionStatus
    finish_timestamp: int
    transaction_hash: str | None = None
    transaction_ids: tuple[str, ...] | None = None


def _coerce_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        text = value.strip()
        if text.lower().startswith("0x"):
            return int(text, 16)
        return int(text)
    if isinstance(value, float):
        return int(value)
    raise TypeError(f"Unsupported type for integer coercion: {type(value)!r}")
