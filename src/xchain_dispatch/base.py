"""Abstract collaborator interfaces used by the dispatch core."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Sequence

from .types import (
    AccountBalance,
    ChainTransactionStatus,
    GatewayBatch,
    GatewayEstimate,
    Notification,
    TransactionRequest,
)

NotificationCallback = Callable[[Notification], Awaitable[None]]


class Subscription(ABC):
    """Handle returned by a notification subscription."""

    @abstractmethod
    async def close(self) -> None:
        pass


class ChainGateway(ABC):
    """Account-abstraction gateway for a single chain.

    The gateway submits batches on behalf of a managed smart wallet and
    exposes read access to batch and transaction state on its chain.
    """

    chain_id: int

    @abstractmethod
    async def compute_account(self) -> str:
        """Return the address of the managed account paying for batches."""
        pass

    @abstractmethod
    async def submit_batch(
        self, transactions: Sequence[TransactionRequest], fee_token: str | None = None
    ) -> str | None:
        """Submit transactions as one batch.

        Args:
            transactions: Stripped ``{to, value, data}`` payloads, in order
            fee_token: ERC20 used to pay fees; native asset when omitted

        Returns:
            The gateway batch hash, or ``None`` when the gateway produced none
        """
        pass

    @abstractmethod
    async def get_batch(self, batch_hash: str) -> GatewayBatch:
        pass

    @abstractmethod
    async def get_transaction(self, transaction_hash: str) -> ChainTransactionStatus:
        pass

    @abstractmethod
    async def get_account_balances(
        self, address: str, tokens: Sequence[str], chain_id: int
    ) -> list[AccountBalance]:
        """Balances of ``address``; an empty ``tokens`` list asks for the native asset."""
        pass

    @abstractmethod
    async def estimate_batch(
        self, transactions: Sequence[TransactionRequest], fee_token: str | None = None
    ) -> GatewayEstimate:
        pass

    @abstractmethod
    async def subscribe(self, callback: NotificationCallback) -> Subscription:
        """Deliver gateway notifications to ``callback`` until closed."""
        pass


class ExternalSigner(ABC):
    """User-held wallet that signs and sends one transaction at a time."""

    @property
    @abstractmethod
    def address(self) -> str:
        pass

    @abstractmethod
    async def estimate_gas(self, transaction: TransactionRequest, chain_id: int) -> int:
        """Return the native-asset cost of ``transaction`` (gas limit times gas price)."""
        pass

    @abstractmethod
    async def submit(self, transaction: TransactionRequest, chain_id: int) -> str | None:
        pass


class PriceService(ABC):
    """Best-effort fiat price lookups."""

    @abstractmethod
    async def price_of(self, chain_id: int, asset: str) -> float | None:
        pass

    @abstractmethod
    async def native_price_of(self, chain_id: int) -> float | None:
        pass


class KeyValueStore(ABC):
    """String key/value persistence for the dispatch ledger."""

    @abstractmethod
    async def get_item(self, key: str) -> str | None:
        pass

    @abstractmethod
    async def set_item(self, key: str, value: str) -> None:
        pass

    @abstractmethod
    async def remove_item(self, key: str) -> None:
        pass
