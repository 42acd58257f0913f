"""Cross-chain action dispatch core.

Build, estimate, submit and track multi-step on-chain actions, resumably
across restarts.
"""

from .base import ChainGateway, ExternalSigner, KeyValueStore, PriceService, Subscription
from .builder import ActionBuilder, BuildContext, StrategyRegistry, extend_chain
from .config import DispatcherConfig, PriceServiceConfig, SignerConfig
from .dispatcher import DispatchState, TransactionsDispatcher
from .estimator import Estimator
from .exceptions import (
    BuildError,
    DispatchError,
    EstimationError,
    LeaseError,
    NetworkError,
    ReconciliationError,
    StorageError,
    SubmissionError,
    ValidationError,
)
from .listener import ConfirmationListener
from .prices import CoinGeckoPriceService
from .recovery import Reconciler
from .sequencer import DispatchSequencer, select_head
from .signers import Web3ExternalSigner
from .storage import GroupLedger, InMemoryStore, JsonFileStore, LedgerLease
from .types import (
    ActionBlock,
    ActionType,
    AssetTransfer,
    BuildResult,
    CrossChainAction,
    Estimate,
    MultiCallData,
    Quote,
    QuoteStep,
    StatusResolution,
    TimeOrderedId,
    Transaction,
    TransactionStatus,
)
from .utils import explorer_link, is_erc20_approval_data, update_actions_status

__version__ = "0.1.0"

__all__ = [
    "ActionBlock",
    "ActionBuilder",
    "ActionType",
    "AssetTransfer",
    "BuildContext",
    "BuildError",
    "BuildResult",
    "ChainGateway",
    "CoinGeckoPriceService",
    "ConfirmationListener",
    "CrossChainAction",
    "DispatchError",
    "DispatchSequencer",
    "DispatchState",
    "DispatcherConfig",
    "Estimate",
    "EstimationError",
    "Estimator",
    "ExternalSigner",
    "GroupLedger",
    "InMemoryStore",
    "JsonFileStore",
    "KeyValueStore",
    "LeaseError",
    "LedgerLease",
    "MultiCallData",
    "NetworkError",
    "PriceService",
    "PriceServiceConfig",
    "Quote",
    "QuoteStep",
    "Reconciler",
    "ReconciliationError",
    "SignerConfig",
    "StatusResolution",
    "StorageError",
    "StrategyRegistry",
    "SubmissionError",
    "Subscription",
    "TimeOrderedId",
    "Transaction",
    "TransactionStatus",
    "TransactionsDispatcher",
    "ValidationError",
    "Web3ExternalSigner",
    "explorer_link",
    "extend_chain",
    "is_erc20_approval_data",
    "select_head",
    "update_actions_status",
]
