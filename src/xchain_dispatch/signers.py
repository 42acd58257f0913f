"""External signer backed by a local private key and per-chain web3 providers."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any, cast

from eth_account import Account
from eth_account.signers.local import LocalAccount
from hexbytes import HexBytes
from web3 import HTTPProvider, Web3
from web3.middleware import SignAndSendRawMiddlewareBuilder

from .base import ExternalSigner
from .config import SignerConfig
from .exceptions import NetworkError, SubmissionError, ValidationError
from .types import TransactionRequest

logger = logging.getLogger(__name__)

Web3Factory = Callable[[str], Web3]


class Web3ExternalSigner(ExternalSigner):
    """Sign and send one transaction at a time from a locally held key."""

    def __init__(self, config: SignerConfig, web3_factory: Web3Factory | None = None) -> None:
        self.config = config
        try:
            self._account = cast(LocalAccount, Account.from_key(config.private_key))  # type: ignore[arg-type]
        except Exception as exc:  # pragma: no cover - defensive
            raise ValidationError(
                "Failed to derive signer account from provided private key",
                field="private_key",
                details={"error": str(exc)},
            ) from exc
        self._web3_factory = web3_factory or self._build_web3
        self._connections: dict[int, Web3] = {}

    @property
    def address(self) -> str:
        return self._account.address

    async def estimate_gas(self, transaction: TransactionRequest, chain_id: int) -> int:
        web3 = self._web3_for(chain_id)

        def _estimate() -> int:
            gas_limit = web3.eth.estimate_gas(self._tx_params(transaction))  # type: ignore[arg-type]
            return int(gas_limit) * int(web3.eth.gas_price)

        try:
            return await asyncio.to_thread(_estimate)
        except Exception as exc:
            raise NetworkError(
                "Failed to estimate gas",
                endpoint=self.config.rpc_url_for(chain_id),
                details={"error": str(exc), "to": transaction.to},
            ) from exc

    async def submit(self, transaction: TransactionRequest, chain_id: int) -> str | None:
        web3 = self._web3_for(chain_id)
        params = {**self._tx_params(transaction), "chainId": chain_id}

        try:
            tx_hash = await asyncio.to_thread(web3.eth.send_transaction, params)  # type: ignore[arg-type]
        except Exception as exc:
            raise SubmissionError(
                f"Failed to submit transaction: {exc}",
                chain_id=chain_id,
                details={"to": transaction.to},
            ) from exc

        tx_hex = HexBytes(tx_hash).to_0x_hex() if tx_hash else None
        logger.info("Transaction sent on chain %s hash=%s", chain_id, tx_hex)
        return tx_hex

    # ------------------------------------------------------------------
    # Internal wiring
    # ------------------------------------------------------------------
    def _tx_params(self, transaction: TransactionRequest) -> dict[str, Any]:
        return {
            "from": self._account.address,
            "to": Web3.to_checksum_address(transaction.to),
            "value": transaction.value,
            "data": transaction.data,
        }

    def _web3_for(self, chain_id: int) -> Web3:
        web3 = self._connections.get(chain_id)
        if web3 is None:
            web3 = self._web3_factory(self.config.rpc_url_for(chain_id))
            web3.middleware_onion.add(SignAndSendRawMiddlewareBuilder.build(self._account))  # type: ignore[arg-type]
            web3.eth.default_account = self._account.address
            self._connections[chain_id] = web3
            logger.info("Connected signer to chain %s", chain_id)
        return web3

    def _build_web3(self, rpc_url: str) -> Web3:
        web3 = Web3(HTTPProvider(rpc_url, request_kwargs={"timeout": self.config.request_timeout}))
        if not web3.is_connected():
            raise NetworkError("Unable to connect to RPC", endpoint=rpc_url)
        return web3
