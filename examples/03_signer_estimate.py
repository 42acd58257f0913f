"""Example: estimate a native transfer with the local signer and price it in USD."""

from __future__ import annotations

import asyncio
import logging
import os

from dotenv import load_dotenv
from web3 import Web3

from xchain_dispatch import CoinGeckoPriceService, SignerConfig, Web3ExternalSigner
from xchain_dispatch.types import TransactionRequest

load_dotenv()

logging.basicConfig(
    level=os.getenv("LOGLEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

logger = logging.getLogger("signer_estimate")


def _require_env(name: str) -> str:
    value = os.getenv(name)
    if not value:
        raise ValueError(f"{name} not found in environment variables")
    return value


async def main() -> None:
    chain_id = int(os.getenv("CHAIN_ID", "1"))
    signer = Web3ExternalSigner(
        SignerConfig(
            private_key=_require_env("PRIVATE_KEY"),
            rpc_urls={chain_id: _require_env("RPC_URL")},
        )
    )
    prices = CoinGeckoPriceService()

    request = TransactionRequest(
        to=_require_env("RECEIVER_ADDRESS"),
        value=Web3.to_wei(os.getenv("SEND_AMOUNT_ETH", "0.001"), "ether"),
    )

    try:
        cost = await signer.estimate_gas(request, chain_id)
        native_price = await prices.native_price_of(chain_id)
    finally:
        prices.close()

    cost_native = Web3.from_wei(cost, "ether")
    logger.info("Signer %s on chain %s", signer.address, chain_id)
    logger.info("Estimated cost: %s native", cost_native)
    if native_price is not None:
        logger.info("  ~ %.4f USD", float(cost_native) * native_price)


if __name__ == "__main__":
    asyncio.run(main())
