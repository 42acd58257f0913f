"""Example: build a swap followed by a chained send, without submitting anything."""

from __future__ import annotations

import logging
import os

from dotenv import load_dotenv

from xchain_dispatch import ActionBlock, ActionBuilder, ActionType, AssetTransfer, Quote, QuoteStep
from xchain_dispatch.builder import BuildContext, extend_chain

load_dotenv()

logging.basicConfig(
    level=os.getenv("LOGLEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

logger = logging.getLogger("build_actions")

USDC = "0xa0b86991c6218b36c1d19d4a2e9eb0ce3606eb48"
DAI = "0x6b175474e89094c44da98b954eedeac495271d0f"


def _require_env(name: str) -> str:
    value = os.getenv(name)
    if not value:
        raise ValueError(f"{name} not found in environment variables")
    return value


def main() -> None:
    account = _require_env("ACCOUNT_ADDRESS")
    receiver = _require_env("RECEIVER_ADDRESS")
    router = os.getenv("SWAP_ROUTER", "0x1111111254eeb25477b68fb85ed929f73a960582")
    amount = int(os.getenv("SWAP_AMOUNT", "1000000"))

    swap = ActionBlock(
        id="swap",
        type=ActionType.ASSET_SWAP,
        values={
            "chain_id": 1,
            "from_asset": AssetTransfer(address=USDC, decimals=6, symbol="USDC", amount=amount),
            "to_asset": AssetTransfer(address=DAI, decimals=18, symbol="DAI", amount=0),
            "amount": amount,
            # quotes normally come from an aggregator
            "offer": Quote(
                provider_name="example",
                steps=(QuoteStep(to=router, data="0x"),),
                receive_amount=amount * 10**12,
            ),
        },
    )
    send = ActionBlock(
        id="send",
        type=ActionType.SEND_ASSET,
        values={
            "asset": AssetTransfer(address=DAI, decimals=18, symbol="DAI", amount=0),
            "receiver_address": receiver,
        },
    )

    blocks = [swap]
    extend_chain(blocks, swap, send)
    logger.info("Chained send seeded with %s DAI wei", send.values["amount"])

    result = ActionBuilder().build(blocks, BuildContext(account_address=account))
    if not result.success:
        logger.error("Build failed: %s", result.error_message)
        return

    for action in result.actions:
        logger.info("Action %s (%s) on chain %s", action.id, action.type.value, action.chain_id)
        for transaction in action.all_transactions():
            logger.info(
                "  -> to=%s value=%s data=%s...",
                transaction.to,
                transaction.value,
                transaction.data[:10],
            )


if __name__ == "__main__":
    main()
