"""Example: list persisted dispatch groups from a JSON file store."""

from __future__ import annotations

import asyncio
import logging
import os

from dotenv import load_dotenv

from xchain_dispatch import DispatcherConfig, GroupLedger, JsonFileStore, explorer_link

load_dotenv()

logging.basicConfig(
    level=os.getenv("LOGLEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

logger = logging.getLogger("dispatch_history")


async def main() -> None:
    config = DispatcherConfig.from_env()
    store = JsonFileStore(os.getenv("XCHAIN_STORE_PATH", "xchain-dispatch.json"))
    ledger = GroupLedger(store, config.storage_key)

    history = await ledger.history()
    if not history:
        logger.info("No unfinished dispatch groups under %s", config.storage_key)
        return

    for dispatch_id, actions in history:
        logger.info("Group %s (%d action(s))", dispatch_id, len(actions))
        for action in actions:
            for transaction in action.all_transactions():
                link = explorer_link(action.chain_id, transaction.transaction_hash)
                logger.info(
                    "  %s %s %s",
                    transaction.id,
                    transaction.status.value,
                    link or transaction.batch_hash or "-",
                )


if __name__ == "__main__":
    asyncio.run(main())
