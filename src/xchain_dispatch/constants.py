"""Constants and chain mappings for the cross-chain dispatch core."""

from enum import IntEnum

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# Some aggregators report native assets under this placeholder instead of the zero address
NATIVE_PLACEHOLDER_ADDRESS = "0xEeeeeEeeeEeEeeEeEeEeeEEEeeeeEeeeeeeeEEeE"

STORED_GROUPED_CROSS_CHAIN_ACTIONS = "storedGroupedCrossChainActions"
STORAGE_NAMESPACE = "@xchainDispatch"

DEFAULT_RECONCILE_INTERVAL = 15.0
DEFAULT_LEASE_TTL = 120.0
DEFAULT_REQUEST_TIMEOUT = 10.0

COINGECKO_API_URL = "https://api.coingecko.com/api/v3"

MSG_SEND_FAILED = "Unable to send transaction!"
MSG_SENT = "Transaction sent!"
MSG_NOT_ENOUGH_GAS = "Not enough gas!"
MSG_ESTIMATE_FAILED = "Failed to estimate!"
MSG_BUILD_FAILED = "Failed to build a cross chain action!"
MSG_NOTHING_TO_BUILD = "Failed to proceed with selected actions!"


class ChainId(IntEnum):
    """EVM chain ids (https://chainid.network/)."""

    ETHEREUM_MAINNET = 1
    OPTIMISM = 10
    BINANCE = 56
    XDAI = 100
    POLYGON = 137
    FANTOM = 250
    MOONBEAM = 1284
    ARBITRUM = 42161
    CELO = 42220
    AVALANCHE = 43114
    AURORA = 1313161554
    GOERLI = 5
    MUMBAI = 80001


EXPLORER_URLS = {
    ChainId.ETHEREUM_MAINNET: "https://etherscan.io/tx/",
    ChainId.OPTIMISM: "https://optimistic.etherscan.io/tx/",
    ChainId.BINANCE: "https://bscscan.com/tx/",
    ChainId.XDAI: "https://gnosisscan.io/tx/",
    ChainId.POLYGON: "https://polygonscan.com/tx/",
    ChainId.FANTOM: "https://ftmscan.com/tx/",
    ChainId.MOONBEAM: "https://moonscan.io/tx/",
    ChainId.ARBITRUM: "https://arbiscan.io/tx/",
    ChainId.CELO: "https://celoscan.io/tx/",
    ChainId.AVALANCHE: "https://snowtrace.io/tx/",
    ChainId.AURORA: "https://aurorascan.dev/tx/",
    ChainId.GOERLI: "https://goerli.etherscan.io/tx/",
    ChainId.MUMBAI: "https://mumbai.polygonscan.com/tx/",
}

# Coin used to pay gas on each chain
COINGECKO_NATIVE_COIN_IDS = {
    ChainId.ETHEREUM_MAINNET: "ethereum",
    ChainId.POLYGON: "matic-network",
    ChainId.BINANCE: "binancecoin",
    ChainId.XDAI: "xdai",
    ChainId.AVALANCHE: "avalanche-2",
    ChainId.OPTIMISM: "ethereum",
    ChainId.ARBITRUM: "ethereum",
    ChainId.AURORA: "ethereum",
    ChainId.FANTOM: "fantom",
    ChainId.CELO: "celo",
    ChainId.MOONBEAM: "moonbeam",
}

COINGECKO_PLATFORMS = {
    ChainId.ETHEREUM_MAINNET: "ethereum",
    ChainId.POLYGON: "polygon-pos",
    ChainId.BINANCE: "binance-smart-chain",
    ChainId.XDAI: "xdai",
    ChainId.AVALANCHE: "avalanche",
    ChainId.OPTIMISM: "optimistic-ethereum",
    ChainId.ARBITRUM: "arbitrum-one",
    ChainId.FANTOM: "fantom",
    ChainId.CELO: "celo",
    ChainId.MOONBEAM: "moonbeam",
}
