"""CoinGecko-backed fiat price lookups."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import requests

from .base import PriceService
from .config import PriceServiceConfig
from .constants import COINGECKO_NATIVE_COIN_IDS, COINGECKO_PLATFORMS
from .exceptions import NetworkError
from .utils import is_native_asset

logger = logging.getLogger(__name__)


class CoinGeckoPriceService(PriceService):
    """Price service over the public CoinGecko ``simple`` endpoints.

    Unsupported chains return ``None``; transport and HTTP errors raise
    ``NetworkError`` and are absorbed by the estimator.
    """

    def __init__(
        self,
        config: PriceServiceConfig | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self.config = config or PriceServiceConfig()
        self._session = session or requests.Session()
        self._base_url = self.config.base_url.rstrip("/")

    async def price_of(self, chain_id: int, asset: str) -> float | None:
        if is_native_asset(asset):
            return await self.native_price_of(chain_id)

        platform = COINGECKO_PLATFORMS.get(chain_id)
        if platform is None:
            logger.debug("No CoinGecko platform for chain %s", chain_id)
            return None

        address = asset.lower()
        payload = await asyncio.to_thread(
            self._get,
            f"/simple/token_price/{platform}",
            {"contract_addresses": address, "vs_currencies": self.config.vs_currency},
        )
        return _extract_price(payload, address, self.config.vs_currency)

    async def native_price_of(self, chain_id: int) -> float | None:
        coin_id = COINGECKO_NATIVE_COIN_IDS.get(chain_id)
        if coin_id is None:
            logger.debug("No CoinGecko native coin for chain %s", chain_id)
            return None

        payload = await asyncio.to_thread(
            self._get,
            "/simple/price",
            {"ids": coin_id, "vs_currencies": self.config.vs_currency},
        )
        return _extract_price(payload, coin_id, self.config.vs_currency)

    def close(self) -> None:
        self._session.close()

    def _get(self, path: str, params: dict[str, str]) -> Any:
        url = f"{self._base_url}{path}"
        try:
            response = self._session.get(url, params=params, timeout=self.config.request_timeout)
            response.raise_for_status()
            return response.json()
        except requests.HTTPError as exc:
            status_code = exc.response.status_code if exc.response is not None else None
            raise NetworkError(
                "CoinGecko request failed",
                endpoint=url,
                status_code=status_code,
                details={"error": str(exc)},
            ) from exc
        except (requests.RequestException, ValueError) as exc:
            raise NetworkError(
                "CoinGecko request failed", endpoint=url, details={"error": str(exc)}
            ) from exc


def _extract_price(payload: Any, key: str, currency: str) -> float | None:
    if not isinstance(payload, dict):
        return None
    entry = payload.get(key)
    if not isinstance(entry, dict):
        return None
    price = entry.get(currency)
    return float(price) if isinstance(price, int | float) else None
