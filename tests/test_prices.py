"""Tests for the CoinGecko price service."""

from __future__ import annotations

import asyncio
from typing import Any, cast

import pytest
import requests

from fakes import TOKEN
from xchain_dispatch.config import PriceServiceConfig
from xchain_dispatch.constants import ZERO_ADDRESS
from xchain_dispatch.exceptions import NetworkError
from xchain_dispatch.prices import CoinGeckoPriceService


class DummyResponse:
    def __init__(self, payload: Any, status_code: int = 200) -> None:
        self._payload = payload
        self.status_code = status_code

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error", response=cast(Any, self))

    def json(self) -> Any:
        return self._payload


class DummySession:
    def __init__(self, response: DummyResponse | Exception) -> None:
        self.response = response
        self.calls: list[tuple[str, dict[str, str], float]] = []
        self.closed = False

    def get(self, url: str, params: dict[str, str], timeout: float) -> DummyResponse:
        self.calls.append((url, params, timeout))
        if isinstance(self.response, Exception):
            raise self.response
        return self.response

    def close(self) -> None:
        self.closed = True


def _service(response: DummyResponse | Exception) -> tuple[CoinGeckoPriceService, DummySession]:
    session = DummySession(response)
    config = PriceServiceConfig(base_url="https://prices.test/api/", request_timeout=3.0)
    return CoinGeckoPriceService(config, cast(requests.Session, session)), session


def test_native_price() -> None:
    service, session = _service(DummyResponse({"matic-network": {"usd": 0.71}}))

    assert asyncio.run(service.native_price_of(137)) == 0.71

    url, params, timeout = session.calls[0]
    assert url == "https://prices.test/api/simple/price"
    assert params == {"ids": "matic-network", "vs_currencies": "usd"}
    assert timeout == 3.0


def test_token_price_uses_platform_and_lowercase_address() -> None:
    service, session = _service(DummyResponse({TOKEN: {"usd": 1}}))

    assert asyncio.run(service.price_of(1, TOKEN.upper().replace("0X", "0x"))) == 1.0

    url, params, _ = session.calls[0]
    assert url.endswith("/simple/token_price/ethereum")
    assert params["contract_addresses"] == TOKEN


def test_native_asset_delegates_to_coin_price() -> None:
    service, session = _service(DummyResponse({"ethereum": {"usd": 3_000}}))

    assert asyncio.run(service.price_of(1, ZERO_ADDRESS)) == 3_000.0
    assert session.calls[0][0].endswith("/simple/price")


def test_unsupported_chain_returns_none() -> None:
    service, session = _service(DummyResponse({}))

    assert asyncio.run(service.native_price_of(5)) is None
    assert asyncio.run(service.price_of(80001, TOKEN)) is None
    assert session.calls == []


def test_missing_entry_returns_none() -> None:
    service, _ = _service(DummyResponse({"ethereum": {}}))

    assert asyncio.run(service.native_price_of(1)) is None


def test_http_error_raises_network_error() -> None:
    service, _ = _service(DummyResponse({}, status_code=429))

    with pytest.raises(NetworkError) as exc_info:
        asyncio.run(service.native_price_of(1))

    assert exc_info.value.status_code == 429


def test_transport_error_raises_network_error() -> None:
    service, _ = _service(requests.ConnectionError("offline"))

    with pytest.raises(NetworkError):
        asyncio.run(service.native_price_of(1))


def test_close_closes_session() -> None:
    service, session = _service(DummyResponse({}))

    service.close()

    assert session.closed
