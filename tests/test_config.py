"""Tests for configuration containers."""

import pytest

from xchain_dispatch.config import DispatcherConfig, PriceServiceConfig, SignerConfig
from xchain_dispatch.constants import COINGECKO_API_URL
from xchain_dispatch.exceptions import ValidationError


class TestDispatcherConfig:
    """Test dispatcher settings."""

    def test_defaults(self):
        config = DispatcherConfig()
        assert config.storage_key == "@xchainDispatch:storedGroupedCrossChainActions"
        assert config.lease_key == "@xchainDispatch:storedGroupedCrossChainActions:lease"
        assert config.owner_id.startswith("dispatcher-")
        assert config.owner_id != DispatcherConfig().owner_id

    def test_from_env(self):
        config = DispatcherConfig.from_env(
            {
                "XCHAIN_STORAGE_KEY": "custom",
                "XCHAIN_OWNER_ID": "worker-1",
                "XCHAIN_RECONCILE_INTERVAL": "2.5",
                "XCHAIN_LEASE_TTL": "30",
                "XCHAIN_ALERT_ON_SUCCESS": "false",
            }
        )

        assert config.storage_key == "custom"
        assert config.lease_key == "custom:lease"
        assert config.owner_id == "worker-1"
        assert config.reconcile_interval == 2.5
        assert config.lease_ttl == 30.0
        assert config.alert_on_success is False

    def test_from_process_environment(self, monkeypatch):
        monkeypatch.setenv("XCHAIN_OWNER_ID", "from-env")
        monkeypatch.setenv("XCHAIN_ALERT_ON_SUCCESS", "yes")
        monkeypatch.delenv("XCHAIN_STORAGE_KEY", raising=False)

        config = DispatcherConfig.from_env()

        assert config.owner_id == "from-env"
        assert config.alert_on_success is True
        assert config.storage_key == DispatcherConfig().storage_key

    def test_from_env_rejects_non_numeric(self):
        with pytest.raises(ValidationError) as exc_info:
            DispatcherConfig.from_env({"XCHAIN_LEASE_TTL": "soon"})
        assert exc_info.value.field == "lease_ttl"

    def test_rejects_non_positive_values(self):
        with pytest.raises(ValidationError):
            DispatcherConfig(reconcile_interval=0)
        with pytest.raises(ValidationError):
            DispatcherConfig(lease_ttl=-1)


def test_price_service_defaults() -> None:
    config = PriceServiceConfig()
    assert config.base_url == COINGECKO_API_URL
    assert config.vs_currency == "usd"


def test_signer_rpc_lookup() -> None:
    config = SignerConfig(private_key="0x" + "11" * 32, rpc_urls={1: "https://rpc.test"})

    assert config.rpc_url_for(1) == "https://rpc.test"
    with pytest.raises(ValidationError):
        config.rpc_url_for(137)
