"""Configuration containers for the cross-chain dispatch core."""

from __future__ import annotations

import os
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field

from .constants import (
    COINGECKO_API_URL,
    DEFAULT_LEASE_TTL,
    DEFAULT_RECONCILE_INTERVAL,
    DEFAULT_REQUEST_TIMEOUT,
    STORAGE_NAMESPACE,
    STORED_GROUPED_CROSS_CHAIN_ACTIONS,
)
from .exceptions import ValidationError

ENV_PREFIX = "XCHAIN_"
_FALSE_VALUES = ("0", "false", "no", "off")


def _default_owner_id() -> str:
    return f"dispatcher-{uuid.uuid4().hex[:12]}"


@dataclass(frozen=True)
class DispatcherConfig:
    """Settings for the transactions dispatcher and its ledger."""

    storage_key: str = f"{STORAGE_NAMESPACE}:{STORED_GROUPED_CROSS_CHAIN_ACTIONS}"
    reconcile_interval: float = DEFAULT_RECONCILE_INTERVAL
    lease_ttl: float = DEFAULT_LEASE_TTL
    owner_id: str = field(default_factory=_default_owner_id)
    alert_on_success: bool = True

    def __post_init__(self) -> None:
        if self.reconcile_interval <= 0:
            raise ValidationError(
                "Reconcile interval must be positive",
                field="reconcile_interval",
                value=self.reconcile_interval,
            )
        if self.lease_ttl <= 0:
            raise ValidationError(
                "Lease TTL must be positive", field="lease_ttl", value=self.lease_ttl
            )

    @property
    def lease_key(self) -> str:
        return f"{self.storage_key}:lease"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> DispatcherConfig:
        """Build a config from ``XCHAIN_*`` variables, defaulting the rest."""

        env = os.environ if environ is None else environ
        kwargs: dict[str, object] = {}

        storage_key = env.get(f"{ENV_PREFIX}STORAGE_KEY")
        if storage_key:
            kwargs["storage_key"] = storage_key
        owner_id = env.get(f"{ENV_PREFIX}OWNER_ID")
        if owner_id:
            kwargs["owner_id"] = owner_id

        for name in ("reconcile_interval", "lease_ttl"):
            raw = env.get(f"{ENV_PREFIX}{name.upper()}")
            if raw:
                try:
                    kwargs[name] = float(raw)
                except ValueError as exc:
                    raise ValidationError(
                        f"{ENV_PREFIX}{name.upper()} must be a number", field=name, value=raw
                    ) from exc

        alert_on_success = env.get(f"{ENV_PREFIX}ALERT_ON_SUCCESS")
        if alert_on_success:
            kwargs["alert_on_success"] = alert_on_success.strip().lower() not in _FALSE_VALUES

        return cls(**kwargs)  # type: ignore[arg-type]


@dataclass(frozen=True)
class PriceServiceConfig:
    """Configuration for the CoinGecko price lookup."""

    base_url: str = COINGECKO_API_URL
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    vs_currency: str = "usd"


@dataclass(frozen=True)
class SignerConfig:
    """Configuration for a locally keyed external signer."""

    private_key: str
    rpc_urls: Mapping[int, str] = field(default_factory=dict)
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT

    def rpc_url_for(self, chain_id: int) -> str:
        try:
            return self.rpc_urls[chain_id]
        except KeyError as exc:
            raise ValidationError(
                f"No RPC URL configured for chain {chain_id}", field="chain_id", value=chain_id
            ) from exc
