"""Affordability checks for cross-chain actions."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping, Sequence

from .base import ChainGateway, ExternalSigner, PriceService
from .constants import MSG_ESTIMATE_FAILED, MSG_NOT_ENOUGH_GAS
from .exceptions import EstimationError
from .types import AccountBalance, CrossChainAction, Estimate
from .utils import addresses_equal, is_native_asset, parse_error_message

logger = logging.getLogger(__name__)


class Estimator:
    """Estimate what an action costs and whether the paying account can afford it.

    Failures never raise: they come back as an ``Estimate`` carrying an
    ``error_message``, and an estimate without an error always has a cost.
    """

    def __init__(self, price_service: PriceService | None = None) -> None:
        self.price_service = price_service

    async def estimate(
        self,
        action: CrossChainAction,
        gateway: ChainGateway | None,
        *,
        signer: ExternalSigner | None = None,
        fee_token: str | None = None,
    ) -> Estimate:
        if gateway is None or (action.uses_external_signer and signer is None):
            return Estimate(error_message=MSG_ESTIMATE_FAILED)

        fee_token = fee_token or action.gas_token_address
        native_fee = is_native_asset(fee_token)
        fee_token = None if native_fee else fee_token

        balance = await self._available_balance(action, gateway, signer, fee_token)

        gas_cost: int | None = None
        fee_amount: int | None = None
        error_message: str | None = None
        try:
            if action.uses_external_signer:
                if signer is None:
                    raise EstimationError(
                        "No external signer configured", chain_id=action.chain_id
                    )
                gas_cost = await self._signer_cost(action, signer)
            else:
                requests = [transaction.as_request() for transaction in action.all_transactions()]
                estimation = await gateway.estimate_batch(requests, fee_token)
                if estimation.gas_limit <= 0:
                    raise EstimationError(
                        "Gateway returned an empty estimate", chain_id=action.chain_id
                    )
                gas_cost = estimation.gas_price * estimation.gas_limit
                fee_amount = None if native_fee else estimation.fee_amount
        except Exception as exc:
            error_message = parse_error_message(exc) or MSG_ESTIMATE_FAILED
            logger.warning("Estimation failed for action %s: %s", action.id, error_message)

        cost = fee_amount if fee_amount is not None else gas_cost
        if balance <= 0:
            return Estimate(error_message=MSG_NOT_ENOUGH_GAS)
        if error_message is not None:
            return Estimate(error_message=error_message)
        if not cost or balance < cost:
            logger.debug(
                "Stage estimate [%s]: balance %s below cost %s", action.id, balance, cost
            )
            return Estimate(error_message=MSG_NOT_ENOUGH_GAS)

        usd_price = await self._usd_price(action.chain_id, fee_token if fee_amount else None)
        logger.debug("Stage estimate [%s]: cost %s affordable", action.id, cost)
        return Estimate(gas_cost=gas_cost, fee_amount=fee_amount, usd_price=usd_price)

    async def estimate_all(
        self,
        actions: Sequence[CrossChainAction],
        gateways: Mapping[int, ChainGateway],
        *,
        signer: ExternalSigner | None = None,
        fee_token: str | None = None,
        force: bool = False,
    ) -> int:
        """Estimate every action lacking an estimate concurrently; returns how many ran."""

        pending = [
            action
            for action in actions
            if force or (action.estimated is None and not action.is_estimating)
        ]
        if not pending:
            return 0

        for action in pending:
            action.is_estimating = True

        async def _run(action: CrossChainAction) -> None:
            try:
                action.estimated = await self.estimate(
                    action, gateways.get(action.chain_id), signer=signer, fee_token=fee_token
                )
            finally:
                action.is_estimating = False

        await asyncio.gather(*(_run(action) for action in pending))
        return len(pending)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    async def _available_balance(
        self,
        action: CrossChainAction,
        gateway: ChainGateway,
        signer: ExternalSigner | None,
        fee_token: str | None,
    ) -> int:
        try:
            if action.uses_external_signer and signer is not None:
                payer = signer.address
            else:
                payer = await gateway.compute_account()
            balances = await gateway.get_account_balances(
                payer, [fee_token] if fee_token else [], action.chain_id
            )
        except Exception as exc:
            logger.warning("Balance lookup failed for action %s: %s", action.id, exc)
            return 0

        balance = _find_balance(balances, fee_token)

        if fee_token is None:
            balance -= sum(transaction.value for transaction in action.all_transactions())
        else:
            for member in action.members():
                outgoing = member.preview.outgoing_asset
                if outgoing is not None and addresses_equal(outgoing.address, fee_token):
                    balance -= outgoing.amount
        return balance

    @staticmethod
    async def _signer_cost(action: CrossChainAction, signer: ExternalSigner) -> int | None:
        total = 0
        for transaction in action.all_transactions():
            total += await signer.estimate_gas(
                transaction.as_request(), transaction.chain_id or action.chain_id
            )
        return total or None

    async def _usd_price(self, chain_id: int, fee_token: str | None) -> float | None:
        if self.price_service is None:
            return None
        try:
            if fee_token:
                return await self.price_service.price_of(chain_id, fee_token)
            return await self.price_service.native_price_of(chain_id)
        except Exception as exc:
            logger.debug("Price lookup failed on chain %s: %s", chain_id, exc)
            return None


def _find_balance(balances: Sequence[AccountBalance], fee_token: str | None) -> int:
    for entry in balances:
        if fee_token is None and entry.token is None:
            return entry.balance
        if fee_token is not None and addresses_equal(entry.token, fee_token):
            return entry.balance
    return 0
