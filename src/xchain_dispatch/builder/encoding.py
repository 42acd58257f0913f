"""Calldata encoding for the ERC20 and staking calls the builder emits."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from eth_abi import encode as abi_encode
from eth_typing import HexStr

from ..utils import ERC20_APPROVE_SELECTOR, function_selector, require_address

ERC20_TRANSFER_SELECTOR = function_selector("transfer(address,uint256)")
STAKE_SELECTOR = function_selector("stake(uint256)")


def encode_call(selector: str, arg_types: Sequence[str], args: Sequence[Any]) -> HexStr:
    return HexStr(selector + abi_encode(list(arg_types), list(args)).hex())


def encode_erc20_approve(spender: str, amount: int) -> HexStr:
    spender = require_address(spender, "spender")
    return encode_call(ERC20_APPROVE_SELECTOR, ["address", "uint256"], [spender, amount])


def encode_erc20_transfer(receiver: str, amount: int) -> HexStr:
    receiver = require_address(receiver, "receiver_address")
    return encode_call(ERC20_TRANSFER_SELECTOR, ["address", "uint256"], [receiver, amount])


def encode_stake(amount: int) -> HexStr:
    return encode_call(STAKE_SELECTOR, ["uint256"], [amount])
