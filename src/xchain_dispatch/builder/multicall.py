"""Multi-call chaining of builder blocks.

A chain is a run of blocks on one chain sharing ``multi_call_data.id``. Only
the current tail can be extended; extending fixes the tail and seeds the new
block with what is left of the asset the chain last received.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, MutableSequence, Sequence

from ..exceptions import ValidationError
from ..types import ActionBlock, ActionType, AssetTransfer, MultiCallData, Quote
from ..utils import TimeOrderedIdFactory, addresses_equal

logger = logging.getLogger(__name__)

_default_ids = TimeOrderedIdFactory()


def block_chain_id(block: ActionBlock) -> int | None:
    chain_id = block.values.get("chain_id", block.values.get("from_chain_id"))
    return None if chain_id is None else int(chain_id)


def outgoing_of(block: ActionBlock) -> tuple[str | None, int]:
    """Asset address and amount the block spends."""
    asset: AssetTransfer | None = block.values.get("asset") or block.values.get("from_asset")
    if asset is None:
        return None, 0
    amount = block.values.get("amount")
    return asset.address, int(asset.amount if amount is None else amount)


def received_of(block: ActionBlock) -> tuple[str | None, int | None]:
    """Asset address and amount the block receives, if it receives anything."""
    to_asset: AssetTransfer | None = block.values.get("to_asset")
    if to_asset is None:
        return None, None
    received = block.values.get("receive_amount")
    if received is None:
        quote = block.values.get("offer") or block.values.get("route")
        if isinstance(quote, Quote):
            received = quote.receive_amount
    return to_asset.address, None if received is None else int(received)


def chain_blocks(blocks: Sequence[ActionBlock], chain_id: str) -> list[ActionBlock]:
    members = [
        block
        for block in blocks
        if block.multi_call_data is not None and block.multi_call_data.id == chain_id
    ]
    return sorted(members, key=_link_index)


def _link_index(block: ActionBlock) -> int:
    return block.multi_call_data.index if block.multi_call_data is not None else 0


def chain_tail(blocks: Sequence[ActionBlock], chain_id: str) -> ActionBlock | None:
    members = chain_blocks(blocks, chain_id)
    return members[-1] if members else None


def chain_seed(members: Sequence[ActionBlock]) -> tuple[str, int]:
    """Carry-over for the next link: last received amount minus sends of that asset."""

    for member in reversed(members):
        token, received = received_of(member)
        if token is not None and received is not None:
            break
    else:
        raise ValidationError(
            "Chain has not received any asset to carry over", field="multi_call_data"
        )

    spent = 0
    for member in members:
        if member.type != ActionType.SEND_ASSET:
            continue
        asset, amount = outgoing_of(member)
        if addresses_equal(asset, token):
            spent += amount

    seed = received - spent
    if seed <= 0:
        raise ValidationError(
            "Nothing left to carry over in chain", field="multi_call_data", value=seed
        )
    return token, seed


def ensure_editable(block: ActionBlock) -> None:
    if block.multi_call_data is not None and block.multi_call_data.fixed:
        raise ValidationError(
            "Block is fixed by a downstream multi-call link",
            field="multi_call_data",
            value=block.id,
        )


def update_block_values(block: ActionBlock, **values: object) -> ActionBlock:
    ensure_editable(block)
    block.values.update(values)
    return block


def extend_chain(
    blocks: MutableSequence[ActionBlock],
    tail: ActionBlock,
    block: ActionBlock,
    *,
    new_id: Callable[[], str] | None = None,
) -> ActionBlock:
    """Link ``block`` after ``tail`` and append it to ``blocks``.

    Raises:
        ValidationError: ``tail`` is not the current unfixed tail of its chain,
            the chains differ, or nothing is left to carry over.
    """

    if tail not in blocks:
        raise ValidationError("Tail block is not part of the builder", field="tail", value=tail.id)

    link = tail.multi_call_data
    if link is None:
        chain_id = block_chain_id(tail)
        if chain_id is None:
            raise ValidationError("Tail block has no chain", field="tail", value=tail.id)
        link = MultiCallData(id=(new_id or _default_ids.new)(), chain_id=chain_id)
        members = [tail]
    else:
        if link.fixed or chain_tail(blocks, link.id) is not tail:
            raise ValidationError(
                "Only the current chain tail can be extended", field="tail", value=tail.id
            )
        members = chain_blocks(blocks, link.id)

    target_chain = block_chain_id(block)
    if target_chain is not None and target_chain != link.chain_id:
        raise ValidationError(
            "Chained blocks must stay on one chain", field="chain_id", value=target_chain
        )

    token, seed = chain_seed(members)

    if tail.multi_call_data is None:
        tail.multi_call_data = link
        logger.debug("Stage multicall [%s]: started chain at block %s", link.id, tail.id)
    link.fixed = True
    block.multi_call_data = MultiCallData(
        id=link.id,
        chain_id=link.chain_id,
        last_call_id=tail.id,
        index=link.index + 1,
        token=token,
        value=seed,
    )
    block.values.setdefault("chain_id", link.chain_id)
    block.values["amount"] = seed
    blocks.append(block)

    logger.debug(
        "Stage multicall [%s]: block %s extends %s with %s of %s",
        link.id,
        block.id,
        tail.id,
        seed,
        token,
    )
    return block


def remove_chain_tail(blocks: MutableSequence[ActionBlock], block: ActionBlock) -> None:
    """Remove the tail of a chain and unfix the link it extended."""

    ensure_editable(block)
    blocks.remove(block)
    link = block.multi_call_data
    if link is None or link.last_call_id is None:
        return
    for candidate in blocks:
        if candidate.id == link.last_call_id and candidate.multi_call_data is not None:
            candidate.multi_call_data.fixed = False
