"""Batched block-header lookups."""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from raffle_indexer.chain.client import ChainClient


async def fetch_blocks(client: ChainClient, block_numbers: Iterable[int]) -> dict[int, dict[str, Any]]:
    """Fetch each distinct block once, concurrently.

    Args:
        client: Chain client.
        block_numbers: Block numbers, possibly repeated (one per event).

    Returns:
        Mapping of block number to block header.
    """
    unique = sorted({int(n) for n in block_numbers})
    if not unique:
        return {}
    blocks = await asyncio.gather(*(client.get_block(n) for n in unique))
    return dict(zip(unique, blocks, strict=True))
