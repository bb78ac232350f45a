"""Collection discovery from the NFT factory."""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime
from typing import Any

from raffle_indexer import contracts
from raffle_indexer.chain.abi import DecodedEvent, is_zero_address
from raffle_indexer.chain.client import read_views
from raffle_indexer.indexer.base import ContractIndexer, EventContext, HandlerEntry, RunContext
from raffle_indexer.indexer.collection_views import bounded_int, read_collection_state

logger = logging.getLogger(__name__)


class NftFactoryIndexer(ContractIndexer):
    """Creates collection rows for every CollectionCreated event."""

    contract_type = "nft_factory"
    contract_key = "nftFactory"
    default_lookback_blocks = 1000

    def handlers(self) -> list[HandlerEntry]:
        return [
            HandlerEntry(contracts.COLLECTION_CREATED, self._on_collection_created, prepare=self._read_collection),
        ]

    async def _read_collection(self, run: RunContext, event: DecodedEvent) -> dict[str, Any]:
        collection = event.args["collection"]
        state, royalty = await asyncio.gather(
            read_collection_state(run.client, collection, int(event.args["standard"])),
            read_views(
                run.client,
                collection,
                {
                    "recipient": (contracts.COLLECTION_ROYALTY_RECIPIENT, None),
                    "bps": (contracts.COLLECTION_ROYALTY_BPS, 0),
                },
            ),
        )
        state["royalty_recipient"] = None if is_zero_address(royalty["recipient"]) else royalty["recipient"]
        state["royalty_bps"] = bounded_int(royalty["bps"])
        return state

    async def _on_collection_created(self, ctx: EventContext) -> None:
        collection = ctx.args["collection"]
        creator = ctx.args["creator"]
        values = {
            **ctx.prepared,
            "creator": creator,
            "owner": ctx.prepared.get("owner") or creator,
            "is_external": False,
            "deployed_block": ctx.event.block_number,
            "deployed_at": ctx.timestamp,
            "last_synced_block": ctx.event.block_number,
            "last_synced_at": datetime.now(UTC),
        }
        await ctx.collections.upsert(ctx.chain_id, collection, values)
        await ctx.record_activity(creator, "collection_created", collection_address=collection)
        logger.info("[chain %d] Collection %s created by %s", ctx.chain_id, collection, creator)
