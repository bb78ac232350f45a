"""Per-collection events: reveal, mints, burns, vesting schedules."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from decimal import Decimal

from raffle_indexer import contracts
from raffle_indexer.chain.abi import AbiDecodeError, is_zero_address
from raffle_indexer.chain.client import ChainClientError
from raffle_indexer.indexer.base import ContractIndexer, EventContext, HandlerEntry, RunContext
from raffle_indexer.indexer.collection_views import bounded_int
from raffle_indexer.storage.database import transaction
from raffle_indexer.storage.repos import CollectionRepository

logger = logging.getLogger(__name__)


class CollectionIndexer(ContractIndexer):
    """Tracks reveals, mints and vesting for one collection contract."""

    contract_type = "collection"
    default_lookback_blocks = 1000

    def handlers(self) -> list[HandlerEntry]:
        return [
            HandlerEntry(contracts.REVEALED, self._on_revealed),
            HandlerEntry(contracts.TRANSFER, self._on_transfer),
            HandlerEntry(contracts.TRANSFER_SINGLE, self._on_transfer_single),
            HandlerEntry(contracts.TRANSFER_BATCH, self._on_transfer_batch),
            HandlerEntry(contracts.VESTING_SCHEDULE_SET, self._on_vesting_schedule_set),
        ]

    async def default_from_block(self, chain_id: int, contract_address: str, to_block: int) -> int:
        async with transaction(self.session_factory) as session:
            collection = await CollectionRepository(session).get(chain_id, contract_address)
        if collection is not None and collection.deployed_block is not None:
            return collection.deployed_block
        return await super().default_from_block(chain_id, contract_address, to_block)

    async def _on_revealed(self, ctx: EventContext) -> None:
        address = ctx.run.contract_address
        await ctx.collections.update(ctx.chain_id, address, is_revealed=True, base_uri=ctx.args["baseURI"] or None)
        collection = await ctx.collections.get(ctx.chain_id, address)
        if collection is not None and collection.creator:
            await ctx.record_activity(collection.creator, "collection_revealed", collection_address=address)

    async def _record_mint(self, ctx: EventContext, to: str, token_id: int, quantity: int) -> None:
        await ctx.record_activity(
            to,
            "nft_minted",
            collection_address=ctx.run.contract_address,
            token_id=Decimal(token_id),
            quantity=quantity,
        )

    async def _on_movement(self, ctx: EventContext, token_id: int, quantity: int) -> None:
        """Record a mint (from zero) or count a burn (to zero); other transfers are ignored."""
        sender, recipient = ctx.args["from"], ctx.args["to"]
        if is_zero_address(sender) and not is_zero_address(recipient):
            await self._record_mint(ctx, recipient, token_id, quantity)
            ctx.run.stats["mintsFound"] += quantity
        elif is_zero_address(recipient) and not is_zero_address(sender):
            ctx.run.stats["burnsFound"] += quantity

    async def _on_transfer(self, ctx: EventContext) -> None:
        await self._on_movement(ctx, int(ctx.args["tokenId"]), 1)

    async def _on_transfer_single(self, ctx: EventContext) -> None:
        await self._on_movement(ctx, int(ctx.args["id"]), int(ctx.args["value"]))

    async def _on_transfer_batch(self, ctx: EventContext) -> None:
        if ctx.args["ids"]:
            await self._on_movement(ctx, int(ctx.args["ids"][0]), sum(int(v) for v in ctx.args["values"]))

    async def _on_vesting_schedule_set(self, ctx: EventContext) -> None:
        await ctx.record_activity(
            ctx.args["beneficiary"],
            "vesting_scheduled",
            collection_address=ctx.run.contract_address,
            amount=Decimal(ctx.args["amount"]),
        )

    async def finalize(self, run: RunContext) -> None:
        for key in ("mintsFound", "burnsFound"):
            run.stats.setdefault(key, 0)
        mints, burns = run.stats["mintsFound"], run.stats["burnsFound"]

        values: dict[str, object] = {"last_synced_block": run.to_block, "last_synced_at": datetime.now(UTC)}
        try:
            supply = bounded_int(await run.client.call_function(run.contract_address, contracts.COLLECTION_TOTAL_SUPPLY))
        except (ChainClientError, AbiDecodeError) as e:
            logger.warning("[chain %d] totalSupply() unavailable on %s: %s", run.chain_id, run.contract_address, e)
            supply = None

        async with transaction(self.session_factory) as session:
            collections = CollectionRepository(session)
            if supply is not None:
                values["current_supply"] = supply
                values["total_supply"] = supply
            else:
                collection = await collections.get(run.chain_id, run.contract_address)
                stored = collection.current_supply if collection and collection.current_supply is not None else 0
                values["current_supply"] = max(0, stored + mints - burns)
                logger.warning(
                    "[chain %d] Estimated supply of %s from events: %d",
                    run.chain_id,
                    run.contract_address,
                    values["current_supply"],
                )
            await collections.update(run.chain_id, run.contract_address, **values)
