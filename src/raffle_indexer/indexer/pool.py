"""Per-pool lifecycle events: purchases, draws, claims, refunds."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from enum import IntEnum
from typing import Any

from raffle_indexer import contracts
from raffle_indexer.chain.abi import AbiDecodeError, DecodedEvent
from raffle_indexer.chain.client import ChainClientError
from raffle_indexer.indexer.base import ContractIndexer, EventContext, HandlerEntry, RunContext
from raffle_indexer.storage.database import transaction
from raffle_indexer.storage.repos import ParticipantRepository, PoolRepository, SlotPurchaseDTO

logger = logging.getLogger(__name__)

WINNERS_SELECTED_FLAG = "winners_selected"


class PoolState(IntEnum):
    """On-chain pool lifecycle states."""

    PENDING = 0
    ACTIVE = 1
    ENDED = 2
    DRAWING = 3
    COMPLETED = 4
    DELETED = 5
    ALL_PRIZES_CLAIMED = 6
    UNENGAGED = 7


# States a pool can still leave; the reconciler only polls these.
LIVE_STATES = (
    PoolState.PENDING,
    PoolState.ACTIVE,
    PoolState.ENDED,
    PoolState.DRAWING,
    PoolState.COMPLETED,
)


@dataclass(frozen=True)
class PoolInfo:
    name: str | None
    slot_fee: Decimal


class PoolIndexer(ContractIndexer):
    """Projects a single pool's events into participants, winners and activity."""

    contract_type = "pool"
    default_lookback_blocks = 10_000

    async def default_from_block(self, chain_id: int, contract_address: str, to_block: int) -> int:
        """First scan starts at the pool's creation block when the pool is known."""
        async with transaction(self.session_factory) as session:
            pool = await PoolRepository(session).get(chain_id, contract_address)
        if pool is not None and pool.created_at_block is not None:
            return pool.created_at_block
        return await super().default_from_block(chain_id, contract_address, to_block)

    def handlers(self) -> list[HandlerEntry]:
        return [
            HandlerEntry(contracts.SLOTS_PURCHASED, self._on_slots_purchased, prepare=self._pool_info),
            HandlerEntry(contracts.WINNERS_SELECTED, self._on_winners_selected, prepare=self._pool_info),
            HandlerEntry(contracts.RANDOM_REQUESTED, self._on_random_requested, prepare=self._pool_info),
            HandlerEntry(contracts.PRIZE_CLAIMED, self._on_prize_claimed, prepare=self._pool_info),
            HandlerEntry(contracts.REFUND_CLAIMED, self._on_refund_claimed, prepare=self._pool_info),
            HandlerEntry(contracts.POOL_ACTIVATED, self._on_pool_activated),
            HandlerEntry(contracts.POOL_ENDED, self._on_pool_ended),
        ]

    async def _pool_info(self, run: RunContext, event: DecodedEvent) -> PoolInfo:
        """Name and slot fee, read once per run (stored row first, then the contract)."""
        info = run.cache.get("pool_info")
        if info is not None:
            return info

        async with transaction(run.session_factory) as session:
            pool = await PoolRepository(session).get(run.chain_id, run.contract_address)
        if pool is not None:
            info = PoolInfo(name=pool.name, slot_fee=Decimal(pool.slot_fee))
        else:
            name, slot_fee = await asyncio.gather(
                self._read_name(run),
                run.client.call_function(run.contract_address, contracts.POOL_SLOT_FEE),
            )
            info = PoolInfo(name=name, slot_fee=Decimal(slot_fee))
        run.cache["pool_info"] = info
        return info

    async def _read_name(self, run: RunContext) -> str | None:
        try:
            return await run.client.call_function(run.contract_address, contracts.POOL_NAME) or None
        except (ChainClientError, AbiDecodeError) as e:
            logger.debug("name() unavailable on %s: %s", run.contract_address, e)
            return None

    async def _on_slots_purchased(self, ctx: EventContext) -> None:
        info: PoolInfo = ctx.prepared
        pool_address = ctx.run.contract_address
        participant = ctx.args["participant"]
        quantity = int(ctx.args["quantity"])
        amount = info.slot_fee * quantity

        await ctx.participants.record_purchase(
            SlotPurchaseDTO(
                chain_id=ctx.chain_id,
                pool_address=pool_address,
                participant_address=participant,
                quantity=quantity,
                amount=amount,
                block_number=ctx.event.block_number,
                transaction_hash=ctx.event.transaction_hash,
                log_index=ctx.event.log_index,
                timestamp=ctx.timestamp,
            )
        )
        await ctx.participants.recompute_purchases(ctx.chain_id, pool_address, participant)
        await ctx.pools.recompute_slots_sold(ctx.chain_id, pool_address)
        await ctx.record_activity(
            participant,
            "slot_purchase",
            pool_address=pool_address,
            pool_name=info.name,
            quantity=quantity,
            amount=amount,
        )

    async def _on_winners_selected(self, ctx: EventContext) -> None:
        info: PoolInfo = ctx.prepared
        pool_address = ctx.run.contract_address
        winners: list[str] = ctx.args["winners"]

        for index, winner in enumerate(winners):
            await ctx.winners.upsert_selected(
                ctx.chain_id,
                pool_address,
                winner,
                index,
                block_number=ctx.event.block_number,
                selected_at=ctx.timestamp,
                transaction_hash=ctx.event.transaction_hash,
            )
            await ctx.record_activity(winner, "prize_won", pool_address=pool_address, pool_name=info.name)

        await ctx.pools.advance_state(ctx.chain_id, pool_address, PoolState.COMPLETED)
        await ctx.pools.update(ctx.chain_id, pool_address, winners_selected=len(winners))
        for winner in dict.fromkeys(winners):
            await ctx.participants.recompute_wins(ctx.chain_id, pool_address, winner)
        ctx.run.flags.add(WINNERS_SELECTED_FLAG)

    async def _on_random_requested(self, ctx: EventContext) -> None:
        info: PoolInfo = ctx.prepared
        pool_address = ctx.run.contract_address
        await ctx.record_activity(
            ctx.args["caller"],
            "randomness_requested",
            pool_address=pool_address,
            pool_name=info.name,
            request_id=str(ctx.args["requestId"]),
        )
        await ctx.pools.advance_state(ctx.chain_id, pool_address, PoolState.DRAWING)

    async def _on_prize_claimed(self, ctx: EventContext) -> None:
        info: PoolInfo = ctx.prepared
        pool_address = ctx.run.contract_address
        winner = ctx.args["winner"]

        claimed = await ctx.winners.mark_claimed(
            ctx.chain_id,
            pool_address,
            winner,
            block_number=ctx.event.block_number,
            claimed_at=ctx.timestamp,
            transaction_hash=ctx.event.transaction_hash,
        )
        if not claimed:
            logger.warning("[chain %d] PrizeClaimed for unknown winner %s in %s", ctx.chain_id, winner, pool_address)
        await ctx.participants.recompute_wins(ctx.chain_id, pool_address, winner)
        await ctx.record_activity(
            winner,
            "prize_claimed",
            pool_address=pool_address,
            pool_name=info.name,
            amount=Decimal(ctx.args["amount"]),
        )

    async def _on_refund_claimed(self, ctx: EventContext) -> None:
        info: PoolInfo = ctx.prepared
        pool_address = ctx.run.contract_address
        participant = ctx.args["participant"]

        await ctx.participants.mark_refunded(ctx.chain_id, pool_address, participant)
        await ctx.record_activity(
            participant,
            "refund_claimed",
            pool_address=pool_address,
            pool_name=info.name,
            amount=Decimal(ctx.args["amount"]),
        )

    async def _on_pool_activated(self, ctx: EventContext) -> None:
        pool_address = ctx.run.contract_address
        activated = int(ctx.args["timestamp"])

        await ctx.pools.advance_state(ctx.chain_id, pool_address, PoolState.ACTIVE)
        await ctx.pools.update(
            ctx.chain_id,
            pool_address,
            activated_at=datetime.fromtimestamp(activated, tz=UTC),
            activated_block=ctx.event.block_number,
        )
        await ctx.archive({"activatedTimestamp": activated})

    async def _on_pool_ended(self, ctx: EventContext) -> None:
        pool_address = ctx.run.contract_address
        ended = int(ctx.args["timestamp"])

        pool = await ctx.pools.get(ctx.chain_id, pool_address)
        actual_duration: int | None = None
        if pool is not None and pool.activated_at is not None:
            actual_duration = ended - int(pool.activated_at.timestamp())

        await ctx.pools.advance_state(ctx.chain_id, pool_address, PoolState.ENDED)
        await ctx.pools.update(
            ctx.chain_id,
            pool_address,
            ended_at=datetime.fromtimestamp(ended, tz=UTC),
            ended_block=ctx.event.block_number,
            actual_duration=actual_duration,
        )
        await ctx.archive({"endedTimestamp": ended, "actualDuration": actual_duration})

    async def finalize(self, run: RunContext) -> None:
        if WINNERS_SELECTED_FLAG in run.flags:
            await self.refresh_refundable_amounts(run)

        async with transaction(self.session_factory) as session:
            await PoolRepository(session).update(
                run.chain_id,
                run.contract_address,
                last_synced_block=run.to_block,
                last_synced_at=datetime.now(UTC),
            )

    async def refresh_refundable_amounts(self, run: RunContext) -> int:
        """Store ``getRefundableAmount`` for every participant who has not been refunded."""
        async with transaction(self.session_factory) as session:
            participants = await ParticipantRepository(session).list_unrefunded(
                run.chain_id, run.contract_address
            )

        async def _read(participant: str) -> tuple[str, Any]:
            try:
                amount = await run.client.call_function(
                    run.contract_address, contracts.POOL_REFUNDABLE_AMOUNT, participant
                )
            except (ChainClientError, AbiDecodeError, ValueError) as e:
                logger.warning("Failed to read refundable amount for %s: %s", participant, e)
                return participant, None
            return participant, amount

        amounts = await asyncio.gather(*(_read(p) for p in participants))
        updated = 0
        async with transaction(self.session_factory) as session:
            repo = ParticipantRepository(session)
            for participant, amount in amounts:
                if amount is None:
                    continue
                await repo.set_refundable_amount(run.chain_id, run.contract_address, participant, amount)
                updated += 1
        logger.info(
            "[chain %d] Updated refundable amounts for %d/%d participants of %s",
            run.chain_id,
            updated,
            len(participants),
            run.contract_address,
        )
        return updated
