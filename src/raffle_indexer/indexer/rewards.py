"""Rewards flywheel: points system, pool rewards, creator rewards.

Totals in the flywheel tables are running sums; each event adds its delta.
The run finalisation re-reads the points system and creator reward configs
from the contract, which resets the deposit totals those views expose.
"""

from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy.exc import SQLAlchemyError

from raffle_indexer import contracts
from raffle_indexer.chain.abi import AbiDecodeError, is_zero_address
from raffle_indexer.chain.client import ChainClientError, read_views
from raffle_indexer.indexer.base import ContractIndexer, EventContext, HandlerEntry, RunContext
from raffle_indexer.storage.database import transaction
from raffle_indexer.storage.repos import RewardsClaimDTO, RewardsRepository

logger = logging.getLogger(__name__)

CLAIM_POINTS = "points_rewards"
CLAIM_PARTICIPANT = "participant_rewards"
CLAIM_CREATOR = "creator_rewards"


class RewardsIndexer(ContractIndexer):
    """Mirrors rewards-flywheel deposits, claims and withdrawals."""

    contract_type = "rewards_flywheel"
    contract_key = "rewardsFlywheel"
    default_lookback_blocks = 100_000

    def handlers(self) -> list[HandlerEntry]:
        return [
            HandlerEntry(contracts.POINTS_SYSTEM_ACTIVATED, self._on_points_system_activated),
            HandlerEntry(contracts.POINTS_CLAIMS_ACTIVATED, self._on_points_claims_activated),
            HandlerEntry(contracts.POINTS_REWARD_TOKEN_DEPOSITED, self._on_points_deposited),
            HandlerEntry(contracts.POINTS_REWARD_CLAIMED, self._on_points_claimed),
            HandlerEntry(contracts.REWARDS_DEPOSITED, self._on_rewards_deposited),
            HandlerEntry(contracts.REWARDS_CLAIMED, self._on_rewards_claimed),
            HandlerEntry(contracts.REWARDS_WITHDRAWN, self._on_rewards_withdrawn),
            HandlerEntry(contracts.REWARD_PER_SLOT_CALCULATED, self._on_reward_per_slot),
            HandlerEntry(contracts.CREATOR_REWARDS_DEPOSITED, self._on_creator_deposited),
            HandlerEntry(contracts.CREATOR_REWARDS_CLAIMED, self._on_creator_claimed),
            HandlerEntry(contracts.CREATOR_REWARDS_WITHDRAWN, self._on_creator_withdrawn),
            HandlerEntry(contracts.CREATOR_REWARD_AMOUNT_UPDATED, self._on_creator_amount_updated),
        ]

    # -- points system ---------------------------------------------------

    async def _on_points_system_activated(self, ctx: EventContext) -> None:
        await ctx.rewards.update_points_system(
            ctx.chain_id,
            ctx.run.contract_address,
            is_active=bool(ctx.args["active"]),
            last_synced_block=ctx.event.block_number,
        )

    async def _on_points_claims_activated(self, ctx: EventContext) -> None:
        await ctx.rewards.update_points_system(
            ctx.chain_id,
            ctx.run.contract_address,
            claims_active=True,
            last_synced_block=ctx.event.block_number,
        )

    async def _on_points_deposited(self, ctx: EventContext) -> None:
        await ctx.rewards.add_points_deposit(
            ctx.chain_id,
            ctx.run.contract_address,
            token=ctx.args["token"],
            amount=int(ctx.args["amount"]),
            block_number=ctx.event.block_number,
        )

    async def _on_points_claimed(self, ctx: EventContext) -> None:
        user = ctx.args["user"]
        points = int(ctx.args["pointsClaimed"])
        await ctx.rewards.add_user_points(ctx.chain_id, user, points=points, claimed_at=ctx.timestamp)
        await ctx.rewards.record_claim(
            RewardsClaimDTO(
                chain_id=ctx.chain_id,
                pool_address=ctx.run.contract_address,
                claim_type=CLAIM_POINTS,
                claimant_address=user,
                amount=Decimal(ctx.args["tokenAmount"]),
                points_claimed=Decimal(points),
                block_number=ctx.event.block_number,
                transaction_hash=ctx.event.transaction_hash,
                timestamp=ctx.timestamp,
            )
        )

    # -- pool rewards ----------------------------------------------------

    async def _on_rewards_deposited(self, ctx: EventContext) -> None:
        await ctx.rewards.add_pool_deposit(
            ctx.chain_id,
            ctx.args["pool"],
            depositor=ctx.args["depositor"],
            token=ctx.args["token"],
            amount=int(ctx.args["amount"]),
            block_number=ctx.event.block_number,
            transaction_hash=ctx.event.transaction_hash,
        )

    async def _on_rewards_claimed(self, ctx: EventContext) -> None:
        pool = ctx.args["pool"]
        user = ctx.args["user"]
        token = ctx.args["token"]
        amount = int(ctx.args["amount"])

        await ctx.rewards.record_participant_claim(
            ctx.chain_id,
            pool,
            user,
            token=token,
            amount=amount,
            block_number=ctx.event.block_number,
            transaction_hash=ctx.event.transaction_hash,
            claimed_at=ctx.timestamp,
        )
        await ctx.rewards.add_pool_claim(ctx.chain_id, pool, amount=amount, slots=1)
        await ctx.rewards.record_claim(
            RewardsClaimDTO(
                chain_id=ctx.chain_id,
                pool_address=pool,
                claim_type=CLAIM_PARTICIPANT,
                claimant_address=user,
                token_address=token,
                amount=Decimal(amount),
                block_number=ctx.event.block_number,
                transaction_hash=ctx.event.transaction_hash,
                timestamp=ctx.timestamp,
            )
        )
        await ctx.record_activity(user, "rewards_claimed", pool_address=pool, amount=Decimal(amount))

    async def _on_rewards_withdrawn(self, ctx: EventContext) -> None:
        await ctx.rewards.add_pool_withdrawal(ctx.chain_id, ctx.args["pool"], amount=int(ctx.args["amount"]))

    async def _on_reward_per_slot(self, ctx: EventContext) -> None:
        await ctx.rewards.set_reward_per_slot(
            ctx.chain_id,
            ctx.args["pool"],
            reward_per_slot=int(ctx.args["rewardPerSlot"]),
            total_eligible_slots=int(ctx.args["totalEligibleSlots"]),
        )

    # -- creator rewards -------------------------------------------------

    async def _on_creator_deposited(self, ctx: EventContext) -> None:
        await ctx.rewards.add_creator_deposit(
            ctx.chain_id,
            ctx.args["token"],
            amount=int(ctx.args["amount"]),
            reward_amount_per_creator=int(ctx.args["rewardAmount"]),
            eligible_pool_count=int(ctx.args["eligiblePoolCount"]),
        )

    async def _on_creator_claimed(self, ctx: EventContext) -> None:
        pool = ctx.args["pool"]
        creator = ctx.args["creator"]
        token = ctx.args["token"]
        amount = int(ctx.args["amount"])
        fill_percentage = int(ctx.args["fillPercentage"])

        await ctx.rewards.record_creator_claim(
            ctx.chain_id,
            pool,
            creator,
            token=token,
            amount=amount,
            fill_percentage=fill_percentage,
            block_number=ctx.event.block_number,
            transaction_hash=ctx.event.transaction_hash,
            claimed_at=ctx.timestamp,
        )
        await ctx.rewards.add_creator_claim(ctx.chain_id, token, amount=amount)
        await ctx.rewards.record_claim(
            RewardsClaimDTO(
                chain_id=ctx.chain_id,
                pool_address=pool,
                claim_type=CLAIM_CREATOR,
                claimant_address=creator,
                token_address=token,
                amount=Decimal(amount),
                fill_percentage=fill_percentage,
                block_number=ctx.event.block_number,
                transaction_hash=ctx.event.transaction_hash,
                timestamp=ctx.timestamp,
            )
        )

    async def _on_creator_withdrawn(self, ctx: EventContext) -> None:
        await ctx.rewards.add_creator_withdrawal(ctx.chain_id, ctx.args["token"], amount=int(ctx.args["amount"]))

    async def _on_creator_amount_updated(self, ctx: EventContext) -> None:
        await ctx.rewards.update_creator_config(
            ctx.chain_id,
            ctx.args["token"],
            reward_amount_per_creator=Decimal(ctx.args["newAmount"]),
        )

    # -- finalisation ----------------------------------------------------

    async def finalize(self, run: RunContext) -> None:
        await self._sync_points_system(run)
        await self._sync_creator_rewards(run)

    async def _sync_points_system(self, run: RunContext) -> None:
        try:
            active, claims_active, token, rate, total_deposited = await run.client.call_function(
                run.contract_address, contracts.POINTS_SYSTEM_INFO
            )
        except (ChainClientError, AbiDecodeError) as e:
            logger.warning("[chain %d] Could not sync points system state: %s", run.chain_id, e)
            return

        try:
            async with transaction(self.session_factory) as session:
                await RewardsRepository(session).update_points_system(
                    run.chain_id,
                    run.contract_address,
                    is_active=bool(active),
                    claims_active=bool(claims_active),
                    reward_token=None if is_zero_address(token) else token,
                    points_per_token=Decimal(rate),
                    total_deposited=Decimal(total_deposited),
                    last_synced_block=run.to_block,
                )
        except SQLAlchemyError as e:
            logger.warning("[chain %d] Could not store points system state: %s", run.chain_id, e)

    async def _sync_creator_rewards(self, run: RunContext) -> None:
        try:
            tokens = await run.client.call_function(run.contract_address, contracts.CREATOR_REWARD_TOKENS)
        except (ChainClientError, AbiDecodeError) as e:
            logger.warning("[chain %d] Could not sync creator reward tokens: %s", run.chain_id, e)
            return

        for token in tokens:
            try:
                reward_amount, total_deposited, _ = await run.client.call_function(
                    run.contract_address, contracts.CREATOR_REWARD_CONFIG, token
                )
                meta = await read_views(
                    run.client,
                    token,
                    {"symbol": (contracts.ERC20_SYMBOL, None), "decimals": (contracts.ERC20_DECIMALS, 18)},
                )
                async with transaction(self.session_factory) as session:
                    await RewardsRepository(session).update_creator_config(
                        run.chain_id,
                        token,
                        token_symbol=meta["symbol"] or None,
                        token_decimals=int(meta["decimals"]),
                        reward_amount_per_creator=Decimal(reward_amount),
                        total_deposited=Decimal(total_deposited),
                        is_active=True,
                    )
            except (ChainClientError, AbiDecodeError, SQLAlchemyError) as e:
                logger.warning("[chain %d] Could not sync creator reward config for %s: %s", run.chain_id, token, e)

        logger.debug("[chain %d] Synced %d creator reward tokens", run.chain_id, len(tokens))
