"""Pool discovery: PoolCreated / PoolMetadataSet / SocialTasksEnabled."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from raffle_indexer import contracts
from raffle_indexer.artwork import ArtworkResolver, resolve_prize_artwork
from raffle_indexer.chain.abi import DecodedEvent, is_zero_address
from raffle_indexer.chain.client import read_views
from raffle_indexer.indexer.base import (
    DEFAULT_LOGS_CHUNK_SIZE,
    ContractIndexer,
    EventContext,
    HandlerEntry,
    RunContext,
)
from raffle_indexer.indexer.collection_views import read_collection_state

if TYPE_CHECKING:
    from raffle_indexer.chain.client import ChainClient
    from raffle_indexer.chain.registry import ProviderRegistry
    from raffle_indexer.storage.database import SessionFactory

logger = logging.getLogger(__name__)

PRIZE_NFT = "nft"
PRIZE_ERC20 = "erc20"
PRIZE_NATIVE = "native"
PRIZE_NONE = "none"


def _address_or_none(value: Any) -> str | None:
    return None if is_zero_address(value) else str(value).lower()


def prize_kind(
    *,
    is_prized: bool,
    prize_collection: str | None,
    erc20_prize_token: str | None,
    erc20_prize_amount: int,
    native_prize_amount: int,
) -> str:
    """Classify a pool's prize from its view values."""
    if is_prized and prize_collection:
        return PRIZE_NFT
    if erc20_prize_token and erc20_prize_amount > 0:
        return PRIZE_ERC20
    if native_prize_amount > 0:
        return PRIZE_NATIVE
    return PRIZE_NONE


@dataclass
class PoolSnapshot:
    """Chain reads for a newly created pool."""

    values: dict[str, Any]
    artwork_url: str | None = None
    erc20_symbol: str | None = None
    external_collection: dict[str, Any] | None = field(default=None)


async def read_pool_views(client: ChainClient, pool_address: str) -> dict[str, Any]:
    """Read a pool's configuration views.

    Lifecycle and economics views are required; a failure there propagates.
    Prize and flag views fall back to neutral defaults.
    """
    required = {
        "start_time": contracts.POOL_START_TIME,
        "duration": contracts.POOL_DURATION,
        "slot_fee": contracts.POOL_SLOT_FEE,
        "slot_limit": contracts.POOL_SLOT_LIMIT,
        "winners_count": contracts.POOL_WINNERS_COUNT,
        "max_slots_per_address": contracts.POOL_MAX_SLOTS_PER_ADDRESS,
        "state": contracts.POOL_STATE,
        "is_prized": contracts.POOL_IS_PRIZED,
    }
    required_values = await asyncio.gather(
        *(client.call_function(pool_address, fn) for fn in required.values())
    )
    optional = await read_views(
        client,
        pool_address,
        {
            "name": (contracts.POOL_NAME, ""),
            "prize_collection": (contracts.POOL_PRIZE_COLLECTION, None),
            "prize_token_id": (contracts.POOL_PRIZE_TOKEN_ID, 0),
            "standard": (contracts.POOL_STANDARD, 0),
            "is_collab_pool": (contracts.POOL_IS_COLLAB, False),
            "uses_custom_fee": (contracts.POOL_USES_CUSTOM_FEE, False),
            "revenue_recipient": (contracts.POOL_REVENUE_RECIPIENT, None),
            "is_external_collection": (contracts.POOL_IS_EXTERNAL_COLLECTION, False),
            "is_refundable": (contracts.POOL_IS_REFUNDABLE, False),
            "amount_per_winner": (contracts.POOL_AMOUNT_PER_WINNER, 1),
            "erc20_prize_token": (contracts.POOL_ERC20_PRIZE_TOKEN, None),
            "erc20_prize_amount": (contracts.POOL_ERC20_PRIZE_AMOUNT, 0),
            "native_prize_amount": (contracts.POOL_NATIVE_PRIZE_AMOUNT, 0),
            "is_escrowed_prize": (contracts.POOL_IS_ESCROWED_PRIZE, False),
            "holder_data": (contracts.POOL_HOLDER_DATA, None),
        },
    )
    return {**dict(zip(required, required_values, strict=True)), **optional}


def pool_row_values(views: dict[str, Any]) -> dict[str, Any]:
    """Map pool view values onto ``pools`` columns."""
    is_prized = bool(views["is_prized"])
    prize_collection = _address_or_none(views["prize_collection"])
    erc20_token = _address_or_none(views["erc20_prize_token"])
    erc20_amount = int(views["erc20_prize_amount"] or 0)
    native_amount = int(views["native_prize_amount"] or 0)

    values: dict[str, Any] = {
        "name": views["name"] or None,
        "state": int(views["state"]),
        "start_time": int(views["start_time"]),
        "duration": int(views["duration"]),
        "slot_fee": Decimal(views["slot_fee"]),
        "slot_limit": int(views["slot_limit"]),
        "winners_count": int(views["winners_count"]),
        "max_slots_per_address": int(views["max_slots_per_address"]),
        "is_prized": is_prized,
        "is_collab_pool": bool(views["is_collab_pool"]),
        "uses_custom_fee": bool(views["uses_custom_fee"]),
        "revenue_recipient": _address_or_none(views["revenue_recipient"]),
        "is_external_collection": bool(views["is_external_collection"]),
        "is_refundable": bool(views["is_refundable"]),
        "is_escrowed_prize": bool(views["is_escrowed_prize"]),
        "amount_per_winner": Decimal(views["amount_per_winner"] or 1),
        "erc20_prize_token": erc20_token,
        "erc20_prize_amount": Decimal(erc20_amount) if erc20_token else None,
        "native_prize_amount": Decimal(native_amount) if native_amount else None,
        "prize_kind": prize_kind(
            is_prized=is_prized,
            prize_collection=prize_collection,
            erc20_prize_token=erc20_token,
            erc20_prize_amount=erc20_amount,
            native_prize_amount=native_amount,
        ),
    }
    if is_prized:
        values["prize_collection"] = prize_collection
        values["prize_token_id"] = Decimal(views["prize_token_id"] or 0)
        values["standard"] = int(views["standard"] or 0)

    holder = views.get("holder_data")
    if holder and not is_zero_address(holder[0]):
        values["holder_token_address"] = str(holder[0]).lower()
        values["holder_token_standard"] = int(holder[1])
        values["min_holder_token_balance"] = Decimal(holder[2])
    return values


class PoolDeployerIndexer(ContractIndexer):
    """Discovers pools from the deployer and keeps their metadata current."""

    contract_type = "pool_deployer"
    contract_key = "poolDeployer"
    default_lookback_blocks = 100_000

    def __init__(
        self,
        registry: ProviderRegistry,
        session_factory: SessionFactory,
        *,
        logs_chunk_size: int = DEFAULT_LOGS_CHUNK_SIZE,
        artwork: ArtworkResolver | None = None,
    ) -> None:
        super().__init__(registry, session_factory, logs_chunk_size=logs_chunk_size)
        self.artwork = artwork

    def handlers(self) -> list[HandlerEntry]:
        return [
            HandlerEntry(contracts.POOL_CREATED, self._on_pool_created, prepare=self._read_pool),
            HandlerEntry(contracts.POOL_METADATA_SET, self._on_metadata_set),
            HandlerEntry(
                contracts.SOCIAL_TASKS_ENABLED,
                self._on_social_tasks_enabled,
                source="socialEngagementManager",
                optional=True,
            ),
        ]

    async def _read_pool(self, run: RunContext, event: DecodedEvent) -> PoolSnapshot:
        pool_address = event.args["pool"]
        creator = event.args["creator"]
        views = await read_pool_views(run.client, pool_address)
        snapshot = PoolSnapshot(values=pool_row_values(views))
        values = snapshot.values

        if values["erc20_prize_token"]:
            symbols = await read_views(
                run.client, values["erc20_prize_token"], {"symbol": (contracts.ERC20_SYMBOL, None)}
            )
            snapshot.erc20_symbol = symbols["symbol"] or None

        if values["prize_kind"] == PRIZE_NFT:
            snapshot.artwork_url = await resolve_prize_artwork(
                run.client,
                values["prize_collection"],
                int(values["prize_token_id"]),
                values["standard"],
                values["is_escrowed_prize"],
                resolver=self.artwork,
            )
            if values["is_external_collection"]:
                snapshot.external_collection = await read_collection_state(
                    run.client, values["prize_collection"], values["standard"], fallback_owner=creator
                )
        return snapshot

    async def _on_pool_created(self, ctx: EventContext) -> None:
        snapshot: PoolSnapshot = ctx.prepared
        pool_address = ctx.args["pool"]
        creator = ctx.args["creator"]

        values = {
            **snapshot.values,
            "pool_id": int(ctx.args["poolId"]),
            "creator": creator,
            "created_at_block": ctx.event.block_number,
            "created_at_timestamp": ctx.timestamp,
        }
        if snapshot.artwork_url:
            values["artwork_url"] = snapshot.artwork_url
        if snapshot.erc20_symbol:
            values["erc20_prize_symbol"] = snapshot.erc20_symbol

        await ctx.pools.upsert(ctx.chain_id, pool_address, values)
        await ctx.pools.recompute_slots_sold(ctx.chain_id, pool_address)
        await ctx.record_activity(
            creator,
            "raffle_created",
            pool_address=pool_address,
            pool_name=values["name"],
        )

        if snapshot.external_collection is not None:
            await ctx.collections.upsert(
                ctx.chain_id,
                values["prize_collection"],
                {
                    **snapshot.external_collection,
                    "is_external": True,
                    "last_synced_block": ctx.event.block_number,
                    "last_synced_at": datetime.now(UTC),
                },
            )
        logger.info("[chain %d] Pool %s created by %s", ctx.chain_id, pool_address, creator)

    async def _on_metadata_set(self, ctx: EventContext) -> None:
        updated = await ctx.pools.update(
            ctx.chain_id,
            ctx.args["pool"],
            description=ctx.args["description"] or None,
            twitter_link=ctx.args["twitterLink"] or None,
            discord_link=ctx.args["discordLink"] or None,
            telegram_link=ctx.args["telegramLink"] or None,
        )
        if not updated:
            logger.warning("[chain %d] Metadata for unknown pool %s", ctx.chain_id, ctx.args["pool"])

    async def _on_social_tasks_enabled(self, ctx: EventContext) -> None:
        await ctx.pools.update(
            ctx.chain_id,
            ctx.args["pool"],
            social_task_description=ctx.args["taskDescription"] or None,
            social_engagement_required=True,
        )
