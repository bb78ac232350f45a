"""End-to-end tests for pool discovery and pool event projection."""

from decimal import Decimal

import pytest

from raffle_indexer import contracts
from raffle_indexer.chain.client import RPCError
from raffle_indexer.indexer.base import IndexingFailed, InvalidRequest
from raffle_indexer.indexer.pool import PoolIndexer, PoolState
from raffle_indexer.indexer.pool_deployer import PRIZE_ERC20, PRIZE_NONE, PoolDeployerIndexer
from raffle_indexer.storage.database import transaction
from raffle_indexer.storage.repos import (
    ActivityRepository,
    BlockchainEventRepository,
    ParticipantRepository,
    PoolRepository,
    SyncStateRepository,
    WinnerRepository,
)

CHAIN = 84532
DEPLOYER = "0x719bf1e882be2fd14785172f284a10a37a0c8fde"
SOCIAL = "0x421212ac86836c9f1420d9ab1d7804de2e869f3f"
POOL = "0x00000000000000000000000000000000000000a1"
CREATOR = "0x00000000000000000000000000000000000000c1"
ALICE = "0x00000000000000000000000000000000000000b1"
BOB = "0x00000000000000000000000000000000000000b2"
TOKEN = "0x00000000000000000000000000000000000000e1"


def configure_pool_views(chain, address: str = POOL, overrides: dict | None = None) -> None:
    views = {
        contracts.POOL_NAME: "Genesis Raffle",
        contracts.POOL_START_TIME: 1_700_000_000,
        contracts.POOL_DURATION: 86_400,
        contracts.POOL_SLOT_FEE: 10,
        contracts.POOL_SLOT_LIMIT: 100,
        contracts.POOL_WINNERS_COUNT: 1,
        contracts.POOL_MAX_SLOTS_PER_ADDRESS: 10,
        contracts.POOL_STATE: 0,
        contracts.POOL_IS_PRIZED: False,
        contracts.POOL_IS_REFUNDABLE: True,
        **(overrides or {}),
    }
    for function, value in views.items():
        chain.set_view(address, function, value)


async def _pool(session_factory, address: str = POOL):
    async with transaction(session_factory) as session:
        return await PoolRepository(session).get(CHAIN, address)


async def _participant(session_factory, who: str):
    async with transaction(session_factory) as session:
        return await ParticipantRepository(session).get(CHAIN, POOL, who)


async def _activity_count(session_factory, activity_type: str | None = None) -> int:
    async with transaction(session_factory) as session:
        return await ActivityRepository(session).count(CHAIN, activity_type=activity_type)


class TestPoolDeployerIndexer:
    @pytest.mark.asyncio
    async def test_pool_created_builds_row(self, chain, registry, session_factory) -> None:
        configure_pool_views(chain)
        chain.add_log(contracts.POOL_CREATED, DEPLOYER, 100, pool=POOL, creator=CREATOR, poolId=7)

        result = await PoolDeployerIndexer(registry, session_factory).index(CHAIN)

        assert result.contract_address == DEPLOYER
        assert result.events_found == {"PoolCreated": 1, "PoolMetadataSet": 0, "SocialTasksEnabled": 0}
        assert (result.success, result.errors) == (1, 0)

        pool = await _pool(session_factory)
        assert pool is not None
        assert pool.name == "Genesis Raffle"
        assert pool.creator == CREATOR
        assert pool.state == PoolState.PENDING
        assert pool.slot_fee == Decimal(10)
        assert pool.slot_limit == 100
        assert pool.created_at_block == 100
        assert pool.prize_kind == PRIZE_NONE
        assert pool.slots_sold == 0
        assert await _activity_count(session_factory, "raffle_created") == 1

    @pytest.mark.asyncio
    async def test_erc20_prize_and_metadata(self, chain, registry, session_factory) -> None:
        configure_pool_views(
            chain,
            overrides={contracts.POOL_ERC20_PRIZE_TOKEN: TOKEN, contracts.POOL_ERC20_PRIZE_AMOUNT: 500},
        )
        chain.set_view(TOKEN, contracts.ERC20_SYMBOL, "USDC")
        chain.add_log(contracts.POOL_CREATED, DEPLOYER, 100, pool=POOL, creator=CREATOR, poolId=1)
        chain.add_log(
            contracts.POOL_METADATA_SET,
            DEPLOYER,
            101,
            pool=POOL,
            description="Win a prize",
            twitterLink="https://x.com/raffle",
            discordLink="",
            telegramLink="",
        )
        chain.add_log(contracts.SOCIAL_TASKS_ENABLED, SOCIAL, 102, pool=POOL, taskDescription="Follow us")

        result = await PoolDeployerIndexer(registry, session_factory).index(CHAIN, DEPLOYER)

        assert result.success == 3
        pool = await _pool(session_factory)
        assert pool is not None
        assert pool.prize_kind == PRIZE_ERC20
        assert pool.erc20_prize_token == TOKEN
        assert pool.erc20_prize_symbol == "USDC"
        assert pool.description == "Win a prize"
        assert pool.social_task_description == "Follow us"
        assert pool.social_engagement_required

    @pytest.mark.asyncio
    async def test_missing_required_view_counts_as_error(self, chain, registry, session_factory) -> None:
        configure_pool_views(chain)
        del chain.views[(POOL, contracts.POOL_SLOT_FEE.signature)]
        chain.add_log(contracts.POOL_CREATED, DEPLOYER, 100, pool=POOL, creator=CREATOR, poolId=7)

        result = await PoolDeployerIndexer(registry, session_factory).index(CHAIN)

        assert (result.success, result.errors) == (0, 1)
        assert await _pool(session_factory) is None

    @pytest.mark.asyncio
    async def test_undeployed_network_is_invalid(self, registry, session_factory) -> None:
        with pytest.raises(InvalidRequest, match="poolDeployer is not deployed"):
            await PoolDeployerIndexer(registry, session_factory).index(1)


class TestPoolIndexer:
    @pytest.mark.asyncio
    async def test_discovery_then_purchase_is_idempotent(self, chain, registry, session_factory) -> None:
        configure_pool_views(chain, overrides={contracts.POOL_STATE: 1})
        chain.add_log(contracts.POOL_CREATED, DEPLOYER, 100, pool=POOL, creator=CREATOR, poolId=7)
        chain.add_log(contracts.SLOTS_PURCHASED, POOL, 101, participant=ALICE, quantity=3)

        await PoolDeployerIndexer(registry, session_factory).index(CHAIN)
        indexer = PoolIndexer(registry, session_factory)
        first = await indexer.index(CHAIN, POOL)

        assert first.events_found["SlotsPurchased"] == 1
        assert (first.success, first.errors) == (1, 0)

        alice = await _participant(session_factory, ALICE)
        assert alice is not None
        assert alice.slots_purchased == 3
        assert alice.total_spent == Decimal(30)
        pool = await _pool(session_factory)
        assert pool is not None
        assert pool.slots_sold == 3
        assert pool.last_synced_block == 200

        # Replay the same range: nothing changes.
        await indexer.index(CHAIN, POOL, from_block=0, to_block=200)

        alice = await _participant(session_factory, ALICE)
        assert alice is not None
        assert alice.slots_purchased == 3
        assert alice.total_spent == Decimal(30)
        pool = await _pool(session_factory)
        assert pool is not None
        assert pool.slots_sold == 3
        assert await _activity_count(session_factory, "slot_purchase") == 1

    @pytest.mark.asyncio
    async def test_cursor_resumes_after_last_block(self, chain, registry, session_factory, seed_pool) -> None:
        await seed_pool(POOL)
        indexer = PoolIndexer(registry, session_factory)

        first = await indexer.index(CHAIN, POOL)
        chain.head = 250
        second = await indexer.index(CHAIN, POOL)
        third = await indexer.index(CHAIN, POOL)

        assert (first.from_block, first.to_block) == (1, 200)
        assert (second.from_block, second.to_block) == (201, 250)
        assert third.message == "No new blocks to index"
        async with transaction(session_factory) as session:
            cursor = await SyncStateRepository(session).get(CHAIN, "pool", POOL)
        assert cursor is not None
        assert cursor.last_indexed_block == 250
        assert cursor.last_block_hash == f"0x{250:064x}"

    @pytest.mark.asyncio
    async def test_first_scan_starts_at_creation_block(self, chain, registry, session_factory, seed_pool) -> None:
        chain.head = 50_000
        await seed_pool(POOL, created_at_block=1_000)
        chain.add_log(contracts.SLOTS_PURCHASED, POOL, 1_500, participant=ALICE, quantity=2)

        result = await PoolIndexer(registry, session_factory).index(CHAIN, POOL)

        assert (result.from_block, result.to_block) == (1_000, 50_000)
        pool = await _pool(session_factory)
        assert pool is not None
        assert pool.slots_sold == 2

    @pytest.mark.asyncio
    async def test_malformed_event_is_counted_and_skipped(self, chain, registry, session_factory, seed_pool) -> None:
        await seed_pool(POOL)
        for i in range(5):
            log = chain.add_log(contracts.SLOTS_PURCHASED, POOL, 110 + i, participant=ALICE, quantity=1)
            if i == 2:
                log["data"] = "0x1234"

        result = await PoolIndexer(registry, session_factory).index(CHAIN, POOL)

        assert result.events_found["SlotsPurchased"] == 5
        assert (result.success, result.errors) == (4, 1)
        payload = result.to_dict()
        assert payload["recordsProcessed"] == {"success": 4, "errors": 1}
        assert payload["blocksScanned"] == {"from": 1, "to": 200, "total": 200}

        alice = await _participant(session_factory, ALICE)
        assert alice is not None
        assert alice.slots_purchased == 4
        async with transaction(session_factory) as session:
            cursor = await SyncStateRepository(session).get(CHAIN, "pool", POOL)
        assert cursor is not None
        assert cursor.last_indexed_block == 200

    @pytest.mark.asyncio
    async def test_lifecycle_events(self, chain, registry, session_factory, seed_pool) -> None:
        await seed_pool(POOL, state=0)
        chain.add_log(contracts.POOL_ACTIVATED, POOL, 101, timestamp=1_700_000_000)
        chain.add_log(contracts.SLOTS_PURCHASED, POOL, 102, participant=ALICE, quantity=2)
        chain.add_log(contracts.SLOTS_PURCHASED, POOL, 102, log_index=1, participant=BOB, quantity=1)
        chain.add_log(contracts.POOL_ENDED, POOL, 110, timestamp=1_700_003_600)
        chain.add_log(contracts.RANDOM_REQUESTED, POOL, 111, requestId=42, caller=CREATOR)
        chain.add_log(contracts.WINNERS_SELECTED, POOL, 120, winners=[ALICE])
        chain.add_log(contracts.PRIZE_CLAIMED, POOL, 130, winner=ALICE, amount=1)
        chain.add_log(contracts.REFUND_CLAIMED, POOL, 131, participant=BOB, amount=10)
        chain.set_view(POOL, contracts.POOL_REFUNDABLE_AMOUNT, lambda who: 10 if who == BOB else 0)

        result = await PoolIndexer(registry, session_factory).index(CHAIN, POOL)

        assert result.errors == 0
        assert result.success == 8
        pool = await _pool(session_factory)
        assert pool is not None
        assert pool.state == PoolState.COMPLETED
        assert pool.winners_selected == 1
        assert pool.slots_sold == 3
        assert pool.activated_block == 101
        assert pool.ended_block == 110
        assert pool.actual_duration == 3600

        alice = await _participant(session_factory, ALICE)
        bob = await _participant(session_factory, BOB)
        assert alice is not None and bob is not None
        assert (alice.wins_count, alice.prizes_claimed) == (1, 1)
        assert bob.refund_claimed
        assert bob.refundable_amount == Decimal(0)

        async with transaction(session_factory) as session:
            winners = await WinnerRepository(session).list_for_pool(CHAIN, POOL)
            archived = await BlockchainEventRepository(session).archive(
                CHAIN,
                contract_address=POOL,
                event_name="PoolActivated",
                block_number=101,
                transaction_hash=f"0x{101:060x}{0:04x}",
                log_index=0,
                event_data={},
                block_timestamp=None,
            )
        assert [(w.winner_address, w.prize_claimed) for w in winners] == [(ALICE, True)]
        assert not archived
        assert await _activity_count(session_factory, "randomness_requested") == 1

    @pytest.mark.asyncio
    async def test_state_never_regresses_on_replay(self, chain, registry, session_factory, seed_pool) -> None:
        await seed_pool(POOL, state=1)
        chain.add_log(contracts.WINNERS_SELECTED, POOL, 120, winners=[ALICE])
        chain.add_log(contracts.POOL_ENDED, POOL, 121, timestamp=1_700_003_600)
        indexer = PoolIndexer(registry, session_factory)

        await indexer.index(CHAIN, POOL)
        async with transaction(session_factory) as session:
            await PoolRepository(session).update(CHAIN, POOL, state=PoolState.ALL_PRIZES_CLAIMED)
        await indexer.index(CHAIN, POOL, from_block=0, to_block=200)

        pool = await _pool(session_factory)
        assert pool is not None
        assert pool.state == PoolState.ALL_PRIZES_CLAIMED

    @pytest.mark.asyncio
    async def test_absorbing_state_is_kept(self, chain, registry, session_factory, seed_pool) -> None:
        await seed_pool(POOL, state=PoolState.DELETED)
        chain.add_log(contracts.POOL_ACTIVATED, POOL, 101, timestamp=1_700_000_000)

        await PoolIndexer(registry, session_factory).index(CHAIN, POOL)

        pool = await _pool(session_factory)
        assert pool is not None
        assert pool.state == PoolState.DELETED

    @pytest.mark.asyncio
    async def test_unknown_pool_reads_fee_from_chain(self, chain, registry, session_factory) -> None:
        chain.set_view(POOL, contracts.POOL_SLOT_FEE, 25)
        chain.add_log(contracts.SLOTS_PURCHASED, POOL, 101, participant=ALICE, quantity=2)

        result = await PoolIndexer(registry, session_factory).index(CHAIN, POOL)

        assert result.success == 1
        alice = await _participant(session_factory, ALICE)
        assert alice is not None
        assert alice.total_spent == Decimal(50)

    @pytest.mark.asyncio
    async def test_address_is_required(self, registry, session_factory) -> None:
        with pytest.raises(InvalidRequest, match="contractAddress is required"):
            await PoolIndexer(registry, session_factory).index(CHAIN)

    @pytest.mark.asyncio
    async def test_rpc_failure_marks_cursor_unhealthy(self, chain, registry, session_factory, seed_pool) -> None:
        await seed_pool(POOL)
        chain.get_logs.side_effect = RPCError("rate limited")

        with pytest.raises(IndexingFailed) as exc_info:
            await PoolIndexer(registry, session_factory).index(CHAIN, POOL)

        assert isinstance(exc_info.value.cause, RPCError)
        async with transaction(session_factory) as session:
            cursor = await SyncStateRepository(session).get(CHAIN, "pool", POOL)
        assert cursor is not None
        assert not cursor.is_healthy
        assert cursor.last_indexed_block is None
        assert "rate limited" in (cursor.error_message or "")
