"""Tests for collection discovery, collection events and external refresh."""

from datetime import UTC, datetime, timedelta

import pytest

from raffle_indexer import contracts
from raffle_indexer.chain.client import RPCError
from raffle_indexer.indexer.collection import CollectionIndexer
from raffle_indexer.indexer.collection_views import bounded_int, clean_uri
from raffle_indexer.indexer.external import ExternalCollectionRefresher
from raffle_indexer.indexer.nft_factory import NftFactoryIndexer
from raffle_indexer.storage.database import transaction
from raffle_indexer.storage.repos import ActivityRepository, CollectionRepository

CHAIN = 84532
FACTORY = "0x45d4f0dc925056e6203bfbf14e56762217e47cb4"
COLLECTION = "0x00000000000000000000000000000000000000d1"
EXTERNAL = "0x00000000000000000000000000000000000000d2"
CREATOR = "0x00000000000000000000000000000000000000c1"
OWNER = "0x00000000000000000000000000000000000000c2"
ALICE = "0x00000000000000000000000000000000000000b1"
ZERO = "0x0000000000000000000000000000000000000000"
POOL = "0x00000000000000000000000000000000000000a1"


async def _collection(session_factory, address: str = COLLECTION):
    async with transaction(session_factory) as session:
        return await CollectionRepository(session).get(CHAIN, address)


async def _activities(session_factory, user: str):
    async with transaction(session_factory) as session:
        return await ActivityRepository(session).list_for_user(CHAIN, user)


class TestCollectionViews:
    def test_clean_uri_drops_hashes_and_blanks(self) -> None:
        assert clean_uri("ipfs://bafy/") == "ipfs://bafy/"
        assert clean_uri("   ") is None
        assert clean_uri("0x" + "ab" * 32) is None
        assert clean_uri(None) is None

    def test_bounded_int(self) -> None:
        assert bounded_int(42) == 42
        assert bounded_int(2**256 - 1) is None
        assert bounded_int(None) is None


class TestNftFactoryIndexer:
    @pytest.mark.asyncio
    async def test_collection_created(self, chain, registry, session_factory) -> None:
        chain.set_view(COLLECTION, contracts.COLLECTION_NAME, "Genesis Art")
        chain.set_view(COLLECTION, contracts.COLLECTION_SYMBOL, "GEN")
        chain.set_view(COLLECTION, contracts.COLLECTION_MAX_SUPPLY, 2**256 - 1)
        chain.set_view(COLLECTION, contracts.COLLECTION_DROP_URI, "ipfs://drop/")
        chain.set_view(COLLECTION, contracts.COLLECTION_ROYALTY_RECIPIENT, OWNER)
        chain.set_view(COLLECTION, contracts.COLLECTION_ROYALTY_BPS, 500)
        chain.add_log(contracts.COLLECTION_CREATED, FACTORY, 150, collection=COLLECTION, creator=CREATOR, standard=0)

        result = await NftFactoryIndexer(registry, session_factory).index(CHAIN)

        assert result.contract_address == FACTORY
        assert (result.from_block, result.to_block) == (0, 200)
        assert (result.success, result.errors) == (1, 0)

        collection = await _collection(session_factory)
        assert collection is not None
        assert collection.name == "Genesis Art"
        assert collection.symbol == "GEN"
        assert collection.creator == CREATOR
        assert collection.owner == CREATOR
        assert collection.standard == 0
        assert collection.max_supply is None
        assert collection.drop_uri == "ipfs://drop/"
        assert collection.deployed_block == 150
        assert not collection.is_external
        assert [a.activity_type for a in await _activities(session_factory, CREATOR)] == ["collection_created"]

    @pytest.mark.asyncio
    async def test_views_are_optional(self, chain, registry, session_factory) -> None:
        chain.add_log(contracts.COLLECTION_CREATED, FACTORY, 150, collection=COLLECTION, creator=CREATOR, standard=1)

        result = await NftFactoryIndexer(registry, session_factory).index(CHAIN)

        assert result.errors == 0
        collection = await _collection(session_factory)
        assert collection is not None
        assert collection.standard == 1
        assert collection.name is None
        assert collection.current_supply == 0


class TestCollectionIndexer:
    @pytest.mark.asyncio
    async def test_scans_from_deployment_block(self, chain, registry, session_factory) -> None:
        chain.head = 20_000
        async with transaction(session_factory) as session:
            await CollectionRepository(session).upsert(
                CHAIN, COLLECTION, {"creator": CREATOR, "standard": 0, "deployed_block": 120}
            )

        result = await CollectionIndexer(registry, session_factory).index(CHAIN, COLLECTION)

        assert (result.from_block, result.to_block) == (120, 20_000)

    @pytest.mark.asyncio
    async def test_reveal_mints_and_vesting(self, chain, registry, session_factory) -> None:
        async with transaction(session_factory) as session:
            await CollectionRepository(session).upsert(
                CHAIN, COLLECTION, {"creator": CREATOR, "standard": 0, "deployed_block": 100}
            )
        chain.set_view(COLLECTION, contracts.COLLECTION_TOTAL_SUPPLY, 3)
        chain.add_log(contracts.TRANSFER, COLLECTION, 110, **{"from": ZERO, "to": ALICE, "tokenId": 1})
        # Two mints in the same transaction collapse into one activity row.
        chain.add_log(
            contracts.TRANSFER,
            COLLECTION,
            111,
            transaction_hash="0x" + "11" * 32,
            **{"from": ZERO, "to": ALICE, "tokenId": 2},
        )
        chain.add_log(
            contracts.TRANSFER,
            COLLECTION,
            111,
            log_index=1,
            transaction_hash="0x" + "11" * 32,
            **{"from": ZERO, "to": ALICE, "tokenId": 3},
        )
        # Ordinary transfer: not a mint.
        chain.add_log(contracts.TRANSFER, COLLECTION, 112, **{"from": ALICE, "to": OWNER, "tokenId": 1})
        chain.add_log(contracts.REVEALED, COLLECTION, 120, baseURI="ipfs://revealed/")
        chain.add_log(
            contracts.VESTING_SCHEDULE_SET,
            COLLECTION,
            121,
            beneficiary=CREATOR,
            amount=10,
            startTime=1_700_000_000,
            duration=3600,
        )

        result = await CollectionIndexer(registry, session_factory).index(CHAIN, COLLECTION)

        assert result.events_found["Transfer"] == 4
        assert result.errors == 0

        collection = await _collection(session_factory)
        assert collection is not None
        assert collection.is_revealed
        assert collection.base_uri == "ipfs://revealed/"
        assert collection.current_supply == 3
        assert collection.total_supply == 3
        assert collection.last_synced_block == 200

        minted = [a for a in await _activities(session_factory, ALICE) if a.activity_type == "nft_minted"]
        assert len(minted) == 2
        assert await _activities(session_factory, OWNER) == []
        creator_types = sorted(a.activity_type for a in await _activities(session_factory, CREATOR))
        assert creator_types == ["collection_revealed", "vesting_scheduled"]

    @pytest.mark.asyncio
    async def test_erc1155_mints(self, chain, registry, session_factory) -> None:
        chain.add_log(
            contracts.TRANSFER_SINGLE,
            COLLECTION,
            110,
            operator=CREATOR,
            **{"from": ZERO, "to": ALICE, "id": 7, "value": 2},
        )
        chain.add_log(
            contracts.TRANSFER_BATCH,
            COLLECTION,
            111,
            operator=CREATOR,
            ids=[8, 9],
            values=[1, 4],
            **{"from": ZERO, "to": OWNER},
        )

        result = await CollectionIndexer(registry, session_factory).index(CHAIN, COLLECTION)

        assert result.success == 2
        [single] = await _activities(session_factory, ALICE)
        [batch] = await _activities(session_factory, OWNER)
        assert (single.quantity, int(single.token_id)) == (2, 7)
        assert (batch.quantity, int(batch.token_id)) == (5, 8)

    @pytest.mark.asyncio
    async def test_first_mint_in_a_transaction_wins(self, chain, registry, session_factory) -> None:
        tx = "0x" + "ab" * 32
        for log_index, (token_id, value) in enumerate(((7, 2), (8, 5))):
            chain.add_log(
                contracts.TRANSFER_SINGLE,
                COLLECTION,
                120,
                log_index=log_index,
                transaction_hash=tx,
                operator=CREATOR,
                **{"from": ZERO, "to": ALICE, "id": token_id, "value": value},
            )

        result = await CollectionIndexer(registry, session_factory).index(CHAIN, COLLECTION)

        assert result.extra["mintsFound"] == 7
        [mint] = await _activities(session_factory, ALICE)
        assert (mint.quantity, int(mint.token_id)) == (2, 7)

    @pytest.mark.asyncio
    async def test_unreadable_supply_keeps_stored_value(self, chain, registry, session_factory) -> None:
        async with transaction(session_factory) as session:
            await CollectionRepository(session).upsert(
                CHAIN, COLLECTION, {"creator": CREATOR, "standard": 0, "current_supply": 9, "deployed_block": 100}
            )
        chain.set_view(COLLECTION, contracts.COLLECTION_TOTAL_SUPPLY, RPCError("execution reverted"))

        await CollectionIndexer(registry, session_factory).index(CHAIN, COLLECTION)

        collection = await _collection(session_factory)
        assert collection is not None
        assert collection.current_supply == 9
        assert collection.last_synced_block == 200

    @pytest.mark.asyncio
    async def test_supply_estimated_from_mints_and_burns(self, chain, registry, session_factory) -> None:
        async with transaction(session_factory) as session:
            await CollectionRepository(session).upsert(
                CHAIN, COLLECTION, {"creator": CREATOR, "standard": 0, "current_supply": 0, "deployed_block": 100}
            )
        chain.set_view(COLLECTION, contracts.COLLECTION_TOTAL_SUPPLY, RPCError("execution reverted"))
        for token_id in (1, 2, 3):
            chain.add_log(contracts.TRANSFER, COLLECTION, 110 + token_id, **{"from": ZERO, "to": ALICE, "tokenId": token_id})
        chain.add_log(contracts.TRANSFER, COLLECTION, 130, **{"from": ALICE, "to": ZERO, "tokenId": 2})

        result = await CollectionIndexer(registry, session_factory).index(CHAIN, COLLECTION)

        assert result.to_dict()["mintsFound"] == 3
        assert result.to_dict()["burnsFound"] == 1
        collection = await _collection(session_factory)
        assert collection is not None
        assert collection.current_supply == 2

    @pytest.mark.asyncio
    async def test_erc1155_burns_are_counted(self, chain, registry, session_factory) -> None:
        chain.set_view(COLLECTION, contracts.COLLECTION_TOTAL_SUPPLY, 4)
        chain.add_log(
            contracts.TRANSFER_BATCH,
            COLLECTION,
            150,
            operator=ALICE,
            ids=[8, 9],
            values=[1, 2],
            **{"from": ALICE, "to": ZERO},
        )

        result = await CollectionIndexer(registry, session_factory).index(CHAIN, COLLECTION)

        assert (result.extra["mintsFound"], result.extra["burnsFound"]) == (0, 3)
        assert await _activities(session_factory, ALICE) == []


class TestExternalCollectionRefresher:
    @pytest.mark.asyncio
    async def test_refresh_explicit_addresses(self, chain, registry, session_factory) -> None:
        chain.set_view(EXTERNAL, contracts.COLLECTION_NAME, "Outside")
        chain.set_view(EXTERNAL, contracts.COLLECTION_OWNER, OWNER)

        result = await ExternalCollectionRefresher(registry, session_factory).refresh(CHAIN, addresses=[EXTERNAL])

        assert result.to_dict() == {
            "success": True,
            "chainId": CHAIN,
            "collectionsProcessed": 1,
            "successCount": 1,
            "errorCount": 0,
            "results": [{"address": EXTERNAL, "success": True}],
        }
        collection = await _collection(session_factory, EXTERNAL)
        assert collection is not None
        assert collection.is_external
        assert collection.name == "Outside"
        assert collection.owner == OWNER

    @pytest.mark.asyncio
    async def test_refresh_pool_prize_collection(self, chain, registry, session_factory, seed_pool) -> None:
        await seed_pool(
            POOL,
            is_prized=True,
            prize_collection=EXTERNAL,
            is_external_collection=True,
            standard=1,
        )

        result = await ExternalCollectionRefresher(registry, session_factory).refresh(CHAIN, pool_address=POOL)

        assert result.success_count == 1
        collection = await _collection(session_factory, EXTERNAL)
        assert collection is not None
        assert collection.standard == 1

    @pytest.mark.asyncio
    async def test_pool_without_external_prize(self, registry, session_factory, seed_pool) -> None:
        await seed_pool(POOL)

        result = await ExternalCollectionRefresher(registry, session_factory).refresh(CHAIN, pool_address=POOL)

        assert result.to_dict()["collectionsProcessed"] == 0

    @pytest.mark.asyncio
    async def test_refresh_stale_skips_recently_synced(self, registry, session_factory, seed_pool) -> None:
        other = "0x00000000000000000000000000000000000000d3"
        await seed_pool(POOL, is_prized=True, prize_collection=EXTERNAL, is_external_collection=True, standard=0)
        await seed_pool(
            "0x00000000000000000000000000000000000000a2",
            is_prized=True,
            prize_collection=other,
            is_external_collection=True,
            standard=0,
        )
        async with transaction(session_factory) as session:
            repo = CollectionRepository(session)
            await repo.upsert(CHAIN, EXTERNAL, {"standard": 0, "is_external": True, "last_synced_at": datetime.now(UTC)})
            await repo.upsert(
                CHAIN,
                other,
                {"standard": 0, "is_external": True, "last_synced_at": datetime.now(UTC) - timedelta(days=2)},
            )

        result = await ExternalCollectionRefresher(registry, session_factory).refresh(CHAIN, refresh_stale=True)

        assert [r["address"] for r in result.results] == [other]

    @pytest.mark.asyncio
    async def test_bad_view_value_is_reported_per_collection(self, chain, registry, session_factory) -> None:
        chain.set_view(EXTERNAL, contracts.COLLECTION_MAX_SUPPLY, "unlimited")

        result = await ExternalCollectionRefresher(registry, session_factory).refresh(CHAIN, addresses=[EXTERNAL])

        assert result.to_dict()["errorCount"] == 1
        assert result.results[0]["success"] is False
