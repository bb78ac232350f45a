"""Contract event indexers."""

from raffle_indexer.indexer.base import (
    ContractIndexer,
    EventContext,
    HandlerEntry,
    IndexingFailed,
    IndexResult,
    InvalidRequest,
    RunContext,
)
from raffle_indexer.indexer.collection import CollectionIndexer
from raffle_indexer.indexer.external import ExternalCollectionRefresher, RefreshResult
from raffle_indexer.indexer.nft_factory import NftFactoryIndexer
from raffle_indexer.indexer.pool import LIVE_STATES, PoolIndexer, PoolState
from raffle_indexer.indexer.pool_deployer import PoolDeployerIndexer
from raffle_indexer.indexer.rewards import RewardsIndexer

INDEXER_TYPES: dict[str, type[ContractIndexer]] = {
    "pool-deployer": PoolDeployerIndexer,
    "pool": PoolIndexer,
    "nft-factory": NftFactoryIndexer,
    "collection": CollectionIndexer,
    "rewards": RewardsIndexer,
}

__all__ = [
    "INDEXER_TYPES",
    "LIVE_STATES",
    "CollectionIndexer",
    "ContractIndexer",
    "EventContext",
    "ExternalCollectionRefresher",
    "HandlerEntry",
    "IndexResult",
    "IndexingFailed",
    "InvalidRequest",
    "NftFactoryIndexer",
    "PoolDeployerIndexer",
    "PoolIndexer",
    "PoolState",
    "RefreshResult",
    "RewardsIndexer",
    "RunContext",
]
