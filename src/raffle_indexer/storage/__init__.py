"""Storage layer - Database schemas and repositories."""

from raffle_indexer.storage.database import (
    DatabaseManager,
    SessionFactory,
    create_async_db_engine,
    create_async_session_factory,
    init_async_db,
    transaction,
)
from raffle_indexer.storage.models import Base
from raffle_indexer.storage.repos import (
    ActivityRepository,
    BlockchainEventRepository,
    CollectionRepository,
    LeaseRepository,
    ParticipantRepository,
    PoolRepository,
    RewardsRepository,
    SyncStateRepository,
    UserActivityDTO,
    WinnerRepository,
)

__all__ = [
    "ActivityRepository",
    "Base",
    "BlockchainEventRepository",
    "CollectionRepository",
    "DatabaseManager",
    "LeaseRepository",
    "ParticipantRepository",
    "PoolRepository",
    "RewardsRepository",
    "SessionFactory",
    "SyncStateRepository",
    "UserActivityDTO",
    "WinnerRepository",
    "create_async_db_engine",
    "create_async_session_factory",
    "init_async_db",
    "transaction",
]
