"""Repository pattern implementations for data access.

This module provides data access abstractions for sync cursors, pools,
participants, winners, the activity feed, collections, rewards-flywheel
mirrors and orchestrator leases. Every write is keyed on the entity's
natural composite key so replays are harmless.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, fields
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from sqlalchemy import case, delete, func, or_, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from raffle_indexer.storage.models import (
    Base,
    BlockchainEventModel,
    CollectionModel,
    CreatorClaimModel,
    CreatorRewardsModel,
    LeaseModel,
    ParticipantClaimModel,
    ParticipantModel,
    PointsSystemModel,
    PoolModel,
    PoolRewardsModel,
    RewardsClaimModel,
    SlotPurchaseModel,
    SyncStateModel,
    UserActivityModel,
    UserPointsModel,
    WinnerModel,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

# Lifecycle states that no event or reconciliation ever leaves.
ABSORBING_STATES = (5, 7)

# Upserts bypass the identity map, so row reads must overwrite loaded objects.
_FRESH = {"populate_existing": True}


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _as_utc(value: datetime | None) -> datetime | None:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


def _columns(model: Base, dto_type: type[Any]) -> dict[str, Any]:
    values = {f.name: getattr(model, f.name) for f in fields(dto_type)}
    return {k: _as_utc(v) if isinstance(v, datetime) else v for k, v in values.items()}


def _insert(session: AsyncSession, model: type[Base]) -> Any:
    if session.get_bind().dialect.name == "postgresql":
        return pg_insert(model)
    return sqlite_insert(model)


async def _upsert(
    session: AsyncSession,
    model: type[Base],
    values: Mapping[str, Any],
    *,
    conflict: Sequence[str],
) -> None:
    """Insert a row, or overwrite its non-key values on conflict."""
    stmt = _insert(session, model).values(**values)
    set_: dict[str, Any] = {k: stmt.excluded[k] for k in values if k not in conflict}
    if "updated_at" in model.__table__.c and "updated_at" not in set_:
        set_["updated_at"] = _utcnow()
    stmt = stmt.on_conflict_do_update(index_elements=list(conflict), set_=set_)
    await session.execute(stmt)


async def _insert_ignore(
    session: AsyncSession,
    model: type[Base],
    values: Mapping[str, Any],
    *,
    conflict: Sequence[str],
) -> bool:
    """Insert a row unless its natural key exists. Returns True if a row was written."""
    stmt = _insert(session, model).values(**values).on_conflict_do_nothing(index_elements=list(conflict))
    result = await session.execute(stmt)
    return bool(result.rowcount)


# ---------------------------------------------------------------------------
# Sync cursors
# ---------------------------------------------------------------------------


@dataclass
class SyncStateDTO:
    """Data transfer object for indexer sync cursors."""

    chain_id: int
    contract_type: str
    contract_address: str
    last_indexed_block: int | None
    last_block_hash: str | None
    last_indexed_at: datetime | None
    is_healthy: bool
    error_message: str | None

    @classmethod
    def from_model(cls, model: SyncStateModel) -> SyncStateDTO:
        return cls(
            chain_id=model.chain_id,
            contract_type=model.contract_type,
            contract_address=model.contract_address,
            last_indexed_block=model.last_indexed_block,
            last_block_hash=model.last_block_hash,
            last_indexed_at=model.last_indexed_at,
            is_healthy=model.is_healthy,
            error_message=model.error_message,
        )


class SyncStateRepository:
    """Repository for per-contract indexing cursors."""

    _KEY = ("chain_id", "contract_type", "contract_address")

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, chain_id: int, contract_type: str, contract_address: str) -> SyncStateDTO | None:
        result = await self.session.execute(
            select(SyncStateModel).where(
                SyncStateModel.chain_id == chain_id,
                SyncStateModel.contract_type == contract_type,
                SyncStateModel.contract_address == contract_address.lower(),
            ),
            execution_options=_FRESH,
        )
        model = result.scalar_one_or_none()
        return SyncStateDTO.from_model(model) if model else None

    async def advance(
        self,
        chain_id: int,
        contract_type: str,
        contract_address: str,
        *,
        block_number: int,
        block_hash: str | None,
    ) -> SyncStateDTO:
        """Record a successful run ending at ``block_number`` and mark the cursor healthy.

        The stored block never decreases: a backfill that ends below the
        current cursor only refreshes the health fields.
        """
        address = contract_address.lower()
        existing = await self.get(chain_id, contract_type, address)
        if existing and existing.last_indexed_block is not None and existing.last_indexed_block > block_number:
            block_number = existing.last_indexed_block
            block_hash = existing.last_block_hash

        await _upsert(
            self.session,
            SyncStateModel,
            {
                "chain_id": chain_id,
                "contract_type": contract_type,
                "contract_address": address,
                "last_indexed_block": block_number,
                "last_block_hash": block_hash,
                "last_indexed_at": _utcnow(),
                "is_healthy": True,
                "error_message": None,
            },
            conflict=self._KEY,
        )
        await self.session.flush()
        state = await self.get(chain_id, contract_type, address)
        assert state is not None
        return state

    async def mark_unhealthy(
        self, chain_id: int, contract_type: str, contract_address: str, error: str
    ) -> None:
        """Flag a cursor unhealthy without moving it."""
        await _upsert(
            self.session,
            SyncStateModel,
            {
                "chain_id": chain_id,
                "contract_type": contract_type,
                "contract_address": contract_address.lower(),
                "is_healthy": False,
                "error_message": error[:2000],
            },
            conflict=self._KEY,
        )
        await self.session.flush()

    async def list_for_chain(self, chain_id: int) -> list[SyncStateDTO]:
        result = await self.session.execute(
            select(SyncStateModel)
            .where(SyncStateModel.chain_id == chain_id)
            .order_by(SyncStateModel.contract_type, SyncStateModel.contract_address),
            execution_options=_FRESH,
        )
        return [SyncStateDTO.from_model(m) for m in result.scalars().all()]


# ---------------------------------------------------------------------------
# Pools
# ---------------------------------------------------------------------------


@dataclass
class PoolDTO:
    """Data transfer object for pools (read side)."""

    address: str
    chain_id: int
    creator: str
    name: str | None
    state: int
    slots_sold: int
    slot_fee: Decimal
    slot_limit: int
    winners_count: int
    winners_selected: int
    is_prized: bool
    prize_kind: str
    prize_collection: str | None
    prize_token_id: Decimal | None
    standard: int | None
    is_escrowed_prize: bool | None
    is_external_collection: bool
    erc20_prize_token: str | None
    erc20_prize_symbol: str | None
    artwork_url: str | None
    created_at_block: int
    activated_at: datetime | None
    activated_block: int | None
    ended_at: datetime | None
    ended_block: int | None
    actual_duration: int | None
    description: str | None
    social_task_description: str | None
    social_engagement_required: bool
    last_synced_block: int | None
    last_synced_at: datetime | None

    @classmethod
    def from_model(cls, model: PoolModel) -> PoolDTO:
        return cls(**_columns(model, cls))


class PoolRepository:
    """Repository for pool rows."""

    _KEY = ("address", "chain_id")

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, chain_id: int, address: str) -> PoolDTO | None:
        model = await self._get_model(chain_id, address)
        return PoolDTO.from_model(model) if model else None

    async def _get_model(self, chain_id: int, address: str) -> PoolModel | None:
        result = await self.session.execute(
            select(PoolModel).where(PoolModel.chain_id == chain_id, PoolModel.address == address.lower()),
            execution_options=_FRESH,
        )
        return result.scalar_one_or_none()

    async def upsert(self, chain_id: int, address: str, values: Mapping[str, Any]) -> None:
        """Insert or update a pool; only the keys in ``values`` are written on conflict."""
        row = {"address": address.lower(), "chain_id": chain_id, **values}
        await _upsert(self.session, PoolModel, row, conflict=self._KEY)
        await self.session.flush()

    async def update(self, chain_id: int, address: str, **values: Any) -> bool:
        result = await self.session.execute(
            update(PoolModel)
            .where(PoolModel.chain_id == chain_id, PoolModel.address == address.lower())
            .values(**values, updated_at=_utcnow())
        )
        return bool(result.rowcount)

    async def advance_state(self, chain_id: int, address: str, target_state: int) -> bool:
        """Move a pool's state forward to ``target_state``.

        Returns False (and writes nothing) when the stored state is already at or
        past the target, or is absorbing.
        """
        result = await self.session.execute(
            update(PoolModel)
            .where(
                PoolModel.chain_id == chain_id,
                PoolModel.address == address.lower(),
                PoolModel.state < target_state,
                PoolModel.state.not_in(ABSORBING_STATES),
            )
            .values(state=target_state, updated_at=_utcnow())
        )
        return bool(result.rowcount)

    async def recompute_slots_sold(self, chain_id: int, address: str) -> int:
        """Set ``slots_sold`` to the sum of the pool's participants' purchases."""
        address = address.lower()
        result = await self.session.execute(
            select(func.coalesce(func.sum(ParticipantModel.slots_purchased), 0)).where(
                ParticipantModel.chain_id == chain_id,
                ParticipantModel.pool_address == address,
            )
        )
        total = int(result.scalar_one())
        await self.update(chain_id, address, slots_sold=total)
        return total

    async def list_addresses(self, chain_id: int) -> list[str]:
        result = await self.session.execute(
            select(PoolModel.address).where(PoolModel.chain_id == chain_id).order_by(PoolModel.id)
        )
        return list(result.scalars().all())

    async def list_for_reconcile(
        self,
        chain_id: int,
        *,
        live_states: Sequence[int],
        limit: int,
        address: str | None = None,
    ) -> list[PoolDTO]:
        """Live pools, least recently synced first (never-synced before all others)."""
        stmt = select(PoolModel).where(PoolModel.chain_id == chain_id)
        if address:
            stmt = stmt.where(PoolModel.address == address.lower())
        else:
            stmt = stmt.where(PoolModel.state.in_(list(live_states)))
        stmt = stmt.order_by(PoolModel.last_synced_at.asc().nulls_first(), PoolModel.id).limit(limit)
        result = await self.session.execute(stmt, execution_options=_FRESH)
        return [PoolDTO.from_model(m) for m in result.scalars().all()]

    async def external_prize_collections(self, chain_id: int) -> dict[str, int]:
        """External prize collection address -> token standard, across all pools."""
        result = await self.session.execute(
            select(PoolModel.prize_collection, PoolModel.standard)
            .where(
                PoolModel.chain_id == chain_id,
                PoolModel.is_external_collection.is_(True),
                PoolModel.prize_collection.is_not(None),
            )
            .order_by(PoolModel.id)
        )
        return {address.lower(): standard or 0 for address, standard in result.all() if address}

    async def prize_standard(self, chain_id: int, collection_address: str) -> int | None:
        result = await self.session.execute(
            select(PoolModel.standard)
            .where(PoolModel.chain_id == chain_id, PoolModel.prize_collection == collection_address.lower())
            .limit(1)
        )
        return result.scalars().first()


# ---------------------------------------------------------------------------
# Participants and purchases
# ---------------------------------------------------------------------------


@dataclass
class ParticipantDTO:
    """Data transfer object for pool participants."""

    pool_address: str
    chain_id: int
    participant_address: str
    slots_purchased: int
    total_spent: Decimal
    wins_count: int
    prizes_claimed: int
    refund_claimed: bool
    refundable_amount: Decimal
    first_purchase_block: int | None
    last_purchase_block: int | None

    @classmethod
    def from_model(cls, model: ParticipantModel) -> ParticipantDTO:
        return cls(
            pool_address=model.pool_address,
            chain_id=model.chain_id,
            participant_address=model.participant_address,
            slots_purchased=model.slots_purchased,
            total_spent=model.total_spent,
            wins_count=model.wins_count,
            prizes_claimed=model.prizes_claimed,
            refund_claimed=model.refund_claimed,
            refundable_amount=model.refundable_amount,
            first_purchase_block=model.first_purchase_block,
            last_purchase_block=model.last_purchase_block,
        )


@dataclass
class SlotPurchaseDTO:
    """One SlotsPurchased event."""

    chain_id: int
    pool_address: str
    participant_address: str
    quantity: int
    amount: Decimal
    block_number: int
    transaction_hash: str
    log_index: int
    timestamp: datetime | None


class ParticipantRepository:
    """Repository for participants; purchase totals are derived from ``slot_purchases``."""

    _KEY = ("pool_address", "chain_id", "participant_address")

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, chain_id: int, pool_address: str, participant: str) -> ParticipantDTO | None:
        result = await self.session.execute(
            select(ParticipantModel).where(
                ParticipantModel.chain_id == chain_id,
                ParticipantModel.pool_address == pool_address.lower(),
                ParticipantModel.participant_address == participant.lower(),
            ),
            execution_options=_FRESH,
        )
        model = result.scalar_one_or_none()
        return ParticipantDTO.from_model(model) if model else None

    async def list_for_pool(self, chain_id: int, pool_address: str) -> list[ParticipantDTO]:
        result = await self.session.execute(
            select(ParticipantModel)
            .where(ParticipantModel.chain_id == chain_id, ParticipantModel.pool_address == pool_address.lower())
            .order_by(ParticipantModel.participant_address),
            execution_options=_FRESH,
        )
        return [ParticipantDTO.from_model(m) for m in result.scalars().all()]

    async def record_purchase(self, dto: SlotPurchaseDTO) -> bool:
        """Store a purchase event; returns False if it was already recorded."""
        return await _insert_ignore(
            self.session,
            SlotPurchaseModel,
            {
                "chain_id": dto.chain_id,
                "pool_address": dto.pool_address.lower(),
                "participant_address": dto.participant_address.lower(),
                "quantity": dto.quantity,
                "amount": dto.amount,
                "block_number": dto.block_number,
                "transaction_hash": dto.transaction_hash,
                "log_index": dto.log_index,
                "timestamp": dto.timestamp,
            },
            conflict=("chain_id", "transaction_hash", "log_index"),
        )

    async def recompute_purchases(self, chain_id: int, pool_address: str, participant: str) -> ParticipantDTO:
        """Rebuild a participant's purchase totals from its purchase rows."""
        pool_address = pool_address.lower()
        participant = participant.lower()
        result = await self.session.execute(
            select(SlotPurchaseModel)
            .where(
                SlotPurchaseModel.chain_id == chain_id,
                SlotPurchaseModel.pool_address == pool_address,
                SlotPurchaseModel.participant_address == participant,
            )
            .order_by(SlotPurchaseModel.block_number, SlotPurchaseModel.log_index)
        )
        purchases = list(result.scalars().all())
        values: dict[str, Any] = {
            "pool_address": pool_address,
            "chain_id": chain_id,
            "participant_address": participant,
            "slots_purchased": sum(p.quantity for p in purchases),
            "total_spent": sum((Decimal(p.amount) for p in purchases), Decimal(0)),
        }
        if purchases:
            values.update(
                first_purchase_block=purchases[0].block_number,
                first_purchase_at=purchases[0].timestamp,
                last_purchase_block=purchases[-1].block_number,
                last_purchase_at=purchases[-1].timestamp,
            )
        await _upsert(self.session, ParticipantModel, values, conflict=self._KEY)
        await self.session.flush()
        dto = await self.get(chain_id, pool_address, participant)
        assert dto is not None
        return dto

    async def _update(self, chain_id: int, pool_address: str, participant: str, **values: Any) -> bool:
        result = await self.session.execute(
            update(ParticipantModel)
            .where(
                ParticipantModel.chain_id == chain_id,
                ParticipantModel.pool_address == pool_address.lower(),
                ParticipantModel.participant_address == participant.lower(),
            )
            .values(**values, updated_at=_utcnow())
        )
        return bool(result.rowcount)

    async def recompute_wins(self, chain_id: int, pool_address: str, participant: str) -> int:
        """Set ``wins_count`` and ``prizes_claimed`` from the winner rows."""
        pool_address = pool_address.lower()
        participant = participant.lower()
        result = await self.session.execute(
            select(
                func.count(WinnerModel.id),
                func.coalesce(func.sum(case((WinnerModel.prize_claimed.is_(True), 1), else_=0)), 0),
            ).where(
                WinnerModel.chain_id == chain_id,
                WinnerModel.pool_address == pool_address,
                WinnerModel.winner_address == participant,
            )
        )
        wins, claimed = result.one()
        await self._update(chain_id, pool_address, participant, wins_count=int(wins), prizes_claimed=int(claimed))
        return int(wins)

    async def mark_refunded(self, chain_id: int, pool_address: str, participant: str) -> bool:
        return await self._update(
            chain_id, pool_address, participant, refund_claimed=True, refundable_amount=Decimal(0)
        )

    async def set_refundable_amount(
        self, chain_id: int, pool_address: str, participant: str, amount: int | Decimal
    ) -> bool:
        return await self._update(chain_id, pool_address, participant, refundable_amount=Decimal(amount))

    async def list_unrefunded(self, chain_id: int, pool_address: str) -> list[str]:
        result = await self.session.execute(
            select(ParticipantModel.participant_address).where(
                ParticipantModel.chain_id == chain_id,
                ParticipantModel.pool_address == pool_address.lower(),
                ParticipantModel.refund_claimed.is_(False),
            )
        )
        return list(result.scalars().all())


# ---------------------------------------------------------------------------
# Winners
# ---------------------------------------------------------------------------


@dataclass
class WinnerDTO:
    """Data transfer object for pool winners."""

    pool_address: str
    chain_id: int
    winner_address: str
    winner_index: int
    selected_block: int
    prize_claimed: bool
    prize_claimed_block: int | None
    prize_claimed_tx_hash: str | None

    @classmethod
    def from_model(cls, model: WinnerModel) -> WinnerDTO:
        return cls(
            pool_address=model.pool_address,
            chain_id=model.chain_id,
            winner_address=model.winner_address,
            winner_index=model.winner_index,
            selected_block=model.selected_block,
            prize_claimed=model.prize_claimed,
            prize_claimed_block=model.prize_claimed_block,
            prize_claimed_tx_hash=model.prize_claimed_tx_hash,
        )


class WinnerRepository:
    """Repository for winner rows."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def upsert_selected(
        self,
        chain_id: int,
        pool_address: str,
        winner: str,
        winner_index: int,
        *,
        block_number: int,
        selected_at: datetime | None,
        transaction_hash: str,
    ) -> None:
        await _upsert(
            self.session,
            WinnerModel,
            {
                "pool_address": pool_address.lower(),
                "chain_id": chain_id,
                "winner_address": winner.lower(),
                "winner_index": winner_index,
                "selected_block": block_number,
                "selected_at": selected_at,
                "selection_tx_hash": transaction_hash,
            },
            conflict=("pool_address", "chain_id", "winner_address", "winner_index"),
        )

    async def mark_claimed(
        self,
        chain_id: int,
        pool_address: str,
        winner: str,
        *,
        block_number: int,
        claimed_at: datetime | None,
        transaction_hash: str,
    ) -> int:
        """Mark every winning slot of ``winner`` in the pool as claimed."""
        result = await self.session.execute(
            update(WinnerModel)
            .where(
                WinnerModel.chain_id == chain_id,
                WinnerModel.pool_address == pool_address.lower(),
                WinnerModel.winner_address == winner.lower(),
            )
            .values(
                prize_claimed=True,
                prize_claimed_at=claimed_at,
                prize_claimed_block=block_number,
                prize_claimed_tx_hash=transaction_hash,
            )
        )
        return int(result.rowcount or 0)

    async def list_for_pool(self, chain_id: int, pool_address: str) -> list[WinnerDTO]:
        result = await self.session.execute(
            select(WinnerModel)
            .where(WinnerModel.chain_id == chain_id, WinnerModel.pool_address == pool_address.lower())
            .order_by(WinnerModel.winner_index),
            execution_options=_FRESH,
        )
        return [WinnerDTO.from_model(m) for m in result.scalars().all()]


# ---------------------------------------------------------------------------
# Activity feed and raw events
# ---------------------------------------------------------------------------


@dataclass
class UserActivityDTO:
    """Data transfer object for activity feed rows."""

    user_address: str
    chain_id: int
    activity_type: str
    block_number: int
    transaction_hash: str
    timestamp: datetime | None = None
    pool_address: str | None = None
    pool_name: str | None = None
    collection_address: str | None = None
    quantity: int | None = None
    amount: Decimal | None = None
    token_id: Decimal | None = None
    request_id: str | None = None

    @classmethod
    def from_model(cls, model: UserActivityModel) -> UserActivityDTO:
        return cls(**_columns(model, cls))


class ActivityRepository:
    """Repository for the append-only activity feed."""

    _KEY = ("chain_id", "transaction_hash", "activity_type", "user_address")

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def record(self, dto: UserActivityDTO) -> bool:
        """Append an activity row; a duplicate natural key is ignored."""
        values = {f.name: getattr(dto, f.name) for f in fields(dto)}
        values["user_address"] = dto.user_address.lower()
        if dto.pool_address:
            values["pool_address"] = dto.pool_address.lower()
        if dto.collection_address:
            values["collection_address"] = dto.collection_address.lower()
        return await _insert_ignore(self.session, UserActivityModel, values, conflict=self._KEY)

    async def list_for_user(self, chain_id: int, user_address: str, *, limit: int = 100) -> list[UserActivityDTO]:
        result = await self.session.execute(
            select(UserActivityModel)
            .where(UserActivityModel.chain_id == chain_id, UserActivityModel.user_address == user_address.lower())
            .order_by(UserActivityModel.block_number.desc(), UserActivityModel.id.desc())
            .limit(limit),
            execution_options=_FRESH,
        )
        return [UserActivityDTO.from_model(m) for m in result.scalars().all()]

    async def count(self, chain_id: int, *, activity_type: str | None = None) -> int:
        stmt = select(func.count(UserActivityModel.id)).where(UserActivityModel.chain_id == chain_id)
        if activity_type:
            stmt = stmt.where(UserActivityModel.activity_type == activity_type)
        result = await self.session.execute(stmt)
        return int(result.scalar_one())


class BlockchainEventRepository:
    """Repository for archived raw events."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def archive(
        self,
        chain_id: int,
        *,
        contract_address: str,
        event_name: str,
        block_number: int,
        transaction_hash: str,
        log_index: int,
        event_data: Mapping[str, Any],
        block_timestamp: datetime | None,
    ) -> bool:
        return await _insert_ignore(
            self.session,
            BlockchainEventModel,
            {
                "chain_id": chain_id,
                "contract_address": contract_address.lower(),
                "event_name": event_name,
                "block_number": block_number,
                "transaction_hash": transaction_hash,
                "log_index": log_index,
                "event_data": dict(event_data),
                "block_timestamp": block_timestamp,
            },
            conflict=("chain_id", "transaction_hash", "log_index"),
        )


# ---------------------------------------------------------------------------
# Collections
# ---------------------------------------------------------------------------


@dataclass
class CollectionDTO:
    """Data transfer object for NFT collections."""

    address: str
    chain_id: int
    creator: str | None
    owner: str | None
    standard: int
    name: str | None
    symbol: str | None
    drop_uri: str | None
    unrevealed_uri: str | None
    base_uri: str | None
    drop_uri_hash: str | None
    unrevealed_uri_hash: str | None
    is_revealed: bool
    total_supply: int | None
    current_supply: int
    max_supply: int | None
    is_external: bool
    deployed_block: int | None
    last_synced_block: int | None
    last_synced_at: datetime | None

    @classmethod
    def from_model(cls, model: CollectionModel) -> CollectionDTO:
        return cls(**_columns(model, cls))


class CollectionRepository:
    """Repository for NFT collections."""

    _KEY = ("address", "chain_id")

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, chain_id: int, address: str) -> CollectionDTO | None:
        result = await self.session.execute(
            select(CollectionModel).where(
                CollectionModel.chain_id == chain_id, CollectionModel.address == address.lower()
            ),
            execution_options=_FRESH,
        )
        model = result.scalar_one_or_none()
        return CollectionDTO.from_model(model) if model else None

    async def upsert(self, chain_id: int, address: str, values: Mapping[str, Any]) -> None:
        row = {"address": address.lower(), "chain_id": chain_id, **values}
        await _upsert(self.session, CollectionModel, row, conflict=self._KEY)
        await self.session.flush()

    async def update(self, chain_id: int, address: str, **values: Any) -> bool:
        result = await self.session.execute(
            update(CollectionModel)
            .where(CollectionModel.chain_id == chain_id, CollectionModel.address == address.lower())
            .values(**values, updated_at=_utcnow())
        )
        return bool(result.rowcount)

    async def list_addresses(self, chain_id: int, *, is_external: bool | None = None) -> list[str]:
        stmt = select(CollectionModel.address).where(CollectionModel.chain_id == chain_id)
        if is_external is not None:
            stmt = stmt.where(CollectionModel.is_external.is_(is_external))
        result = await self.session.execute(stmt.order_by(CollectionModel.id))
        return list(result.scalars().all())

    async def synced_since(self, chain_id: int, addresses: Sequence[str], *, older_than: timedelta) -> set[str]:
        """Addresses among ``addresses`` whose row was synced within ``older_than``."""
        if not addresses:
            return set()
        cutoff = _utcnow() - older_than
        result = await self.session.execute(
            select(CollectionModel.address).where(
                CollectionModel.chain_id == chain_id,
                CollectionModel.address.in_([a.lower() for a in addresses]),
                CollectionModel.last_synced_at.is_not(None),
                CollectionModel.last_synced_at >= cutoff,
            )
        )
        return set(result.scalars().all())


# ---------------------------------------------------------------------------
# Rewards flywheel
# ---------------------------------------------------------------------------


@dataclass
class RewardsClaimDTO:
    """Unified claim history row."""

    chain_id: int
    pool_address: str
    claim_type: str
    claimant_address: str
    amount: Decimal
    block_number: int
    transaction_hash: str
    token_address: str | None = None
    points_claimed: Decimal | None = None
    fill_percentage: int | None = None
    timestamp: datetime | None = None


class RewardsRepository:
    """Repository for rewards-flywheel mirrors.

    Totals here are running sums: each event adds its delta to the stored
    value, so replaying a range adds it again.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def _get_or_create(self, model: type[Any], key: Mapping[str, Any], **defaults: Any) -> Any:
        stmt = select(model).filter_by(**key)
        row = (await self.session.execute(stmt)).scalar_one_or_none()
        if row is None:
            row = model(**key, **defaults)
            self.session.add(row)
            await self.session.flush()
        return row

    async def update_points_system(self, chain_id: int, contract_address: str, **values: Any) -> None:
        row = await self._get_or_create(
            PointsSystemModel,
            {"chain_id": chain_id, "contract_address": contract_address.lower()},
            total_deposited=Decimal(0),
        )
        for key, value in values.items():
            setattr(row, key, value)
        row.last_synced_at = _utcnow()
        await self.session.flush()

    async def add_points_deposit(
        self, chain_id: int, contract_address: str, *, token: str, amount: int, block_number: int
    ) -> None:
        row = await self._get_or_create(
            PointsSystemModel,
            {"chain_id": chain_id, "contract_address": contract_address.lower()},
            total_deposited=Decimal(0),
        )
        row.reward_token = token.lower()
        row.total_deposited = Decimal(row.total_deposited or 0) + Decimal(amount)
        row.last_synced_block = block_number
        row.last_synced_at = _utcnow()
        await self.session.flush()

    async def add_user_points(
        self, chain_id: int, user_address: str, *, points: int, claimed_at: datetime | None
    ) -> None:
        row = await self._get_or_create(
            UserPointsModel,
            {"chain_id": chain_id, "user_address": user_address.lower()},
            claimed_points=Decimal(0),
        )
        row.claimed_points = Decimal(row.claimed_points or 0) + Decimal(points)
        row.last_claim_time = claimed_at
        row.last_synced_at = _utcnow()
        await self.session.flush()

    async def _pool_rewards(self, chain_id: int, pool_address: str) -> PoolRewardsModel:
        row: PoolRewardsModel = await self._get_or_create(
            PoolRewardsModel,
            {"chain_id": chain_id, "pool_address": pool_address.lower()},
            total_deposited=Decimal(0),
            total_claimed=Decimal(0),
            total_withdrawn=Decimal(0),
            claimed_slots=0,
        )
        return row

    async def add_pool_deposit(
        self,
        chain_id: int,
        pool_address: str,
        *,
        depositor: str,
        token: str,
        amount: int,
        block_number: int,
        transaction_hash: str,
    ) -> None:
        row = await self._pool_rewards(chain_id, pool_address)
        row.depositor = depositor.lower()
        row.reward_token = token.lower()
        row.total_deposited = Decimal(row.total_deposited or 0) + Decimal(amount)
        row.deposit_block = block_number
        row.deposit_tx_hash = transaction_hash
        row.last_synced_at = _utcnow()
        await self.session.flush()

    async def add_pool_claim(self, chain_id: int, pool_address: str, *, amount: int, slots: int = 0) -> None:
        row = await self._pool_rewards(chain_id, pool_address)
        row.total_claimed = Decimal(row.total_claimed or 0) + Decimal(amount)
        row.claimed_slots = int(row.claimed_slots or 0) + slots
        row.last_synced_at = _utcnow()
        await self.session.flush()

    async def add_pool_withdrawal(self, chain_id: int, pool_address: str, *, amount: int) -> None:
        row = await self._pool_rewards(chain_id, pool_address)
        row.total_withdrawn = Decimal(row.total_withdrawn or 0) + Decimal(amount)
        row.last_synced_at = _utcnow()
        await self.session.flush()

    async def set_reward_per_slot(
        self, chain_id: int, pool_address: str, *, reward_per_slot: int, total_eligible_slots: int
    ) -> None:
        row = await self._pool_rewards(chain_id, pool_address)
        row.reward_per_slot = Decimal(reward_per_slot)
        row.total_eligible_slots = total_eligible_slots
        row.reward_per_slot_calculated = True
        row.last_synced_at = _utcnow()
        await self.session.flush()

    async def record_participant_claim(
        self,
        chain_id: int,
        pool_address: str,
        participant: str,
        *,
        token: str,
        amount: int,
        block_number: int,
        transaction_hash: str,
        claimed_at: datetime | None,
    ) -> bool:
        return await _insert_ignore(
            self.session,
            ParticipantClaimModel,
            {
                "chain_id": chain_id,
                "pool_address": pool_address.lower(),
                "participant_address": participant.lower(),
                "reward_token": token.lower(),
                "amount_claimed": Decimal(amount),
                "claim_block": block_number,
                "claim_tx_hash": transaction_hash,
                "claimed_at": claimed_at,
            },
            conflict=("chain_id", "pool_address", "participant_address"),
        )

    async def _creator_rewards(self, chain_id: int, token: str) -> CreatorRewardsModel:
        row: CreatorRewardsModel = await self._get_or_create(
            CreatorRewardsModel,
            {"chain_id": chain_id, "reward_token": token.lower()},
            total_deposited=Decimal(0),
            total_claimed=Decimal(0),
            total_withdrawn=Decimal(0),
            token_decimals=18,
            is_active=True,
        )
        return row

    async def add_creator_deposit(
        self,
        chain_id: int,
        token: str,
        *,
        amount: int,
        reward_amount_per_creator: int,
        eligible_pool_count: int,
    ) -> None:
        row = await self._creator_rewards(chain_id, token)
        row.total_deposited = Decimal(row.total_deposited or 0) + Decimal(amount)
        row.reward_amount_per_creator = Decimal(reward_amount_per_creator)
        row.eligible_pool_count = eligible_pool_count
        row.is_active = True
        row.last_synced_at = _utcnow()
        await self.session.flush()

    async def add_creator_claim(self, chain_id: int, token: str, *, amount: int) -> None:
        row = await self._creator_rewards(chain_id, token)
        row.total_claimed = Decimal(row.total_claimed or 0) + Decimal(amount)
        row.last_synced_at = _utcnow()
        await self.session.flush()

    async def add_creator_withdrawal(self, chain_id: int, token: str, *, amount: int) -> None:
        row = await self._creator_rewards(chain_id, token)
        row.total_withdrawn = Decimal(row.total_withdrawn or 0) + Decimal(amount)
        row.last_synced_at = _utcnow()
        await self.session.flush()

    async def update_creator_config(self, chain_id: int, token: str, **values: Any) -> None:
        row = await self._creator_rewards(chain_id, token)
        for key, value in values.items():
            setattr(row, key, value)
        row.last_synced_at = _utcnow()
        await self.session.flush()

    async def record_creator_claim(
        self,
        chain_id: int,
        pool_address: str,
        creator: str,
        *,
        token: str,
        amount: int,
        fill_percentage: int,
        block_number: int,
        transaction_hash: str,
        claimed_at: datetime | None,
    ) -> bool:
        return await _insert_ignore(
            self.session,
            CreatorClaimModel,
            {
                "chain_id": chain_id,
                "pool_address": pool_address.lower(),
                "creator_address": creator.lower(),
                "reward_token": token.lower(),
                "amount_claimed": Decimal(amount),
                "fill_percentage": fill_percentage,
                "claim_block": block_number,
                "claim_tx_hash": transaction_hash,
                "claimed_at": claimed_at,
            },
            conflict=("chain_id", "pool_address", "creator_address", "reward_token"),
        )

    async def record_claim(self, dto: RewardsClaimDTO) -> bool:
        values = {f.name: getattr(dto, f.name) for f in fields(dto)}
        values["pool_address"] = dto.pool_address.lower()
        values["claimant_address"] = dto.claimant_address.lower()
        if dto.token_address:
            values["token_address"] = dto.token_address.lower()
        return await _insert_ignore(
            self.session,
            RewardsClaimModel,
            values,
            conflict=("chain_id", "transaction_hash", "claimant_address", "claim_type"),
        )


# ---------------------------------------------------------------------------
# Leases
# ---------------------------------------------------------------------------


@dataclass
class LeaseDTO:
    """Data transfer object for advisory leases."""

    name: str
    holder: str
    acquired_at: datetime
    expires_at: datetime

    @classmethod
    def from_model(cls, model: LeaseModel) -> LeaseDTO:
        acquired_at = _as_utc(model.acquired_at)
        expires_at = _as_utc(model.expires_at)
        assert acquired_at is not None and expires_at is not None
        return cls(name=model.name, holder=model.holder, acquired_at=acquired_at, expires_at=expires_at)


class LeaseRepository:
    """Repository for advisory leases.

    A lease can be taken when it is absent, expired, or already held by the
    same holder (which extends it).
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, name: str) -> LeaseDTO | None:
        model = await self.session.get(LeaseModel, name, populate_existing=True)
        return LeaseDTO.from_model(model) if model else None

    async def try_acquire(self, name: str, holder: str, *, ttl: timedelta, now: datetime | None = None) -> bool:
        now = now or _utcnow()
        expires_at = now + ttl
        inserted = await _insert_ignore(
            self.session,
            LeaseModel,
            {"name": name, "holder": holder, "acquired_at": now, "expires_at": expires_at},
            conflict=("name",),
        )
        if inserted:
            return True

        result = await self.session.execute(
            update(LeaseModel)
            .where(
                LeaseModel.name == name,
                or_(LeaseModel.holder == holder, LeaseModel.expires_at <= now),
            )
            .values(holder=holder, acquired_at=now, expires_at=expires_at)
            .execution_options(synchronize_session=False)
        )
        return bool(result.rowcount)

    async def renew(self, name: str, holder: str, *, ttl: timedelta, now: datetime | None = None) -> bool:
        """Push the expiry of a lease still held by ``holder``; False once it was lost."""
        result = await self.session.execute(
            update(LeaseModel)
            .where(LeaseModel.name == name, LeaseModel.holder == holder)
            .values(expires_at=(now or _utcnow()) + ttl)
            .execution_options(synchronize_session=False)
        )
        return bool(result.rowcount)

    async def release(self, name: str, holder: str) -> bool:
        result = await self.session.execute(
            delete(LeaseModel).where(LeaseModel.name == name, LeaseModel.holder == holder)
        )
        return bool(result.rowcount)
