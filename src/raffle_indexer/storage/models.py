"""SQLAlchemy models for persistent storage.

This module defines the materialized schema written by the indexers: pools,
participants, winners, purchases, collections, the user activity feed,
archived raw events, rewards-flywheel mirrors, sync cursors and the
orchestrator lease.
"""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# uint256 values (wei amounts, token ids) need 78 decimal digits.
UINT256 = Numeric(78, 0)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class SyncStateModel(Base):
    """Indexing progress per (chain, contract type, contract address)."""

    __tablename__ = "indexer_sync_state"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    chain_id: Mapped[int] = mapped_column(Integer, nullable=False)
    contract_type: Mapped[str] = mapped_column(String(40), nullable=False)
    contract_address: Mapped[str] = mapped_column(String(42), nullable=False)

    # NULL means never indexed (an error was recorded before the first success).
    last_indexed_block: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    last_block_hash: Mapped[str | None] = mapped_column(String(66), nullable=True)
    last_indexed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    is_healthy: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        UniqueConstraint("chain_id", "contract_type", "contract_address", name="uq_sync_state_contract"),
        Index("idx_sync_state_chain_contract", "chain_id", "contract_type"),
    )


class PoolModel(Base):
    """A raffle pool."""

    __tablename__ = "pools"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    address: Mapped[str] = mapped_column(String(42), nullable=False)
    chain_id: Mapped[int] = mapped_column(Integer, nullable=False)
    pool_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    name: Mapped[str | None] = mapped_column(Text, nullable=True)
    creator: Mapped[str] = mapped_column(String(42), nullable=False)

    # Lifecycle
    state: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    start_time: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    duration: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    actual_duration: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    activated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    activated_block: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    ended_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    ended_block: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    created_at_block: Mapped[int] = mapped_column(BigInteger, nullable=False)
    created_at_timestamp: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Economics
    slot_fee: Mapped[Decimal] = mapped_column(UINT256, nullable=False, default=Decimal(0))
    slot_limit: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    winners_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_slots_per_address: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    slots_sold: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    winners_selected: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_refundable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_collab_pool: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    uses_custom_fee: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    revenue_recipient: Mapped[str | None] = mapped_column(String(42), nullable=True)

    # Prize
    is_prized: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    prize_kind: Mapped[str] = mapped_column(String(10), nullable=False, default="none")
    prize_collection: Mapped[str | None] = mapped_column(String(42), nullable=True)
    prize_token_id: Mapped[Decimal | None] = mapped_column(UINT256, nullable=True)
    standard: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_escrowed_prize: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    is_external_collection: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    amount_per_winner: Mapped[Decimal | None] = mapped_column(UINT256, nullable=True)
    erc20_prize_token: Mapped[str | None] = mapped_column(String(42), nullable=True)
    erc20_prize_amount: Mapped[Decimal | None] = mapped_column(UINT256, nullable=True)
    erc20_prize_symbol: Mapped[str | None] = mapped_column(String(64), nullable=True)
    native_prize_amount: Mapped[Decimal | None] = mapped_column(UINT256, nullable=True)
    artwork_url: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Token-gating
    holder_token_address: Mapped[str | None] = mapped_column(String(42), nullable=True)
    holder_token_standard: Mapped[int | None] = mapped_column(Integer, nullable=True)
    min_holder_token_balance: Mapped[Decimal | None] = mapped_column(UINT256, nullable=True)

    # Social / engagement
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    twitter_link: Mapped[str | None] = mapped_column(Text, nullable=True)
    discord_link: Mapped[str | None] = mapped_column(Text, nullable=True)
    telegram_link: Mapped[str | None] = mapped_column(Text, nullable=True)
    social_task_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    social_engagement_required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    last_synced_block: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    last_synced_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        UniqueConstraint("address", "chain_id", name="uq_pools_address_chain"),
        Index("idx_pools_chain_state", "chain_id", "state"),
        Index("idx_pools_creator", "creator"),
    )


class SlotPurchaseModel(Base):
    """One SlotsPurchased event; participant totals are derived from these rows."""

    __tablename__ = "slot_purchases"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    chain_id: Mapped[int] = mapped_column(Integer, nullable=False)
    pool_address: Mapped[str] = mapped_column(String(42), nullable=False)
    participant_address: Mapped[str] = mapped_column(String(42), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    amount: Mapped[Decimal] = mapped_column(UINT256, nullable=False)
    block_number: Mapped[int] = mapped_column(BigInteger, nullable=False)
    transaction_hash: Mapped[str] = mapped_column(String(66), nullable=False)
    log_index: Mapped[int] = mapped_column(Integer, nullable=False)
    timestamp: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("chain_id", "transaction_hash", "log_index", name="uq_slot_purchases_event"),
        Index("idx_slot_purchases_pool_participant", "pool_address", "chain_id", "participant_address"),
    )


class ParticipantModel(Base):
    """Per-pool participant aggregates."""

    __tablename__ = "pool_participants"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    pool_address: Mapped[str] = mapped_column(String(42), nullable=False)
    chain_id: Mapped[int] = mapped_column(Integer, nullable=False)
    participant_address: Mapped[str] = mapped_column(String(42), nullable=False)
    slots_purchased: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_spent: Mapped[Decimal] = mapped_column(UINT256, nullable=False, default=Decimal(0))
    wins_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    prizes_claimed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    refund_claimed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    refundable_amount: Mapped[Decimal] = mapped_column(UINT256, nullable=False, default=Decimal(0))
    first_purchase_block: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    first_purchase_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_purchase_block: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    last_purchase_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        UniqueConstraint("pool_address", "chain_id", "participant_address", name="uq_participants_pool_user"),
        Index("idx_participants_user", "participant_address", "chain_id"),
    )


class WinnerModel(Base):
    """One winning slot; winner_index distinguishes multiple prizes per pool."""

    __tablename__ = "pool_winners"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    pool_address: Mapped[str] = mapped_column(String(42), nullable=False)
    chain_id: Mapped[int] = mapped_column(Integer, nullable=False)
    winner_address: Mapped[str] = mapped_column(String(42), nullable=False)
    winner_index: Mapped[int] = mapped_column(Integer, nullable=False)
    selected_block: Mapped[int] = mapped_column(BigInteger, nullable=False)
    selected_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    selection_tx_hash: Mapped[str | None] = mapped_column(String(66), nullable=True)
    prize_claimed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    prize_claimed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    prize_claimed_block: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    prize_claimed_tx_hash: Mapped[str | None] = mapped_column(String(66), nullable=True)
    minted_token_id: Mapped[Decimal | None] = mapped_column(UINT256, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        UniqueConstraint(
            "pool_address", "chain_id", "winner_address", "winner_index", name="uq_winners_pool_user_index"
        ),
        Index("idx_winners_user", "winner_address", "chain_id"),
    )


class UserActivityModel(Base):
    """Append-only activity feed; one row per observable user action."""

    __tablename__ = "user_activity"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_address: Mapped[str] = mapped_column(String(42), nullable=False)
    chain_id: Mapped[int] = mapped_column(Integer, nullable=False)
    activity_type: Mapped[str] = mapped_column(String(40), nullable=False)
    pool_address: Mapped[str | None] = mapped_column(String(42), nullable=True)
    pool_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    collection_address: Mapped[str | None] = mapped_column(String(42), nullable=True)
    quantity: Mapped[int | None] = mapped_column(Integer, nullable=True)
    amount: Mapped[Decimal | None] = mapped_column(UINT256, nullable=True)
    token_id: Mapped[Decimal | None] = mapped_column(UINT256, nullable=True)
    request_id: Mapped[str | None] = mapped_column(String(80), nullable=True)
    block_number: Mapped[int] = mapped_column(BigInteger, nullable=False)
    transaction_hash: Mapped[str] = mapped_column(String(66), nullable=False)
    timestamp: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        UniqueConstraint(
            "chain_id", "transaction_hash", "activity_type", "user_address", name="uq_user_activity_action"
        ),
        Index("idx_user_activity_user_ts", "user_address", "timestamp"),
        Index("idx_user_activity_pool", "pool_address", "chain_id"),
    )


class BlockchainEventModel(Base):
    """Archived raw events (lifecycle transitions without a dedicated table)."""

    __tablename__ = "blockchain_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    chain_id: Mapped[int] = mapped_column(Integer, nullable=False)
    contract_address: Mapped[str] = mapped_column(String(42), nullable=False)
    event_name: Mapped[str] = mapped_column(String(64), nullable=False)
    block_number: Mapped[int] = mapped_column(BigInteger, nullable=False)
    transaction_hash: Mapped[str] = mapped_column(String(66), nullable=False)
    log_index: Mapped[int] = mapped_column(Integer, nullable=False)
    event_data: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    block_timestamp: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    indexed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        UniqueConstraint("chain_id", "transaction_hash", "log_index", name="uq_blockchain_events_log"),
        Index("idx_blockchain_events_contract", "contract_address", "chain_id", "event_name"),
    )


class CollectionModel(Base):
    """An NFT collection (protocol-deployed or external prize collection)."""

    __tablename__ = "collections"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    address: Mapped[str] = mapped_column(String(42), nullable=False)
    chain_id: Mapped[int] = mapped_column(Integer, nullable=False)
    creator: Mapped[str | None] = mapped_column(String(42), nullable=True)
    owner: Mapped[str | None] = mapped_column(String(42), nullable=True)
    standard: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    name: Mapped[str | None] = mapped_column(Text, nullable=True)
    symbol: Mapped[str | None] = mapped_column(String(64), nullable=True)

    drop_uri: Mapped[str | None] = mapped_column(Text, nullable=True)
    unrevealed_uri: Mapped[str | None] = mapped_column(Text, nullable=True)
    base_uri: Mapped[str | None] = mapped_column(Text, nullable=True)
    drop_uri_hash: Mapped[str | None] = mapped_column(String(66), nullable=True)
    unrevealed_uri_hash: Mapped[str | None] = mapped_column(String(66), nullable=True)
    is_revealed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    total_supply: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    current_supply: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    max_supply: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    royalty_recipient: Mapped[str | None] = mapped_column(String(42), nullable=True)
    royalty_bps: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_external: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    deployed_block: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    deployed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_synced_block: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    last_synced_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        UniqueConstraint("address", "chain_id", name="uq_collections_address_chain"),
        Index("idx_collections_creator", "creator"),
    )


class PointsSystemModel(Base):
    """Rewards-flywheel points system state (one row per flywheel contract)."""

    __tablename__ = "flywheel_points_system"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    chain_id: Mapped[int] = mapped_column(Integer, nullable=False)
    contract_address: Mapped[str] = mapped_column(String(42), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    claims_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    reward_token: Mapped[str | None] = mapped_column(String(42), nullable=True)
    points_per_token: Mapped[Decimal | None] = mapped_column(UINT256, nullable=True)
    total_deposited: Mapped[Decimal] = mapped_column(UINT256, nullable=False, default=Decimal(0))
    last_synced_block: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    last_synced_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (UniqueConstraint("chain_id", "contract_address", name="uq_points_system_contract"),)


class UserPointsModel(Base):
    """Points claimed per user."""

    __tablename__ = "flywheel_user_points"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    chain_id: Mapped[int] = mapped_column(Integer, nullable=False)
    user_address: Mapped[str] = mapped_column(String(42), nullable=False)
    claimed_points: Mapped[Decimal] = mapped_column(UINT256, nullable=False, default=Decimal(0))
    last_claim_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_synced_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (UniqueConstraint("chain_id", "user_address", name="uq_user_points_user"),)


class PoolRewardsModel(Base):
    """Participant reward pot deposited for one pool."""

    __tablename__ = "flywheel_pool_rewards"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    chain_id: Mapped[int] = mapped_column(Integer, nullable=False)
    pool_address: Mapped[str] = mapped_column(String(42), nullable=False)
    depositor: Mapped[str | None] = mapped_column(String(42), nullable=True)
    reward_token: Mapped[str | None] = mapped_column(String(42), nullable=True)
    total_deposited: Mapped[Decimal] = mapped_column(UINT256, nullable=False, default=Decimal(0))
    total_claimed: Mapped[Decimal] = mapped_column(UINT256, nullable=False, default=Decimal(0))
    total_withdrawn: Mapped[Decimal] = mapped_column(UINT256, nullable=False, default=Decimal(0))
    claimed_slots: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    reward_per_slot: Mapped[Decimal | None] = mapped_column(UINT256, nullable=True)
    total_eligible_slots: Mapped[int | None] = mapped_column(Integer, nullable=True)
    reward_per_slot_calculated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    deposit_block: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    deposit_tx_hash: Mapped[str | None] = mapped_column(String(66), nullable=True)
    last_synced_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (UniqueConstraint("chain_id", "pool_address", name="uq_pool_rewards_pool"),)


class ParticipantClaimModel(Base):
    """A participant's reward claim for one pool."""

    __tablename__ = "flywheel_participant_claims"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    chain_id: Mapped[int] = mapped_column(Integer, nullable=False)
    pool_address: Mapped[str] = mapped_column(String(42), nullable=False)
    participant_address: Mapped[str] = mapped_column(String(42), nullable=False)
    reward_token: Mapped[str | None] = mapped_column(String(42), nullable=True)
    amount_claimed: Mapped[Decimal] = mapped_column(UINT256, nullable=False)
    claim_block: Mapped[int] = mapped_column(BigInteger, nullable=False)
    claim_tx_hash: Mapped[str] = mapped_column(String(66), nullable=False)
    claimed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("chain_id", "pool_address", "participant_address", name="uq_participant_claims"),
    )


class CreatorRewardsModel(Base):
    """Creator reward program for one reward token."""

    __tablename__ = "flywheel_creator_rewards"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    chain_id: Mapped[int] = mapped_column(Integer, nullable=False)
    reward_token: Mapped[str] = mapped_column(String(42), nullable=False)
    token_symbol: Mapped[str | None] = mapped_column(String(64), nullable=True)
    token_decimals: Mapped[int] = mapped_column(Integer, nullable=False, default=18)
    reward_amount_per_creator: Mapped[Decimal | None] = mapped_column(UINT256, nullable=True)
    eligible_pool_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    total_deposited: Mapped[Decimal] = mapped_column(UINT256, nullable=False, default=Decimal(0))
    total_claimed: Mapped[Decimal] = mapped_column(UINT256, nullable=False, default=Decimal(0))
    total_withdrawn: Mapped[Decimal] = mapped_column(UINT256, nullable=False, default=Decimal(0))
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    last_synced_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (UniqueConstraint("chain_id", "reward_token", name="uq_creator_rewards_token"),)


class CreatorClaimModel(Base):
    """A creator's reward claim for one pool and token."""

    __tablename__ = "flywheel_creator_claims"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    chain_id: Mapped[int] = mapped_column(Integer, nullable=False)
    pool_address: Mapped[str] = mapped_column(String(42), nullable=False)
    creator_address: Mapped[str] = mapped_column(String(42), nullable=False)
    reward_token: Mapped[str] = mapped_column(String(42), nullable=False)
    amount_claimed: Mapped[Decimal] = mapped_column(UINT256, nullable=False)
    fill_percentage: Mapped[int | None] = mapped_column(Integer, nullable=True)
    claim_block: Mapped[int] = mapped_column(BigInteger, nullable=False)
    claim_tx_hash: Mapped[str] = mapped_column(String(66), nullable=False)
    claimed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint(
            "chain_id", "pool_address", "creator_address", "reward_token", name="uq_creator_claims"
        ),
    )


class RewardsClaimModel(Base):
    """Unified claim history across points, participant and creator rewards."""

    __tablename__ = "rewards_claims"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    chain_id: Mapped[int] = mapped_column(Integer, nullable=False)
    pool_address: Mapped[str] = mapped_column(String(42), nullable=False)
    claim_type: Mapped[str] = mapped_column(String(30), nullable=False)
    claimant_address: Mapped[str] = mapped_column(String(42), nullable=False)
    token_address: Mapped[str | None] = mapped_column(String(42), nullable=True)
    amount: Mapped[Decimal] = mapped_column(UINT256, nullable=False)
    points_claimed: Mapped[Decimal | None] = mapped_column(UINT256, nullable=True)
    fill_percentage: Mapped[int | None] = mapped_column(Integer, nullable=True)
    block_number: Mapped[int] = mapped_column(BigInteger, nullable=False)
    transaction_hash: Mapped[str] = mapped_column(String(66), nullable=False)
    timestamp: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        UniqueConstraint(
            "chain_id", "transaction_hash", "claimant_address", "claim_type", name="uq_rewards_claims_claim"
        ),
        Index("idx_rewards_claims_claimant", "claimant_address", "chain_id"),
    )


class LeaseModel(Base):
    """Advisory lease held by the orchestrator while it runs."""

    __tablename__ = "indexer_leases"

    name: Mapped[str] = mapped_column(String(100), primary_key=True)
    holder: Mapped[str] = mapped_column(String(100), nullable=False)
    acquired_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
