"""Initial schema for pools, collections, activity, rewards and sync state.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19 00:00:00.000000+00:00
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

UINT256 = sa.Numeric(78, 0)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    # Sync cursors
    op.create_table(
        "indexer_sync_state",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("chain_id", sa.Integer(), nullable=False),
        sa.Column("contract_type", sa.String(40), nullable=False),
        sa.Column("contract_address", sa.String(42), nullable=False),
        sa.Column("last_indexed_block", sa.BigInteger(), nullable=True),
        sa.Column("last_block_hash", sa.String(66), nullable=True),
        sa.Column("last_indexed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_healthy", sa.Boolean(), nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("chain_id", "contract_type", "contract_address", name="uq_sync_state_contract"),
    )
    op.create_index("idx_sync_state_chain_contract", "indexer_sync_state", ["chain_id", "contract_type"])

    # Pools
    op.create_table(
        "pools",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("address", sa.String(42), nullable=False),
        sa.Column("chain_id", sa.Integer(), nullable=False),
        sa.Column("pool_id", sa.BigInteger(), nullable=True),
        sa.Column("name", sa.Text(), nullable=True),
        sa.Column("creator", sa.String(42), nullable=False),
        sa.Column("state", sa.Integer(), nullable=False),
        sa.Column("start_time", sa.BigInteger(), nullable=False),
        sa.Column("duration", sa.BigInteger(), nullable=False),
        sa.Column("actual_duration", sa.BigInteger(), nullable=True),
        sa.Column("activated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("activated_block", sa.BigInteger(), nullable=True),
        sa.Column("ended_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("ended_block", sa.BigInteger(), nullable=True),
        sa.Column("created_at_block", sa.BigInteger(), nullable=False),
        sa.Column("created_at_timestamp", sa.DateTime(timezone=True), nullable=True),
        sa.Column("slot_fee", UINT256, nullable=False),
        sa.Column("slot_limit", sa.Integer(), nullable=False),
        sa.Column("winners_count", sa.Integer(), nullable=False),
        sa.Column("max_slots_per_address", sa.Integer(), nullable=False),
        sa.Column("slots_sold", sa.Integer(), nullable=False),
        sa.Column("winners_selected", sa.Integer(), nullable=False),
        sa.Column("is_refundable", sa.Boolean(), nullable=False),
        sa.Column("is_collab_pool", sa.Boolean(), nullable=False),
        sa.Column("uses_custom_fee", sa.Boolean(), nullable=False),
        sa.Column("revenue_recipient", sa.String(42), nullable=True),
        sa.Column("is_prized", sa.Boolean(), nullable=False),
        sa.Column("prize_kind", sa.String(10), nullable=False),
        sa.Column("prize_collection", sa.String(42), nullable=True),
        sa.Column("prize_token_id", UINT256, nullable=True),
        sa.Column("standard", sa.Integer(), nullable=True),
        sa.Column("is_escrowed_prize", sa.Boolean(), nullable=True),
        sa.Column("is_external_collection", sa.Boolean(), nullable=False),
        sa.Column("amount_per_winner", UINT256, nullable=True),
        sa.Column("erc20_prize_token", sa.String(42), nullable=True),
        sa.Column("erc20_prize_amount", UINT256, nullable=True),
        sa.Column("erc20_prize_symbol", sa.String(64), nullable=True),
        sa.Column("native_prize_amount", UINT256, nullable=True),
        sa.Column("artwork_url", sa.Text(), nullable=True),
        sa.Column("holder_token_address", sa.String(42), nullable=True),
        sa.Column("holder_token_standard", sa.Integer(), nullable=True),
        sa.Column("min_holder_token_balance", UINT256, nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("twitter_link", sa.Text(), nullable=True),
        sa.Column("discord_link", sa.Text(), nullable=True),
        sa.Column("telegram_link", sa.Text(), nullable=True),
        sa.Column("social_task_description", sa.Text(), nullable=True),
        sa.Column("social_engagement_required", sa.Boolean(), nullable=False),
        sa.Column("last_synced_block", sa.BigInteger(), nullable=True),
        sa.Column("last_synced_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("address", "chain_id", name="uq_pools_address_chain"),
    )
    op.create_index("idx_pools_chain_state", "pools", ["chain_id", "state"])
    op.create_index("idx_pools_creator", "pools", ["creator"])

    # Slot purchases (one row per SlotsPurchased event)
    op.create_table(
        "slot_purchases",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("chain_id", sa.Integer(), nullable=False),
        sa.Column("pool_address", sa.String(42), nullable=False),
        sa.Column("participant_address", sa.String(42), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("amount", UINT256, nullable=False),
        sa.Column("block_number", sa.BigInteger(), nullable=False),
        sa.Column("transaction_hash", sa.String(66), nullable=False),
        sa.Column("log_index", sa.Integer(), nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("chain_id", "transaction_hash", "log_index", name="uq_slot_purchases_event"),
    )
    op.create_index(
        "idx_slot_purchases_pool_participant",
        "slot_purchases",
        ["pool_address", "chain_id", "participant_address"],
    )

    # Participants
    op.create_table(
        "pool_participants",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("pool_address", sa.String(42), nullable=False),
        sa.Column("chain_id", sa.Integer(), nullable=False),
        sa.Column("participant_address", sa.String(42), nullable=False),
        sa.Column("slots_purchased", sa.Integer(), nullable=False),
        sa.Column("total_spent", UINT256, nullable=False),
        sa.Column("wins_count", sa.Integer(), nullable=False),
        sa.Column("prizes_claimed", sa.Integer(), nullable=False),
        sa.Column("refund_claimed", sa.Boolean(), nullable=False),
        sa.Column("refundable_amount", UINT256, nullable=False),
        sa.Column("first_purchase_block", sa.BigInteger(), nullable=True),
        sa.Column("first_purchase_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_purchase_block", sa.BigInteger(), nullable=True),
        sa.Column("last_purchase_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("pool_address", "chain_id", "participant_address", name="uq_participants_pool_user"),
    )
    op.create_index("idx_participants_user", "pool_participants", ["participant_address", "chain_id"])

    # Winners
    op.create_table(
        "pool_winners",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("pool_address", sa.String(42), nullable=False),
        sa.Column("chain_id", sa.Integer(), nullable=False),
        sa.Column("winner_address", sa.String(42), nullable=False),
        sa.Column("winner_index", sa.Integer(), nullable=False),
        sa.Column("selected_block", sa.BigInteger(), nullable=False),
        sa.Column("selected_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("selection_tx_hash", sa.String(66), nullable=True),
        sa.Column("prize_claimed", sa.Boolean(), nullable=False),
        sa.Column("prize_claimed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("prize_claimed_block", sa.BigInteger(), nullable=True),
        sa.Column("prize_claimed_tx_hash", sa.String(66), nullable=True),
        sa.Column("minted_token_id", UINT256, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "pool_address", "chain_id", "winner_address", "winner_index", name="uq_winners_pool_user_index"
        ),
    )
    op.create_index("idx_winners_user", "pool_winners", ["winner_address", "chain_id"])

    # Activity feed
    op.create_table(
        "user_activity",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_address", sa.String(42), nullable=False),
        sa.Column("chain_id", sa.Integer(), nullable=False),
        sa.Column("activity_type", sa.String(40), nullable=False),
        sa.Column("pool_address", sa.String(42), nullable=True),
        sa.Column("pool_name", sa.Text(), nullable=True),
        sa.Column("collection_address", sa.String(42), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=True),
        sa.Column("amount", UINT256, nullable=True),
        sa.Column("token_id", UINT256, nullable=True),
        sa.Column("request_id", sa.String(80), nullable=True),
        sa.Column("block_number", sa.BigInteger(), nullable=False),
        sa.Column("transaction_hash", sa.String(66), nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "chain_id", "transaction_hash", "activity_type", "user_address", name="uq_user_activity_action"
        ),
    )
    op.create_index("idx_user_activity_user_ts", "user_activity", ["user_address", "timestamp"])
    op.create_index("idx_user_activity_pool", "user_activity", ["pool_address", "chain_id"])

    # Archived raw events
    op.create_table(
        "blockchain_events",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("chain_id", sa.Integer(), nullable=False),
        sa.Column("contract_address", sa.String(42), nullable=False),
        sa.Column("event_name", sa.String(64), nullable=False),
        sa.Column("block_number", sa.BigInteger(), nullable=False),
        sa.Column("transaction_hash", sa.String(66), nullable=False),
        sa.Column("log_index", sa.Integer(), nullable=False),
        sa.Column("event_data", sa.JSON(), nullable=False),
        sa.Column("block_timestamp", sa.DateTime(timezone=True), nullable=True),
        sa.Column("indexed_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("chain_id", "transaction_hash", "log_index", name="uq_blockchain_events_log"),
    )
    op.create_index(
        "idx_blockchain_events_contract", "blockchain_events", ["contract_address", "chain_id", "event_name"]
    )

    # Collections
    op.create_table(
        "collections",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("address", sa.String(42), nullable=False),
        sa.Column("chain_id", sa.Integer(), nullable=False),
        sa.Column("creator", sa.String(42), nullable=True),
        sa.Column("owner", sa.String(42), nullable=True),
        sa.Column("standard", sa.Integer(), nullable=False),
        sa.Column("name", sa.Text(), nullable=True),
        sa.Column("symbol", sa.String(64), nullable=True),
        sa.Column("drop_uri", sa.Text(), nullable=True),
        sa.Column("unrevealed_uri", sa.Text(), nullable=True),
        sa.Column("base_uri", sa.Text(), nullable=True),
        sa.Column("drop_uri_hash", sa.String(66), nullable=True),
        sa.Column("unrevealed_uri_hash", sa.String(66), nullable=True),
        sa.Column("is_revealed", sa.Boolean(), nullable=False),
        sa.Column("total_supply", sa.BigInteger(), nullable=True),
        sa.Column("current_supply", sa.BigInteger(), nullable=False),
        sa.Column("max_supply", sa.BigInteger(), nullable=True),
        sa.Column("royalty_recipient", sa.String(42), nullable=True),
        sa.Column("royalty_bps", sa.Integer(), nullable=True),
        sa.Column("is_external", sa.Boolean(), nullable=False),
        sa.Column("deployed_block", sa.BigInteger(), nullable=True),
        sa.Column("deployed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_synced_block", sa.BigInteger(), nullable=True),
        sa.Column("last_synced_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("address", "chain_id", name="uq_collections_address_chain"),
    )
    op.create_index("idx_collections_creator", "collections", ["creator"])

    # Rewards flywheel mirrors
    op.create_table(
        "flywheel_points_system",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("chain_id", sa.Integer(), nullable=False),
        sa.Column("contract_address", sa.String(42), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("claims_active", sa.Boolean(), nullable=False),
        sa.Column("reward_token", sa.String(42), nullable=True),
        sa.Column("points_per_token", UINT256, nullable=True),
        sa.Column("total_deposited", UINT256, nullable=False),
        sa.Column("last_synced_block", sa.BigInteger(), nullable=True),
        sa.Column("last_synced_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("chain_id", "contract_address", name="uq_points_system_contract"),
    )

    op.create_table(
        "flywheel_user_points",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("chain_id", sa.Integer(), nullable=False),
        sa.Column("user_address", sa.String(42), nullable=False),
        sa.Column("claimed_points", UINT256, nullable=False),
        sa.Column("last_claim_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_synced_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("chain_id", "user_address", name="uq_user_points_user"),
    )

    op.create_table(
        "flywheel_pool_rewards",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("chain_id", sa.Integer(), nullable=False),
        sa.Column("pool_address", sa.String(42), nullable=False),
        sa.Column("depositor", sa.String(42), nullable=True),
        sa.Column("reward_token", sa.String(42), nullable=True),
        sa.Column("total_deposited", UINT256, nullable=False),
        sa.Column("total_claimed", UINT256, nullable=False),
        sa.Column("total_withdrawn", UINT256, nullable=False),
        sa.Column("claimed_slots", sa.Integer(), nullable=False),
        sa.Column("reward_per_slot", UINT256, nullable=True),
        sa.Column("total_eligible_slots", sa.Integer(), nullable=True),
        sa.Column("reward_per_slot_calculated", sa.Boolean(), nullable=False),
        sa.Column("deposit_block", sa.BigInteger(), nullable=True),
        sa.Column("deposit_tx_hash", sa.String(66), nullable=True),
        sa.Column("last_synced_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("chain_id", "pool_address", name="uq_pool_rewards_pool"),
    )

    op.create_table(
        "flywheel_participant_claims",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("chain_id", sa.Integer(), nullable=False),
        sa.Column("pool_address", sa.String(42), nullable=False),
        sa.Column("participant_address", sa.String(42), nullable=False),
        sa.Column("reward_token", sa.String(42), nullable=True),
        sa.Column("amount_claimed", UINT256, nullable=False),
        sa.Column("claim_block", sa.BigInteger(), nullable=False),
        sa.Column("claim_tx_hash", sa.String(66), nullable=False),
        sa.Column("claimed_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("chain_id", "pool_address", "participant_address", name="uq_participant_claims"),
    )

    op.create_table(
        "flywheel_creator_rewards",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("chain_id", sa.Integer(), nullable=False),
        sa.Column("reward_token", sa.String(42), nullable=False),
        sa.Column("token_symbol", sa.String(64), nullable=True),
        sa.Column("token_decimals", sa.Integer(), nullable=False),
        sa.Column("reward_amount_per_creator", UINT256, nullable=True),
        sa.Column("eligible_pool_count", sa.Integer(), nullable=True),
        sa.Column("total_deposited", UINT256, nullable=False),
        sa.Column("total_claimed", UINT256, nullable=False),
        sa.Column("total_withdrawn", UINT256, nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("last_synced_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("chain_id", "reward_token", name="uq_creator_rewards_token"),
    )

    op.create_table(
        "flywheel_creator_claims",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("chain_id", sa.Integer(), nullable=False),
        sa.Column("pool_address", sa.String(42), nullable=False),
        sa.Column("creator_address", sa.String(42), nullable=False),
        sa.Column("reward_token", sa.String(42), nullable=False),
        sa.Column("amount_claimed", UINT256, nullable=False),
        sa.Column("fill_percentage", sa.Integer(), nullable=True),
        sa.Column("claim_block", sa.BigInteger(), nullable=False),
        sa.Column("claim_tx_hash", sa.String(66), nullable=False),
        sa.Column("claimed_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "chain_id", "pool_address", "creator_address", "reward_token", name="uq_creator_claims"
        ),
    )

    op.create_table(
        "rewards_claims",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("chain_id", sa.Integer(), nullable=False),
        sa.Column("pool_address", sa.String(42), nullable=False),
        sa.Column("claim_type", sa.String(30), nullable=False),
        sa.Column("claimant_address", sa.String(42), nullable=False),
        sa.Column("token_address", sa.String(42), nullable=True),
        sa.Column("amount", UINT256, nullable=False),
        sa.Column("points_claimed", UINT256, nullable=True),
        sa.Column("fill_percentage", sa.Integer(), nullable=True),
        sa.Column("block_number", sa.BigInteger(), nullable=False),
        sa.Column("transaction_hash", sa.String(66), nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "chain_id", "transaction_hash", "claimant_address", "claim_type", name="uq_rewards_claims_claim"
        ),
    )
    op.create_index("idx_rewards_claims_claimant", "rewards_claims", ["claimant_address", "chain_id"])

    # Orchestrator lease
    op.create_table(
        "indexer_leases",
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("holder", sa.String(100), nullable=False),
        sa.Column("acquired_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("name"),
    )


def downgrade() -> None:
    op.drop_table("indexer_leases")
    op.drop_index("idx_rewards_claims_claimant", table_name="rewards_claims")
    op.drop_table("rewards_claims")
    op.drop_table("flywheel_creator_claims")
    op.drop_table("flywheel_creator_rewards")
    op.drop_table("flywheel_participant_claims")
    op.drop_table("flywheel_pool_rewards")
    op.drop_table("flywheel_user_points")
    op.drop_table("flywheel_points_system")
    op.drop_index("idx_collections_creator", table_name="collections")
    op.drop_table("collections")
    op.drop_index("idx_blockchain_events_contract", table_name="blockchain_events")
    op.drop_table("blockchain_events")
    op.drop_index("idx_user_activity_pool", table_name="user_activity")
    op.drop_index("idx_user_activity_user_ts", table_name="user_activity")
    op.drop_table("user_activity")
    op.drop_index("idx_winners_user", table_name="pool_winners")
    op.drop_table("pool_winners")
    op.drop_index("idx_participants_user", table_name="pool_participants")
    op.drop_table("pool_participants")
    op.drop_index("idx_slot_purchases_pool_participant", table_name="slot_purchases")
    op.drop_table("slot_purchases")
    op.drop_index("idx_pools_creator", table_name="pools")
    op.drop_index("idx_pools_chain_state", table_name="pools")
    op.drop_table("pools")
    op.drop_index("idx_sync_state_chain_contract", table_name="indexer_sync_state")
    op.drop_table("indexer_sync_state")
