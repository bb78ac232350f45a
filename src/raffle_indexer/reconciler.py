"""Pool state reconciliation.

Some lifecycle transitions (pending start, unengaged, deleted, all prizes
claimed) emit no log, so live pools are polled for their current state and
winner list and the stored rows are corrected.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy.exc import SQLAlchemyError

from raffle_indexer import contracts
from raffle_indexer.chain.abi import AbiDecodeError
from raffle_indexer.chain.client import ChainClientError, read_views
from raffle_indexer.indexer.pool import LIVE_STATES
from raffle_indexer.storage.database import SessionFactory, transaction
from raffle_indexer.storage.repos import PoolDTO, PoolRepository

if TYPE_CHECKING:
    from raffle_indexer.chain.client import ChainClient
    from raffle_indexer.chain.registry import ProviderRegistry

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 50


@dataclass(frozen=True)
class ChainPoolState:
    """Current on-chain view of one pool."""

    address: str
    state: int
    winners_selected: int | None


@dataclass
class ReconcileResult:
    chain_id: int
    pools_checked: int = 0
    pools_synced: int = 0
    errors: int = 0
    state_changes: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        if not self.pools_checked:
            return {"success": True, "chainId": self.chain_id, "poolsSynced": 0, "message": "No pools to sync"}
        return {
            "success": True,
            "chainId": self.chain_id,
            "poolsSynced": self.pools_synced,
            "errors": self.errors,
            "stateChanges": list(self.state_changes),
            "totalPoolsChecked": self.pools_checked,
        }


class StateReconciler:
    """Polls live pools and writes back state and winner-count drift."""

    def __init__(
        self,
        registry: ProviderRegistry,
        session_factory: SessionFactory,
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> None:
        self.registry = registry
        self.session_factory = session_factory
        self.batch_size = batch_size

    async def _read_chain_state(self, client: ChainClient, address: str) -> ChainPoolState | None:
        # state() is required; a failed getWinners() only skips the winner diff
        try:
            state, views = await asyncio.gather(
                client.call_function(address, contracts.POOL_STATE),
                read_views(client, address, {"winners": (contracts.POOL_GET_WINNERS, None)}),
            )
        except (ChainClientError, AbiDecodeError) as e:
            logger.error("Error fetching state for %s: %s", address, e)
            return None
        winners = views["winners"]
        if winners is None:
            logger.warning("Winners unavailable for %s, checking state only", address)
        return ChainPoolState(
            address=address,
            state=int(state),
            winners_selected=None if winners is None else len(winners),
        )

    async def reconcile(
        self,
        chain_id: int,
        contract_address: str | None = None,
        batch_size: int | None = None,
    ) -> ReconcileResult:
        """Reconcile a batch of live pools, least recently synced first.

        With ``contract_address`` only that pool is checked, whatever its state.

        Raises:
            UnsupportedChain: If the chain id is not supported.
        """
        client = self.registry.get_provider(chain_id)
        async with transaction(self.session_factory) as session:
            pools = await PoolRepository(session).list_for_reconcile(
                chain_id,
                live_states=LIVE_STATES,
                limit=batch_size or self.batch_size,
                address=contract_address,
            )

        result = ReconcileResult(chain_id=chain_id, pools_checked=len(pools))
        if not pools:
            logger.info("[chain %d] No pools to sync", chain_id)
            return result

        logger.info("[chain %d] Reconciling %d pools", chain_id, len(pools))
        observed = await asyncio.gather(*(self._read_chain_state(client, p.address) for p in pools))

        for pool, chain_state in zip(pools, observed, strict=True):
            if chain_state is None:
                result.errors += 1
                continue
            try:
                await self._apply(chain_id, pool, chain_state, result)
            except SQLAlchemyError as e:
                logger.error("[chain %d] Failed to update %s: %s", chain_id, pool.address, e)
                result.errors += 1
                continue
            result.pools_synced += 1

        logger.info(
            "[chain %d] Sync complete: %d pools synced, %d errors",
            chain_id,
            result.pools_synced,
            result.errors,
        )
        return result

    async def _apply(
        self,
        chain_id: int,
        pool: PoolDTO,
        chain_state: ChainPoolState,
        result: ReconcileResult,
    ) -> None:
        now = datetime.now(UTC)
        state_changed = chain_state.state != pool.state
        winners_known = chain_state.winners_selected is not None
        winners_changed = winners_known and chain_state.winners_selected != (pool.winners_selected or 0)

        async with transaction(self.session_factory) as session:
            pools = PoolRepository(session)
            if not (state_changed or winners_changed):
                await pools.update(chain_id, pool.address, last_synced_at=now)
                return

            logger.info(
                "Updating %s: state %d -> %d, winners %d -> %s",
                pool.address,
                pool.state,
                chain_state.state,
                pool.winners_selected or 0,
                chain_state.winners_selected if winners_known else "unknown",
            )
            values: dict[str, Any] = {"state": chain_state.state, "last_synced_at": now}
            if winners_known:
                values["winners_selected"] = chain_state.winners_selected
            await pools.update(chain_id, pool.address, **values)

        if state_changed:
            result.state_changes.append(
                {"address": pool.address, "oldState": pool.state, "newState": chain_state.state}
            )
