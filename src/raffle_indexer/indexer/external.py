"""Refresh of externally deployed prize collections.

External collections emit nothing the factory indexer sees, so their rows
are rebuilt from view reads: explicitly listed addresses, a single pool's
prize collection, stale rows, or every external prize collection known
from pools.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from raffle_indexer.chain.abi import AbiDecodeError
from raffle_indexer.chain.client import ChainClientError
from raffle_indexer.chain.registry import ProviderRegistry
from raffle_indexer.indexer.collection_views import read_collection_state
from raffle_indexer.storage.database import SessionFactory, transaction
from raffle_indexer.storage.repos import CollectionRepository, PoolRepository

logger = logging.getLogger(__name__)

DEFAULT_STALE_AFTER = timedelta(hours=24)


@dataclass
class RefreshResult:
    """Summary of one refresh pass."""

    chain_id: int
    results: list[dict[str, Any]] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return sum(1 for r in self.results if r["success"])

    @property
    def error_count(self) -> int:
        return len(self.results) - self.success_count

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": True,
            "chainId": self.chain_id,
            "collectionsProcessed": len(self.results),
            "successCount": self.success_count,
            "errorCount": self.error_count,
            "results": list(self.results),
        }


class ExternalCollectionRefresher:
    """Re-reads external prize collections and upserts them with ``is_external``."""

    def __init__(
        self,
        registry: ProviderRegistry,
        session_factory: SessionFactory,
        *,
        stale_after: timedelta = DEFAULT_STALE_AFTER,
    ) -> None:
        self.registry = registry
        self.session_factory = session_factory
        self.stale_after = stale_after

    async def _targets(
        self,
        chain_id: int,
        addresses: Sequence[str] | None,
        pool_address: str | None,
        refresh_stale: bool,
    ) -> dict[str, int]:
        async with transaction(self.session_factory) as session:
            pools = PoolRepository(session)
            collections = CollectionRepository(session)

            if addresses:
                targets: dict[str, int] = {}
                for address in addresses:
                    address = address.lower()
                    existing = await collections.get(chain_id, address)
                    if existing is not None:
                        targets[address] = existing.standard
                    else:
                        targets[address] = await pools.prize_standard(chain_id, address) or 0
                return targets

            if pool_address:
                pool = await pools.get(chain_id, pool_address)
                if pool is None or not pool.prize_collection or not pool.is_external_collection:
                    return {}
                return {pool.prize_collection: pool.standard or 0}

            targets = await pools.external_prize_collections(chain_id)
            if refresh_stale:
                fresh = await collections.synced_since(chain_id, list(targets), older_than=self.stale_after)
                targets = {a: s for a, s in targets.items() if a not in fresh}
            return targets

    async def refresh(
        self,
        chain_id: int,
        *,
        addresses: Sequence[str] | None = None,
        pool_address: str | None = None,
        refresh_stale: bool = False,
    ) -> RefreshResult:
        """Refresh the selected external collections.

        Raises:
            UnsupportedChain: If the chain id is not supported.
        """
        client = self.registry.get_provider(chain_id)
        targets = await self._targets(chain_id, addresses, pool_address, refresh_stale)
        logger.info("[chain %d] Refreshing %d external collections", chain_id, len(targets))

        result = RefreshResult(chain_id=chain_id)
        for address, standard in targets.items():
            try:
                values = await read_collection_state(client, address, standard)
                values.update(is_external=True, last_synced_at=datetime.now(UTC))
                async with transaction(self.session_factory) as session:
                    await CollectionRepository(session).upsert(chain_id, address, values)
            except (ChainClientError, AbiDecodeError, ValueError, SQLAlchemyError) as e:
                logger.error("[chain %d] Failed to refresh collection %s: %s", chain_id, address, e)
                result.results.append({"address": address, "success": False, "error": str(e)})
                continue
            result.results.append({"address": address, "success": True})

        logger.info(
            "[chain %d] External collections: %d ok, %d errors",
            chain_id,
            result.success_count,
            result.error_count,
        )
        return result

