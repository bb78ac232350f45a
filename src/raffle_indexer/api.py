"""Request boundary.

Maps JSON-shaped request bodies onto indexer operations and every outcome
onto an HTTP-like ``(status, payload)`` pair. Input errors are rejected
before any I/O; run failures become 500s with details.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Mapping
from datetime import timedelta
from typing import TYPE_CHECKING, Any

from sqlalchemy.exc import SQLAlchemyError

from raffle_indexer.chain.networks import UnsupportedChain, is_supported_network
from raffle_indexer.config import DriverSettings, IndexerSettings
from raffle_indexer.driver import Orchestrator, Ticker
from raffle_indexer.indexer import INDEXER_TYPES, ContractIndexer, PoolDeployerIndexer
from raffle_indexer.indexer.base import IndexingFailed, InvalidRequest
from raffle_indexer.indexer.external import ExternalCollectionRefresher
from raffle_indexer.reconciler import StateReconciler

if TYPE_CHECKING:
    from raffle_indexer.artwork import ArtworkResolver
    from raffle_indexer.chain.registry import ProviderRegistry
    from raffle_indexer.storage.database import SessionFactory

logger = logging.getLogger(__name__)

Response = tuple[int, dict[str, Any]]

ADDRESS_KEYS = ("contractAddress", "poolAddress", "collectionAddress")


def _optional_int(body: Mapping[str, Any], key: str) -> int | None:
    value = body.get(key)
    if value is None:
        return None
    if isinstance(value, bool):
        raise InvalidRequest(f"Invalid {key}")
    try:
        number = int(value)
    except (TypeError, ValueError) as e:
        raise InvalidRequest(f"Invalid {key}") from e
    if number < 0:
        raise InvalidRequest(f"Invalid {key}")
    return number


def parse_chain_id(body: Mapping[str, Any]) -> int:
    """Validate ``chainId``.

    Raises:
        InvalidRequest: If it is missing or not an integer.
        UnsupportedChain: If it is not a supported network.
    """
    chain_id = body.get("chainId")
    if chain_id is None or isinstance(chain_id, bool) or not isinstance(chain_id, int):
        raise InvalidRequest("Missing or invalid chainId")
    if not is_supported_network(chain_id):
        raise UnsupportedChain(chain_id)
    return chain_id


def parse_address(body: Mapping[str, Any]) -> str | None:
    for key in ADDRESS_KEYS:
        value = body.get(key)
        if value:
            if not isinstance(value, str) or not value.startswith("0x") or len(value) != 42:
                raise InvalidRequest(f"Invalid {key}")
            return value.lower()
    return None


def parse_block_range(body: Mapping[str, Any]) -> tuple[int | None, int | None]:
    from_block = _optional_int(body, "fromBlock")
    to_block = None if body.get("toBlock") == "latest" else _optional_int(body, "toBlock")
    if from_block is not None and to_block is not None and from_block > to_block:
        raise InvalidRequest("fromBlock must not be greater than toBlock")
    return from_block, to_block


class IndexerService:
    """Entry points for every indexer operation.

    Example:
        ```python
        service = IndexerService(registry, db.session_factory)
        status, payload = await service.index("pool", {"chainId": 84532, "poolAddress": "0x..."})
        ```
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        session_factory: SessionFactory,
        *,
        indexer_settings: IndexerSettings | None = None,
        driver_settings: DriverSettings | None = None,
        artwork: ArtworkResolver | None = None,
    ) -> None:
        self.indexer_settings = indexer_settings or IndexerSettings()
        self.driver_settings = driver_settings or DriverSettings()
        chunk = self.indexer_settings.logs_chunk_size_blocks

        self.indexers: dict[str, ContractIndexer] = {}
        for kind, indexer_type in INDEXER_TYPES.items():
            if indexer_type is PoolDeployerIndexer:
                self.indexers[kind] = PoolDeployerIndexer(
                    registry, session_factory, logs_chunk_size=chunk, artwork=artwork
                )
            else:
                self.indexers[kind] = indexer_type(registry, session_factory, logs_chunk_size=chunk)

        self.reconciler = StateReconciler(
            registry, session_factory, batch_size=self.indexer_settings.reconcile_batch_size
        )
        self.refresher = ExternalCollectionRefresher(
            registry,
            session_factory,
            stale_after=timedelta(hours=self.indexer_settings.external_collection_stale_hours),
        )
        self.orchestrator = Orchestrator(
            session_factory,
            indexers=self.indexers,
            reconciler=self.reconciler,
            refresher=self.refresher,
            pool_concurrency=self.indexer_settings.pool_concurrency,
            lease_ttl=timedelta(seconds=self.driver_settings.lease_seconds),
            reconcile_batch_size=self.indexer_settings.reconcile_batch_size,
        )

    async def _respond(self, operation: Callable[[], Awaitable[Any]]) -> Response:
        try:
            result = await operation()
        except (UnsupportedChain, InvalidRequest) as e:
            return 400, {"error": str(e)}
        except IndexingFailed as e:
            return 500, {"error": "Indexing failed", "details": str(e.cause)}
        except SQLAlchemyError as e:
            logger.error("Storage failure: %s", e)
            return 500, {"error": "Storage failure", "details": str(e)}
        return 200, result.to_dict() if hasattr(result, "to_dict") else result

    async def index(self, kind: str, body: Mapping[str, Any]) -> Response:
        """Run one contract indexer.

        ``kind`` is one of ``pool-deployer``, ``pool``, ``nft-factory``,
        ``collection`` or ``rewards``.
        """

        async def operation() -> Any:
            indexer = self.indexers.get(kind)
            if indexer is None:
                raise InvalidRequest(f"Unknown indexer {kind!r}")
            chain_id = parse_chain_id(body)
            address = parse_address(body)
            from_block, to_block = parse_block_range(body)
            return await indexer.index(chain_id, address, from_block, to_block)

        return await self._respond(operation)

    async def reconcile(self, body: Mapping[str, Any]) -> Response:
        async def operation() -> Any:
            chain_id = parse_chain_id(body)
            batch_size = _optional_int(body, "batchSize")
            if batch_size == 0:
                raise InvalidRequest("Invalid batchSize")
            return await self.reconciler.reconcile(chain_id, parse_address(body), batch_size)

        return await self._respond(operation)

    async def refresh_collections(self, body: Mapping[str, Any]) -> Response:
        async def operation() -> Any:
            chain_id = parse_chain_id(body)
            addresses = body.get("collectionAddresses")
            if addresses is not None and (
                not isinstance(addresses, list) or not all(isinstance(a, str) for a in addresses)
            ):
                raise InvalidRequest("Invalid collectionAddresses")
            return await self.refresher.refresh(
                chain_id,
                addresses=addresses,
                pool_address=body.get("poolAddress"),
                refresh_stale=bool(body.get("refreshStale")),
            )

        return await self._respond(operation)

    async def orchestrate(self, body: Mapping[str, Any]) -> Response:
        async def operation() -> Any:
            chain_id = parse_chain_id({"chainId": self.driver_settings.chain_id, **body})
            from_block, to_block = parse_block_range(body)
            return await self.orchestrator.run(chain_id, from_block, to_block)

        return await self._respond(operation)

    def ticker(self, chain_id: int | None = None) -> Ticker:
        body = {"chainId": chain_id} if chain_id is not None else {}
        return Ticker(
            lambda: self.orchestrate(body),
            ticks_per_run=self.driver_settings.ticks_per_run,
            tick_interval_seconds=self.driver_settings.tick_interval_seconds,
            call_timeout_seconds=self.driver_settings.call_timeout_seconds,
        )
